#!/usr/bin/env python3
"""
mediafit Minimal Example - Filter and Fit in a Few Lines
========================================================

Prerequisites:
    1. FFmpeg and ffprobe on PATH
    2. pip install -e .

Usage:
    python examples/minimal.py input.mp4
"""

import asyncio
import sys

from mediafit import MediaFitError, transcode

EIGHT_MB = 8 * 1024 * 1024


async def main(path: str) -> int:
    try:
        result = await transcode(
            path,
            output_name="minimal_demo",
            filter_text="{bass=8,hmirror}",
            ceiling_bytes=EIGHT_MB,
        )
    except MediaFitError as e:
        print(f"Error: {e}")
        return 1

    print(f"Output:   {result.path}")
    print(f"Effects:  {', '.join(result.effects) or 'none'}")
    print(f"Attempts: {result.attempts} ({result.hw_accel})")
    for warning in result.warnings:
        print(f"Warning:  {warning}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1])))
