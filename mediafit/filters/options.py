"""
Parsing for clip windows and grid options given alongside filter text.
"""

import re
from typing import Iterable, Optional

from ..models import ClipWindow, GridOptions

_CLOCK = re.compile(r"^(?:(\d+):)?(\d+):(\d+(?:\.\d+)?)$")
_SECONDS = re.compile(r"^(\d+(?:\.\d+)?)(ms|s)?$")

GRID_OPTION_KEYS = ("mdelay", "mspeed", "msync")


def parse_time_value(text: str) -> float:
    """
    Convert a time value to seconds.

    Accepts ``12``, ``12.5``, ``12s``, ``500ms``, ``MM:SS`` and ``HH:MM:SS``.
    """
    value = text.strip().lower()

    match = _CLOCK.match(value)
    if match:
        hours, minutes, seconds = match.groups()
        return int(hours or 0) * 3600 + int(minutes) * 60 + float(seconds)

    match = _SECONDS.match(value)
    if match:
        number, unit = match.groups()
        seconds = float(number)
        return seconds / 1000 if unit == "ms" else seconds

    raise ValueError(f"Invalid time value: {text}")


def parse_clip_options(args: Iterable[str]) -> Optional[ClipWindow]:
    """Build a ClipWindow from ``start=`` and ``clip=`` arguments."""
    start: Optional[float] = None
    duration: Optional[float] = None

    for arg in args:
        if arg.startswith("clip="):
            duration = parse_time_value(arg.split("=", 1)[1])
        elif arg.startswith("start="):
            start = parse_time_value(arg.split("=", 1)[1])

    if start is None and duration is None:
        return None
    return ClipWindow(start=start, duration=duration)


def parse_grid_options(text: Optional[str]) -> GridOptions:
    """Extract mdelay / mspeed / msync from filter text."""
    if not text:
        return GridOptions()

    delay_ms = 0
    speed = 1.0
    sync = False
    sync_duration: Optional[float] = None

    match = re.search(r"mdelay=(\d+)", text)
    if match:
        delay_ms = min(5000, max(0, int(match.group(1))))

    match = re.search(r"mspeed=(\d+(?:\.\d+)?)", text)
    if match:
        speed = min(2.0, max(0.5, float(match.group(1))))

    match = re.search(r"msync(?:=(\d+))?", text)
    if match:
        sync = True
        if match.group(1):
            sync_duration = float(min(300, max(1, int(match.group(1)))))

    return GridOptions(delay_ms=delay_ms, speed=speed, sync=sync, sync_duration=sync_duration)
