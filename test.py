#!/usr/bin/env python3
"""
mediafit test runner.

Usage:
    python test.py               # Unit tests (no FFmpeg needed)
    python test.py all           # Everything, including FFmpeg integration tests
    python test.py integration   # Only the FFmpeg integration tests
    python test.py failed        # Re-run the last failures
    python test.py sizing        # One module (tests/test_sizing.py) or a -k pattern
"""

import os
import subprocess
import sys


def main():
    os.chdir(os.path.dirname(os.path.abspath(__file__)))

    cmd = [sys.executable, "-m", "pytest", "tests/", "--tb=short"]
    args = sys.argv[1:]

    if not args:
        cmd.extend(["-m", "not integration"])
        print("[TEST] Running unit tests...\n")
    elif args[0] == "all":
        cmd.append("-v")
        print("[TEST] Running all tests...\n")
    elif args[0] == "integration":
        cmd.extend(["-v", "-m", "integration"])
        print("[TEST] Running FFmpeg integration tests...\n")
    elif args[0] == "failed":
        cmd.extend(["--lf", "-v"])
        print("[RETRY] Re-running failed tests...\n")
    else:
        test_file = f"tests/test_{args[0]}.py"
        if os.path.exists(test_file):
            cmd = [sys.executable, "-m", "pytest", test_file, "-v", "--tb=short"]
            print(f"[MODULE] Running {test_file}...\n")
        else:
            cmd.extend(["-v", "-k", args[0]])
            print(f"[FILTER] Running tests matching '{args[0]}'...\n")

    try:
        result = subprocess.run(cmd)
    except KeyboardInterrupt:
        print("\n[ABORT] Tests interrupted")
        return 1

    print("\n" + "=" * 60)
    if result.returncode == 0:
        print("[PASS] All selected tests passed")
    else:
        print(f"[FAIL] Tests failed (exit code: {result.returncode})")
    print("=" * 60)
    return result.returncode


if __name__ == "__main__":
    sys.exit(main())
