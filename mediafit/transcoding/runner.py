"""
FFmpeg subprocess execution with deadlines and progress reporting.
"""

import asyncio
import logging
import re
import signal
import subprocess
import sys
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional

from ..errors import ProcessFailure, TranscodeTimeout

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]

_TIME_PATTERN = re.compile(r"time=\s*(\d+):(\d+):(\d+(?:\.\d+)?)")
_LINE_SPLIT = re.compile(r"[\r\n]")

STDERR_TAIL_LINES = 100


def parse_progress_time(line: str) -> Optional[float]:
    """Return the ``time=`` position of an FFmpeg status line in seconds."""
    match = _TIME_PATTERN.search(line)
    if not match:
        return None
    h, m, s = match.groups()
    return int(h) * 3600 + int(m) * 60 + float(s)


class FFmpegRunner:
    """
    Runs one FFmpeg command per call.

    Each run is bounded by a deadline. When it expires the process is
    stopped, any partial output is removed and TranscodeTimeout is raised.
    """

    def __init__(self, attempt_timeout: float = 80.0, terminate_grace: float = 5.0):
        self.attempt_timeout = attempt_timeout
        self.terminate_grace = terminate_grace

    async def run(
        self,
        cmd: List[str],
        output_path: Optional[Path] = None,
        duration: float = 0.0,
        stage: str = "transcoding",
        progress_callback: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Execute ``cmd`` and return its stderr.

        Raises:
            TranscodeTimeout: the deadline passed before FFmpeg exited.
            ProcessFailure: FFmpeg could not start, exited non-zero, or
                left no usable output file.
        """
        deadline = timeout if timeout is not None else self.attempt_timeout
        logger.info(f"[FFmpeg] {stage} (deadline {deadline:g}s)")
        logger.debug(f"[FFmpeg] {' '.join(cmd)}")

        kwargs: Dict[str, Any] = {
            "stdin": asyncio.subprocess.DEVNULL,
            "stdout": asyncio.subprocess.DEVNULL,
            "stderr": asyncio.subprocess.PIPE,
        }
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP

        try:
            process = await asyncio.create_subprocess_exec(*cmd, **kwargs)
        except OSError as e:
            logger.error(f"[FFmpeg] Failed to start: {e}")
            raise ProcessFailure(f"Failed to start FFmpeg: {e}") from e

        stderr_lines: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)

        try:
            try:
                await asyncio.wait_for(
                    self._read_stderr(process, stderr_lines, duration, stage, progress_callback),
                    timeout=deadline,
                )
                await asyncio.wait_for(process.wait(), timeout=self.terminate_grace)
            except asyncio.TimeoutError:
                logger.error(f"[FFmpeg] {stage} exceeded {deadline:g}s, terminating")
                await self._graceful_terminate(process)
                _discard(output_path)
                raise TranscodeTimeout(stage, deadline)
        finally:
            # Covers cancellation of the awaiting task
            if process.returncode is None:
                await self._graceful_terminate(process)

        stderr_text = "\n".join(stderr_lines)

        if process.returncode != 0:
            _discard(output_path)
            tail = "\n".join(list(stderr_lines)[-5:]) or f"exit code {process.returncode}"
            raise ProcessFailure(tail, return_code=process.returncode, stderr=stderr_text)

        if output_path is not None:
            if not output_path.exists() or output_path.stat().st_size == 0:
                _discard(output_path)
                raise ProcessFailure(
                    f"FFmpeg produced no output at {output_path.name}",
                    return_code=process.returncode,
                    stderr=stderr_text,
                )

        if progress_callback:
            self._notify(progress_callback, stage, 1.0)

        return stderr_text

    async def _read_stderr(
        self,
        process: asyncio.subprocess.Process,
        stderr_lines: Deque[str],
        duration: float,
        stage: str,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        """FFmpeg rewrites its status line with \\r, so split on both."""
        buffer = ""
        while True:
            chunk = await process.stderr.read(4096)
            if not chunk:
                break
            buffer += chunk.decode("utf-8", errors="ignore")
            parts = _LINE_SPLIT.split(buffer)
            buffer = parts.pop()
            for line in parts:
                if line.strip():
                    self._handle_line(line, stderr_lines, duration, stage, progress_callback)
        if buffer.strip():
            self._handle_line(buffer, stderr_lines, duration, stage, progress_callback)

    def _handle_line(
        self,
        line: str,
        stderr_lines: Deque[str],
        duration: float,
        stage: str,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        stderr_lines.append(line)
        if not progress_callback or duration <= 0:
            return
        position = parse_progress_time(line)
        if position is not None:
            self._notify(progress_callback, stage, min(0.999, position / duration))

    @staticmethod
    def _notify(progress_callback: ProgressCallback, stage: str, fraction: float) -> None:
        try:
            progress_callback(stage, fraction)
        except Exception as e:
            logger.warning(f"[FFmpeg] Progress callback error: {e}")

    async def _graceful_terminate(self, process: asyncio.subprocess.Process) -> None:
        """
        Stop FFmpeg, letting it finalize first.

        SIGINT (CTRL_BREAK_EVENT on Windows), then terminate, then kill.
        """
        if process.returncode is not None:
            return

        interrupt = signal.CTRL_BREAK_EVENT if sys.platform == "win32" else signal.SIGINT
        try:
            process.send_signal(interrupt)
        except (ProcessLookupError, OSError):
            pass

        try:
            await asyncio.wait_for(process.wait(), timeout=self.terminate_grace)
            logger.debug("[FFmpeg] Terminated gracefully")
            return
        except asyncio.TimeoutError:
            pass

        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=3.0)
            logger.debug("[FFmpeg] Terminated with SIGTERM")
            return
        except (asyncio.TimeoutError, ProcessLookupError, OSError):
            pass

        try:
            process.kill()
            await process.wait()
            logger.warning("[FFmpeg] Killed forcefully")
        except (ProcessLookupError, OSError):
            pass


def _discard(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"[FFmpeg] Could not remove {path}: {e}")
