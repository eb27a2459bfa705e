from __future__ import annotations
"""Video concatenation capability (Strategy Pattern).

``FFmpegConcatenator`` joins already-encoded clips with the concat demuxer
(stream copy, no re-encode). The subprocess runs in a worker thread so the
event loop stays free while ffmpeg works.
"""

import asyncio
import logging
import os
import subprocess
from abc import ABC, abstractmethod

from storyreel.config import get_settings
from storyreel.errors import ConcatenationFailed

logger = logging.getLogger(__name__)


class BaseConcatenator(ABC):
    """Abstract concatenator: strategy interface."""

    provider_name: str = "unknown"

    @abstractmethod
    async def concatenate(self, manifest: list[str], output_path: str, timeout: float) -> None:
        """Join the clips in ``manifest`` (in order) into ``output_path``.

        Raises:
            ConcatenationFailed: non-zero exit, timeout, missing tool or no output.
        """


class FFmpegConcatenator(BaseConcatenator):
    provider_name = "ffmpeg"

    def __init__(self, ffmpeg_bin: str = "ffmpeg"):
        self.ffmpeg_bin = ffmpeg_bin

    async def concatenate(self, manifest: list[str], output_path: str, timeout: float) -> None:
        if not manifest:
            raise ConcatenationFailed()

        list_path = output_path + ".concat.txt"
        with open(list_path, "w") as f:
            for path in manifest:
                f.write(f"file '{_escape(os.path.abspath(path))}'\n")

        cmd = [
            self.ffmpeg_bin, "-y",
            "-f", "concat", "-safe", "0",
            "-i", list_path,
            "-c", "copy",
            output_path,
        ]

        try:
            result = await asyncio.to_thread(
                subprocess.run, cmd, capture_output=True, text=True, timeout=timeout
            )
        except subprocess.TimeoutExpired:
            logger.error("FFmpeg concat timed out after %.0fs (%d clips)", timeout, len(manifest))
            raise ConcatenationFailed() from None
        except FileNotFoundError:
            logger.error("FFmpeg binary not found: %s", self.ffmpeg_bin)
            raise ConcatenationFailed() from None
        finally:
            try:
                os.remove(list_path)
            except OSError:
                pass

        if result.returncode != 0:
            logger.error("FFmpeg concat failed (exit %d): %s", result.returncode, result.stderr[-500:])
            raise ConcatenationFailed()
        if not os.path.isfile(output_path) or os.path.getsize(output_path) == 0:
            logger.error("FFmpeg concat produced no output")
            raise ConcatenationFailed()

        logger.info("Concatenated %d clips", len(manifest))


def _escape(path: str) -> str:
    # concat demuxer quoting
    return path.replace("'", "'\\''")


def get_concatenator() -> BaseConcatenator:
    return FFmpegConcatenator(get_settings().FFMPEG_BIN)
