"""FFmpeg invocation for clip cutting.

The orchestrator only sees the ``ToolInvoker`` protocol; ``FFmpegInvoker``
is the real implementation, running ffmpeg as an asyncio subprocess so other
jobs keep making progress while one cut is in flight.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

from index_clipper.errors import ExternalToolError
from index_clipper.ffmpeg_binary import FFmpegConfig, get_ffmpeg_path
from index_clipper.logging import get_logger

logger = get_logger(__name__)

# Keep error messages readable when ffmpeg dumps a long banner
MAX_STDERR_CHARS = 4000


class ToolInvoker(ABC):
    """Abstract base class for the external cutting tool.

    Tests substitute a fake; production uses ``FFmpegInvoker``.
    """

    @abstractmethod
    async def invoke(self, args: Sequence[str]) -> None:
        """Run the tool once with ``args``.

        Raises:
            ExternalToolError: If the tool cannot start or exits non-zero.
        """
        pass


def build_cut_args(
    source: str | Path,
    start: str,
    end: str,
    output: str | Path,
) -> list[str]:
    """Build ffmpeg arguments for a stream-copy cut.

    Args:
        source: Source media path
        start: ``HH:MM:SS`` start timecode
        end: ``HH:MM:SS`` end timecode
        output: Clip output path

    Returns:
        Arguments excluding the ffmpeg executable itself
    """
    return [
        "-hide_banner",
        "-nostdin",
        "-y",
        "-ss", start,
        "-to", end,
        "-i", str(source),
        "-c", "copy",
        str(output),
    ]


class FFmpegInvoker(ToolInvoker):
    """Runs ffmpeg as an asyncio subprocess.

    The executable is resolved on first use, so constructing an invoker never
    fails; a missing binary surfaces as an ``ExternalToolError`` on the job.
    """

    def __init__(self, config: FFmpegConfig | None = None) -> None:
        self._config = config or FFmpegConfig()
        self._executable: str | None = None

    @property
    def executable(self) -> str | None:
        """Resolved ffmpeg path, or None when no binary is available."""
        if self._executable is None:
            self._executable = get_ffmpeg_path(self._config)
        return self._executable

    async def invoke(self, args: Sequence[str]) -> None:
        executable = self.executable
        if executable is None:
            raise ExternalToolError(
                "ffmpeg not found. Install imageio-ffmpeg or add FFmpeg to PATH."
            )

        logger.debug("Running ffmpeg", extra={"ffmpeg_args": " ".join(args)})

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolError(
                f"failed to start ffmpeg: {e}",
                context={"executable": executable},
            ) from e

        timeout = self._config.timeout_seconds
        try:
            _, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ExternalToolError(f"ffmpeg timed out after {timeout} seconds") from e

        stderr = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            detail = stderr[-MAX_STDERR_CHARS:]
            message = f"ffmpeg exited with code {process.returncode}"
            if detail:
                message = f"{message}: {detail}"
            raise ExternalToolError(message, returncode=process.returncode, stderr=stderr)
