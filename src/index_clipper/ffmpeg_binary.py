"""FFmpeg binary discovery for index-clipper.

Looks for an ffmpeg executable in a configured location, the bundled
imageio-ffmpeg binary, or the system PATH.
"""

from __future__ import annotations

import platform
import shutil
import subprocess
from pathlib import Path
from typing import NamedTuple

from pydantic import BaseModel, Field


class FFmpegInfo(NamedTuple):
    """Information about the FFmpeg installation."""

    path: str
    version: str
    available: bool
    source: str  # "custom", "imageio", "system", or "not_found"


class FFmpegConfig(BaseModel):
    """Where to find FFmpeg and how long to let it run."""

    custom_ffmpeg_path: str | None = Field(
        default=None,
        description="Custom path to FFmpeg executable",
    )
    prefer_system: bool = Field(
        default=False,
        description="Prefer system FFmpeg over the bundled imageio-ffmpeg binary",
    )
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Kill a single cut after this many seconds (None = no limit)",
    )


def _subprocess_flags() -> int:
    if platform.system() == "Windows":
        return subprocess.CREATE_NO_WINDOW
    return 0


def _get_ffmpeg_from_imageio() -> str | None:
    """Path of the binary bundled with imageio-ffmpeg, if any."""
    try:
        import imageio_ffmpeg
        return imageio_ffmpeg.get_ffmpeg_exe()
    except (ImportError, RuntimeError):
        return None


def _get_system_ffmpeg() -> str | None:
    return shutil.which("ffmpeg")


def _locate(config: FFmpegConfig) -> tuple[str | None, str]:
    """Resolve (path, source) following the configured preference order."""
    if config.custom_ffmpeg_path and Path(config.custom_ffmpeg_path).exists():
        return config.custom_ffmpeg_path, "custom"

    if config.prefer_system:
        system_path = _get_system_ffmpeg()
        if system_path:
            return system_path, "system"

    imageio_path = _get_ffmpeg_from_imageio()
    if imageio_path:
        return imageio_path, "imageio"

    system_path = _get_system_ffmpeg()
    if system_path:
        return system_path, "system"

    return None, "not_found"


def get_ffmpeg_path(config: FFmpegConfig | None = None) -> str | None:
    """Get the path to the FFmpeg executable.

    Searches in the following order:
    1. Custom path from config
    2. System PATH (only when ``prefer_system`` is set)
    3. imageio-ffmpeg bundled binary
    4. System PATH

    Args:
        config: Optional configuration for custom paths.

    Returns:
        Path to FFmpeg executable, or None if not found.
    """
    path, _ = _locate(config or FFmpegConfig())
    return path


def _get_ffmpeg_version(ffmpeg_path: str) -> str | None:
    """Version string reported by ``ffmpeg -version``."""
    try:
        result = subprocess.run(
            [ffmpeg_path, "-version"],
            capture_output=True,
            text=True,
            timeout=10,
            creationflags=_subprocess_flags(),
        )
    except (subprocess.TimeoutExpired, OSError):
        return None

    if result.returncode != 0:
        return None

    # e.g. "ffmpeg version 6.0-static https://johnvansickle.com/ffmpeg/"
    first_line = result.stdout.split("\n")[0]
    if "version" in first_line.lower():
        parts = first_line.split("version", 1)
        if parts[1].strip():
            return parts[1].strip().split()[0]
    return first_line.strip() or None


def get_ffmpeg_info(config: FFmpegConfig | None = None) -> FFmpegInfo:
    """Get path, version and origin of the FFmpeg that would be used."""
    path, source = _locate(config or FFmpegConfig())

    if path is None:
        return FFmpegInfo(path="", version="", available=False, source="not_found")

    version = _get_ffmpeg_version(path) or "unknown"
    return FFmpegInfo(path=path, version=version, available=True, source=source)


def verify_ffmpeg(config: FFmpegConfig | None = None) -> tuple[bool, str]:
    """Verify FFmpeg is available and runs.

    Returns:
        Tuple of (success, message).
    """
    info = get_ffmpeg_info(config)

    if not info.available:
        return (False, "FFmpeg not found. Install imageio-ffmpeg or add FFmpeg to PATH.")

    if info.version == "unknown":
        return (False, f"FFmpeg found at {info.path} but `-version` failed")

    return (True, f"FFmpeg {info.version} available ({info.source}): {info.path}")
