"""Configuration loading and management for index-clipper.

Settings come from an optional JSON file, then environment variables
(``INDEX_CLIPPER_*``) on top.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from index_clipper.ffmpeg_binary import FFmpegConfig
from index_clipper.index_parser import DEFAULT_FLAG_PATTERN

ENV_PREFIX = "INDEX_CLIPPER_"


class ArchiveSettings(BaseModel):
    """Layout and encoding of generated zip archives."""

    # Sub-folders inside a job folder
    flagged_folder: str = "flagged"
    unflagged_folder: str = "unflagged"
    fallback_folder: str = "all"  # Jobs without segment metadata
    manifest_name: str = "_errors.txt"
    compression: Literal["deflated", "stored"] = "deflated"
    # Bytes read from a clip per write into the zip stream
    chunk_size: int = Field(default=1024 * 1024, gt=0)


class ClipperConfig(BaseModel):
    """Top-level settings for the splitting service."""

    # Uploaded media and index text, one directory per job
    storage_root: Path = Field(default_factory=lambda: Path("storage"))
    # Generated clips live in output_root/<job_id>/clips
    output_root: Path = Field(default_factory=lambda: Path("output"))
    title_max_length: int = Field(default=120, gt=0)
    flag_pattern: str = DEFAULT_FLAG_PATTERN
    ffmpeg: FFmpegConfig = Field(default_factory=FFmpegConfig)
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)

    def job_storage_dir(self, job_id: str) -> Path:
        """Directory holding a job's intake files."""
        return self.storage_root / job_id

    def job_output_dir(self, job_id: str) -> Path:
        """Directory holding everything a job produced."""
        return self.output_root / job_id

    def clips_dir(self, job_id: str) -> Path:
        """Directory holding a job's clips."""
        return self.job_output_dir(job_id) / "clips"


def _apply_env(data: dict) -> dict:
    """Overlay ``INDEX_CLIPPER_*`` environment variables onto raw settings."""
    storage_root = os.environ.get(f"{ENV_PREFIX}STORAGE_ROOT")
    if storage_root:
        data["storage_root"] = storage_root

    output_root = os.environ.get(f"{ENV_PREFIX}OUTPUT_ROOT")
    if output_root:
        data["output_root"] = output_root

    ffmpeg_path = os.environ.get(f"{ENV_PREFIX}FFMPEG")
    if ffmpeg_path:
        data.setdefault("ffmpeg", {})["custom_ffmpeg_path"] = ffmpeg_path

    return data


def load_config(path: Path | None = None) -> ClipperConfig:
    """Load configuration from a JSON file and the environment.

    Args:
        path: Optional JSON config file; ignored when it does not exist

    Returns:
        ClipperConfig with file values, then env overrides, then defaults

    Raises:
        json.JSONDecodeError: If the config file is invalid JSON
    """
    data: dict = {}
    if path is not None and path.exists():
        with open(path, encoding="utf-8") as f:
            data = json.load(f)

    return ClipperConfig(**_apply_env(data))


def save_config(path: Path, config: ClipperConfig) -> Path:
    """Save configuration to a JSON file with atomic write.

    Args:
        path: Target file
        config: Settings to save

    Returns:
        Path to the saved config file
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + ".tmp")

    # Atomic write: write to temp file, then rename
    with open(temp_path, "w", encoding="utf-8") as f:
        json.dump(config.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

    temp_path.replace(path)
    return path
