"""Conversion settings — Pydantic BaseSettings from environment, .env and YAML."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from conversion.domain.errors import ConfigurationError


class ConversionSettings(BaseSettings):
    """Encoder execution settings.

    Values come from ``CONVERSION_*`` environment variables and the ``.env``
    file. A YAML file can override them through ``load_settings``.
    """

    # Encoder
    ffmpeg_path: str = Field(default="ffmpeg", description="Encoder executable name or absolute path")

    # Process supervision
    diagnostic_tail_lines: int = Field(
        default=20, ge=1, le=1000, description="Output lines kept for failure diagnostics"
    )
    terminate_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Grace period after terminate before the encoder is killed"
    )
    read_chunk_size: int = Field(default=4096, ge=1, description="Bytes read from the encoder output per await")

    # Files
    concat_dir: Path | None = Field(default=None, description="Directory for concat list files. None = system temp")
    progress_log_path: Path | None = Field(default=None, description="Append progress entries here. None = disabled")

    model_config = {"env_prefix": "CONVERSION_", "env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


def load_settings(yaml_path: Path | None = None) -> ConversionSettings:
    """Build settings from the environment, overlaid with a YAML mapping if given.

    Raises ConfigurationError when the file is unreadable, is not a mapping,
    or holds invalid values.
    """
    overrides: dict[str, Any] = {}
    if yaml_path is not None:
        try:
            data = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Cannot read settings file {yaml_path}: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file root must be a mapping, got {type(data).__name__}")
        overrides = data

    try:
        return ConversionSettings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid conversion settings: {exc}") from exc
