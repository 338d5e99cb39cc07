"""
Configuration management for mediafit
"""

import yaml
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TranscodingConfig(BaseModel):
    ffmpeg_path: str = "auto"
    ffprobe_path: str = "auto"
    temp_directory: str = "./mediafit_temp"
    output_directory: str = "./mediafit_output"
    attempt_timeout: float = 80.0  # Wall-clock deadline for a single FFmpeg invocation
    probe_timeout: float = 30.0
    default_ceiling_bytes: int = 9 * 1024 * 1024
    # Long sources are cut down before size fitting
    pretrim_threshold: float = 600.0
    pretrim_duration: float = 500.0
    terminate_grace: float = 5.0  # Seconds FFmpeg gets to exit after SIGINT


class HardwareConfig(BaseModel):
    prefer_hw_accel: bool = True
    fallback_to_software: bool = True
    nvenc_preset: str = "p5"  # Calculated-bitrate encodes
    nvenc_ladder_preset: str = "p6"  # Constant-quality ladder encodes


class CompositorConfig(BaseModel):
    max_clip_seconds: float = 30.0
    dj_effect_count: int = 2
    dj_max_retries: int = 3
    grid_cell_width: int = 320
    grid_cell_height: int = 240
    side_by_side_width: int = 640
    side_by_side_height: int = 360


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    file: Optional[str] = None


class MediaFitConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MEDIAFIT_",
        env_nested_delimiter="__",
    )

    transcoding: TranscodingConfig = Field(default_factory=TranscodingConfig)
    hardware: HardwareConfig = Field(default_factory=HardwareConfig)
    compositor: CompositorConfig = Field(default_factory=CompositorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def find_config_file() -> Optional[Path]:
    """Find the configuration file in standard locations."""
    search_paths = [
        Path.cwd() / "mediafit.yaml",
        Path.cwd() / "mediafit.yml",
        Path.cwd() / "config" / "mediafit.yaml",
        Path.home() / ".config" / "mediafit" / "mediafit.yaml",
        Path("/etc/mediafit/mediafit.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config(config_path: Optional[str] = None) -> MediaFitConfig:
    """Load configuration from YAML file or use defaults."""
    config_file = Path(config_path) if config_path else find_config_file()

    if config_file and config_file.exists():
        with open(config_file, "r") as f:
            yaml_data = yaml.safe_load(f) or {}
        return MediaFitConfig(**yaml_data)

    return MediaFitConfig()


# Global config instance
_config: Optional[MediaFitConfig] = None


def get_config() -> MediaFitConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: MediaFitConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
