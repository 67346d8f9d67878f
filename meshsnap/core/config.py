"""Configuration management for MeshSnap using Pydantic."""

from pathlib import Path
from typing import Literal, Optional

import tomli
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from meshsnap.core.exceptions import ConfigurationError
from meshsnap.core.records import ClipBox

# Fingerprints of decoration primitives that are never part of the data.
BUILTIN_SKIP_FINGERPRINTS = (
    "8dc5ad4b70fbe090",  # axis arrow
    "d9ec0e5061527878",  # axis rod
    "463c904c2f580180",  # point, sphere, ellipsoid
)


class ValidationConfig(BaseModel):
    """Configuration for raw mesh validation."""

    model_config = ConfigDict(frozen=True)

    min_used_fraction: float = Field(
        0.0,
        ge=0,
        le=1,
        description="Warn when fewer vertices than this fraction are referenced",
    )


class DedupConfig(BaseModel):
    """Configuration for duplicate geometry suppression."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(True, description="Skip meshes whose fingerprint was already seen")
    skip_fingerprints: list[str] = Field(
        default_factory=lambda: list(BUILTIN_SKIP_FINGERPRINTS),
        description="Fingerprints (16 hex digits) excluded from every export",
    )

    @field_validator("skip_fingerprints")
    @classmethod
    def validate_fingerprints(cls, v: list[str]) -> list[str]:
        """Ensure every fingerprint is a 64-bit hex string."""
        normalized = []
        for key in v:
            key = key.strip().lower()
            if len(key) != 16:
                raise ValueError(f"Fingerprint must have 16 hex digits: {key!r}")
            int(key, 16)
            normalized.append(key)
        return normalized


class BoxBounds(BaseModel):
    """Axis-aligned clip bounds."""

    model_config = ConfigDict(frozen=True)

    xmin: float
    xmax: float
    ymin: float
    ymax: float
    zmin: float
    zmax: float

    @model_validator(mode="after")
    def check_order(self) -> "BoxBounds":
        for axis in "xyz":
            if getattr(self, f"{axis}min") >= getattr(self, f"{axis}max"):
                raise ValueError(f"{axis}min must be smaller than {axis}max")
        return self

    def to_clip_box(self) -> ClipBox:
        return ClipBox(self.xmin, self.xmax, self.ymin, self.ymax, self.zmin, self.zmax)


class ClipConfig(BaseModel):
    """Configuration for box clipping."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(False, description="Clip meshes against the box")
    box: Optional[BoxBounds] = Field(None, description="Clip bounds (viewport box)")
    mode: Literal["max_offset", "sequential"] = Field(
        "max_offset",
        description="max_offset clips against the dominant plane per vertex, "
        "sequential clips against each of the six planes in turn",
    )
    epsilon_scale: float = Field(
        1e-6,
        ge=0,
        description="Boundary bias, multiplied by the cube root of the box volume",
    )


class MergeConfig(BaseModel):
    """Configuration for instance merging."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(True, description="Merge consecutive instances of one shape")
    key_separator: str = Field(
        ":", min_length=1, description="Separator between shape key and instance index"
    )


class ExportConfig(BaseModel):
    """Configuration for file encoding."""

    model_config = ConfigDict(frozen=True)

    format: Literal["stl", "obj", "glb"] = Field("glb", description="Output format")
    object_name: str = Field(
        "meshsnap", min_length=1, description="OBJ object name and glTF scene name"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Logging level"
    )
    format: Literal["json", "console", "plain"] = Field(
        "console", description="Log format"
    )
    colorize: bool = Field(True, description="Colorize console output")
    timestamp_format: str = Field("iso", description="structlog timestamp format")
    add_caller_info: bool = Field(False, description="Add file/line/function to events")
    log_dir: Optional[Path] = Field(None, description="Directory for log files")
    log_to_file: bool = Field(False, description="Enable file logging")


class Config(BaseModel):
    """Main configuration for MeshSnap."""

    model_config = ConfigDict(frozen=True)

    validation: ValidationConfig = Field(
        default_factory=ValidationConfig, description="Validation configuration"
    )
    dedup: DedupConfig = Field(
        default_factory=DedupConfig, description="Deduplication configuration"
    )
    clip: ClipConfig = Field(default_factory=ClipConfig, description="Clip configuration")
    merge: MergeConfig = Field(
        default_factory=MergeConfig, description="Merge configuration"
    )
    export: ExportConfig = Field(
        default_factory=ExportConfig, description="Export configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    @classmethod
    def from_toml(cls, path: Path | str) -> "Config":
        """Load configuration from TOML file.

        Args:
            path: Path to TOML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            tomli.TOMLDecodeError: If TOML is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "rb") as f:
            data = tomli.load(f)

        return cls(**data)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Create configuration from dictionary."""
        return cls(**data)

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json", exclude_none=True)

    def save_toml(self, path: Path | str) -> None:
        """Save configuration to TOML file.

        Args:
            path: Path to save TOML file
        """
        import tomli_w

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "wb") as f:
            tomli_w.dump(self.to_dict(), f)


def get_default_config() -> Config:
    """Get default configuration."""
    return Config()


def load_config(path: Optional[Path | str] = None) -> Config:
    """Load configuration from file or return defaults.

    Args:
        path: Optional path to configuration file

    Returns:
        Config instance

    Raises:
        ConfigurationError: If the file is malformed or holds invalid values
    """
    if not path:
        return get_default_config()
    try:
        return Config.from_toml(path)
    except (tomli.TOMLDecodeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e
