"""Core data model, configuration and errors for MeshSnap."""

from meshsnap.core.config import (
    BUILTIN_SKIP_FINGERPRINTS,
    BoxBounds,
    ClipConfig,
    Config,
    DedupConfig,
    ExportConfig,
    LoggingConfig,
    MergeConfig,
    ValidationConfig,
    get_default_config,
    load_config,
)
from meshsnap.core.exceptions import (
    ConfigurationError,
    EncodingError,
    MeshLoadError,
    MeshSnapError,
    RejectionReason,
    StructuralInvariantViolation,
    UnsupportedComponentType,
)
from meshsnap.core.records import ClipBox, Material, MeshRecord, RawMesh

__all__ = [
    # Config classes
    "Config",
    "ValidationConfig",
    "DedupConfig",
    "BoxBounds",
    "ClipConfig",
    "MergeConfig",
    "ExportConfig",
    "LoggingConfig",
    "BUILTIN_SKIP_FINGERPRINTS",
    # Config functions
    "get_default_config",
    "load_config",
    # Records
    "RawMesh",
    "MeshRecord",
    "Material",
    "ClipBox",
    # Exceptions
    "MeshSnapError",
    "ConfigurationError",
    "RejectionReason",
    "StructuralInvariantViolation",
    "EncodingError",
    "UnsupportedComponentType",
    "MeshLoadError",
]
