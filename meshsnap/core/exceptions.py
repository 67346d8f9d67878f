"""Custom exceptions for MeshSnap."""

from enum import Enum
from pathlib import Path
from typing import Any, Optional


class MeshSnapError(Exception):
    """Base exception for MeshSnap."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(MeshSnapError):
    """Raised when configuration is invalid."""

    pass


class RejectionReason(str, Enum):
    """Why the validator refused a raw mesh."""

    MISSING_POSITIONS = "Model has no position"
    MISSING_NORMALS = "Model has no normal"
    MISSING_INDICES = "Model has no indices"
    POSITIONS_NOT_TRIPLES = "Position buffer length not multiple of 3"
    INDICES_NOT_TRIPLES = "Indice length not multiple of 3"
    NORMAL_LENGTH_MISMATCH = "Different position and normal buffer length"
    NON_INTEGER_INDEX = "Indice is not integer"
    INDEX_OUT_OF_RANGE = "Indice overflow"
    VERTEX_COLOR_LENGTH_MISMATCH = "Vertex color buffer does not match vertex count"
    BAD_TRANSFORM = "Transform matrix is not 4x4"
    NON_NUMERIC_BUFFER = "Buffer is not a flat list of numbers"
    BAD_MATERIAL = "Material values are not numeric"


class StructuralInvariantViolation(MeshSnapError):
    """Raised when a raw mesh breaks a structural invariant."""

    def __init__(self, reason: RejectionReason, details: Optional[dict[str, Any]] = None):
        super().__init__(f"Invalid mesh: {reason.value}", details)
        self.reason = reason


class EncodingError(MeshSnapError):
    """Raised when a format encoder cannot produce output."""

    def __init__(self, format_name: str, reason: str):
        super().__init__(f"Failed to encode {format_name.upper()}: {reason}")
        self.format_name = format_name
        self.reason = reason


class UnsupportedComponentType(EncodingError):
    """Raised when a packed component is neither text, integer nor bytes."""

    def __init__(self, component: Any, format_name: str = "binary"):
        super().__init__(
            format_name,
            f"Unsupported component type: {type(component).__name__}",
        )
        self.component = component


class MeshLoadError(MeshSnapError):
    """Raised when an input file cannot be turned into raw meshes."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Failed to load meshes from '{path}': {reason}")
        self.path = path
        self.reason = reason
