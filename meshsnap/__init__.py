"""MeshSnap - Export captured render meshes to STL, OBJ and GLB."""

from meshsnap.core import ClipBox, Config, MeshRecord, RawMesh
from meshsnap.core.pipeline import (
    ExportBatch,
    ExportPipeline,
    ExportResult,
    ExportStats,
    export_meshes,
)
from meshsnap.encoders import ExportFormat

__version__ = "0.1.0"

__all__ = [
    "Config",
    "RawMesh",
    "MeshRecord",
    "ClipBox",
    "ExportFormat",
    "ExportPipeline",
    "ExportBatch",
    "ExportResult",
    "ExportStats",
    "export_meshes",
    "__version__",
]
