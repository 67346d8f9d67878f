"""File format encoders for MeshSnap."""

from meshsnap.encoders.base import (
    ExportFormat,
    MeshEncoder,
    pack_components,
    pad_to_alignment,
    to_y_up,
)
from meshsnap.encoders.factory import EncoderFactory
from meshsnap.encoders.gltf import GLBEncoder
from meshsnap.encoders.obj import OBJEncoder
from meshsnap.encoders.stl import STLEncoder

__all__ = [
    "ExportFormat",
    "MeshEncoder",
    "EncoderFactory",
    "STLEncoder",
    "OBJEncoder",
    "GLBEncoder",
    "pack_components",
    "pad_to_alignment",
    "to_y_up",
]
