"""Mesh processing stages for MeshSnap."""

from meshsnap.processing.clipper import CASE_TABLE, BoxClipper, clip, clip_by_offsets
from meshsnap.processing.dedup import Deduplicator, fingerprint, format_fingerprint, hash_array
from meshsnap.processing.merger import MeshMerger, merge
from meshsnap.processing.mesh_loader import CaptureData, MeshLoader, load_capture
from meshsnap.processing.transforms import expand_instances
from meshsnap.processing.validator import MeshValidator, ValidationReport, validate

__all__ = [
    "MeshValidator",
    "ValidationReport",
    "validate",
    "Deduplicator",
    "fingerprint",
    "format_fingerprint",
    "hash_array",
    "BoxClipper",
    "CASE_TABLE",
    "clip",
    "clip_by_offsets",
    "MeshMerger",
    "merge",
    "expand_instances",
    "MeshLoader",
    "CaptureData",
    "load_capture",
]
