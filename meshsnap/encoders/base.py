"""Base classes and byte-packing helpers shared by the format encoders."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable, Sequence

import numpy as np

from meshsnap.core.exceptions import UnsupportedComponentType
from meshsnap.core.records import MeshRecord


class ExportFormat(str, Enum):
    """Output file formats."""

    STL = "stl"
    OBJ = "obj"
    GLB = "glb"

    @property
    def mime_type(self) -> str:
        return {
            ExportFormat.STL: "model/stl",
            ExportFormat.OBJ: "model/obj",
            ExportFormat.GLB: "model/gltf-binary",
        }[self]

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @property
    def filename(self) -> str:
        return f"model{self.extension}"


def to_y_up(values: np.ndarray) -> np.ndarray:
    """Remap flat Z-up vectors to Y-up right-handed: ``(x, y, z) -> (x, z, -y)``.

    Works on float32 data and only permutes and negates, so the result is
    bit-reproducible. Negative zeros are folded to positive zero.
    """
    vectors = np.asarray(values, dtype=np.float32).reshape(-1, 3)
    remapped = np.empty_like(vectors)
    remapped[:, 0] = vectors[:, 0]
    remapped[:, 1] = vectors[:, 2]
    remapped[:, 2] = -vectors[:, 1]
    remapped += np.float32(0.0)
    return remapped.reshape(-1)


def component_size(component: Any) -> int:
    """Byte length a component occupies once packed."""
    if isinstance(component, str):
        return len(component.encode("utf-8"))
    if isinstance(component, (bool, np.bool_)):
        raise UnsupportedComponentType(component)
    if isinstance(component, (int, np.integer)):
        return 4
    if isinstance(component, (bytes, bytearray, memoryview)):
        return memoryview(component).nbytes
    if isinstance(component, np.ndarray):
        return component.nbytes
    raise UnsupportedComponentType(component)


def pack_components(components: Iterable[Any]) -> bytes:
    """Concatenate heterogeneous components into one byte string.

    Text is UTF-8 encoded, integers are little-endian uint32, byte buffers
    and numpy arrays are copied as they are laid out in memory. The output
    size is computed up front because the layout is positional.

    Raises:
        UnsupportedComponentType: For any other component; nothing is
            produced since later offsets would be meaningless
    """
    components = list(components)
    total = sum(component_size(c) for c in components)

    result = bytearray(total)
    offset = 0
    for component in components:
        if isinstance(component, str):
            chunk = component.encode("utf-8")
        elif isinstance(component, (int, np.integer)):
            chunk = np.array([component], dtype="<u4").tobytes()
        elif isinstance(component, np.ndarray):
            chunk = np.ascontiguousarray(component).tobytes()
        else:
            chunk = bytes(component)
        result[offset : offset + len(chunk)] = chunk
        offset += len(chunk)
    return bytes(result)


def pad_to_alignment(data: bytes, alignment: int = 4, fill: bytes = b"\x00") -> bytes:
    """Pad ``data`` with ``fill`` up to the next multiple of ``alignment``."""
    remainder = len(data) % alignment
    if remainder == 0:
        return data
    return data + fill * (alignment - remainder)


class MeshEncoder(ABC):
    """Abstract base class for format encoders.

    Encoders are pure: they read the records and return bytes without
    modifying any input.
    """

    format: ExportFormat

    def __init__(self, object_name: str = "meshsnap"):
        """Initialize encoder.

        Args:
            object_name: Name written into formats that carry one
        """
        self.object_name = object_name

    @abstractmethod
    def encode(self, records: Sequence[MeshRecord]) -> bytes:
        """Serialize records to the target format.

        Args:
            records: Ordered records to encode

        Returns:
            Complete file contents
        """
        pass

    def triangle_count(self, records: Sequence[MeshRecord]) -> int:
        return sum(r.triangle_count for r in records)
