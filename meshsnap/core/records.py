"""In-memory mesh records shared by every stage of the export engine."""

from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence

import numpy as np

DEFAULT_COLOR = (1.0, 1.0, 1.0, 1.0)


@dataclass(frozen=True)
class Material:
    """Uniform PBR material of one surface."""

    color: tuple[float, float, float, float] = DEFAULT_COLOR
    metalness: float = 0.0
    roughness: float = 1.0

    @classmethod
    def from_values(
        cls,
        color: Optional[Sequence[float]] = None,
        metalness: Optional[float] = None,
        roughness: Optional[float] = None,
    ) -> "Material":
        """Build a material from loosely typed capture values.

        RGB colors get an alpha of 1. Metalness and roughness are clamped
        to [0, 1].
        """
        if color is None:
            rgba = DEFAULT_COLOR
        else:
            values = [float(c) for c in color]
            if len(values) == 3:
                values.append(1.0)
            if len(values) != 4:
                raise ValueError(f"Material color needs 3 or 4 components, got {len(values)}")
            rgba = tuple(values)
        return cls(
            color=rgba,
            metalness=float(np.clip(0.0 if metalness is None else metalness, 0.0, 1.0)),
            roughness=float(np.clip(1.0 if roughness is None else roughness, 0.0, 1.0)),
        )


@dataclass
class RawMesh:
    """Unvalidated mesh arrays as handed over by the session data source.

    Every array is optional here; the validator decides what is usable.
    Matrices are 4x4 column-major, flattened to 16 values each.
    """

    position: Any = None
    normal: Any = None
    indices: Any = None
    color: Optional[Sequence[float]] = None
    metalness: Optional[float] = None
    roughness: Optional[float] = None
    vertex_colors: Any = None
    model_matrix: Any = None
    instance_matrices: Any = None
    instance_colors: Any = None
    group_key: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "RawMesh":
        """Create a raw mesh from a capture dump entry.

        Accepts both the singular buffer names used by the renderer
        (``position``, ``normal``) and their plural spellings.
        """
        return cls(
            position=data.get("position", data.get("positions")),
            normal=data.get("normal", data.get("normals")),
            indices=data.get("indices", data.get("index")),
            color=data.get("color"),
            metalness=data.get("metalness"),
            roughness=data.get("roughness"),
            vertex_colors=data.get("vertex_colors", data.get("vertexColors")),
            model_matrix=data.get("model_matrix", data.get("modelMatrix")),
            instance_matrices=data.get("instance_matrices", data.get("instanceMatrix")),
            instance_colors=data.get("instance_colors", data.get("instanceColor")),
            group_key=data.get("group_key", data.get("groupKey")),
        )


@dataclass
class MeshRecord:
    """One validated, exportable triangle surface.

    Buffers are flat: ``positions`` and ``normals`` hold 3 floats per vertex,
    ``indices`` holds 3 vertex indices per triangle.
    """

    positions: np.ndarray
    normals: np.ndarray
    indices: np.ndarray
    material: Material = field(default_factory=Material)
    vertex_colors: Optional[np.ndarray] = None
    group_key: Optional[str] = None

    def __post_init__(self) -> None:
        self.positions = np.ascontiguousarray(self.positions, dtype=np.float32).reshape(-1)
        self.normals = np.ascontiguousarray(self.normals, dtype=np.float32).reshape(-1)
        self.indices = np.ascontiguousarray(self.indices, dtype=np.uint32).reshape(-1)
        if self.vertex_colors is not None:
            self.vertex_colors = np.ascontiguousarray(
                self.vertex_colors, dtype=np.float32
            ).reshape(-1)

    @property
    def vertex_count(self) -> int:
        return len(self.positions) // 3

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def is_empty(self) -> bool:
        return self.triangle_count == 0

    @property
    def vertices(self) -> np.ndarray:
        """Positions viewed as an (N, 3) array."""
        return self.positions.reshape(-1, 3)

    @property
    def faces(self) -> np.ndarray:
        """Indices viewed as an (M, 3) array."""
        return self.indices.reshape(-1, 3)

    def with_geometry(
        self,
        positions: np.ndarray,
        normals: np.ndarray,
        indices: np.ndarray,
        vertex_colors: Optional[np.ndarray] = None,
    ) -> "MeshRecord":
        """Return a copy carrying new buffers but the same material and key."""
        return replace(
            self,
            positions=positions,
            normals=normals,
            indices=indices,
            vertex_colors=vertex_colors,
        )

    def summary(self) -> dict[str, Any]:
        return {
            "vertices": self.vertex_count,
            "triangles": self.triangle_count,
            "group_key": self.group_key,
            "vertex_colors": self.vertex_colors is not None,
        }


@dataclass(frozen=True)
class ClipBox:
    """Axis-aligned clip bounds. Zero-volume boxes are a caller error."""

    xmin: float
    xmax: float
    ymin: float
    ymax: float
    zmin: float
    zmax: float

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "ClipBox":
        """Create a box from ``(xmin, xmax, ymin, ymax, zmin, zmax)``."""
        if len(values) != 6:
            raise ValueError(f"Clip box needs 6 bounds, got {len(values)}")
        return cls(*(float(v) for v in values))

    @property
    def lower(self) -> np.ndarray:
        return np.array([self.xmin, self.ymin, self.zmin], dtype=np.float64)

    @property
    def upper(self) -> np.ndarray:
        return np.array([self.xmax, self.ymax, self.zmax], dtype=np.float64)

    @property
    def volume(self) -> float:
        return float(np.prod(self.upper - self.lower))

    def as_tuple(self) -> tuple[float, ...]:
        return (self.xmin, self.xmax, self.ymin, self.ymax, self.zmin, self.zmax)
