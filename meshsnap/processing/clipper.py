"""Axis-aligned box clipping with re-triangulation of cut faces."""

import logging
from typing import Dict, Literal, Optional, Tuple

import numpy as np

from meshsnap.core.records import ClipBox, MeshRecord
from meshsnap.processing.transforms import normalize_rows

logger = logging.getLogger(__name__)

# Triangle slots: 0-2 are the triangle's own vertices, 3-5 the vertices
# synthesized on its edges.
EDGE_SLOTS: Tuple[Tuple[int, int], ...] = (
    (0, 1),  # slot 3
    (1, 2),  # slot 4
    (2, 0),  # slot 5
)

# Case code (bit i set when vertex i is outside) -> output triangles over
# the slots above. Every template keeps the winding of the source triangle.
CASE_TABLE: Dict[int, Tuple[Tuple[int, int, int], ...]] = {
    0b000: ((0, 1, 2),),
    0b001: ((3, 1, 2), (3, 2, 5)),
    0b010: ((0, 3, 4), (0, 4, 2)),
    0b011: ((4, 2, 5),),
    0b100: ((0, 1, 4), (0, 4, 5)),
    0b101: ((3, 1, 4),),
    0b110: ((0, 3, 5),),
    0b111: (),
}

MAX_TRIANGLES_PER_CASE = max(len(t) for t in CASE_TABLE.values())

ClipMode = Literal["max_offset", "sequential"]


class BoxClipper:
    """Clips validated meshes against an axis-aligned box.

    In ``max_offset`` mode each vertex gets a single offset, its worst
    violation over the six half-spaces of the box, and every triangle is cut
    once against that field. Triangles straddling a box corner are therefore
    cut along one shortcut plane rather than twice. ``sequential`` mode runs
    the same cut once per face plane, which is exact at corners.
    """

    def __init__(
        self,
        box: ClipBox,
        mode: ClipMode = "max_offset",
        epsilon_scale: float = 1e-6,
    ):
        """Initialize clipper.

        Args:
            box: Clip bounds
            mode: ``max_offset`` or ``sequential``
            epsilon_scale: Boundary bias relative to the cube root of the
                box volume; biased vertices on the boundary count as outside
        """
        if mode not in ("max_offset", "sequential"):
            raise ValueError(f"Unknown clip mode: {mode}")
        self.box = box
        self.mode = mode
        self.epsilon = epsilon_scale * float(np.cbrt(abs(box.volume)))

    def clip(self, record: MeshRecord) -> MeshRecord:
        """Clip one record.

        Args:
            record: Record satisfying the validator invariants

        Returns:
            Clipped record; it has zero triangles when nothing is left
        """
        if record.is_empty:
            return record

        if self.mode == "max_offset":
            return clip_by_offsets(record, self.offsets(record.vertices))

        for axis, sign, bound in self._planes():
            offsets = sign * (record.vertices[:, axis].astype(np.float64) - bound) + self.epsilon
            record = clip_by_offsets(record, offsets)
            if record.is_empty:
                break
        return record

    def offsets(self, points: np.ndarray) -> np.ndarray:
        """Largest signed distance of each point outside the six box planes."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        over = points - self.box.upper
        under = self.box.lower - points
        return np.maximum(over, under).max(axis=1) + self.epsilon

    def _planes(self):
        for axis in range(3):
            yield axis, 1.0, self.box.upper[axis]
            yield axis, -1.0, self.box.lower[axis]


def clip_by_offsets(record: MeshRecord, offsets: np.ndarray) -> MeshRecord:
    """Keep the part of a mesh where ``offsets <= 0``.

    Edges whose endpoints fall on opposite sides get one new vertex each,
    shared by both triangles using the edge, placed at
    ``t = -offset(a) / (offset(b) - offset(a))``. Normals are interpolated
    and re-normalized, vertex colors interpolated.
    """
    offsets = np.asarray(offsets, dtype=np.float64)
    outside = offsets > 0
    faces = record.faces.astype(np.int64)
    codes = (
        outside[faces[:, 0]].astype(np.int64)
        | (outside[faces[:, 1]].astype(np.int64) << 1)
        | (outside[faces[:, 2]].astype(np.int64) << 2)
    )

    if not np.any(codes):
        return _compact(record, faces, record.vertex_count)
    if np.all(codes == 0b111):
        return _empty_like(record)

    vertices = record.vertices.astype(np.float64)
    normals = record.normals.reshape(-1, 3).astype(np.float64)
    colors = None
    if record.vertex_colors is not None:
        colors = record.vertex_colors.reshape(-1, 3).astype(np.float64)

    # Edge endpoints per triangle, shape (M, 3, 2)
    edges = np.stack([faces[:, list(pair)] for pair in EDGE_SLOTS], axis=1)
    crossing = outside[edges[:, :, 0]] != outside[edges[:, :, 1]]

    slots = np.full((len(faces), 6), -1, dtype=np.int64)
    slots[:, :3] = faces

    new_vertices = np.empty((0, 3))
    new_normals = np.empty((0, 3))
    new_colors = np.empty((0, 3))
    if np.any(crossing):
        keyed = np.sort(edges[crossing], axis=1)
        unique_edges, inverse = np.unique(keyed, axis=0, return_inverse=True)
        a, b = unique_edges[:, 0], unique_edges[:, 1]
        t = (-offsets[a] / (offsets[b] - offsets[a]))[:, None]

        new_vertices = vertices[a] + t * (vertices[b] - vertices[a])
        new_normals = normalize_rows(normals[a] + t * (normals[b] - normals[a]))
        if colors is not None:
            new_colors = colors[a] + t * (colors[b] - colors[a])

        edge_slots = slots[:, 3:]
        edge_slots[crossing] = record.vertex_count + inverse.reshape(-1)

    out = np.zeros((len(faces), MAX_TRIANGLES_PER_CASE, 3), dtype=np.int64)
    keep = np.zeros((len(faces), MAX_TRIANGLES_PER_CASE), dtype=bool)
    for code, templates in CASE_TABLE.items():
        selected = codes == code
        if not templates or not np.any(selected):
            continue
        for k, template in enumerate(templates):
            out[selected, k] = slots[selected][:, list(template)]
            keep[selected, k] = True

    positions = np.vstack([vertices, new_vertices])
    merged = record.with_geometry(
        positions,
        np.vstack([normals, new_normals]),
        np.empty(0, dtype=np.uint32),
        None if colors is None else np.vstack([colors, new_colors]),
    )
    return _compact(merged, out[keep], len(positions))


def _compact(record: MeshRecord, faces: np.ndarray, vertex_count: int) -> MeshRecord:
    """Drop unreferenced and non-finite vertices and renumber the rest."""
    vertices = record.vertices
    finite = np.all(np.isfinite(vertices), axis=1)
    if not np.all(finite):
        dropped = ~np.all(finite[faces], axis=1)
        if np.any(dropped):
            logger.debug(f"Dropping {int(dropped.sum())} triangles with non-finite vertices")
        faces = faces[~dropped]

    referenced = np.zeros(vertex_count, dtype=bool)
    referenced[faces.reshape(-1)] = True
    keep = referenced & finite
    if not np.any(keep):
        return _empty_like(record)

    remap = np.cumsum(keep) - 1
    colors: Optional[np.ndarray] = None
    if record.vertex_colors is not None:
        colors = record.vertex_colors.reshape(-1, 3)[keep]
    return record.with_geometry(
        vertices[keep],
        record.normals.reshape(-1, 3)[keep],
        remap[faces].reshape(-1),
        colors,
    )


def _empty_like(record: MeshRecord) -> MeshRecord:
    return record.with_geometry(
        np.empty(0, dtype=np.float32),
        np.empty(0, dtype=np.float32),
        np.empty(0, dtype=np.uint32),
        None if record.vertex_colors is None else np.empty(0, dtype=np.float32),
    )


def clip(
    record: MeshRecord,
    box: ClipBox,
    mode: ClipMode = "max_offset",
    epsilon_scale: float = 1e-6,
) -> MeshRecord:
    """Convenience function to clip one record against a box."""
    return BoxClipper(box, mode=mode, epsilon_scale=epsilon_scale).clip(record)
