"""Binary STL encoder."""

import logging
from typing import Sequence

import numpy as np

from meshsnap.core.records import MeshRecord
from meshsnap.encoders.base import ExportFormat, MeshEncoder, pack_components
from meshsnap.processing.transforms import normalize_rows

logger = logging.getLogger(__name__)

HEADER_SIZE = 80

# One facet: normal, three vertices, attribute byte count (50 bytes).
FACET_DTYPE = np.dtype(
    [
        ("normal", "<f4", (3,)),
        ("vertices", "<f4", (3, 3)),
        ("attributes", "<u2"),
    ]
)


def face_normals(triangles: np.ndarray) -> np.ndarray:
    """Unit normals of (M, 3, 3) triangles from their own vertex order.

    Degenerate triangles get a zero normal.
    """
    triangles = triangles.astype(np.float64)
    cross = np.cross(triangles[:, 1] - triangles[:, 0], triangles[:, 2] - triangles[:, 0])
    return normalize_rows(cross)


class STLEncoder(MeshEncoder):
    """Writes binary STL in the native (Z-up) coordinate system.

    Stored vertex normals are ignored; every facet normal is recomputed
    from the facet's vertices.
    """

    format = ExportFormat.STL

    def encode(self, records: Sequence[MeshRecord]) -> bytes:
        total = self.triangle_count(records)
        blocks = []
        for record in records:
            triangles = record.vertices[record.faces.astype(np.int64)]
            facets = np.zeros(record.triangle_count, dtype=FACET_DTYPE)
            facets["normal"] = face_normals(triangles)
            facets["vertices"] = triangles
            blocks.append(facets)

        data = pack_components([bytes(HEADER_SIZE), total, *blocks])
        logger.debug(f"STL encoded: {total} triangles, {len(data)} bytes")
        return data
