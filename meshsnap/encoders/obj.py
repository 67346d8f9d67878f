"""Wavefront OBJ text encoder."""

import io
import logging
from typing import Sequence

import numpy as np

from meshsnap.core.records import MeshRecord
from meshsnap.encoders.base import ExportFormat, MeshEncoder, to_y_up

logger = logging.getLogger(__name__)

# 9 significant digits round-trip any float32.
FLOAT_FORMAT = "%.9g"


class OBJEncoder(MeshEncoder):
    """Writes one OBJ object holding every record.

    All positions come first, then all normals, then the faces, whose
    1-based indices are shifted by the vertex count of earlier records.
    Materials and colors are not written.
    """

    format = ExportFormat.OBJ

    def encode(self, records: Sequence[MeshRecord]) -> bytes:
        return self.encode_text(records).encode("utf-8")

    def encode_text(self, records: Sequence[MeshRecord]) -> str:
        out = io.StringIO()
        out.write(f"o {self.object_name}\n")

        for record in records:
            _write_rows(out, "v", to_y_up(record.positions))
        for record in records:
            _write_rows(out, "vn", to_y_up(record.normals))

        start = 1
        for record in records:
            if record.triangle_count:
                faces = record.faces.astype(np.int64) + start
                np.savetxt(out, np.repeat(faces, 2, axis=1), fmt="f %d//%d %d//%d %d//%d")
            start += record.vertex_count

        text = out.getvalue()
        logger.debug(f"OBJ encoded: {start - 1} vertices, {len(text)} characters")
        return text


def _write_rows(out: io.StringIO, tag: str, values: np.ndarray) -> None:
    rows = values.reshape(-1, 3)
    if len(rows):
        np.savetxt(out, rows, fmt=f"{tag} {FLOAT_FORMAT} {FLOAT_FORMAT} {FLOAT_FORMAT}")
