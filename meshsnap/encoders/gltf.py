"""Binary glTF 2.0 (GLB) encoder.

Layout of the produced container:

    header   magic "glTF", version 2, total byte length
    chunk 0  length, type "JSON", scene description padded with spaces
    chunk 1  length, type "BIN\\0", position/normal/index[/color] buffers

Each record becomes one node, one mesh and one material. Buffers of all
records are packed back to back in emission order.
"""

import json
import logging
from typing import Any, Dict, List, Sequence

import numpy as np

from meshsnap.core.exceptions import EncodingError
from meshsnap.core.records import MeshRecord
from meshsnap.encoders.base import (
    ExportFormat,
    MeshEncoder,
    component_size,
    pack_components,
    pad_to_alignment,
    to_y_up,
)

logger = logging.getLogger(__name__)

GLB_MAGIC = "glTF"
GLB_VERSION = 2
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942
HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8

FLOAT = 5126
UNSIGNED_INT = 5125
ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963
TRIANGLES = 4


class GLBEncoder(MeshEncoder):
    """Writes a self-contained GLB file in glTF's Y-up convention."""

    format = ExportFormat.GLB

    def encode(self, records: Sequence[MeshRecord]) -> bytes:
        document, blobs = self.build_document(records)
        binary_length = sum(component_size(b) for b in blobs)

        try:
            text = json.dumps(document, separators=(",", ":"), allow_nan=False)
        except ValueError as e:
            raise EncodingError("glb", str(e))
        json_bytes = pad_to_alignment(text.encode("utf-8"), 4, b" ")
        total = (
            HEADER_SIZE
            + CHUNK_HEADER_SIZE
            + len(json_bytes)
            + CHUNK_HEADER_SIZE
            + binary_length
        )

        data = pack_components(
            [
                GLB_MAGIC,
                GLB_VERSION,
                total,
                len(json_bytes),
                CHUNK_JSON,
                json_bytes,
                binary_length,
                CHUNK_BIN,
                *blobs,
            ]
        )
        if len(data) != total:
            raise EncodingError("glb", f"packed {len(data)} bytes, header says {total}")

        logger.debug(
            f"GLB encoded: {len(document.get('meshes', []))} meshes, "
            f"JSON {len(json_bytes)} bytes, BIN {binary_length} bytes"
        )
        return data

    def build_document(self, records: Sequence[MeshRecord]) -> tuple[Dict[str, Any], List[bytes]]:
        """Build the glTF JSON document and the binary blobs it points into.

        Args:
            records: Ordered records; records without triangles are skipped

        Returns:
            Tuple of (document, blobs) where the blobs concatenate into the
            binary chunk
        """
        document: Dict[str, Any] = {
            "asset": {"version": "2.0", "generator": "meshsnap"},
            "scene": 0,
            "scenes": [{"name": self.object_name, "nodes": []}],
            "nodes": [],
            "meshes": [],
            "materials": [],
            "accessors": [],
            "bufferViews": [],
            "buffers": [],
        }
        blobs: List[bytes] = []
        byte_offset = 0

        def add_view(blob: bytes, target: int) -> int:
            nonlocal byte_offset
            blob = pad_to_alignment(blob, 4)
            document["bufferViews"].append(
                {
                    "buffer": 0,
                    "byteOffset": byte_offset,
                    "byteLength": len(blob),
                    "target": target,
                }
            )
            blobs.append(blob)
            byte_offset += len(blob)
            return len(document["bufferViews"]) - 1

        def add_accessor(view: int, component_type: int, count: int, kind: str, lo, hi) -> int:
            document["accessors"].append(
                {
                    "bufferView": view,
                    "componentType": component_type,
                    "count": count,
                    "type": kind,
                    "min": lo,
                    "max": hi,
                }
            )
            return len(document["accessors"]) - 1

        for record in records:
            if record.is_empty:
                logger.debug("Skipping record without triangles")
                continue
            index = len(document["meshes"])
            name = f"{self.object_name}_mesh_{index}"

            positions = to_y_up(record.positions)
            normals = to_y_up(record.normals)
            indices = record.indices.astype("<u4")
            points = positions.reshape(-1, 3)

            attributes = {
                "POSITION": add_accessor(
                    add_view(positions.astype("<f4").tobytes(), ARRAY_BUFFER),
                    FLOAT,
                    record.vertex_count,
                    "VEC3",
                    *_finite_bounds(points),
                ),
                "NORMAL": add_accessor(
                    add_view(normals.astype("<f4").tobytes(), ARRAY_BUFFER),
                    FLOAT,
                    record.vertex_count,
                    "VEC3",
                    [-1.0, -1.0, -1.0],
                    [1.0, 1.0, 1.0],
                ),
            }
            index_accessor = add_accessor(
                add_view(indices.tobytes(), ELEMENT_ARRAY_BUFFER),
                UNSIGNED_INT,
                len(indices),
                "SCALAR",
                [int(indices.min())],
                [int(indices.max())],
            )
            if record.vertex_colors is not None:
                colors = np.nan_to_num(np.clip(record.vertex_colors, 0.0, 1.0)).astype("<f4")
                rgb = colors.reshape(-1, 3)
                attributes["COLOR_0"] = add_accessor(
                    add_view(colors.tobytes(), ARRAY_BUFFER),
                    FLOAT,
                    record.vertex_count,
                    "VEC3",
                    rgb.min(axis=0).tolist(),
                    rgb.max(axis=0).tolist(),
                )

            material = record.material
            document["materials"].append(
                {
                    "name": f"{self.object_name}_material_{index}",
                    "pbrMetallicRoughness": {
                        "baseColorFactor": [float(c) for c in material.color],
                        "metallicFactor": material.metalness,
                        "roughnessFactor": material.roughness,
                    },
                    "doubleSided": True,
                }
            )
            document["meshes"].append(
                {
                    "name": name,
                    "primitives": [
                        {
                            "attributes": attributes,
                            "indices": index_accessor,
                            "material": index,
                            "mode": TRIANGLES,
                        }
                    ],
                }
            )
            document["nodes"].append({"mesh": index, "name": name})
            document["scenes"][0]["nodes"].append(index)

        if byte_offset:
            document["buffers"].append({"byteLength": byte_offset})
        # glTF forbids empty top-level arrays
        for key in ("nodes", "meshes", "materials", "accessors", "bufferViews", "buffers"):
            if not document[key]:
                del document[key]
        if not document["scenes"][0]["nodes"]:
            del document["scenes"][0]["nodes"]
        return document, blobs


def _finite_bounds(points: np.ndarray) -> tuple[List[float], List[float]]:
    """Per-axis min and max over the vertices whose coordinates are all finite.

    JSON has no NaN or Infinity, so unusable vertices are left out of the
    accessor bounds. A record without any finite vertex gets zero bounds.
    """
    finite = points[np.isfinite(points).all(axis=1)]
    if not len(finite):
        return [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]
    return finite.min(axis=0).tolist(), finite.max(axis=0).tolist()
