"""Merging of consecutive instances of one shape into a single record."""

import logging
from typing import List, Optional, Sequence

import numpy as np

from meshsnap.core.records import Material, MeshRecord

logger = logging.getLogger(__name__)


class MeshMerger:
    """Batches runs of instanced records into combined records.

    Two neighbouring records belong to the same run when their group keys
    share the shape prefix (the part before ``key_separator``), their vertex,
    normal and index counts agree and their index buffers are identical.
    Records without a group key never merge.

    A run with mixed materials, or with vertex colors, carries its colors per
    vertex: each block is its own vertex colors (white when absent) tinted by
    its material RGB. Alpha, metalness and roughness cannot vary per vertex,
    so the merged material keeps the first record's values for those and
    differences in them within a run are lost.
    """

    def __init__(self, key_separator: str = ":"):
        self.key_separator = key_separator

    def merge(self, records: Sequence[MeshRecord]) -> List[MeshRecord]:
        """Merge maximal runs of compatible consecutive records.

        Args:
            records: Ordered records

        Returns:
            Records with every run of two or more replaced by one record
        """
        merged: List[MeshRecord] = []
        run: List[MeshRecord] = []
        for record in records:
            if run and not self.compatible(run[0], record):
                merged.append(self._combine(run))
                run = []
            run.append(record)
        if run:
            merged.append(self._combine(run))

        if len(merged) < len(records):
            logger.info(f"Merged {len(records)} meshes into {len(merged)}")
        return merged

    def shape_key(self, record: MeshRecord) -> Optional[str]:
        if record.group_key is None:
            return None
        return record.group_key.split(self.key_separator, 1)[0]

    def compatible(self, first: MeshRecord, other: MeshRecord) -> bool:
        key = self.shape_key(first)
        return (
            key is not None
            and key == self.shape_key(other)
            and len(first.positions) == len(other.positions)
            and len(first.normals) == len(other.normals)
            and len(first.indices) == len(other.indices)
            and np.array_equal(first.indices, other.indices)
        )

    def _combine(self, run: List[MeshRecord]) -> MeshRecord:
        if len(run) == 1:
            return run[0]

        vertex_count = run[0].vertex_count
        offsets = np.arange(len(run), dtype=np.uint32) * np.uint32(vertex_count)
        indices = (run[0].indices[None, :] + offsets[:, None]).reshape(-1)

        first = run[0].material
        uniform = all(r.material == first for r in run) and all(
            r.vertex_colors is None for r in run
        )
        vertex_colors = None
        material = first
        if not uniform:
            finish = _finish(first)
            if any(_finish(r.material) != finish for r in run):
                logger.warning(
                    f"Run '{self.shape_key(run[0])}' mixes alpha, metalness or roughness; "
                    f"keeping {finish}"
                )
            vertex_colors = np.concatenate([_vertex_block_colors(r) for r in run])
            # COLOR_0 multiplies the base color, so the base color turns white
            material = Material(
                color=(1.0, 1.0, 1.0, first.color[3]),
                metalness=first.metalness,
                roughness=first.roughness,
            )

        return MeshRecord(
            positions=np.concatenate([r.positions for r in run]),
            normals=np.concatenate([r.normals for r in run]),
            indices=indices,
            material=material,
            vertex_colors=vertex_colors,
            group_key=self.shape_key(run[0]),
        )


def _finish(material: Material) -> tuple[float, float, float]:
    return (material.color[3], material.metalness, material.roughness)


def _vertex_block_colors(record: MeshRecord) -> np.ndarray:
    rgb = np.asarray(record.material.color[:3], dtype=np.float32)
    if record.vertex_colors is None:
        return np.tile(rgb, record.vertex_count)
    return (record.vertex_colors.reshape(-1, 3) * rgb).reshape(-1)


def merge(records: Sequence[MeshRecord], key_separator: str = ":") -> List[MeshRecord]:
    """Convenience function to merge instanced records."""
    return MeshMerger(key_separator=key_separator).merge(records)
