"""Model and instance transforms applied to validated records."""

from dataclasses import replace
from typing import List, Optional

import numpy as np

from meshsnap.core.records import Material, MeshRecord, RawMesh


def column_major(matrix) -> np.ndarray:
    """Interpret 16 flat values as a column-major 4x4 matrix."""
    return np.asarray(matrix, dtype=np.float64).reshape(4, 4).T


def transform_points(matrix: np.ndarray, positions: np.ndarray) -> np.ndarray:
    """Apply a 4x4 matrix to flat positions with homogeneous divide."""
    points = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    homogeneous = np.hstack([points, np.ones((len(points), 1))]) @ matrix.T
    with np.errstate(divide="ignore", invalid="ignore"):
        result = homogeneous[:, :3] / homogeneous[:, 3:4]
    return result.reshape(-1)


def transform_normals(matrix: np.ndarray, normals: np.ndarray) -> np.ndarray:
    """Apply the inverse transpose of the linear part and re-normalize."""
    linear = matrix[:3, :3]
    try:
        normal_matrix = np.linalg.inv(linear).T
    except np.linalg.LinAlgError:
        return np.asarray(normals, dtype=np.float64).copy()
    vectors = np.asarray(normals, dtype=np.float64).reshape(-1, 3) @ normal_matrix.T
    return normalize_rows(vectors).reshape(-1)


def normalize_rows(vectors: np.ndarray) -> np.ndarray:
    """Scale each row to unit length; zero rows stay zero."""
    lengths = np.linalg.norm(vectors, axis=1, keepdims=True)
    return np.divide(vectors, lengths, out=np.zeros_like(vectors), where=lengths > 0)


def apply_transform(record: MeshRecord, matrix: np.ndarray) -> MeshRecord:
    return record.with_geometry(
        transform_points(matrix, record.positions),
        transform_normals(matrix, record.normals),
        record.indices.copy(),
        None if record.vertex_colors is None else record.vertex_colors.copy(),
    )


def expand_instances(
    record: MeshRecord,
    raw: RawMesh,
    key_separator: str = ":",
) -> List[MeshRecord]:
    """Turn one validated record into the records actually drawn.

    The raw model matrix, if any, is applied first. A raw mesh with instance
    matrices yields one record per instance, tinted by the matching instance
    color and keyed ``<group_key><separator><instance>`` so consecutive
    instances can be merged later.

    Args:
        record: Record produced by the validator from ``raw``
        raw: The raw mesh carrying optional matrices and instance colors
        key_separator: Separator between shape key and instance number

    Returns:
        List of records, one per drawn instance
    """
    if raw.model_matrix is not None:
        record = apply_transform(record, column_major(raw.model_matrix))

    if raw.instance_matrices is None:
        return [record]

    matrices = np.asarray(raw.instance_matrices, dtype=np.float64).reshape(-1, 16)
    colors: Optional[np.ndarray] = None
    if raw.instance_colors is not None:
        colors = np.asarray(raw.instance_colors, dtype=np.float64).reshape(-1, 3)

    base_key = record.group_key if record.group_key is not None else f"mesh{id(raw):x}"
    instances = []
    for k, flat_matrix in enumerate(matrices):
        instance = apply_transform(record, column_major(flat_matrix))
        material = record.material
        if colors is not None and k < len(colors):
            material = Material.from_values(
                colors[k], record.material.metalness, record.material.roughness
            )
        instances.append(
            replace(instance, material=material, group_key=f"{base_key}{key_separator}{k}")
        )
    return instances
