"""Structural validation of raw captured meshes."""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import numpy as np

from meshsnap.core.exceptions import RejectionReason, StructuralInvariantViolation
from meshsnap.core.records import Material, MeshRecord, RawMesh

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    """Report containing mesh validation results."""

    is_valid: bool
    record: Optional[MeshRecord] = None
    reason: Optional[RejectionReason] = None
    vertex_count: int = 0
    triangle_count: int = 0
    used_fraction: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def used_percentage(self) -> float:
        return self.used_fraction * 100


class MeshValidator:
    """Checks the structural invariants of a raw mesh.

    Checks run in a fixed order and stop at the first failure: buffer
    presence, length divisibility, normal/position length agreement, then
    index integrality and range. The input is never modified; a valid mesh
    is copied into a new ``MeshRecord``.
    """

    def __init__(self, min_used_fraction: float = 0.0):
        """Initialize validator.

        Args:
            min_used_fraction: Referenced-vertex fraction below which a
                warning is attached to the report
        """
        self.min_used_fraction = min_used_fraction

    def validate(self, raw: RawMesh) -> ValidationReport:
        """Validate a raw mesh.

        Args:
            raw: Raw mesh arrays from the session data source

        Returns:
            ValidationReport carrying either the record or the rejection reason
        """
        try:
            record, used_fraction = self._check(raw)
        except StructuralInvariantViolation as e:
            logger.info(e.reason.value)
            return ValidationReport(is_valid=False, reason=e.reason, details=e.details)

        report = ValidationReport(
            is_valid=True,
            record=record,
            vertex_count=record.vertex_count,
            triangle_count=record.triangle_count,
            used_fraction=used_fraction,
        )
        logger.info(f"Valid mesh - {report.used_percentage:.6f}% points used.")
        if used_fraction < self.min_used_fraction:
            report.warnings.append(
                f"Only {report.used_percentage:.2f}% of {record.vertex_count} vertices referenced"
            )
        return report

    def validate_mesh(self, raw: RawMesh) -> MeshRecord:
        """Validate a raw mesh and return its record.

        Raises:
            StructuralInvariantViolation: If any invariant is broken
        """
        record, _ = self._check(raw)
        return record

    def _check(self, raw: RawMesh) -> tuple[MeshRecord, float]:
        if raw.position is None:
            raise StructuralInvariantViolation(RejectionReason.MISSING_POSITIONS)
        if raw.normal is None:
            raise StructuralInvariantViolation(RejectionReason.MISSING_NORMALS)
        if raw.indices is None:
            raise StructuralInvariantViolation(RejectionReason.MISSING_INDICES)

        positions = _flat(raw.position, np.float64, "position")
        normals = _flat(raw.normal, np.float64, "normal")
        indices = _flat(raw.indices, np.float64, "indices")
        n = len(positions)
        m = len(indices)

        if n % 3 != 0:
            raise StructuralInvariantViolation(
                RejectionReason.POSITIONS_NOT_TRIPLES, {"length": n}
            )
        if m % 3 != 0:
            raise StructuralInvariantViolation(
                RejectionReason.INDICES_NOT_TRIPLES, {"length": m}
            )
        if len(normals) != n:
            raise StructuralInvariantViolation(
                RejectionReason.NORMAL_LENGTH_MISMATCH,
                {"positions": n, "normals": len(normals)},
            )

        vertex_count = n // 3
        # NaN indices fail the integrality test since NaN != round(NaN)
        non_integer = indices != np.round(indices)
        if np.any(non_integer):
            raise StructuralInvariantViolation(
                RejectionReason.NON_INTEGER_INDEX,
                {"first": int(np.argmax(non_integer))},
            )
        out_of_range = (indices < 0) | (indices >= vertex_count)
        if np.any(out_of_range):
            position = int(np.argmax(out_of_range))
            raise StructuralInvariantViolation(
                RejectionReason.INDEX_OUT_OF_RANGE,
                {"position": position, "value": float(indices[position]), "vertices": vertex_count},
            )

        vertex_colors = None
        if raw.vertex_colors is not None:
            vertex_colors = _flat(raw.vertex_colors, np.float32, "vertex_colors")
            if len(vertex_colors) != n:
                raise StructuralInvariantViolation(
                    RejectionReason.VERTEX_COLOR_LENGTH_MISMATCH,
                    {"positions": n, "vertex_colors": len(vertex_colors)},
                )

        if raw.model_matrix is not None:
            if _flat(raw.model_matrix, np.float64, "model_matrix").size != 16:
                raise StructuralInvariantViolation(
                    RejectionReason.BAD_TRANSFORM, {"field": "model_matrix"}
                )
        if raw.instance_matrices is not None:
            if _flat(raw.instance_matrices, np.float64, "instance_matrices").size % 16 != 0:
                raise StructuralInvariantViolation(
                    RejectionReason.BAD_TRANSFORM, {"field": "instance_matrices"}
                )
        if raw.instance_colors is not None:
            if _flat(raw.instance_colors, np.float64, "instance_colors").size % 3 != 0:
                raise StructuralInvariantViolation(
                    RejectionReason.BAD_MATERIAL, {"field": "instance_colors"}
                )

        used = np.zeros(vertex_count, dtype=bool)
        used[indices.astype(np.int64)] = True
        used_fraction = float(used.mean()) if vertex_count else 0.0

        try:
            material = Material.from_values(raw.color, raw.metalness, raw.roughness)
        except (TypeError, ValueError) as e:
            raise StructuralInvariantViolation(RejectionReason.BAD_MATERIAL, {"error": str(e)})
        if not np.isfinite([*material.color, material.metalness, material.roughness]).all():
            raise StructuralInvariantViolation(
                RejectionReason.BAD_MATERIAL, {"color": list(material.color)}
            )

        record = MeshRecord(
            positions=positions,
            normals=normals,
            indices=indices,
            material=material,
            vertex_colors=vertex_colors,
            group_key=raw.group_key,
        )
        return record, used_fraction


def _flat(values: Any, dtype: Any, name: str) -> np.ndarray:
    try:
        return np.array(values, dtype=dtype, copy=True).reshape(-1)
    except (TypeError, ValueError) as e:
        # ragged nesting or non-numeric entries
        raise StructuralInvariantViolation(
            RejectionReason.NON_NUMERIC_BUFFER, {"field": name, "error": str(e)}
        )


def validate(raw: RawMesh, min_used_fraction: float = 0.0) -> ValidationReport:
    """Convenience function to validate one raw mesh.

    Args:
        raw: Raw mesh arrays
        min_used_fraction: Referenced-vertex warning threshold

    Returns:
        ValidationReport with results
    """
    return MeshValidator(min_used_fraction=min_used_fraction).validate(raw)
