"""Utility functions for MeshSnap."""

from meshsnap.utils.logging import (
    StageTimer,
    get_logger,
    log_export_result,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "log_export_result",
    "StageTimer",
]
