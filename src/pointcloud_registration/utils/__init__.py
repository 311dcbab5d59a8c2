"""
Utility Functions Module

This module provides common utility functions used across the registration project.
- Logging setup and verbosity levels
- Typed configuration loading
- 4x4 transform helpers
- Export of transformed clouds and transform matrices
"""

from .logging import setup_logger, set_log_level, parse_verbose_level
from .config import (
    RegistrationConfig,
    ICPSolverConfig,
    PointToPlaneSolverConfig,
    GICPSolverConfig,
    load_config,
)
from .transforms import (
    TransformDecomposition,
    apply_transform,
    decompose_transform,
    is_valid_transform,
    validate_transform,
)
from .export import (
    TransformExporter,
    save_transform_matrix,
    load_transform_matrix,
)

__all__ = [
    "setup_logger",
    "set_log_level",
    "parse_verbose_level",
    "RegistrationConfig",
    "ICPSolverConfig",
    "PointToPlaneSolverConfig",
    "GICPSolverConfig",
    "load_config",
    "TransformDecomposition",
    "apply_transform",
    "decompose_transform",
    "is_valid_transform",
    "validate_transform",
    "TransformExporter",
    "save_transform_matrix",
    "load_transform_matrix",
]
