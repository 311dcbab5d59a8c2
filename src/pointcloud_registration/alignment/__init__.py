"""
Spatial Alignment Module

This module provides the scale estimation, initial alignment and iterative
registration (GICP, point-to-point and point-to-plane ICP) used to bring a
source point cloud onto a target point cloud.
"""

from .types import AlignmentMethod, AlignmentStatus
from .scale_estimation import ScaleEstimate, estimate_scale, estimate_scale_details
from .coarse_registration import CoarseRegistration
from .fine_registration import (
    ICPRegistration,
    PointToPlaneICP,
    GeneralizedICP,
    RegistrationOutcome,
)
from .methods import AlignmentResult, AlignmentStrategy, create_strategy

__all__ = [
    "AlignmentMethod",
    "AlignmentStatus",
    "ScaleEstimate",
    "estimate_scale",
    "estimate_scale_details",
    "CoarseRegistration",
    "ICPRegistration",
    "PointToPlaneICP",
    "GeneralizedICP",
    "RegistrationOutcome",
    "AlignmentResult",
    "AlignmentStrategy",
    "create_strategy",
]
