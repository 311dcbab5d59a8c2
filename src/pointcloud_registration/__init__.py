"""
Point Cloud Registration Package

A Python package for aligning a source (moving) 3D model onto a target
(fixed) 3D model, e.g. a photogrammetry reconstruction onto a LiDAR scan.
The registration pipeline estimates the scale between the models, voxel
downsamples both clouds and refines the pose with an iterative closest point
variant (GICP, point-to-point or point-to-plane ICP), producing a validated
4x4 similarity transform.
"""

__version__ = "1.0.0"

from .errors import *
from .preprocessing import *
from .alignment import *
from .pipeline import *
from .utils import *

__all__ = [
    "errors",
    "preprocessing",
    "alignment",
    "pipeline",
    "utils",
]
