"""
Point Cloud Data Preprocessing Module

This module contains the point cloud container, file loading and the voxel
downsampling applied to both clouds before alignment.
"""

from .point_cloud import PointCloud
from .loader import PointCloudLoader, load_point_cloud, SUPPORTED_SUFFIXES
from .downsampling import prepare

__all__ = [
    "PointCloud",
    "PointCloudLoader",
    "load_point_cloud",
    "SUPPORTED_SUFFIXES",
    "prepare",
]
