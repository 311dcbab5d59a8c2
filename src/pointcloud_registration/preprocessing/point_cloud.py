"""
Point Cloud Container

In-memory point set with optional per-point normals and colours, plus the
voxel-grid downsampling used to thin clouds before alignment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from ..utils.transforms import apply_transform, rotate_vectors


@dataclass
class PointCloud:
    """
    Ordered 3D point set.

    Attributes:
        points: (N, 3) float64 coordinates
        normals: Optional (N, 3) unit normals
        colors: Optional (N, 3) colour values (stored as loaded)
        source_path: File the cloud was read from, if any
    """

    points: np.ndarray
    normals: Optional[np.ndarray] = None
    colors: Optional[np.ndarray] = None
    source_path: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        pts = np.asarray(self.points, dtype=np.float64)
        if pts.size == 0:
            pts = pts.reshape(0, 3)
        if pts.ndim != 2 or pts.shape[1] != 3:
            raise ValueError(f"points must be (N, 3), got {pts.shape}")
        self.points = pts
        n = len(pts)
        if self.normals is not None:
            self.normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
            if len(self.normals) != n:
                raise ValueError(f"normals must be ({n}, 3), got {self.normals.shape}")
        if self.colors is not None:
            self.colors = np.asarray(self.colors).reshape(-1, 3)
            if len(self.colors) != n:
                raise ValueError(f"colors must be ({n}, 3), got {self.colors.shape}")

    # ------------------------ Metadata ------------------------
    def __len__(self) -> int:
        return len(self.points)

    @property
    def num_points(self) -> int:
        return len(self.points)

    @property
    def is_empty(self) -> bool:
        return len(self.points) == 0

    @property
    def has_normals(self) -> bool:
        return self.normals is not None

    @property
    def has_colors(self) -> bool:
        return self.colors is not None

    @property
    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        """Axis-aligned bounding box as (min_xyz, max_xyz)."""
        if self.is_empty:
            raise ValueError("Empty point cloud has no bounds")
        return self.points.min(axis=0), self.points.max(axis=0)

    @property
    def centroid(self) -> np.ndarray:
        if self.is_empty:
            raise ValueError("Cannot compute centroid of an empty point cloud")
        return self.points.mean(axis=0)

    @property
    def extent(self) -> np.ndarray:
        lo, hi = self.bounds
        return hi - lo

    @property
    def diagonal(self) -> float:
        return float(np.linalg.norm(self.extent))

    def describe(self) -> str:
        if self.is_empty:
            return "0 points"
        lo, hi = self.bounds
        return (
            f"{self.num_points:,} points, bounds "
            f"[{lo[0]:.3f}, {lo[1]:.3f}, {lo[2]:.3f}] - [{hi[0]:.3f}, {hi[1]:.3f}, {hi[2]:.3f}]"
        )

    # ------------------------ Derived clouds ------------------------
    def copy(self) -> "PointCloud":
        return PointCloud(
            points=self.points.copy(),
            normals=None if self.normals is None else self.normals.copy(),
            colors=None if self.colors is None else self.colors.copy(),
            source_path=self.source_path,
        )

    def transformed(self, transform: np.ndarray) -> "PointCloud":
        """New cloud with the 4x4 transform applied; normals are only rotated."""
        return PointCloud(
            points=apply_transform(self.points, transform),
            normals=None if self.normals is None else rotate_vectors(self.normals, transform),
            colors=None if self.colors is None else self.colors.copy(),
            source_path=self.source_path,
        )

    def voxel_downsample(self, voxel_size: float) -> "PointCloud":
        """
        Replace the points of every occupied voxel by their centroid.

        The grid is anchored at the cloud's minimum corner and output points are
        ordered by voxel index, so the result is deterministic for a given input
        and voxel size. A non-positive voxel size skips downsampling and returns
        a copy.

        Coarser voxels never yield more points when the grids are nested
        (each voxel size an integer multiple of the finer one). For other sizes the two
        grids are not aligned and the coarser one can occupy a cell more.

        Args:
            voxel_size: Edge length of the cubic voxels

        Returns:
            New PointCloud with at most as many points as this one
        """
        if voxel_size is None or voxel_size <= 0 or self.is_empty:
            return self.copy()

        origin = self.points.min(axis=0)
        keys = np.floor((self.points - origin) / voxel_size).astype(np.int64)
        # Sorted unique voxel keys; inverse maps every point to its voxel
        _, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
        inverse = inverse.reshape(-1)
        n_voxels = len(counts)

        def _voxel_mean(values: np.ndarray) -> np.ndarray:
            sums = np.zeros((n_voxels, values.shape[1]), dtype=np.float64)
            np.add.at(sums, inverse, values)
            return sums / counts[:, None]

        points = _voxel_mean(self.points)

        normals = None
        if self.normals is not None:
            normals = _voxel_mean(self.normals)
            norms = np.linalg.norm(normals, axis=1, keepdims=True)
            norms[norms == 0] = 1.0
            normals = normals / norms

        colors = None
        if self.colors is not None:
            mean_colors = _voxel_mean(self.colors.astype(np.float64))
            if np.issubdtype(self.colors.dtype, np.integer):
                colors = np.rint(mean_colors).astype(self.colors.dtype)
            else:
                colors = mean_colors.astype(self.colors.dtype)

        return PointCloud(points=points, normals=normals, colors=colors, source_path=self.source_path)
