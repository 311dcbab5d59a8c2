"""
Point Cloud Data Loader

This module reads point sets from the supported 3D model formats into
PointCloud instances and validates them.
"""

from pathlib import Path
from typing import Optional

import numpy as np

from ..errors import LoadFailure
from ..utils.logging import setup_logger
from .point_cloud import PointCloud

logger = setup_logger(__name__)

LAS_SUFFIXES = (".las", ".laz")
PLY_SUFFIXES = (".ply",)
TEXT_SUFFIXES = (".xyz", ".txt", ".pts", ".csv")
NUMPY_SUFFIXES = (".npy",)
SUPPORTED_SUFFIXES = LAS_SUFFIXES + PLY_SUFFIXES + TEXT_SUFFIXES + NUMPY_SUFFIXES


class PointCloudLoader:
    """
    A class for loading point clouds from 3D model files.

    Features:
    - LAS/LAZ via laspy (coordinates and RGB)
    - PLY via plyfile (vertex coordinates, normals and colours)
    - ASCII XYZ-like files and .npy arrays via numpy
    - Removal of non-finite points and rejection of empty clouds
    """

    def __init__(self, *, drop_non_finite: bool = True):
        """
        Initialize the point cloud loader.

        Args:
            drop_non_finite: If True, points with NaN/Inf coordinates are removed
                (with a warning); otherwise their presence is a load failure.
        """
        self.drop_non_finite = drop_non_finite

    def load(self, file_path: str) -> PointCloud:
        """
        Load a point cloud file.

        Args:
            file_path: Path to the 3D model

        Returns:
            PointCloud with at least one point

        Raises:
            LoadFailure: If the file is missing, unsupported, unreadable, or has no points
        """
        path = Path(file_path)

        if not path.exists():
            raise LoadFailure(f"File not found: {path}", path=str(path))
        if not path.is_file():
            raise LoadFailure(f"Not a file: {path}", path=str(path))

        suffix = path.suffix.lower()
        if suffix not in SUPPORTED_SUFFIXES:
            raise LoadFailure(
                f"Unsupported file format: {path.suffix} (supported: {', '.join(SUPPORTED_SUFFIXES)})",
                path=str(path),
            )

        logger.info(f"Loading point cloud data from {path}")

        try:
            if suffix in LAS_SUFFIXES:
                cloud = self._read_las(path)
            elif suffix in PLY_SUFFIXES:
                cloud = self._read_ply(path)
            elif suffix in NUMPY_SUFFIXES:
                cloud = self._read_npy(path)
            else:
                cloud = self._read_text(path)
        except LoadFailure:
            raise
        except Exception as e:
            logger.error(f"Error loading point cloud data from {path}: {e}")
            raise LoadFailure(f"Could not read {path}: {e}", path=str(path)) from e

        cloud = self._remove_non_finite(cloud, path)

        if cloud.is_empty:
            raise LoadFailure(f"No points found in file: {path}", path=str(path))

        cloud.source_path = str(path)
        logger.info(f"Loaded {path.name}: {cloud.describe()}")
        return cloud

    def validate_file(self, file_path: str) -> bool:
        """
        Validate a point cloud file.

        Returns:
            True if the file loads into a non-empty cloud, False otherwise
        """
        try:
            self.load(file_path)
        except LoadFailure as e:
            logger.warning(f"File validation failed for {file_path}: {e}")
            return False
        return True

    # ------------------------ Readers ------------------------
    def _read_las(self, path: Path) -> PointCloud:
        import laspy

        las = laspy.read(path)
        points = np.column_stack([
            np.array(las.x, dtype=np.float64),
            np.array(las.y, dtype=np.float64),
            np.array(las.z, dtype=np.float64),
        ])
        colors = None
        dims = set(las.point_format.dimension_names)
        if {"red", "green", "blue"} <= dims:
            colors = np.column_stack([
                np.array(las.red),
                np.array(las.green),
                np.array(las.blue),
            ])
        return PointCloud(points=points, colors=colors)

    def _read_ply(self, path: Path) -> PointCloud:
        from plyfile import PlyData

        ply = PlyData.read(str(path))
        if "vertex" not in [element.name for element in ply.elements]:
            raise LoadFailure(f"PLY file has no vertex element: {path}", path=str(path))
        vertex = ply["vertex"].data
        names = set(vertex.dtype.names or ())
        if not {"x", "y", "z"} <= names:
            raise LoadFailure(f"PLY vertices have no x/y/z properties: {path}", path=str(path))

        points = np.column_stack([
            np.asarray(vertex["x"], dtype=np.float64),
            np.asarray(vertex["y"], dtype=np.float64),
            np.asarray(vertex["z"], dtype=np.float64),
        ])
        normals = None
        if {"nx", "ny", "nz"} <= names:
            normals = np.column_stack([
                np.asarray(vertex["nx"], dtype=np.float64),
                np.asarray(vertex["ny"], dtype=np.float64),
                np.asarray(vertex["nz"], dtype=np.float64),
            ])
        colors = None
        if {"red", "green", "blue"} <= names:
            colors = np.column_stack([
                np.asarray(vertex["red"]),
                np.asarray(vertex["green"]),
                np.asarray(vertex["blue"]),
            ])
        return PointCloud(points=points, normals=normals, colors=colors)

    def _read_text(self, path: Path) -> PointCloud:
        delimiter = "," if path.suffix.lower() == ".csv" else None
        data = np.loadtxt(path, delimiter=delimiter, ndmin=2, comments="#")
        return PointCloud(points=self._first_three_columns(data, path))

    def _read_npy(self, path: Path) -> PointCloud:
        data = np.load(path, allow_pickle=False)
        return PointCloud(points=self._first_three_columns(np.atleast_2d(data), path))

    @staticmethod
    def _first_three_columns(data: np.ndarray, path: Path) -> np.ndarray:
        if data.size == 0:
            return np.empty((0, 3))
        if data.ndim != 2 or data.shape[1] < 3:
            raise LoadFailure(f"Expected at least 3 columns (x y z) in {path}, got shape {data.shape}", path=str(path))
        return np.asarray(data[:, :3], dtype=np.float64)

    def _remove_non_finite(self, cloud: PointCloud, path: Path) -> PointCloud:
        finite = np.isfinite(cloud.points).all(axis=1)
        n_bad = int(np.count_nonzero(~finite))
        if n_bad == 0:
            return cloud
        if not self.drop_non_finite:
            raise LoadFailure(f"{n_bad} points with NaN/Inf coordinates in {path}", path=str(path))
        logger.warning(f"Removed {n_bad} points with NaN/Inf coordinates from {path.name}")
        return PointCloud(
            points=cloud.points[finite],
            normals=None if cloud.normals is None else cloud.normals[finite],
            colors=None if cloud.colors is None else cloud.colors[finite],
        )


def load_point_cloud(
    file_path: Optional[str],
    *,
    role: str = "input",
    loader: Optional[PointCloudLoader] = None,
) -> PointCloud:
    """
    Load one of the pipeline's input clouds.

    Args:
        file_path: Path to the model, None if the run was not given one
        role: "source" or "target", used in error messages
        loader: Loader to use (a default PointCloudLoader if None)

    Raises:
        LoadFailure: If no path was given or the file cannot be loaded
    """
    if not file_path:
        raise LoadFailure(f"No {role} file given")
    loader = loader or PointCloudLoader()
    try:
        return loader.load(file_path)
    except LoadFailure as e:
        raise LoadFailure(f"Failed to load {role} cloud: {e.args[0]}", path=e.path) from e
