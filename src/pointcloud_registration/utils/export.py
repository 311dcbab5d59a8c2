"""
Export utilities for registration results.

Provides the transform exporter, which applies the final transform to the
full-resolution source cloud and writes it to:
- Point cloud formats (LAS/LAZ, PLY)
- Plain XYZ text or .npy arrays

plus helpers to save and load the 4x4 transform itself as text.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from ..errors import WriteFailure
from .logging import setup_logger

if TYPE_CHECKING:
    from ..preprocessing.point_cloud import PointCloud

logger = setup_logger(__name__)

LAS_SUFFIXES = (".las", ".laz")
TEXT_SUFFIXES = (".xyz", ".txt", ".pts", ".csv")


class TransformExporter:
    """Applies a transform to the source cloud and writes the result."""

    def apply(self, cloud: PointCloud, transform: np.ndarray) -> PointCloud:
        """
        Transform a cloud.

        Args:
            cloud: Full-resolution source cloud (not modified)
            transform: 4x4 transformation matrix

        Returns:
            New transformed cloud
        """
        transform = np.asarray(transform, dtype=float)
        if transform.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4 matrix, got {transform.shape}")
        return cloud.transformed(transform)

    def save(self, cloud: PointCloud, output_path: str) -> str:
        """
        Write a cloud; the format follows the file extension.

        Returns:
            Path to created file

        Raises:
            WriteFailure: For an unsupported extension or any I/O error
        """
        path = Path(output_path)
        suffix = path.suffix.lower()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if suffix in LAS_SUFFIXES:
                export_points_to_laz(cloud, path)
            elif suffix == ".ply":
                export_points_to_ply(cloud, path)
            elif suffix in TEXT_SUFFIXES:
                delimiter = "," if suffix == ".csv" else " "
                np.savetxt(path, cloud.points, fmt="%.9f", delimiter=delimiter)
            elif suffix == ".npy":
                np.save(path, cloud.points)
            else:
                raise WriteFailure(f"Unsupported output format: {path.suffix}", path=str(path))
        except WriteFailure:
            raise
        except Exception as e:
            logger.error(f"Failed to write {path}: {e}")
            raise WriteFailure(f"Failed to write {path}: {e}", path=str(path)) from e

        logger.info(f"Exported {cloud.num_points:,} points to {path}")
        return str(path)


def _las_scale(extent: float) -> float:
    """Coordinate resolution keeping the extent inside the int32 range of LAS records."""
    scale = 1e-4
    while extent / scale > 2.0e9:
        scale *= 10.0
    return scale


def export_points_to_laz(cloud: PointCloud, output_path: Path) -> str:
    """
    Write a cloud to LAS/LAZ (LAS 1.4, point format 7 when colours are present, 6 otherwise).
    Writing .laz requires a laspy LAZ backend (lazrs or laszip).
    """
    import laspy

    point_format = 7 if cloud.has_colors else 6
    header = laspy.LasHeader(point_format=point_format, version="1.4")
    if not cloud.is_empty:
        lo, hi = cloud.bounds
        header.offsets = lo
        header.scales = np.full(3, _las_scale(float(np.max(hi - lo))))

    las = laspy.LasData(header)
    las.x = cloud.points[:, 0]
    las.y = cloud.points[:, 1]
    las.z = cloud.points[:, 2]
    if cloud.has_colors:
        colors = np.asarray(cloud.colors)
        if not np.issubdtype(colors.dtype, np.integer) or colors.max(initial=0) <= 255:
            # 8-bit or float colours; LAS stores 16-bit channels
            colors = np.clip(np.rint(colors.astype(np.float64) * 257.0), 0, 65535)
        colors = colors.astype(np.uint16)
        las.red = colors[:, 0]
        las.green = colors[:, 1]
        las.blue = colors[:, 2]

    las.write(str(output_path))
    return str(output_path)


def export_points_to_ply(cloud: PointCloud, output_path: Path, *, binary: bool = True) -> str:
    """Write a cloud to PLY with optional normals and colours."""
    from plyfile import PlyData, PlyElement

    fields = [("x", "f8"), ("y", "f8"), ("z", "f8")]
    if cloud.has_normals:
        fields += [("nx", "f4"), ("ny", "f4"), ("nz", "f4")]
    if cloud.has_colors:
        fields += [("red", "u1"), ("green", "u1"), ("blue", "u1")]

    vertex = np.empty(cloud.num_points, dtype=fields)
    vertex["x"], vertex["y"], vertex["z"] = cloud.points.T
    if cloud.has_normals:
        vertex["nx"], vertex["ny"], vertex["nz"] = cloud.normals.T
    if cloud.has_colors:
        colors = np.asarray(cloud.colors)
        if np.issubdtype(colors.dtype, np.integer) and colors.max(initial=0) > 255:
            colors = colors // 257
        vertex["red"], vertex["green"], vertex["blue"] = np.clip(colors, 0, 255).astype(np.uint8).T

    PlyData([PlyElement.describe(vertex, "vertex")], text=not binary).write(str(output_path))
    return str(output_path)


def save_transform_matrix(transform: np.ndarray, output_file: str) -> str:
    """Save a transformation matrix to a text file.

    Args:
        transform: 4x4 transformation matrix
        output_file: Path to output file

    Raises:
        WriteFailure: If the file cannot be written
    """
    path = Path(output_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        np.savetxt(path, transform, fmt='%.18e', header='4x4 transformation matrix')
    except OSError as e:
        raise WriteFailure(f"Failed to write transform to {path}: {e}", path=str(path)) from e
    logger.info(f"Saved transformation matrix to {path}")
    return str(path)


def load_transform_matrix(input_file: str) -> np.ndarray:
    """Load a transformation matrix from a text file.

    Returns:
        4x4 transformation matrix
    """
    transform = np.loadtxt(input_file)
    if transform.shape != (4, 4):
        raise ValueError(f"Expected 4x4 matrix, got shape {transform.shape}")
    logger.info(f"Loaded transformation matrix from {input_file}")
    return transform
