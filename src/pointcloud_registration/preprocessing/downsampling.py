"""
Voxel-grid preprocessing of the source/target pair.

Both clouds are thinned with the same voxel size so that correspondence
search sees comparable point densities on either side.
"""

from typing import Tuple

from ..errors import EmptyCloudAfterDownsample
from ..utils.logging import setup_logger
from .point_cloud import PointCloud

logger = setup_logger(__name__)

# Solvers need at least this many points to estimate a rigid motion
MIN_ALIGNMENT_POINTS = 3


def prepare(source: PointCloud, target: PointCloud, voxel_size: float) -> Tuple[PointCloud, PointCloud]:
    """
    Downsample source and target with a common voxel grid size.

    Args:
        source: Full-resolution source cloud (not modified)
        target: Full-resolution target cloud (not modified)
        voxel_size: Voxel edge length; a non-positive value skips downsampling

    Returns:
        Tuple of (source_down, target_down)

    Raises:
        EmptyCloudAfterDownsample: If either result has no points
    """
    if voxel_size <= 0:
        logger.info(f"Voxel size {voxel_size} <= 0: downsampling skipped.")
        return source.copy(), target.copy()

    results = []
    for which, cloud in (("source", source), ("target", target)):
        down = cloud.voxel_downsample(voxel_size)
        if down.is_empty:
            raise EmptyCloudAfterDownsample(which, voxel_size)
        reduction = 100.0 * (1.0 - down.num_points / cloud.num_points)
        logger.info(
            f"Downsampled {which} cloud: {cloud.num_points:,} -> {down.num_points:,} points "
            f"(voxel_size={voxel_size}, -{reduction:.1f}%)"
        )
        if down.num_points < MIN_ALIGNMENT_POINTS:
            logger.warning(
                f"Only {down.num_points} {which} points remain after downsampling; "
                f"voxel_size={voxel_size} is probably too coarse for a cloud of extent "
                f"{cloud.diagonal:.3f}."
            )
        results.append(down)

    return results[0], results[1]
