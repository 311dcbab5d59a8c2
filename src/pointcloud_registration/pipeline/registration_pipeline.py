"""
Registration Pipeline

Sequences one source -> target registration run:

1. load the source and target clouds
2. estimate the scale ratio                  (timed: "scale estimation")
3. voxel-downsample both clouds              (timed: "downsampling")
4. initial estimate + iterative alignment    (timed: "alignment")
5. reject transforms containing NaN/Inf
6. report the timeline (optional)
7. save the transform and the transformed full-resolution source (optional)

A pipeline instance owns its clouds and timeline for the duration of a run;
concurrent runs need one instance each.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..alignment.coarse_registration import CoarseRegistration
from ..alignment.methods import AlignmentResult, AlignmentStrategy, create_strategy
from ..alignment.scale_estimation import ScaleEstimate, estimate_scale_details
from ..errors import WriteFailure
from ..preprocessing.downsampling import prepare
from ..preprocessing.loader import PointCloudLoader, load_point_cloud
from ..preprocessing.point_cloud import PointCloud
from ..utils.config import RegistrationConfig
from ..utils.export import TransformExporter, save_transform_matrix
from ..utils.logging import setup_logger
from ..utils.transforms import (
    TransformDecomposition,
    decompose_transform,
    format_matrix,
    validate_transform,
)
from .timeline import Timeline, TimelineEntry

logger = setup_logger(__name__)

STAGE_SCALE = "scale estimation"
STAGE_DOWNSAMPLING = "downsampling"
STAGE_ALIGNMENT = "alignment"


@dataclass
class RegistrationResult:
    """Outcome of a successful run."""

    transform: np.ndarray
    decomposition: TransformDecomposition
    alignment: AlignmentResult
    scale: ScaleEstimate
    timeline: Tuple[TimelineEntry, ...]
    output_file: Optional[str] = None
    transform_file: Optional[str] = None

    @property
    def exported(self) -> bool:
        return self.output_file is not None


class RegistrationPipeline:
    """
    Drives scale estimation, preprocessing, alignment, validation and export
    for one RegistrationConfig.
    """

    def __init__(
        self,
        config: RegistrationConfig,
        *,
        loader: Optional[PointCloudLoader] = None,
        exporter: Optional[TransformExporter] = None,
        strategy: Optional[AlignmentStrategy] = None,
    ):
        """
        Args:
            config: Run configuration (not modified)
            loader: Point cloud reader (default PointCloudLoader)
            exporter: Transform exporter (default TransformExporter)
            strategy: Alignment strategy; resolved from ``config.method`` if None
        """
        self.config = config
        self.loader = loader or PointCloudLoader()
        self.exporter = exporter or TransformExporter()
        self.strategy = strategy or create_strategy(config.method, config.solver)
        self.timeline = Timeline()

    # ------------------------ Stages ------------------------
    def load_clouds(self) -> Tuple[PointCloud, PointCloud]:
        """Load source and target; fails fast on the first unreadable cloud."""
        start = time.perf_counter()
        source = load_point_cloud(self.config.source_file, role="source", loader=self.loader)
        target = load_point_cloud(self.config.target_file, role="target", loader=self.loader)
        logger.info("Point clouds loaded in %.4f s.", time.perf_counter() - start)
        return source, target

    def align(self, source: PointCloud, target: PointCloud) -> Tuple[np.ndarray, AlignmentResult, ScaleEstimate]:
        """
        Estimate the source -> target transform.

        The timeline is reset at the start of every call.

        Returns:
            Tuple of (validated 4x4 transform, alignment result, scale estimate)

        Raises:
            InvalidScaleConfig: Inconsistent scale ratio / measurements
            EmptyCloudAfterDownsample: Voxel size leaves a cloud empty
            InvalidTransform: The estimated transform contains NaN/Inf
        """
        cfg = self.config
        self.timeline.reset()

        with self.timeline.measure(STAGE_SCALE):
            scale = estimate_scale_details(cfg)
        logger.info(f"Scale ratio: {scale.ratio:.6g} ({scale.origin})")

        with self.timeline.measure(STAGE_DOWNSAMPLING):
            source_down, target_down = prepare(source, target, cfg.voxel_size)

        with self.timeline.measure(STAGE_ALIGNMENT):
            coarse = CoarseRegistration(
                method=cfg.initial_alignment.method,
                sample_size=cfg.initial_alignment.pca_sample_size,
            )
            initial = coarse.compute_initial_transform(source_down.points, target_down.points, scale.ratio)
            logger.debug("Initial transform (%s):\n%s", coarse.method, format_matrix(initial))
            result = self.strategy.align(source_down, target_down, initial)

        transform = validate_transform(result.transform)
        return transform, result, scale

    def export(self, source: PointCloud, transform: np.ndarray) -> Optional[str]:
        """Write the transformed full-resolution source; None when no output was requested."""
        output_file = self.config.output_file
        if not output_file:
            logger.warning("Output file empty, nothing to export.")
            return None
        start = time.perf_counter()
        transformed = self.exporter.apply(source, transform)
        written = self.exporter.save(transformed, output_file)
        logger.info("Transformed source exported in %.4f s.", time.perf_counter() - start)
        return written

    # ------------------------ Full run ------------------------
    def run(self) -> RegistrationResult:
        """
        Execute the whole pipeline.

        Raises:
            RegistrationError: Subclass naming the failing stage
        """
        cfg = self.config
        logger.info(
            f"Alignment method: {cfg.method.name}, voxel size: {cfg.voxel_size}, "
            f"initial alignment: {cfg.initial_alignment.method}"
        )

        source, target = self.load_clouds()

        logger.info("Start alignment")
        transform, result, scale = self.align(source, target)

        decomposition = decompose_transform(transform)
        logger.warning("Alignment transform estimated:\n%s", format_matrix(transform))
        logger.warning("Alignment transform rotation:\n%s", format_matrix(decomposition.rotation))
        logger.warning("Alignment transform translation:\n%s", format_matrix(decomposition.translation))
        logger.warning("Alignment transform scale: %.6g", decomposition.scale)

        if cfg.show_timeline:
            logger.info(self.timeline.report())

        transform_file = None
        try:
            if cfg.transform_file:
                transform_file = save_transform_matrix(transform, cfg.transform_file)
            output_file = self.export(source, transform)
        except WriteFailure as e:
            # The transform is already reported; keep it reachable from the error
            e.transform = transform
            raise

        return RegistrationResult(
            transform=transform,
            decomposition=decomposition,
            alignment=result,
            scale=scale,
            timeline=self.timeline.entries,
            output_file=output_file,
            transform_file=transform_file,
        )


def run_pipeline(config: RegistrationConfig, **kwargs) -> RegistrationResult:
    """Run one registration with a fresh RegistrationPipeline."""
    return RegistrationPipeline(config, **kwargs).run()
