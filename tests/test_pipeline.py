"""
End-to-end tests of the registration pipeline on synthetic clouds.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from pointcloud_registration.alignment.methods import AlignmentResult, AlignmentStrategy
from pointcloud_registration.alignment.types import AlignmentMethod, AlignmentStatus
from pointcloud_registration.errors import (
    EmptyCloudAfterDownsample,
    InvalidScaleConfig,
    InvalidTransform,
    LoadFailure,
    WriteFailure,
)
from pointcloud_registration.pipeline.registration_pipeline import (
    STAGE_ALIGNMENT,
    STAGE_DOWNSAMPLING,
    STAGE_SCALE,
    RegistrationPipeline,
    run_pipeline,
)
from pointcloud_registration.preprocessing.point_cloud import PointCloud
from pointcloud_registration.utils.config import RegistrationConfig
from pointcloud_registration.utils.export import TransformExporter, load_transform_matrix
from pointcloud_registration.utils.transforms import apply_transform


def _surface(n: int = 900, seed: int = 3) -> np.ndarray:
    rng = np.random.default_rng(seed)
    xy = rng.uniform(-4.0, 4.0, size=(n, 2))
    z = 0.5 * np.sin(xy[:, 0]) + 0.3 * np.cos(1.7 * xy[:, 1]) + 0.04 * xy[:, 0] * xy[:, 1]
    return np.column_stack([xy, z]) + np.array([50.0, 20.0, 5.0])


class SpyExporter(TransformExporter):
    """Records save calls and writes as usual."""

    def __init__(self):
        self.saved = []

    def save(self, cloud, output_path):
        self.saved.append(output_path)
        return super().save(cloud, output_path)


class NaNStrategy(AlignmentStrategy):
    method = AlignmentMethod.ICP

    def align(self, source, target, initial_transform=None):
        return AlignmentResult(
            method=self.method,
            transform=np.full((4, 4), np.nan),
            status=AlignmentStatus.CONVERGED,
        )


@pytest.fixture
def cloud_files(tmp_path):
    points = _surface()
    source = tmp_path / "source.xyz"
    target = tmp_path / "target.xyz"
    np.savetxt(source, points)
    np.savetxt(target, points)
    return str(source), str(target)


@pytest.mark.parametrize("method", ["gicp", "icp", "icp_normals"])
def test_identical_clouds_give_identity(cloud_files, method):
    source, target = cloud_files
    cfg = RegistrationConfig(source_file=source, target_file=target, method=method, voxel_size=0.0)

    result = run_pipeline(cfg)

    np.testing.assert_allclose(result.transform, np.eye(4), atol=1e-6)
    assert result.alignment.method == AlignmentMethod.from_name(method)
    assert not result.exported


def test_measurements_recover_scale(tmp_path):
    target_points = _surface()
    source_points = (target_points - target_points.mean(axis=0)) / 3.0 + np.array([1.0, 2.0, 3.0])
    source = tmp_path / "source.npy"
    target = tmp_path / "target.npy"
    np.save(source, source_points)
    np.save(target, target_points)
    cfg = RegistrationConfig(
        source_file=str(source),
        target_file=str(target),
        method="icp",
        source_measurement=2.0,
        target_measurement=6.0,
        voxel_size=0.0,
    )

    result = run_pipeline(cfg)

    assert result.scale.ratio == pytest.approx(3.0)
    assert result.decomposition.scale == pytest.approx(3.0, rel=1e-6)
    np.testing.assert_allclose(apply_transform(source_points, result.transform), target_points, atol=1e-5)


def test_timeline_lists_stages_in_order(cloud_files):
    source, target = cloud_files
    cfg = RegistrationConfig(source_file=source, target_file=target, method="icp", voxel_size=0.5)

    result = run_pipeline(cfg)

    assert [e.stage for e in result.timeline] == [STAGE_SCALE, STAGE_DOWNSAMPLING, STAGE_ALIGNMENT]
    assert all(e.duration >= 0.0 for e in result.timeline)


def test_timeline_is_reset_between_runs(cloud_files):
    source, target = cloud_files
    pipeline = RegistrationPipeline(
        RegistrationConfig(source_file=source, target_file=target, method="icp", voxel_size=0.5)
    )
    src, tgt = pipeline.load_clouds()

    pipeline.align(src, tgt)
    pipeline.align(src, tgt)

    assert len(pipeline.timeline) == 3


def test_nan_transform_is_rejected_before_export(cloud_files, tmp_path):
    source, target = cloud_files
    output = tmp_path / "aligned.ply"
    cfg = RegistrationConfig(source_file=source, target_file=target, output_file=str(output), voxel_size=0.0)
    exporter = SpyExporter()

    with pytest.raises(InvalidTransform):
        RegistrationPipeline(cfg, exporter=exporter, strategy=NaNStrategy()).run()

    assert exporter.saved == []
    assert not output.exists()


def test_no_output_file_skips_export(cloud_files):
    source, target = cloud_files
    cfg = RegistrationConfig(source_file=source, target_file=target, method="icp", voxel_size=0.0)
    exporter = SpyExporter()

    result = RegistrationPipeline(cfg, exporter=exporter).run()

    assert exporter.saved == []
    assert result.output_file is None


def test_output_and_transform_files_are_written(cloud_files, tmp_path):
    source, target = cloud_files
    output = tmp_path / "out" / "aligned.ply"
    transform_file = tmp_path / "out" / "transform.txt"
    cfg = RegistrationConfig(
        source_file=source,
        target_file=target,
        output_file=str(output),
        transform_file=str(transform_file),
        method="icp",
        voxel_size=0.0,
        show_timeline=False,
    )
    exporter = SpyExporter()

    result = RegistrationPipeline(cfg, exporter=exporter).run()

    assert result.exported
    assert exporter.saved == [str(output)]
    assert output.exists()
    np.testing.assert_allclose(load_transform_matrix(str(transform_file)), result.transform, atol=1e-12)


def test_missing_source_file(tmp_path, cloud_files):
    _, target = cloud_files
    cfg = RegistrationConfig(source_file=str(tmp_path / "nope.ply"), target_file=target)

    with pytest.raises(LoadFailure) as excinfo:
        run_pipeline(cfg)
    assert "source" in str(excinfo.value)


def test_empty_cloud_after_downsampling():
    pipeline = RegistrationPipeline(RegistrationConfig(voxel_size=0.5))
    empty = PointCloud(points=np.empty((0, 3)))
    target = PointCloud(points=_surface())

    with pytest.raises(EmptyCloudAfterDownsample) as excinfo:
        pipeline.align(empty, target)

    assert excinfo.value.which == "source"
    assert [e.stage for e in pipeline.timeline.entries] == [STAGE_SCALE]


def test_invalid_scale_stops_before_downsampling():
    pipeline = RegistrationPipeline(RegistrationConfig(source_measurement=0.0, target_measurement=5.0))
    cloud = PointCloud(points=_surface())

    with pytest.raises(InvalidScaleConfig):
        pipeline.align(cloud, cloud)

    assert len(pipeline.timeline) == 0


def test_write_failure_keeps_transform(cloud_files, tmp_path):
    source, target = cloud_files
    output = tmp_path / "aligned.foo"
    cfg = RegistrationConfig(
        source_file=source, target_file=target, output_file=str(output), method="icp", voxel_size=0.0
    )

    with pytest.raises(WriteFailure) as excinfo:
        run_pipeline(cfg)

    transform = excinfo.value.transform
    assert transform is not None
    assert np.isfinite(transform).all()
    np.testing.assert_allclose(transform, np.eye(4), atol=1e-6)
    assert not output.exists()


def test_transform_file_failure_keeps_transform(cloud_files, tmp_path):
    source, target = cloud_files
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    cfg = RegistrationConfig(
        source_file=source,
        target_file=target,
        transform_file=str(blocker / "transform.txt"),
        method="icp",
        voxel_size=0.0,
    )

    with pytest.raises(WriteFailure) as excinfo:
        run_pipeline(cfg)

    assert excinfo.value.stage == "export"
    np.testing.assert_allclose(excinfo.value.transform, np.eye(4), atol=1e-6)
