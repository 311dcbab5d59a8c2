"""
Test suite for the point cloud loader
"""

import sys
import tempfile
import unittest
from pathlib import Path

import numpy as np

sys.path.append(str(Path(__file__).parent.parent / "src"))
from pointcloud_registration.errors import LoadFailure
from pointcloud_registration.preprocessing.loader import PointCloudLoader, load_point_cloud
from pointcloud_registration.preprocessing.point_cloud import PointCloud
from pointcloud_registration.utils.export import export_points_to_laz, export_points_to_ply


class TestPointCloudLoader(unittest.TestCase):
    """Test cases for the PointCloudLoader class."""

    def setUp(self):
        self.loader = PointCloudLoader()
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)
        rng = np.random.default_rng(7)
        self.points = rng.uniform(-10.0, 10.0, size=(200, 3))

    def tearDown(self):
        self._tmp.cleanup()

    def test_load_xyz(self):
        path = self.tmp_dir / "cloud.xyz"
        np.savetxt(path, self.points)

        cloud = self.loader.load(str(path))

        self.assertEqual(cloud.num_points, 200)
        np.testing.assert_allclose(cloud.points, self.points, atol=1e-12)
        self.assertEqual(cloud.source_path, str(path))

    def test_load_csv_with_extra_columns(self):
        path = self.tmp_dir / "cloud.csv"
        data = np.column_stack([self.points, np.arange(len(self.points))])
        np.savetxt(path, data, delimiter=",")

        cloud = self.loader.load(str(path))

        np.testing.assert_allclose(cloud.points, self.points, atol=1e-12)

    def test_load_npy(self):
        path = self.tmp_dir / "cloud.npy"
        np.save(path, self.points)

        cloud = self.loader.load(str(path))

        np.testing.assert_array_equal(cloud.points, self.points)

    def test_load_ply_with_normals_and_colors(self):
        normals = np.tile([0.0, 0.0, 1.0], (len(self.points), 1))
        colors = np.tile(np.array([10, 20, 30], dtype=np.uint8), (len(self.points), 1))
        path = self.tmp_dir / "cloud.ply"
        export_points_to_ply(PointCloud(points=self.points, normals=normals, colors=colors), path)

        cloud = self.loader.load(str(path))

        np.testing.assert_allclose(cloud.points, self.points)
        self.assertTrue(cloud.has_normals)
        np.testing.assert_allclose(cloud.normals, normals)
        self.assertTrue(cloud.has_colors)
        np.testing.assert_array_equal(cloud.colors, colors)

    def test_load_las(self):
        path = self.tmp_dir / "cloud.las"
        export_points_to_laz(PointCloud(points=self.points), path)

        cloud = self.loader.load(str(path))

        self.assertEqual(cloud.num_points, 200)
        np.testing.assert_allclose(cloud.points, self.points, atol=1e-3)
        self.assertFalse(cloud.has_colors)

    def test_non_finite_points_are_removed(self):
        points = self.points.copy()
        points[3, 1] = np.nan
        points[10, 2] = np.inf
        path = self.tmp_dir / "cloud.npy"
        np.save(path, points)

        cloud = self.loader.load(str(path))

        self.assertEqual(cloud.num_points, 198)
        self.assertTrue(np.isfinite(cloud.points).all())

    def test_non_finite_points_rejected_when_not_dropping(self):
        points = self.points.copy()
        points[0, 0] = np.nan
        path = self.tmp_dir / "cloud.npy"
        np.save(path, points)

        with self.assertRaises(LoadFailure):
            PointCloudLoader(drop_non_finite=False).load(str(path))

    def test_missing_file(self):
        with self.assertRaises(LoadFailure) as ctx:
            self.loader.load(str(self.tmp_dir / "missing.ply"))
        self.assertEqual(ctx.exception.stage, "loading")

    def test_unsupported_extension(self):
        path = self.tmp_dir / "cloud.obj"
        path.write_text("v 0 0 0\n")
        with self.assertRaises(LoadFailure):
            self.loader.load(str(path))

    def test_directory_is_rejected(self):
        with self.assertRaises(LoadFailure):
            self.loader.load(str(self.tmp_dir))

    def test_file_without_points(self):
        path = self.tmp_dir / "empty.npy"
        np.save(path, np.empty((0, 3)))
        with self.assertRaises(LoadFailure):
            self.loader.load(str(path))

    def test_too_few_columns(self):
        path = self.tmp_dir / "flat.npy"
        np.save(path, self.points[:, :2])
        with self.assertRaises(LoadFailure):
            self.loader.load(str(path))

    def test_validate_file(self):
        good = self.tmp_dir / "good.npy"
        np.save(good, self.points)
        self.assertTrue(self.loader.validate_file(str(good)))
        self.assertFalse(self.loader.validate_file(str(self.tmp_dir / "bad.npy")))

    def test_load_point_cloud_names_role(self):
        with self.assertRaises(LoadFailure) as ctx:
            load_point_cloud(str(self.tmp_dir / "missing.xyz"), role="target")
        self.assertIn("target", str(ctx.exception))

        with self.assertRaises(LoadFailure):
            load_point_cloud(None, role="source")


if __name__ == "__main__":
    unittest.main()
