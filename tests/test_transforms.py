"""
Tests for the homogeneous transform helpers.
"""

import sys
from pathlib import Path

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

sys.path.append(str(Path(__file__).parent.parent / "src"))

from pointcloud_registration.errors import InvalidTransform
from pointcloud_registration.utils.transforms import (
    apply_transform,
    decompose_transform,
    format_matrix,
    is_valid_transform,
    scale_about,
    similarity_matrix,
    validate_transform,
)


def test_decompose_similarity():
    R = Rotation.from_euler("xyz", [10.0, -20.0, 35.0], degrees=True).as_matrix()
    T = similarity_matrix(2.5, R, [1.0, 2.0, 3.0])

    parts = decompose_transform(T)

    assert parts.scale == pytest.approx(2.5)
    np.testing.assert_allclose(parts.rotation, R, atol=1e-12)
    np.testing.assert_allclose(parts.translation, [1.0, 2.0, 3.0])
    np.testing.assert_allclose(parts.to_matrix(), T, atol=1e-12)


def test_rotation_angle():
    R = Rotation.from_rotvec([0.0, 0.0, np.radians(40.0)]).as_matrix()
    assert decompose_transform(similarity_matrix(1.0, R)).rotation_angle_deg == pytest.approx(40.0)


def test_scale_about_keeps_center_fixed():
    center = np.array([3.0, -1.0, 2.0])
    T = scale_about(center, 4.0)

    np.testing.assert_allclose(apply_transform(center[None, :], T), center[None, :])
    np.testing.assert_allclose(
        apply_transform(np.array([[4.0, -1.0, 2.0]]), T),
        [[7.0, -1.0, 2.0]],
    )


def test_apply_transform_empty():
    assert apply_transform(np.empty((0, 3)), np.eye(4)).shape == (0, 3)


def test_validate_transform():
    np.testing.assert_array_equal(validate_transform(np.eye(4)), np.eye(4))
    assert is_valid_transform(np.eye(4))

    bad = np.eye(4)
    bad[0, 3] = np.nan
    assert not is_valid_transform(bad)
    with pytest.raises(InvalidTransform) as excinfo:
        validate_transform(bad)
    assert excinfo.value.stage == "validation"

    with pytest.raises(InvalidTransform):
        validate_transform(np.eye(3))


def test_format_matrix_has_one_line_per_row():
    assert len(format_matrix(np.eye(4)).splitlines()) == 4
