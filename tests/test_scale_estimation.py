"""Tests for the source -> target scale estimation."""

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from pointcloud_registration.alignment.scale_estimation import estimate_scale, estimate_scale_details
from pointcloud_registration.errors import InvalidScaleConfig, RegistrationError
from pointcloud_registration.utils.config import RegistrationConfig


def test_defaults_give_neutral_scale():
    est = estimate_scale_details(RegistrationConfig())
    assert est.ratio == 1.0
    assert est.origin == "default"


def test_measurements_give_ratio():
    cfg = RegistrationConfig(source_measurement=2.0, target_measurement=6.0)
    assert estimate_scale(cfg) == 3.0
    assert estimate_scale_details(cfg).origin == "measurements"


@pytest.mark.parametrize("value", [0.5, 2.0, 7.25, 1234.5])
def test_equal_measurements_give_exactly_one(value):
    cfg = RegistrationConfig(source_measurement=value, target_measurement=value)
    assert estimate_scale(cfg) == 1.0


def test_explicit_ratio_takes_precedence_over_measurements():
    cfg = RegistrationConfig(scale_ratio=0.25, source_measurement=2.0, target_measurement=6.0)
    est = estimate_scale_details(cfg)
    assert est.ratio == 0.25
    assert est.origin == "explicit"


def test_explicit_ratio_ignores_invalid_measurements():
    cfg = RegistrationConfig(scale_ratio=4.0, source_measurement=0.0, target_measurement=5.0)
    assert estimate_scale(cfg) == 4.0


def test_estimation_is_pure():
    cfg = RegistrationConfig(source_measurement=3.0, target_measurement=4.5)
    first = estimate_scale(cfg)
    second = estimate_scale(cfg)
    assert first == second == 1.5
    assert cfg.source_measurement == 3.0


@pytest.mark.parametrize(
    "source_m, target_m",
    [(0.0, 5.0), (5.0, 0.0), (-1.0, 2.0), (2.0, -3.0), (0.0, 0.0), (float("nan"), 2.0)],
)
def test_invalid_measurements_raise(source_m, target_m):
    cfg = RegistrationConfig(source_measurement=source_m, target_measurement=target_m)
    with pytest.raises(InvalidScaleConfig) as excinfo:
        estimate_scale(cfg)
    assert isinstance(excinfo.value, RegistrationError)
    assert excinfo.value.stage == "scale estimation"


@pytest.mark.parametrize("ratio", [-2.0, float("-inf"), float("inf"), float("nan")])
def test_invalid_explicit_ratio_raises(ratio):
    with pytest.raises(InvalidScaleConfig):
        estimate_scale(RegistrationConfig(scale_ratio=ratio))


def test_zero_ratio_means_unset():
    cfg = RegistrationConfig(scale_ratio=0.0, source_measurement=2.0, target_measurement=6.0)
    estimate = estimate_scale_details(cfg)
    assert estimate.ratio == pytest.approx(3.0)
    assert estimate.origin == "measurements"


def test_zero_ratio_with_default_measurements_is_neutral():
    estimate = estimate_scale_details(RegistrationConfig(scale_ratio=0.0))
    assert estimate.ratio == 1.0
    assert estimate.origin == "default"
