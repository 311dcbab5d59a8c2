"""
Scale estimation between the source and target models.

The ratio converts source units into target units. It is either given
explicitly or derived from one physical measurement taken on each model
(e.g. the length of the same edge measured in both reconstructions).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import InvalidScaleConfig

if TYPE_CHECKING:
    from ..utils.config import RegistrationConfig

NEUTRAL_SCALE = 1.0
# Explicit ratios that mean "not given": fall back to the measurements
UNSET_RATIOS = (0.0, NEUTRAL_SCALE)


@dataclass(frozen=True)
class ScaleEstimate:
    ratio: float
    origin: str  # "explicit" | "measurements" | "default"


def _check_finite(name: str, value: float) -> None:
    if not math.isfinite(value):
        raise InvalidScaleConfig(f"{name} must be finite, got {value}")


def estimate_scale_details(config: "RegistrationConfig") -> ScaleEstimate:
    """
    Pick the source -> target scale ratio and report which rule produced it.

    Precedence:
    1. an explicit ``scale_ratio`` (0.0 and 1.0 both mean unset);
    2. ``target_measurement / source_measurement`` when both are positive;
    3. 1.0 when both measurements are still at their neutral value.

    Raises:
        InvalidScaleConfig: For a negative explicit ratio, or when either
            measurement is zero, negative or non-finite.
    """
    ratio = float(config.scale_ratio)
    _check_finite("scale_ratio", ratio)
    if ratio not in UNSET_RATIOS:
        if ratio < 0:
            raise InvalidScaleConfig(f"scale_ratio must be positive, got {ratio}")
        return ScaleEstimate(ratio=ratio, origin="explicit")

    source_m = float(config.source_measurement)
    target_m = float(config.target_measurement)
    _check_finite("source_measurement", source_m)
    _check_finite("target_measurement", target_m)

    if source_m <= 0 or target_m <= 0:
        raise InvalidScaleConfig(
            "source_measurement and target_measurement must both be positive "
            f"(got source={source_m}, target={target_m})"
        )

    if source_m == NEUTRAL_SCALE and target_m == NEUTRAL_SCALE:
        return ScaleEstimate(ratio=NEUTRAL_SCALE, origin="default")

    return ScaleEstimate(ratio=target_m / source_m, origin="measurements")


def estimate_scale(config: "RegistrationConfig") -> float:
    """Source -> target scale ratio for a configuration. Pure; see estimate_scale_details."""
    return estimate_scale_details(config).ratio
