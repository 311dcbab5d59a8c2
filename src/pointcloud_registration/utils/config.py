"""
Configuration management for pointcloud-registration.

Provides typed pydantic models and a YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import yaml

from ..alignment.types import AlignmentMethod


# -----------------------
# Typed config structures
# -----------------------


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ICPSolverConfig(_FrozenModel):
    max_iterations: int = Field(default=100, gt=0, description="Hard cap on solver iterations")
    tolerance: float = Field(default=1e-8, ge=0.0, description="Convergence tolerance on change in mean squared error")
    max_correspondence_distance: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Maximum distance for point correspondences (None = unbounded)",
    )
    convergence_translation_epsilon: float = Field(
        default=1e-6,
        ge=0.0,
        description="Translation step below which the solver is considered converged",
    )
    convergence_rotation_epsilon_deg: float = Field(
        default=1e-3,
        ge=0.0,
        description="Rotation step (degrees) below which the solver is considered converged",
    )


class PointToPlaneSolverConfig(ICPSolverConfig):
    normal_neighbors: int = Field(
        default=20,
        ge=3,
        description="Neighbours used to estimate target normals when the file carries none",
    )


class GICPSolverConfig(ICPSolverConfig):
    max_iterations: int = Field(default=64, gt=0, description="Hard cap on solver iterations")
    covariance_neighbors: int = Field(
        default=20,
        ge=3,
        description="Neighbours used to estimate the per-point covariances",
    )
    covariance_epsilon: float = Field(
        default=1e-3,
        gt=0.0,
        description="Smallest eigenvalue of the regularised (plane-like) covariances",
    )


class SolversConfig(_FrozenModel):
    gicp: GICPSolverConfig = Field(default_factory=GICPSolverConfig)
    icp: ICPSolverConfig = Field(default_factory=ICPSolverConfig)
    icp_normals: PointToPlaneSolverConfig = Field(default_factory=PointToPlaneSolverConfig)

    def for_method(self, method: AlignmentMethod) -> ICPSolverConfig:
        return getattr(self, AlignmentMethod.from_name(method).value)


class InitialAlignmentConfig(_FrozenModel):
    method: Literal["centroid", "pca", "none"] = Field(
        default="centroid",
        description="Coarse pose folded with the scale into the solver's initial estimate",
    )
    pca_sample_size: int = Field(default=3000, gt=0, description="Points used to score a PCA estimate")


class LoggingConfig(_FrozenModel):
    level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "FATAL", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class RegistrationConfig(_FrozenModel):
    """
    Everything one registration run depends on.

    When ``scale_ratio`` is left unset (1.0 or 0.0) the scale is derived from
    ``target_measurement / source_measurement``; any other explicit ratio
    takes precedence over the measurements.
    """

    source_file: Optional[str] = Field(default=None, description="Source (moving) 3D model")
    target_file: Optional[str] = Field(default=None, description="Target (fixed) 3D model")
    output_file: Optional[str] = Field(default=None, description="Where to save the transformed source model")
    transform_file: Optional[str] = Field(default=None, description="Where to save the 4x4 transform as text")
    method: AlignmentMethod = Field(default=AlignmentMethod.GICP)
    scale_ratio: float = Field(default=1.0, description="Target size / source size (0 or 1 = unset)")
    source_measurement: float = Field(default=1.0, description="Measurement on the source model")
    target_measurement: float = Field(default=1.0, description="Same measurement on the target model")
    voxel_size: float = Field(default=0.1, description="Voxel grid edge for downsampling (<= 0 disables)")
    show_timeline: bool = Field(default=True, description="Report the duration of each pipeline stage")
    initial_alignment: InitialAlignmentConfig = Field(default_factory=InitialAlignmentConfig)
    solvers: SolversConfig = Field(default_factory=SolversConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("method", mode="before")
    @classmethod
    def _parse_method(cls, value: Any) -> AlignmentMethod:
        return AlignmentMethod.from_name(value)

    @field_validator("voxel_size")
    @classmethod
    def _finite_voxel_size(cls, value: float) -> float:
        if value != value or value in (float("inf"), float("-inf")):
            raise ValueError("voxel_size must be finite")
        return value

    @property
    def solver(self) -> ICPSolverConfig:
        """Solver settings of the selected method."""
        return self.solvers.for_method(self.method)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/pointcloud_registration/utils/config.py
    """
    return Path(__file__).resolve().parents[3]


def load_config(
    path: Optional[str | Path] = None,
    *,
    allow_missing: bool = True,
    overrides: Optional[Dict[str, Any]] = None,
) -> RegistrationConfig:
    """
    Load configuration from YAML into a typed RegistrationConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: built-in defaults

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, uses defaults when the file is missing; otherwise raises.
        overrides: Top-level values (e.g. from the command line) applied over the
            file contents. Entries whose value is None are ignored.

    Returns:
        RegistrationConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)

    raw: Dict[str, Any] = {}
    if cfg_path.exists():
        with cfg_path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Invalid configuration in {cfg_path}: expected a mapping at top level")
    elif not allow_missing:
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    if overrides:
        raw.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return RegistrationConfig.model_validate(raw)
    except ValidationError as e:
        # Re-raise with context to help users fix the YAML or the arguments
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}") from e
