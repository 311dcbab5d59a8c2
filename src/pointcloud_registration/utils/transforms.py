"""
Homogeneous 4x4 transform helpers.

The registration pipeline produces similarity transforms: an isotropic scale
folded into the rotation block plus a translation. These helpers build such
matrices, apply them to point arrays, check them for NaN/Inf, and split them
back into scale, rotation and translation for reporting.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import numpy as np

from ..errors import InvalidTransform

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass(frozen=True)
class TransformDecomposition:
    """Scale, rotation and translation of a similarity transform.

    The transform is defined as:
        p' = scale * rotation @ p + translation

    Attributes:
        scale: Isotropic scale factor
        rotation: 3x3 rotation matrix (scale removed)
        translation: 3-vector
    """

    scale: float
    rotation: "NDArray[np.floating]"
    translation: "NDArray[np.floating]"

    @property
    def rotation_angle_deg(self) -> float:
        """Magnitude of the rotation in degrees."""
        cos_theta = (float(np.trace(self.rotation)) - 1.0) * 0.5
        return float(np.degrees(np.arccos(np.clip(cos_theta, -1.0, 1.0))))

    def to_matrix(self) -> np.ndarray:
        return similarity_matrix(self.scale, self.rotation, self.translation)


def similarity_matrix(
    scale: float = 1.0,
    rotation: Optional[np.ndarray] = None,
    translation: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Build ``[[s*R, t], [0, 1]]``."""
    T = np.eye(4)
    R = np.eye(3) if rotation is None else np.asarray(rotation, dtype=float)
    T[:3, :3] = scale * R
    if translation is not None:
        T[:3, 3] = np.asarray(translation, dtype=float)
    return T


def translation_matrix(offset: np.ndarray) -> np.ndarray:
    T = np.eye(4)
    T[:3, 3] = np.asarray(offset, dtype=float)
    return T


def scale_about(center: np.ndarray, scale: float) -> np.ndarray:
    """Isotropic scale that keeps ``center`` fixed."""
    center = np.asarray(center, dtype=float)
    return translation_matrix(center) @ similarity_matrix(scale) @ translation_matrix(-center)


def apply_transform(points: np.ndarray, transform: np.ndarray) -> np.ndarray:
    """
    Apply a 4x4 transform to an (N, 3) array.

    Args:
        points: Point coordinates (N x 3)
        transform: Transformation matrix (4 x 4)

    Returns:
        Transformed coordinates (N x 3)
    """
    if points.size == 0:
        return points.copy()
    A = transform[:3, :3]
    t = transform[:3, 3]
    return points @ A.T + t


def rotate_vectors(vectors: np.ndarray, transform: np.ndarray) -> np.ndarray:
    """Rotate direction vectors (e.g. normals) by the rotation part of a transform."""
    if vectors.size == 0:
        return vectors.copy()
    R = decompose_transform(transform).rotation
    rotated = vectors @ R.T
    norms = np.linalg.norm(rotated, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return rotated / norms


def is_valid_transform(transform: np.ndarray) -> bool:
    """True for a 4x4 matrix with only finite entries."""
    transform = np.asarray(transform)
    return transform.shape == (4, 4) and bool(np.isfinite(transform).all())


def validate_transform(transform: np.ndarray) -> np.ndarray:
    """
    Reject transforms containing NaN/Inf.

    Raises:
        InvalidTransform: If the matrix is not 4x4 or has a non-finite entry
    """
    transform = np.asarray(transform, dtype=float)
    if transform.shape != (4, 4):
        raise InvalidTransform(f"Expected a 4x4 transform, got shape {transform.shape}")
    if not np.isfinite(transform).all():
        n_bad = int(np.count_nonzero(~np.isfinite(transform)))
        raise InvalidTransform(f"Final matrix contains {n_bad} NaN/Inf entries")
    return transform


def decompose_transform(transform: np.ndarray) -> TransformDecomposition:
    """
    Split a similarity transform into scale, rotation and translation.

    The scale is the cube root of the determinant of the linear block; the
    rotation is the nearest proper rotation to the de-scaled block (via SVD),
    which absorbs small numerical drift.
    """
    transform = np.asarray(transform, dtype=float)
    A = transform[:3, :3]
    det = float(np.linalg.det(A))
    scale = float(np.cbrt(det)) if det > 0 else float(np.mean(np.linalg.norm(A, axis=0)))
    if scale <= 0 or not np.isfinite(scale):
        scale = 1.0
    U, _, Vt = np.linalg.svd(A / scale)
    R = U @ Vt
    if np.linalg.det(R) < 0:
        U[:, -1] *= -1
        R = U @ Vt
    return TransformDecomposition(scale=scale, rotation=R, translation=transform[:3, 3].copy())


def format_matrix(matrix: np.ndarray, precision: int = 6) -> str:
    """Multi-line text rendering used in log reports."""
    return np.array2string(
        np.asarray(matrix),
        precision=precision,
        suppress_small=True,
        max_line_width=120,
    )
