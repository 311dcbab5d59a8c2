"""
Initial Alignment Estimates

Builds the 4x4 estimate the iterative solvers start from. The source->target
scale ratio is always folded in; a coarse pose may be added on top.

Methods implemented:
- none: scale about the source centroid, no pose change
- centroid: scale, then move the source centroid onto the target centroid
- pca: scale, rotate principal axes onto the target's, then match centroids

All methods return a similarity transform (scale * R | t).
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from sklearn.neighbors import NearestNeighbors

from ..utils.logging import setup_logger
from ..utils.transforms import apply_transform, scale_about, similarity_matrix

logger = setup_logger(__name__)


@dataclass
class CoarseRegistration:
    method: str = "centroid"  # none | centroid | pca
    sample_size: int = 3000
    # PCA estimate is kept only if its RMSE is within this factor of the centroid one
    pca_acceptance_ratio: float = 1.1

    def compute_initial_transform(self, source: np.ndarray, target: np.ndarray, scale: float = 1.0) -> np.ndarray:
        """
        Compute the initial similarity transform aligning source -> target.

        Args:
            source: Nx3 array
            target: Mx3 array
            scale: Source -> target scale ratio

        Returns:
            4x4 transform matrix
        """
        if source.size == 0 or target.size == 0:
            logger.warning("CoarseRegistration: empty inputs; using scale only.")
            return similarity_matrix(scale)

        method = self.method.lower()
        c_src = source.mean(axis=0)
        if method == "none":
            return scale_about(c_src, scale)
        if method == "centroid":
            return self._centroid_transform(source, target, scale)
        if method == "pca":
            T = self._pca_transform(source, target, scale)
            return self._validate_or_fallback(source, target, T, scale)

        raise ValueError(f"Unknown initial alignment method '{self.method}'")

    # ------------------------ Methods ------------------------
    @staticmethod
    def _centroid_transform(src: np.ndarray, dst: np.ndarray, scale: float) -> np.ndarray:
        # p' = s * (p - c_src) + c_dst
        c_src = src.mean(axis=0)
        c_dst = dst.mean(axis=0)
        return similarity_matrix(scale, translation=c_dst - scale * c_src)

    @staticmethod
    def _principal_axes(points: np.ndarray) -> np.ndarray:
        centered = points - points.mean(axis=0)
        # Regularise so a planar or linear cloud still yields a basis
        cov = (centered.T @ centered) / max(1, len(points)) + 1e-12 * np.eye(3)
        eigvals, eigvecs = np.linalg.eigh(cov)
        return eigvecs[:, np.argsort(eigvals)[::-1]]

    def _pca_transform(self, src: np.ndarray, dst: np.ndarray, scale: float) -> np.ndarray:
        axes_src = self._principal_axes(src)
        axes_dst = self._principal_axes(dst)
        R = axes_dst @ axes_src.T
        if np.linalg.det(R) < 0:
            axes_dst[:, -1] *= -1
            R = axes_dst @ axes_src.T

        c_src = src.mean(axis=0)
        c_dst = dst.mean(axis=0)
        return similarity_matrix(scale, R, c_dst - scale * (R @ c_src))

    # ------------------------ Helpers ------------------------
    def _validate_or_fallback(self, src: np.ndarray, dst: np.ndarray, T: np.ndarray, scale: float) -> np.ndarray:
        """Keep a PCA estimate only when it is not clearly worse than centroid matching.

        Principal axes are sign-ambiguous, so a symmetric-looking cloud can be
        flipped; scoring on a fixed random sample catches the gross cases.
        """
        T_cent = self._centroid_transform(src, dst, scale)
        rmse_T = self._score_rmse(src, dst, T)
        rmse_C = self._score_rmse(src, dst, T_cent)
        if not np.isfinite(rmse_T) or rmse_T > self.pca_acceptance_ratio * rmse_C:
            logger.warning(
                "CoarseRegistration: PCA estimate worse than centroid (rmse %.4f vs %.4f). Using centroid.",
                rmse_T,
                rmse_C,
            )
            return T_cent
        logger.debug("CoarseRegistration: PCA estimate accepted (rmse %.4f vs %.4f).", rmse_T, rmse_C)
        return T

    def _score_rmse(self, src: np.ndarray, dst: np.ndarray, T: np.ndarray) -> float:
        rng = np.random.default_rng(0)
        n_src = min(self.sample_size, len(src))
        idx = rng.choice(len(src), n_src, replace=False) if len(src) > n_src else np.arange(len(src))
        moved = apply_transform(src[idx], T)
        nn = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(dst)
        d, _ = nn.kneighbors(moved)
        return float(np.sqrt(np.mean(d.reshape(-1) ** 2)))
