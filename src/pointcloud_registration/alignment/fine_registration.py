"""
Iterative Registration Solvers

This module implements the iterative closest point family used for fine
alignment: point-to-point ICP, point-to-plane ICP and generalized ICP
(plane-to-plane). The solvers estimate a rigid refinement of an initial
similarity transform; the returned matrix composes both, so any scale folded
into the initial transform is preserved.

Each run is bounded by ``max_iterations`` and always returns the best
transform reached together with an AlignmentStatus.
"""

from dataclasses import dataclass
from typing import Optional, Tuple
import time

import numpy as np
from scipy.spatial.transform import Rotation
from sklearn.neighbors import NearestNeighbors

from ..utils.logging import setup_logger
from ..utils.transforms import apply_transform
from .types import AlignmentStatus

logger = setup_logger(__name__)

# Need at least 3 correspondences to constrain a rigid motion
MIN_CORRESPONDENCES = 3


@dataclass
class RegistrationOutcome:
    """Result of one solver run."""

    aligned: np.ndarray
    transform: np.ndarray
    final_error: float
    iterations: int
    status: AlignmentStatus
    fitness: float = 0.0


def local_covariances(points: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Eigen-decompose the covariance of every point's k-neighbourhood.

    Args:
        points: Point cloud (N x 3)
        k: Neighbourhood size (clamped to N)

    Returns:
        Tuple of (eigenvalues (N x 3, ascending), eigenvectors (N x 3 x 3, columns))
    """
    k_eff = max(1, min(k, len(points)))
    nbrs = NearestNeighbors(n_neighbors=k_eff, algorithm="kd_tree").fit(points)
    _, indices = nbrs.kneighbors(points)
    neighborhoods = points[indices]
    centered = neighborhoods - neighborhoods.mean(axis=1, keepdims=True)
    cov = np.einsum("nki,nkj->nij", centered, centered) / k_eff
    return np.linalg.eigh(cov)


def estimate_normals(points: np.ndarray, k: int = 20) -> np.ndarray:
    """Unit normals from local PCA (direction of least variance)."""
    _, eigvecs = local_covariances(points, k)
    return eigvecs[:, :, 0]


def plane_covariances(points: np.ndarray, k: int = 20, epsilon: float = 1e-3) -> np.ndarray:
    """
    Regularised per-point covariances for generalized ICP.

    Each local covariance keeps its eigenvectors but its eigenvalues are
    replaced by (epsilon, 1, 1), modelling the surface as locally planar.
    """
    _, eigvecs = local_covariances(points, k)
    weights = np.array([epsilon, 1.0, 1.0])
    return np.einsum("nij,j,nkj->nik", eigvecs, weights, eigvecs)


def _skew(vectors: np.ndarray) -> np.ndarray:
    S = np.zeros((len(vectors), 3, 3))
    S[:, 0, 1] = -vectors[:, 2]
    S[:, 0, 2] = vectors[:, 1]
    S[:, 1, 0] = vectors[:, 2]
    S[:, 1, 2] = -vectors[:, 0]
    S[:, 2, 0] = -vectors[:, 1]
    S[:, 2, 1] = vectors[:, 0]
    return S


def _rigid_from_twist(x: np.ndarray) -> np.ndarray:
    """4x4 rigid transform from a rotation vector (x[:3]) and translation (x[3:])."""
    T = np.eye(4)
    T[:3, :3] = Rotation.from_rotvec(x[:3]).as_matrix()
    T[:3, 3] = x[3:]
    return T


class ICPRegistration:
    """
    Point-to-point ICP.

    The algorithm iteratively:
    1. Finds closest point correspondences
    2. Estimates the rigid motion minimising their distances
    3. Applies the cumulative motion to the source points
    4. Repeats until convergence or the iteration cap
    """

    name = "ICP"

    def __init__(
        self,
        max_iterations: int = 100,
        tolerance: float = 1e-8,
        max_correspondence_distance: Optional[float] = None,
        convergence_translation_epsilon: float = 1e-6,
        convergence_rotation_epsilon_deg: float = 1e-3,
    ):
        """
        Initialize ICP parameters.

        Args:
            max_iterations: Hard cap on the number of iterations.
            tolerance: Convergence tolerance on change in mean squared error.
            max_correspondence_distance: Maximum distance for point correspondences
                (None = unbounded).
            convergence_translation_epsilon: Translation step below which the
                algorithm is considered converged.
            convergence_rotation_epsilon_deg: Rotation step (degrees) below which
                the algorithm is considered converged.
        """
        self.max_iterations = int(max_iterations)
        self.tolerance = tolerance
        self.max_correspondence_distance = (
            np.inf if max_correspondence_distance is None else float(max_correspondence_distance)
        )
        self.convergence_translation_epsilon = convergence_translation_epsilon
        self.convergence_rotation_epsilon_rad = np.deg2rad(convergence_rotation_epsilon_deg)
        self.status = AlignmentStatus.NOT_STARTED

    @classmethod
    def from_config(cls, solver_config) -> "ICPRegistration":
        """Build a solver from one of the ``*SolverConfig`` models."""
        return cls(**solver_config.model_dump())

    def align_point_clouds(
        self,
        source: np.ndarray,
        target: np.ndarray,
        initial_transform: Optional[np.ndarray] = None,
        target_normals: Optional[np.ndarray] = None,
    ) -> RegistrationOutcome:
        """
        Align source point cloud to target.

        Args:
            source: Source point cloud (N x 3).
            target: Target point cloud (M x 3).
            initial_transform: Initial transformation matrix (4 x 4) or None.
                May contain an isotropic scale.
            target_normals: Optional target normals (M x 3), used by the
                point-to-plane variant.

        Returns:
            RegistrationOutcome with the composed transform and the final status.
        """
        n_src = len(source)
        n_tgt = len(target)
        transform_init = np.eye(4) if initial_transform is None else np.array(initial_transform, dtype=float)
        self.status = AlignmentStatus.NOT_STARTED

        logger.info(
            "Starting %s alignment with %d source points and %d target points.",
            self.name,
            n_src,
            n_tgt,
        )

        start = apply_transform(source, transform_init)

        if n_src < MIN_CORRESPONDENCES or n_tgt < MIN_CORRESPONDENCES:
            logger.warning(
                "%s called with too few points (source=%d, target=%d); "
                "returning the initial transform.",
                self.name,
                n_src,
                n_tgt,
            )
            self.status = AlignmentStatus.DIVERGED
            return RegistrationOutcome(start, transform_init, float("inf"), 0, self.status, 0.0)

        # Build the nearest-neighbor search structure for the target ONCE
        build_start = time.time()
        nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(target)
        self._prepare(start, target, target_normals)
        logger.debug("Search structures built in %.4f s.", time.time() - build_start)

        self.status = AlignmentStatus.RUNNING
        status = AlignmentStatus.MAX_ITERATIONS_REACHED
        rigid = np.eye(4)
        current = start
        previous_error = float("inf")
        n_iterations = 0
        icp_start = time.time()

        for iteration in range(self.max_iterations):
            correspondences, distances = self.find_correspondences(current, nbrs=nbrs)

            valid_mask = distances < self.max_correspondence_distance
            if int(np.count_nonzero(valid_mask)) < MIN_CORRESPONDENCES:
                logger.warning("Not enough valid correspondences found. Stopping %s.", self.name)
                status = AlignmentStatus.DIVERGED
                break

            try:
                delta_transform = self._estimate_step(current, target, valid_mask, correspondences, rigid)
            except np.linalg.LinAlgError as e:
                logger.warning("%s step failed at iteration %d: %s", self.name, iteration + 1, e)
                status = AlignmentStatus.DIVERGED
                break
            if not np.isfinite(delta_transform).all():
                logger.warning("%s produced a non-finite update at iteration %d.", self.name, iteration + 1)
                status = AlignmentStatus.DIVERGED
                break

            # Accumulate and re-apply to the ORIGINAL start points to avoid drift
            rigid = delta_transform @ rigid
            current = apply_transform(start, rigid)

            current_error = float(np.mean(distances[valid_mask] ** 2))
            trans_step = float(np.linalg.norm(delta_transform[:3, 3]))
            cos_theta = max(min((float(np.trace(delta_transform[:3, :3])) - 1.0) * 0.5, 1.0), -1.0)
            rot_step = float(np.arccos(cos_theta))
            n_iterations = iteration + 1

            logger.debug(
                "Iteration %d: MSE=%.6e, |dt|=%.6e, dtheta=%.6e rad",
                n_iterations,
                current_error,
                trans_step,
                rot_step,
            )

            if abs(previous_error - current_error) < self.tolerance:
                logger.info(
                    "%s converged after %d iterations (MSE change < %.3e).",
                    self.name,
                    n_iterations,
                    self.tolerance,
                )
                status = AlignmentStatus.CONVERGED
                break

            if (
                trans_step < self.convergence_translation_epsilon
                and rot_step < self.convergence_rotation_epsilon_rad
            ):
                logger.info(
                    "%s converged after %d iterations (motion below thresholds: "
                    "|dt|=%.3e, dtheta=%.3e rad).",
                    self.name,
                    n_iterations,
                    trans_step,
                    rot_step,
                )
                status = AlignmentStatus.CONVERGED
                break

            previous_error = current_error
        else:
            logger.warning("%s did not converge after %d iterations.", self.name, self.max_iterations)

        self.status = status
        final_error, fitness = self.compute_registration_error(current, nbrs)
        logger.info(
            "%s finished in %.4f s (%d iterations, status=%s). Final RMSE: %.6f, fitness: %.3f",
            self.name,
            time.time() - icp_start,
            n_iterations,
            status.value,
            final_error,
            fitness,
        )

        return RegistrationOutcome(
            aligned=current,
            transform=rigid @ transform_init,
            final_error=final_error,
            iterations=n_iterations,
            status=status,
            fitness=fitness,
        )

    # ------------------------ Variant hooks ------------------------
    def _prepare(self, source: np.ndarray, target: np.ndarray, target_normals: Optional[np.ndarray]) -> None:
        """Per-run precomputation on the (initially transformed) source and the target."""

    def _estimate_step(
        self,
        current: np.ndarray,
        target: np.ndarray,
        valid_mask: np.ndarray,
        correspondences: np.ndarray,
        rigid: np.ndarray,
    ) -> np.ndarray:
        return self.estimate_transformation(current[valid_mask], target[correspondences[valid_mask]])

    # ------------------------ Shared steps ------------------------
    def find_correspondences(
        self,
        source: np.ndarray,
        target: Optional[np.ndarray] = None,
        nbrs: Optional[NearestNeighbors] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Find closest point correspondences between source and target.

        Args:
            source: Source point cloud (N x 3).
            target: Target point cloud (M x 3). Only used if `nbrs` is None.
            nbrs: Optional pre-built NearestNeighbors instance for the target.

        Returns:
            Tuple of (correspondence_indices, distances).
        """
        if nbrs is None:
            if target is None:
                raise ValueError("Either 'target' or a pre-built 'nbrs' must be provided.")
            nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(target)

        distances, indices = nbrs.kneighbors(source)
        return indices.ravel(), distances.ravel()

    @staticmethod
    def estimate_transformation(source_points: np.ndarray, target_points: np.ndarray) -> np.ndarray:
        """
        Estimate the rigid transformation best mapping source onto target points (SVD).

        Args:
            source_points: Source points (N x 3).
            target_points: Corresponding target points (N x 3).

        Returns:
            Transformation matrix (4 x 4).
        """
        source_centroid = source_points.mean(axis=0)
        target_centroid = target_points.mean(axis=0)

        H = (source_points - source_centroid).T @ (target_points - target_centroid)
        U, _, Vt = np.linalg.svd(H)
        R = Vt.T @ U.T

        # Ensure proper rotation (det(R) should be 1)
        if np.linalg.det(R) < 0:
            Vt[-1, :] *= -1
            R = Vt.T @ U.T

        transform = np.eye(4)
        transform[:3, :3] = R
        transform[:3, 3] = target_centroid - R @ source_centroid
        return transform

    def compute_registration_error(
        self,
        source: np.ndarray,
        nbrs: NearestNeighbors,
    ) -> Tuple[float, float]:
        """
        RMSE and fitness (fraction of source points with a valid correspondence).
        """
        if source.size == 0:
            return float("inf"), 0.0
        _, distances = self.find_correspondences(source, nbrs=nbrs)
        valid_mask = distances < self.max_correspondence_distance
        n_valid = int(np.count_nonzero(valid_mask))
        if n_valid == 0:
            logger.warning("No valid correspondences found for error computation.")
            return float("inf"), 0.0
        rmse = float(np.sqrt(np.mean(distances[valid_mask] ** 2)))
        return rmse, n_valid / len(source)


class PointToPlaneICP(ICPRegistration):
    """ICP minimising distances along the target surface normals."""

    name = "ICP_NORMALS"

    def __init__(self, normal_neighbors: int = 20, **kwargs):
        super().__init__(**kwargs)
        self.normal_neighbors = normal_neighbors
        self._target_normals: Optional[np.ndarray] = None

    def _prepare(self, source, target, target_normals):
        if target_normals is not None and len(target_normals) == len(target):
            self._target_normals = np.asarray(target_normals, dtype=float)
        else:
            logger.debug("Estimating target normals from %d neighbours.", self.normal_neighbors)
            self._target_normals = estimate_normals(target, self.normal_neighbors)

    def _estimate_step(self, current, target, valid_mask, correspondences, rigid):
        p = current[valid_mask]
        idx = correspondences[valid_mask]
        q = target[idx]
        n = self._target_normals[idx]

        # Linearised residual ((R p + t) - q) . n with R ~ I + [w]x
        A = np.hstack([np.cross(p, n), n])
        b = np.einsum("ij,ij->i", q - p, n)
        x, *_ = np.linalg.lstsq(A, b, rcond=None)
        return _rigid_from_twist(x)


class GeneralizedICP(ICPRegistration):
    """
    Generalized ICP (plane-to-plane).

    Every correspondence is weighted by the inverse of the combined local
    covariances of its two points; each iteration solves one Gauss-Newton
    step of the resulting Mahalanobis cost.
    """

    name = "GICP"

    def __init__(self, covariance_neighbors: int = 20, covariance_epsilon: float = 1e-3, **kwargs):
        super().__init__(**kwargs)
        self.covariance_neighbors = covariance_neighbors
        self.covariance_epsilon = covariance_epsilon
        self._source_cov: Optional[np.ndarray] = None
        self._target_cov: Optional[np.ndarray] = None

    def _prepare(self, source, target, target_normals):
        self._source_cov = plane_covariances(source, self.covariance_neighbors, self.covariance_epsilon)
        self._target_cov = plane_covariances(target, self.covariance_neighbors, self.covariance_epsilon)

    def _estimate_step(self, current, target, valid_mask, correspondences, rigid):
        p = current[valid_mask]
        idx = correspondences[valid_mask]
        q = target[idx]

        # Source covariances were computed before the rigid refinement; rotate them along
        R = rigid[:3, :3]
        cov_p = np.einsum("ij,njk,lk->nil", R, self._source_cov[valid_mask], R)
        weights = np.linalg.inv(cov_p + self._target_cov[idx])

        residual = q - p
        J = np.concatenate([-_skew(p), np.broadcast_to(np.eye(3), (len(p), 3, 3))], axis=2)
        H = np.einsum("nai,nab,nbj->ij", J, weights, J, optimize=True)
        g = np.einsum("nai,nab,nb->i", J, weights, residual, optimize=True)
        x, *_ = np.linalg.lstsq(H, g, rcond=None)
        return _rigid_from_twist(x)
