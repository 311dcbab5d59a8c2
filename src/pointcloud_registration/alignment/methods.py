"""
Alignment strategies.

Each AlignmentMethod maps to one strategy wrapping a solver from
fine_registration behind the same contract: downsampled source and target
clouds plus an initial similarity transform in, an AlignmentResult out. The
strategy is resolved once per run; strategies never raise on
non-convergence, they report it through the result status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional, Type

import numpy as np

from ..utils.logging import setup_logger
from .fine_registration import GeneralizedICP, ICPRegistration, PointToPlaneICP
from .types import AlignmentMethod, AlignmentStatus

if TYPE_CHECKING:
    from ..preprocessing.point_cloud import PointCloud
    from ..utils.config import ICPSolverConfig

logger = setup_logger(__name__)


@dataclass
class AlignmentResult:
    """Candidate transform of one alignment run and how the solver ended."""

    method: AlignmentMethod
    transform: np.ndarray
    status: AlignmentStatus
    iterations: int = 0
    rmse: float = float("inf")
    fitness: float = 0.0

    @property
    def converged(self) -> bool:
        return self.status == AlignmentStatus.CONVERGED


class AlignmentStrategy:
    """Runs one solver type on a preprocessed source/target pair."""

    method: AlignmentMethod
    solver_class: Type[ICPRegistration] = ICPRegistration

    def __init__(self, solver_config: Optional["ICPSolverConfig"] = None):
        self.solver_config = solver_config
        self.status = AlignmentStatus.NOT_STARTED

    def build_solver(self) -> ICPRegistration:
        if self.solver_config is None:
            return self.solver_class()
        return self.solver_class.from_config(self.solver_config)

    def align(
        self,
        source: "PointCloud",
        target: "PointCloud",
        initial_transform: Optional[np.ndarray] = None,
    ) -> AlignmentResult:
        """
        Align the downsampled source onto the downsampled target.

        Args:
            source: Preprocessed source cloud
            target: Preprocessed target cloud
            initial_transform: Starting estimate, scale included

        Returns:
            AlignmentResult; the transform is the best one reached even when
            the solver did not converge.
        """
        solver = self.build_solver()
        self.status = AlignmentStatus.RUNNING
        outcome = solver.align_point_clouds(
            source.points,
            target.points,
            initial_transform=initial_transform,
            target_normals=target.normals,
        )
        self.status = outcome.status
        if outcome.status != AlignmentStatus.CONVERGED:
            logger.warning(
                "%s alignment ended with status '%s' after %d iterations; "
                "continuing with the best transform found.",
                self.method.name,
                outcome.status.value,
                outcome.iterations,
            )
        return AlignmentResult(
            method=self.method,
            transform=outcome.transform,
            status=outcome.status,
            iterations=outcome.iterations,
            rmse=outcome.final_error,
            fitness=outcome.fitness,
        )


class GICPStrategy(AlignmentStrategy):
    method = AlignmentMethod.GICP
    solver_class = GeneralizedICP


class PointToPointStrategy(AlignmentStrategy):
    method = AlignmentMethod.ICP
    solver_class = ICPRegistration


class PointToPlaneStrategy(AlignmentStrategy):
    method = AlignmentMethod.ICP_NORMALS
    solver_class = PointToPlaneICP


STRATEGIES: Dict[AlignmentMethod, Type[AlignmentStrategy]] = {
    AlignmentMethod.GICP: GICPStrategy,
    AlignmentMethod.ICP: PointToPointStrategy,
    AlignmentMethod.ICP_NORMALS: PointToPlaneStrategy,
}


def create_strategy(method, solver_config: Optional["ICPSolverConfig"] = None) -> AlignmentStrategy:
    """
    Resolve a method (enum or name) to its strategy.

    Raises:
        ValueError: If the method name is unknown
    """
    method = AlignmentMethod.from_name(method)
    return STRATEGIES[method](solver_config)
