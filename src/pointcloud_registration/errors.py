"""
Error types raised by the registration pipeline.

Every fatal condition is a ``RegistrationError`` carrying the name of the
stage that failed. Non-convergence of the iterative solver is not an error;
it is reported through ``AlignmentStatus`` on the alignment result.
"""

from typing import Optional

__all__ = [
    "RegistrationError",
    "LoadFailure",
    "InvalidScaleConfig",
    "EmptyCloudAfterDownsample",
    "InvalidTransform",
    "WriteFailure",
]


class RegistrationError(Exception):
    """Base class for fatal pipeline errors."""

    stage: str = "registration"

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {super().__str__()}"


class LoadFailure(RegistrationError):
    """An input cloud is missing, unreadable, or contains no points."""

    stage = "loading"

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class InvalidScaleConfig(RegistrationError, ValueError):
    """The scale ratio or the measurement pair cannot produce a valid scale."""

    stage = "scale estimation"


class EmptyCloudAfterDownsample(RegistrationError):
    """Voxel downsampling left one of the clouds without points."""

    stage = "downsampling"

    def __init__(self, which: str, voxel_size: float):
        super().__init__(
            f"{which} cloud is empty after voxel downsampling (voxel_size={voxel_size})"
        )
        self.which = which
        self.voxel_size = voxel_size


class InvalidTransform(RegistrationError):
    """The estimated transform is not a finite 4x4 matrix."""

    stage = "validation"


class WriteFailure(RegistrationError):
    """The transformed cloud (or the transform file) could not be written."""

    stage = "export"

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
        # Set by the pipeline: the validated transform that could not be saved
        self.transform = None
