"""
Enumerations shared by the alignment strategies, the configuration and the
pipeline.
"""

from __future__ import annotations

from enum import Enum


class AlignmentMethod(str, Enum):
    """Iterative alignment algorithms the pipeline can drive."""

    GICP = "gicp"  # generalized ICP (distribution to distribution)
    ICP = "icp"  # point to point
    ICP_NORMALS = "icp_normals"  # point to plane, uses target normals

    @classmethod
    def from_name(cls, name: "str | AlignmentMethod") -> "AlignmentMethod":
        """Resolve a method from its name, case-insensitively.

        Both the enum name (``"ICP_NORMALS"``) and its value (``"icp_normals"``)
        are accepted.

        Raises:
            ValueError: If the name does not match exactly one method.
        """
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        for method in cls:
            if key == method.value:
                return method
        raise ValueError(
            f"Unknown alignment method '{name}'. Available methods: {cls.describe()}"
        )

    @classmethod
    def describe(cls) -> str:
        return ", ".join(m.name for m in cls)


class AlignmentStatus(str, Enum):
    """Lifecycle of one solver run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    DIVERGED = "diverged"

    @property
    def is_terminal(self) -> bool:
        return self in (
            AlignmentStatus.CONVERGED,
            AlignmentStatus.MAX_ITERATIONS_REACHED,
            AlignmentStatus.DIVERGED,
        )
