"""
Registration pipeline orchestration and per-stage timing.
"""

from .timeline import Timeline, TimelineEntry
from .registration_pipeline import RegistrationPipeline, RegistrationResult, run_pipeline

__all__ = [
    "Timeline",
    "TimelineEntry",
    "RegistrationPipeline",
    "RegistrationResult",
    "run_pipeline",
]
