"""Provider backend implementations."""

from .instag import InstagBackend, JobSession, JobState
from .late_dev import LateDevBackend

__all__ = [
    "InstagBackend",
    "JobSession",
    "JobState",
    "LateDevBackend",
]
