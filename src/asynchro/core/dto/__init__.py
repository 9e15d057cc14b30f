"""DTO package for asynchro core.

Provides plain, serializable snapshots of queue state.
"""

from .run_dto import ErrorDetail, RunSummary

__all__ = [
    "ErrorDetail",
    "RunSummary",
]
