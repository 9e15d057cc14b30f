"""Serializable snapshot of a queue run.

Queues keep live exception objects; this DTO turns them into plain values
that are safe to log or serialize.
"""

from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Plain description of an error recorded by a queue."""

    type: str = Field(description="Exception class name")
    message: str = Field(description="Exception text")
    task: str | None = Field(default=None, description="Name of the task that raised it")
    operation: str | None = Field(default=None, description="Operation that raised it")
    cause: str | None = Field(default=None, description="Text of the caused-by error, if any")

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorDetail":
        meta = getattr(error, "task_meta", None)
        cause = error.__cause__
        return cls(
            type=type(error).__name__,
            message=str(error),
            task=getattr(meta, "name", None),
            operation=getattr(meta, "operation", None),
            cause=str(cause) if cause is not None else None,
        )


class RunSummary(BaseModel):
    """Status, counters, errors and messages of a queue."""

    status: str = Field(description="Queue status")
    count: int = Field(default=0, description="Number of queued tasks")
    waiting: int = Field(default=0, description="Series/parallel tasks not yet settled")
    waiting_background: int = Field(default=0, description="Background tasks not yet collected")
    errors: list[ErrorDetail] = Field(default_factory=list, description="Recorded errors")
    messages: list[str] = Field(default_factory=list, description="Task messages")

    model_config = {"extra": "forbid"}

    def is_ok(self) -> bool:
        """Check if the run finished without recorded errors."""
        return not self.errors and self.status in ("SUCCEEDED", "STOPPED", "TRANSFERRED")

    def as_log_context(self) -> dict[str, Any]:
        return self.model_dump(exclude={"messages"})
