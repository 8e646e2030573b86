"""Result envelope returned by the diff engine."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from flowdiff.exceptions import WorkflowDiffError
from flowdiff.workflows.spec import Workflow


class DiffValidationError(BaseModel):
    """A failure (or warning) tied to the index of the operation that raised it."""

    model_config = ConfigDict(frozen=True)

    operation: int
    """Index of the originating operation"""

    kind: str
    message: str
    details: Optional[dict[str, Any]] = None

    @classmethod
    def from_exception(cls, index: int, error: WorkflowDiffError) -> 'DiffValidationError':
        return cls(operation=index, kind=error.kind, message=error.message, details=error.details)


class StaleConnection(BaseModel):
    """A connection removed (or reported, on dry runs) by cleanStaleConnections."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_node: str = Field(alias='from')
    to_node: str = Field(alias='to')


class DiffResult(BaseModel):
    """Outcome of one engine run.

    ``applied``/``failed`` are only populated in best-effort mode. In atomic mode
    a failed run carries the untouched input workflow and zero applied
    operations; validate-only runs never carry a workflow.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool
    workflow: Optional[Workflow] = None
    errors: Optional[list[DiffValidationError]] = None
    warnings: Optional[list[DiffValidationError]] = None
    operations_applied: int = Field(default=0, alias='operationsApplied')
    message: Optional[str] = None
    applied: Optional[list[int]] = None
    failed: Optional[list[int]] = None
    stale_connections_removed: Optional[list[StaleConnection]] = Field(
        default=None, alias='staleConnectionsRemoved'
    )

    def to_payload(self) -> dict[str, Any]:
        """camelCase wire representation without empty optionals."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)
