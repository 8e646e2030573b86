"""Diff execution for workflows.

WorkflowDiffEngine drives an ordered list of operations over a private copy of
a workflow. Every operation goes through the same primitive
(``OperationApplier.apply``); what happens after a failure is decided by an
ExecutionPolicy:

- AtomicPolicy: the first failure aborts the run and nothing is committed.
- BestEffortPolicy: failures are recorded and the run goes on, committing the
  operations that validated.

Example:
    engine = WorkflowDiffEngine()
    result = engine.apply_diff(workflow, [
        {'type': 'updateNode', 'nodeName': 'Fetch', 'updates': {'parameters.url': 'https://a'}},
        {'type': 'removeNode', 'nodeId': 'does-not-exist'},
    ], continue_on_error=True)
    result.applied, result.failed  # [0], [1]
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from flowdiff.exceptions import WorkflowDiffError
from flowdiff.diff.handlers import OperationApplier, OperationOutcome
from flowdiff.diff.operations import DiffRequest, _Operation, parse_operation
from flowdiff.diff.result import DiffResult, DiffValidationError, StaleConnection
from flowdiff.workflows.spec import Workflow

logger = logging.getLogger(__name__)

OperationInput = Union[_Operation, Mapping[str, Any]]


class DiffRunState(str, Enum):
    """Lifecycle of one engine run."""
    IDLE = "idle"
    RUNNING = "running"
    COMMITTED = "committed"
    ABORTED = "aborted"
    PARTIALLY_COMMITTED = "partially_committed"


class InternalHandlerError(WorkflowDiffError):
    """Unexpected exception raised inside a handler."""

    kind = 'InternalError'


@dataclass
class DiffRun:
    """Mutable bookkeeping for a single run; owned by one apply_diff call."""
    original: Workflow
    working: Workflow
    total: int
    state: DiffRunState = DiffRunState.IDLE
    applied: list[int] = field(default_factory=list)
    errors: list[DiffValidationError] = field(default_factory=list)
    warnings: list[DiffValidationError] = field(default_factory=list)
    stale_connections: Optional[list[StaleConnection]] = None

    @property
    def failed(self) -> list[int]:
        return [error.operation for error in self.errors]

    def record_success(self, index: int, outcome: OperationOutcome) -> None:
        self.working = outcome.workflow
        self.applied.append(index)
        for message in outcome.warnings:
            self.warnings.append(DiffValidationError(operation=index, kind='Warning', message=message))
        if self.stale_connections is not None:
            self.stale_connections.extend(
                StaleConnection.model_validate(pair) for pair in outcome.stale_connections
            )

    def record_stale_scan(self) -> None:
        if self.stale_connections is None:
            self.stale_connections = []

    def record_failure(self, index: int, error: WorkflowDiffError) -> None:
        self.errors.append(DiffValidationError.from_exception(index, error))


class ExecutionPolicy(ABC):
    """Decides whether a failure halts the run and how the run is reported."""

    name: ClassVar[str] = 'custom'
    halts_on_failure: ClassVar[bool] = True

    @abstractmethod
    def finalize(self, run: DiffRun) -> DiffResult:
        """Set the terminal state of ``run`` and build its result envelope."""


class AtomicPolicy(ExecutionPolicy):
    """All or nothing: the first failure discards every change."""

    name = 'atomic'
    halts_on_failure = True

    def finalize(self, run: DiffRun) -> DiffResult:
        if run.errors:
            run.state = DiffRunState.ABORTED
            first = run.errors[0]
            return DiffResult(
                success=False,
                workflow=run.original,
                errors=list(run.errors),
                operations_applied=0,
                message=f"Diff aborted at operation {first.operation}: {first.message}. No changes were applied.",
            )

        run.state = DiffRunState.COMMITTED
        return DiffResult(
            success=True,
            workflow=run.working,
            warnings=list(run.warnings) or None,
            operations_applied=len(run.applied),
            message=f"Successfully applied {len(run.applied)} operation(s)",
            stale_connections_removed=run.stale_connections,
        )


class BestEffortPolicy(ExecutionPolicy):
    """Apply whatever validates and report per-operation outcomes."""

    name = 'best_effort'
    halts_on_failure = False

    def finalize(self, run: DiffRun) -> DiffResult:
        failed = run.failed
        if not failed:
            run.state = DiffRunState.COMMITTED
        elif run.applied:
            run.state = DiffRunState.PARTIALLY_COMMITTED
        else:
            run.state = DiffRunState.ABORTED

        if failed:
            message = f"Applied {len(run.applied)} of {run.total} operation(s); {len(failed)} failed"
        else:
            message = f"Successfully applied {len(run.applied)} operation(s)"
        return DiffResult(
            success=not failed,
            workflow=run.working,
            errors=list(run.errors) or None,
            warnings=list(run.warnings) or None,
            operations_applied=len(run.applied),
            message=message,
            applied=list(run.applied),
            failed=failed,
            stale_connections_removed=run.stale_connections,
        )


class WorkflowDiffEngine:
    """Applies operation batches to workflows.

    The engine performs no I/O and keeps no state between calls; each call owns
    a deep copy of the workflow it was given.
    """

    def __init__(self, applier: Optional[OperationApplier] = None):
        self.applier = applier or OperationApplier()

    def apply_request(self, workflow: Workflow, request: DiffRequest) -> DiffResult:
        return self.apply_diff(
            workflow,
            request.operations,
            continue_on_error=request.continue_on_error,
            validate_only=request.validate_only,
        )

    def apply_diff(
        self,
        workflow: Workflow,
        operations: Sequence[OperationInput],
        *,
        continue_on_error: bool = False,
        validate_only: bool = False,
    ) -> DiffResult:
        """Apply ``operations`` in order.

        Args:
            workflow: The workflow to edit; never mutated.
            operations: Operation models or raw wire-format mappings.
            continue_on_error: Best-effort mode instead of atomic mode.
            validate_only: Run everything but drop the resulting workflow.

        Returns:
            The result envelope; failures are reported in it, never raised.
        """
        policy: ExecutionPolicy = BestEffortPolicy() if continue_on_error else AtomicPolicy()
        run = DiffRun(original=workflow.model_copy(deep=True), working=workflow.model_copy(deep=True),
                      total=len(operations))

        logger.info(
            f"Applying {len(operations)} operation(s) to workflow {workflow.id or workflow.name!r} "
            f"(policy={policy.name}, validate_only={validate_only})"
        )
        run.state = DiffRunState.RUNNING
        for index, raw in enumerate(operations):
            try:
                operation = parse_operation(raw)
                if operation.description:
                    logger.debug(f"Operation {index} ({operation.type}): {operation.description}")
                if operation.type == 'cleanStaleConnections':
                    run.record_stale_scan()
                outcome = self.applier.apply(run.working, operation)
            except WorkflowDiffError as e:
                logger.error(f"Failed to apply operation {index}: {e}")
                run.record_failure(index, e)
            except Exception as e:
                logger.exception(f"Unexpected error applying operation {index}")
                run.record_failure(index, InternalHandlerError(f"Unexpected error: {e}"))
            else:
                run.record_success(index, outcome)
                continue

            if policy.halts_on_failure:
                break

        result = policy.finalize(run)
        logger.info(
            f"Diff run {run.state.value}: {len(run.applied)} applied, {len(run.failed)} failed "
            f"({_summarize(operations)})"
        )

        if validate_only:
            return self._validation_result(run, result)
        return result

    def _validation_result(self, run: DiffRun, result: DiffResult) -> DiffResult:
        """Strip the workflow from a run performed only to validate."""
        if result.success:
            message = f"Validation successful. {run.total} operation(s) are valid but were not applied."
        else:
            message = f"Validation failed: {len(run.errors)} operation(s) did not validate."
        return result.model_copy(
            update={
                'workflow': None,
                'operations_applied': 0,
                'message': message,
            }
        )


def _summarize(operations: Sequence[OperationInput]) -> str:
    counts = Counter(
        getattr(op, 'type', None) or (op.get('type') if isinstance(op, Mapping) else None) or 'unknown'
        for op in operations
    )
    return ', '.join(f"{op_type}={count}" for op_type, count in sorted(counts.items())) or 'no operations'
