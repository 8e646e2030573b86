"""
Diff application for workflows.

- operations: the fifteen operation variants and request parsing
- resolver: node reference and output slot resolution
- handlers: per-operation validation and mutation
- engine: ordered execution under atomic or best-effort policies
- result: the result envelope

Usage:
    from flowdiff.diff import WorkflowDiffEngine

    result = WorkflowDiffEngine().apply_diff(workflow, operations, continue_on_error=True)
    if not result.success:
        for error in result.errors or []:
            print(error.operation, error.kind, error.message)
"""

from flowdiff.diff.engine import (
    AtomicPolicy,
    BestEffortPolicy,
    DiffRun,
    DiffRunState,
    ExecutionPolicy,
    WorkflowDiffEngine,
)
from flowdiff.diff.handlers import OperationApplier, OperationOutcome, apply_operation
from flowdiff.diff.operations import (
    DiffRequest,
    NodeReference,
    WorkflowDiffOperation,
    operation_to_dict,
    parse_operation,
)
from flowdiff.diff.resolver import Resolution, ResolutionStatus, resolve_node, resolve_port_index
from flowdiff.diff.result import DiffResult, DiffValidationError, StaleConnection

__all__ = [
    'AtomicPolicy',
    'BestEffortPolicy',
    'DiffRequest',
    'DiffResult',
    'DiffRun',
    'DiffRunState',
    'DiffValidationError',
    'ExecutionPolicy',
    'NodeReference',
    'OperationApplier',
    'OperationOutcome',
    'Resolution',
    'ResolutionStatus',
    'StaleConnection',
    'WorkflowDiffEngine',
    'WorkflowDiffOperation',
    'apply_operation',
    'operation_to_dict',
    'parse_operation',
    'resolve_node',
    'resolve_port_index',
]
