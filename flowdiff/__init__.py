"""flowdiff: apply batches of structural edit operations to workflow graphs."""

from flowdiff.diff import DiffResult, WorkflowDiffEngine
from flowdiff.service import DiffServiceConfig, PartialWorkflowUpdater, ToolResponse
from flowdiff.workflows import Workflow, WorkflowNode

__version__ = '0.1.0'

__all__ = [
    'DiffResult',
    'DiffServiceConfig',
    'PartialWorkflowUpdater',
    'ToolResponse',
    'Workflow',
    'WorkflowDiffEngine',
    'WorkflowNode',
]
