"""Workflow document models and the collaborators the diff engine is composed with."""

from flowdiff.workflows.spec import ConnectionTarget, Connections, Workflow, WorkflowNode
from flowdiff.workflows.store import InMemoryWorkflowStore, JSONFileWorkflowStore, WorkflowStore
from flowdiff.workflows.validation import StructureValidator, validate_workflow_structure
from flowdiff.workflows.versioning import BackupResult, InMemoryVersioningService, VersioningService

__all__ = [
    'BackupResult',
    'ConnectionTarget',
    'Connections',
    'InMemoryVersioningService',
    'InMemoryWorkflowStore',
    'JSONFileWorkflowStore',
    'StructureValidator',
    'VersioningService',
    'Workflow',
    'WorkflowNode',
    'WorkflowStore',
    'validate_workflow_structure',
]
