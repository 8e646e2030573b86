"""Caller-side orchestration around the diff engine."""

from flowdiff.service.config import DiffServiceConfig
from flowdiff.service.guidance import build_recovery_guidance, categorize_errors
from flowdiff.service.partial_update import PartialWorkflowUpdater, ToolResponse

__all__ = [
    'DiffServiceConfig',
    'PartialWorkflowUpdater',
    'ToolResponse',
    'build_recovery_guidance',
    'categorize_errors',
]
