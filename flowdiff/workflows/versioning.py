"""Workflow backup / version history collaborators."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from flowdiff.exceptions import BackupFailedError
from flowdiff.workflows.spec import Workflow

logger = logging.getLogger(__name__)


@dataclass
class BackupResult:
    """Outcome of a snapshot: the new version and how many old ones were pruned."""
    version_id: str
    version_number: int
    pruned: int = 0


@dataclass
class WorkflowVersion:
    """A stored snapshot of a workflow document."""
    version_id: str
    workflow_id: str
    version_number: int
    trigger: str
    document: dict[str, Any]
    operations: list[dict[str, Any]] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class VersioningService(ABC):
    """Snapshots workflows before they are mutated."""

    @abstractmethod
    async def snapshot(
        self,
        workflow_id: str,
        workflow: Workflow,
        *,
        trigger: str,
        operations: Optional[list[dict[str, Any]]] = None,
    ) -> BackupResult:
        """Store a snapshot; raise BackupFailedError on failure."""


class InMemoryVersioningService(VersioningService):
    """Keeps the newest ``max_versions`` snapshots per workflow."""

    def __init__(self, max_versions: int = 10) -> None:
        if max_versions < 1:
            raise ValueError(f"max_versions must be at least 1, got {max_versions}")
        self.max_versions = max_versions
        self._versions: dict[str, list[WorkflowVersion]] = {}
        self._counters: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def snapshot(
        self,
        workflow_id: str,
        workflow: Workflow,
        *,
        trigger: str,
        operations: Optional[list[dict[str, Any]]] = None,
    ) -> BackupResult:
        if not workflow_id:
            raise BackupFailedError("Cannot snapshot a workflow without an id")
        async with self._lock:
            number = self._counters.get(workflow_id, 0) + 1
            self._counters[workflow_id] = number
            version = WorkflowVersion(
                version_id=str(uuid4()),
                workflow_id=workflow_id,
                version_number=number,
                trigger=trigger,
                document=workflow.to_document(),
                operations=list(operations or []),
            )
            history = self._versions.setdefault(workflow_id, [])
            history.append(version)
            pruned = max(0, len(history) - self.max_versions)
            if pruned:
                del history[:pruned]

        logger.debug(f"Stored version {number} of workflow {workflow_id} (pruned {pruned})")
        return BackupResult(version_id=version.version_id, version_number=number, pruned=pruned)

    def list_versions(self, workflow_id: str) -> list[WorkflowVersion]:
        """Return stored versions, newest first."""
        return list(reversed(self._versions.get(workflow_id, [])))

    def get_version(self, version_id: str) -> Optional[WorkflowVersion]:
        for history in self._versions.values():
            for version in history:
                if version.version_id == version_id:
                    return version
        return None
