"""Workflow store abstractions.

The diff engine never performs I/O. Callers fetch a workflow from a store, run
the engine, and persist the result; stores translate every I/O failure into a
RemoteStoreError carrying a short machine-readable code.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, ClassVar
from uuid import uuid4

from pydantic import ValidationError

from flowdiff.exceptions import RemoteStoreError
from flowdiff.workflows.spec import Workflow

logger = logging.getLogger(__name__)


def _stamp(document: dict[str, Any], workflow_id: str) -> dict[str, Any]:
    """Assign the canonical identifiers a store adds on every write."""
    document['id'] = workflow_id
    document['updatedAt'] = datetime.now(timezone.utc).isoformat()
    document['versionId'] = str(uuid4())
    return document


def _load(document: Any, workflow_id: str) -> Workflow:
    try:
        return Workflow.model_validate(document)
    except ValidationError as e:
        raise RemoteStoreError(
            f"Stored workflow {workflow_id} is not a valid workflow document",
            code='INVALID_DOCUMENT',
            details={'errors': e.errors(include_url=False)},
        ) from e


class WorkflowStore(ABC):
    """Abstract fetch/persist interface for whole workflow documents."""

    store_name: ClassVar[str] = 'custom'

    @abstractmethod
    async def fetch(self, workflow_id: str) -> Workflow:
        """Return the stored workflow or raise RemoteStoreError."""

    @abstractmethod
    async def persist(self, workflow_id: str, workflow: Workflow) -> Workflow:
        """Overwrite an existing workflow and return the canonicalized result."""

    @abstractmethod
    async def create(self, workflow: Workflow) -> Workflow:
        """Store a new workflow, assigning an id when it has none."""

    def describe(self) -> dict[str, Any]:
        """Return metadata describing store configuration."""
        return {'name': self.store_name, 'config': {}}


class InMemoryWorkflowStore(WorkflowStore):
    """Dictionary-backed store, documents are copied in and out."""

    store_name = 'memory'

    def __init__(self, workflows: list[Workflow] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        for workflow in workflows or []:
            workflow_id = workflow.id or str(uuid4())
            self._documents[workflow_id] = _stamp(workflow.to_document(), workflow_id)

    async def fetch(self, workflow_id: str) -> Workflow:
        async with self._lock:
            document = self._documents.get(workflow_id)
        if document is None:
            raise RemoteStoreError(f"Workflow {workflow_id} not found", code='NOT_FOUND')
        return _load(json.loads(json.dumps(document)), workflow_id)

    async def persist(self, workflow_id: str, workflow: Workflow) -> Workflow:
        async with self._lock:
            if workflow_id not in self._documents:
                raise RemoteStoreError(f"Workflow {workflow_id} not found", code='NOT_FOUND')
            document = _stamp(workflow.to_document(), workflow_id)
            self._documents[workflow_id] = document
        logger.debug(f"Persisted workflow {workflow_id} ({len(workflow.nodes)} nodes)")
        return _load(json.loads(json.dumps(document)), workflow_id)

    async def create(self, workflow: Workflow) -> Workflow:
        workflow_id = workflow.id or str(uuid4())
        async with self._lock:
            if workflow_id in self._documents:
                raise RemoteStoreError(f"Workflow {workflow_id} already exists", code='CONFLICT')
            document = _stamp(workflow.to_document(), workflow_id)
            self._documents[workflow_id] = document
        return _load(json.loads(json.dumps(document)), workflow_id)

    def describe(self) -> dict[str, Any]:
        data = super().describe()
        data['config'] = {'workflows': len(self._documents)}
        return data


class JSONFileWorkflowStore(WorkflowStore):
    """Directory-backed store keeping one ``<workflow id>.json`` file per workflow."""

    store_name = 'file'

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = asyncio.Lock()

    def _path_for(self, workflow_id: str) -> Path:
        if not workflow_id or '/' in workflow_id or '\\' in workflow_id or workflow_id.startswith('.'):
            raise RemoteStoreError(f"Invalid workflow id: {workflow_id!r}", code='INVALID_ID')
        return self.directory / f"{workflow_id}.json"

    async def _read(self, workflow_id: str) -> dict[str, Any]:
        path = self._path_for(workflow_id)

        def _read_file() -> dict[str, Any]:
            return json.loads(path.read_text(encoding='utf-8'))

        try:
            return await asyncio.to_thread(_read_file)
        except FileNotFoundError as e:
            raise RemoteStoreError(f"Workflow {workflow_id} not found", code='NOT_FOUND') from e
        except json.JSONDecodeError as e:
            raise RemoteStoreError(
                f"Workflow file for {workflow_id} is not valid JSON: {e}", code='INVALID_DOCUMENT'
            ) from e
        except OSError as e:
            raise RemoteStoreError(f"Failed to read workflow {workflow_id}: {e}", code='IO_ERROR') from e

    async def _write(self, workflow_id: str, document: dict[str, Any]) -> None:
        path = self._path_for(workflow_id)

        def _write_file() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix('.json.tmp')
            tmp_path.write_text(json.dumps(document, indent=2, sort_keys=True), encoding='utf-8')
            tmp_path.replace(path)

        try:
            await asyncio.to_thread(_write_file)
        except OSError as e:
            raise RemoteStoreError(f"Failed to write workflow {workflow_id}: {e}", code='IO_ERROR') from e

    async def fetch(self, workflow_id: str) -> Workflow:
        async with self._lock:
            document = await self._read(workflow_id)
        return _load(document, workflow_id)

    async def persist(self, workflow_id: str, workflow: Workflow) -> Workflow:
        async with self._lock:
            if not self._path_for(workflow_id).exists():
                raise RemoteStoreError(f"Workflow {workflow_id} not found", code='NOT_FOUND')
            document = _stamp(workflow.to_document(), workflow_id)
            await self._write(workflow_id, document)
        logger.debug(f"Persisted workflow {workflow_id} to {self.directory}")
        return _load(document, workflow_id)

    async def create(self, workflow: Workflow) -> Workflow:
        workflow_id = workflow.id or str(uuid4())
        async with self._lock:
            if self._path_for(workflow_id).exists():
                raise RemoteStoreError(f"Workflow {workflow_id} already exists", code='CONFLICT')
            document = _stamp(workflow.to_document(), workflow_id)
            await self._write(workflow_id, document)
        return _load(document, workflow_id)

    def describe(self) -> dict[str, Any]:
        data = super().describe()
        data['config'] = {'directory': str(self.directory)}
        return data
