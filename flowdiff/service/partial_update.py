"""Partial workflow updates: fetch, back up, diff, validate, persist.

The diff engine only edits an in-memory workflow. PartialWorkflowUpdater is the
caller around it: it owns the collaborators (store, versioning service,
structure validator) and turns every outcome into a ToolResponse.

Example:
    updater = PartialWorkflowUpdater(store=InMemoryWorkflowStore([workflow]))
    response = await updater.update({
        'id': workflow.id,
        'operations': [{'type': 'disableNode', 'nodeName': 'Notify'}],
    })
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from flowdiff.diff.engine import WorkflowDiffEngine
from flowdiff.diff.operations import DiffRequest
from flowdiff.diff.result import DiffResult
from flowdiff.exceptions import BackupFailedError, RemoteStoreError, StructuralValidationFailedError
from flowdiff.service.config import DiffServiceConfig
from flowdiff.service.guidance import build_recovery_guidance
from flowdiff.utils.logging_utils import DiffEventLogger, bind_request_fields, request_log_context, request_mode
from flowdiff.workflows.spec import Workflow
from flowdiff.workflows.store import WorkflowStore
from flowdiff.workflows.validation import DefaultStructureValidator, StructureValidator
from flowdiff.workflows.versioning import InMemoryVersioningService, VersioningService

logger = logging.getLogger(__name__)
events = DiffEventLogger()

BACKUP_TRIGGER = 'partial_update'


class ToolResponse(BaseModel):
    """Response handed back to the transport layer."""

    model_config = ConfigDict(extra='forbid')

    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None
    details: Optional[dict[str, Any]] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode='json', exclude_none=True)


def _dump_errors(result: DiffResult) -> Optional[list[dict[str, Any]]]:
    if result.errors is None:
        return None
    return [error.model_dump(mode='json', exclude_none=True) for error in result.errors]


class PartialWorkflowUpdater:
    """Applies diff requests to stored workflows.

    Args:
        store: Where workflows are fetched from and persisted to.
        versioning: Backup service; defaults to an in-memory history.
        validator: Whole-graph validator run before persisting.
        engine: Diff engine; a fresh WorkflowDiffEngine by default.
        config: Service flags; defaults to DiffServiceConfig().
    """

    def __init__(
        self,
        store: WorkflowStore,
        versioning: Optional[VersioningService] = None,
        validator: Optional[StructureValidator] = None,
        engine: Optional[WorkflowDiffEngine] = None,
        config: Optional[DiffServiceConfig] = None,
    ):
        self.config = config or DiffServiceConfig()
        self.store = store
        self.versioning = versioning or InMemoryVersioningService(max_versions=self.config.max_backup_versions)
        self.validator = validator or DefaultStructureValidator()
        self.engine = engine or WorkflowDiffEngine()

    async def update(self, args: Mapping[str, Any]) -> ToolResponse:
        """Handle one partial-update request given in wire format."""
        if self.config.debug:
            operations = args.get('operations') if isinstance(args, Mapping) else None
            logger.debug(
                f"Workflow diff request received: keys={sorted(args) if isinstance(args, Mapping) else None}, "
                f"operations={len(operations) if isinstance(operations, list) else None}"
            )

        try:
            request = DiffRequest.model_validate(args)
        except ValidationError as e:
            return ToolResponse(
                success=False,
                error='Invalid input',
                code='INVALID_INPUT',
                details={'errors': e.errors(include_url=False, include_context=False)},
            )

        mode = request_mode(validate_only=request.validate_only, continue_on_error=request.continue_on_error)
        with request_log_context(request.id, operations=len(request.operations), mode=mode):
            try:
                return await self._update(request)
            except Exception as e:
                logger.exception(f"Failed to update partial workflow {request.id}")
                return ToolResponse(success=False, error=str(e) or type(e).__name__)

    async def _update(self, request: DiffRequest) -> ToolResponse:
        try:
            workflow = await self.store.fetch(request.id)
        except RemoteStoreError as e:
            logger.warning(f"Failed to fetch workflow {request.id}: {e}")
            return ToolResponse(success=False, error=e.message, code=e.code, details=e.details)

        if self._should_backup(request):
            await self._backup(request, workflow)

        result = self.engine.apply_request(workflow, request)
        bind_request_fields(operations_applied=result.operations_applied, errors=len(result.errors or []))

        if not result.success:
            partial = (
                request.continue_on_error
                and result.workflow is not None
                and result.operations_applied > 0
            )
            if not partial:
                return ToolResponse(
                    success=False,
                    error='Failed to apply diff operations',
                    message=result.message,
                    details={
                        'errors': _dump_errors(result),
                        'operationsApplied': result.operations_applied,
                        'applied': result.applied,
                        'failed': result.failed,
                    },
                )
            logger.info(
                f"continueOnError mode: applying {result.operations_applied} successful operation(s) "
                f"despite {len(result.failed or [])} failure(s)"
            )

        if request.validate_only:
            return ToolResponse(
                success=True,
                message=result.message,
                data={'valid': True, 'operationsToApply': len(request.operations)},
            )

        diffed = result.workflow
        if diffed is None:
            return ToolResponse(
                success=False, error='Diff produced no workflow to save', message=result.message
            )

        structure_errors = self.validator.validate(diffed)
        if structure_errors:
            blocked = not self.config.skip_workflow_validation
            events.warning(
                'structure_validation_failed',
                errors=structure_errors,
                blocking=blocked,
            )
            if blocked:
                failure = StructuralValidationFailedError(structure_errors)
                return ToolResponse(
                    success=False,
                    error=failure.message,
                    code=failure.kind,
                    details={
                        'errors': structure_errors,
                        'errorCount': len(structure_errors),
                        'operationsApplied': result.operations_applied,
                        'applied': result.applied,
                        'recoveryGuidance': build_recovery_guidance(structure_errors),
                        'note': 'Operations were applied but created an invalid workflow structure. '
                                'The workflow was NOT saved.',
                    },
                )
            events.info('structure_validation_skipped', error_count=len(structure_errors))

        try:
            updated = await self.store.persist(request.id, diffed)
        except RemoteStoreError as e:
            logger.error(f"Failed to persist workflow {request.id}: {e}")
            return ToolResponse(success=False, error=e.message, code=e.code, details=e.details)

        events.info('workflow_persisted', nodes=len(updated.nodes))
        return ToolResponse(
            success=True,
            data=updated.to_document(),
            message=f'Workflow "{updated.name}" updated successfully. '
                    f'Applied {result.operations_applied} operations.',
            details={
                'operationsApplied': result.operations_applied,
                'workflowId': updated.id,
                'workflowName': updated.name,
                'applied': result.applied,
                'failed': result.failed,
                'errors': _dump_errors(result),
                'warnings': [w.message for w in result.warnings] if result.warnings else None,
            },
        )

    def _should_backup(self, request: DiffRequest) -> bool:
        if request.validate_only:
            return False
        if request.create_backup is None:
            return self.config.create_backup_by_default
        return request.create_backup

    async def _backup(self, request: DiffRequest, workflow: Workflow) -> None:
        """Snapshot before mutating; failures are logged and never block the update."""
        try:
            backup = await self.versioning.snapshot(
                request.id, workflow, trigger=BACKUP_TRIGGER, operations=request.operations
            )
        except Exception as e:
            error = e if isinstance(e, BackupFailedError) else BackupFailedError(str(e))
            events.warning('backup_failed', error=error.message)
            return
        events.info(
            'backup_created',
            version_id=backup.version_id,
            version_number=backup.version_number,
            pruned=backup.pruned,
        )
