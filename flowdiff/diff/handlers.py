"""Operation handlers for workflow diffs.

Each handler validates its preconditions against the workflow it is given and
then mutates it. ``OperationApplier.apply`` wraps every handler in a deep copy,
so a handler that raises half-way leaves no trace: callers receive either a new
workflow or a WorkflowDiffError.

Example:
    applier = OperationApplier()
    outcome = applier.apply(workflow, parse_operation({
        'type': 'addConnection', 'source': 'Check', 'target': 'Notify', 'branch': 'false',
    }))
    outcome.workflow.connections['Check']['main'][1]
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional
from uuid import uuid4

from pydantic import ValidationError

from flowdiff.exceptions import (
    ConnectionNotFoundError,
    DuplicateNodeError,
    InvalidOperationInputError,
    InvalidPathError,
)
from flowdiff.diff.operations import (
    AddConnectionOperation,
    AddNodeOperation,
    AddTagOperation,
    CleanStaleConnectionsOperation,
    DisableNodeOperation,
    EnableNodeOperation,
    MoveNodeOperation,
    RemoveConnectionOperation,
    RemoveNodeOperation,
    RemoveTagOperation,
    ReplaceConnectionsOperation,
    RewireConnectionOperation,
    UpdateNameOperation,
    UpdateNodeOperation,
    UpdateSettingsOperation,
    WorkflowDiffOperation,
)
from flowdiff.diff.resolver import resolve_node, resolve_port_index, resolve_ref
from flowdiff.diff.tree import set_path, split_path
from flowdiff.workflows.spec import ConnectionTarget, Workflow, WorkflowNode

logger = logging.getLogger(__name__)


@dataclass
class OperationOutcome:
    """A successfully applied operation: the new workflow and what changed."""
    workflow: Workflow
    change: str
    warnings: list[str] = field(default_factory=list)
    stale_connections: list[dict[str, str]] = field(default_factory=list)


# ============================================================================
# Connection structure helpers
# ============================================================================


def _prune_output(workflow: Workflow, source: str, output: str) -> None:
    """Drop trailing empty slots, then empty outputs and empty sources.

    Inner empty slots stay so the indices of later slots do not shift.
    """
    outputs = workflow.connections.get(source)
    if outputs is None:
        return
    slots = outputs.get(output)
    if slots is not None:
        while slots and not slots[-1]:
            slots.pop()
        if not slots:
            del outputs[output]
    if not outputs:
        del workflow.connections[source]


def _rename_references(workflow: Workflow, old_name: str, new_name: str) -> None:
    if old_name in workflow.connections:
        workflow.connections[new_name] = workflow.connections.pop(old_name)
    for _source, _output, _slot, target in workflow.iter_connections():
        if target.node == old_name:
            target.node = new_name


def _drop_targets(workflow: Workflow, keep: Callable[[str, ConnectionTarget], bool]) -> None:
    """Remove every target for which ``keep(source, target)`` is false."""
    for source in list(workflow.connections):
        for output in list(workflow.connections[source]):
            slots = workflow.connections[source][output]
            for index, slot in enumerate(slots):
                slots[index] = [target for target in slot if keep(source, target)]
            _prune_output(workflow, source, output)


class OperationApplier:
    """Applies single diff operations to workflows.

    ``apply`` is pure: it never touches the workflow it receives. ``apply_in_place``
    mutates and is meant for callers that already own a private copy.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[[Workflow, WorkflowDiffOperation], OperationOutcome]] = {
            'addNode': self._apply_add_node,
            'removeNode': self._apply_remove_node,
            'updateNode': self._apply_update_node,
            'moveNode': self._apply_move_node,
            'enableNode': self._apply_enable_node,
            'disableNode': self._apply_disable_node,
            'addConnection': self._apply_add_connection,
            'removeConnection': self._apply_remove_connection,
            'rewireConnection': self._apply_rewire_connection,
            'cleanStaleConnections': self._apply_clean_stale_connections,
            'replaceConnections': self._apply_replace_connections,
            'updateSettings': self._apply_update_settings,
            'updateName': self._apply_update_name,
            'addTag': self._apply_add_tag,
            'removeTag': self._apply_remove_tag,
        }

    @property
    def supported_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def apply(self, workflow: Workflow, operation: WorkflowDiffOperation) -> OperationOutcome:
        """Apply one operation to a copy of ``workflow``.

        Raises:
            WorkflowDiffError: The operation's preconditions do not hold.
        """
        return self.apply_in_place(workflow.model_copy(deep=True), operation)

    def apply_in_place(self, workflow: Workflow, operation: WorkflowDiffOperation) -> OperationOutcome:
        handler = self._handlers.get(operation.type)
        if handler is None:
            raise InvalidOperationInputError(f"Unsupported operation type: {operation.type}")
        outcome = handler(workflow, operation)
        logger.debug(f"{operation.type}: {outcome.change}")
        return outcome

    # ============================================================================
    # Node handlers
    # ============================================================================

    def _apply_add_node(self, workflow: Workflow, op: AddNodeOperation) -> OperationOutcome:
        payload = op.node.model_dump(by_alias=True, exclude_none=True)
        name = payload['name']
        if workflow.find_node_by_name(name) is not None:
            raise DuplicateNodeError(
                f"Node with name '{name}' already exists", details={'name': name}
            )
        node_id = payload.get('id') or str(uuid4())
        if workflow.find_node_by_id(node_id) is not None:
            raise DuplicateNodeError(f"Node with id '{node_id}' already exists", details={'id': node_id})
        payload['id'] = node_id
        payload = copy.deepcopy(payload)

        try:
            node = WorkflowNode.model_validate(payload)
        except ValidationError as e:
            raise InvalidOperationInputError(f"Invalid node '{name}': {e}") from e

        workflow.nodes.append(node)
        return OperationOutcome(workflow, f"added node '{node.name}' ({node.type}) as {node.id}")

    def _apply_remove_node(self, workflow: Workflow, op: RemoveNodeOperation) -> OperationOutcome:
        node = resolve_node(workflow, op.reference).unwrap()
        workflow.nodes = [n for n in workflow.nodes if n.id != node.id]

        before = sum(1 for _ in workflow.iter_connections())
        workflow.connections.pop(node.name, None)
        _drop_targets(workflow, lambda _source, target: target.node != node.name)
        removed = before - sum(1 for _ in workflow.iter_connections())

        return OperationOutcome(workflow, f"removed node '{node.name}' and {removed} connection(s)")

    def _apply_update_node(self, workflow: Workflow, op: UpdateNodeOperation) -> OperationOutcome:
        node = resolve_node(workflow, op.reference).unwrap()
        document = node.model_dump(by_alias=True, exclude_none=True)

        for path, value in op.updates.items():
            if split_path(path)[0] == 'id':
                raise InvalidPathError(f"Node id cannot be updated (path {path!r})", details={'path': path})
            set_path(document, path, copy.deepcopy(value))

        try:
            updated = WorkflowNode.model_validate(document)
        except ValidationError as e:
            raise InvalidOperationInputError(f"Update produces an invalid node '{node.name}': {e}") from e

        if updated.name != node.name:
            if workflow.find_node_by_name(updated.name) is not None:
                raise DuplicateNodeError(
                    f"Cannot rename '{node.name}': node with name '{updated.name}' already exists",
                    details={'name': updated.name},
                )
            _rename_references(workflow, node.name, updated.name)

        index = next(i for i, n in enumerate(workflow.nodes) if n.id == node.id)
        workflow.nodes[index] = updated
        return OperationOutcome(
            workflow, f"updated node '{updated.name}': {', '.join(sorted(op.updates))}"
        )

    def _apply_move_node(self, workflow: Workflow, op: MoveNodeOperation) -> OperationOutcome:
        node = resolve_node(workflow, op.reference).unwrap()
        node.position = (op.position[0], op.position[1])
        return OperationOutcome(workflow, f"moved node '{node.name}' to {list(node.position)}")

    def _apply_enable_node(self, workflow: Workflow, op: EnableNodeOperation) -> OperationOutcome:
        node = resolve_node(workflow, op.reference).unwrap()
        node.disabled = False
        return OperationOutcome(workflow, f"enabled node '{node.name}'")

    def _apply_disable_node(self, workflow: Workflow, op: DisableNodeOperation) -> OperationOutcome:
        node = resolve_node(workflow, op.reference).unwrap()
        node.disabled = True
        return OperationOutcome(workflow, f"disabled node '{node.name}'")

    # ============================================================================
    # Connection handlers
    # ============================================================================

    def _apply_add_connection(self, workflow: Workflow, op: AddConnectionOperation) -> OperationOutcome:
        warnings: list[str] = []
        source = resolve_ref(workflow, op.source).unwrap('source node')
        target = resolve_ref(workflow, op.target).unwrap('target node')
        source_index = resolve_port_index(source, op.source_index, op.branch, op.case, warnings=warnings)

        slots = workflow.connections.setdefault(source.name, {}).setdefault(op.source_output, [])
        while len(slots) <= source_index:
            slots.append([])
        slots[source_index].append(
            ConnectionTarget(node=target.name, type=op.target_input, index=op.target_index)
        )
        return OperationOutcome(
            workflow,
            f"connected '{source.name}' {op.source_output}[{source_index}] -> "
            f"'{target.name}' {op.target_input}[{op.target_index}]",
            warnings=warnings,
        )

    def _apply_remove_connection(self, workflow: Workflow, op: RemoveConnectionOperation) -> OperationOutcome:
        warnings: list[str] = []
        source_res = resolve_ref(workflow, op.source)
        target_res = resolve_ref(workflow, op.target)
        if not (source_res.found and target_res.found):
            if op.ignore_errors:
                return OperationOutcome(workflow, f"skipped removing {op.source} -> {op.target} (node missing)")
            source_res.unwrap('source node')
            target_res.unwrap('target node')
        source, target = source_res.node, target_res.node

        slots = workflow.connections.get(source.name, {}).get(op.source_output, [])
        if op.selects_slot:
            index = resolve_port_index(source, op.source_index, op.branch, op.case, warnings=warnings)
            candidates: range | list[int] = [index] if index < len(slots) else []
        else:
            candidates = range(len(slots))

        for slot_index in candidates:
            slot = slots[slot_index]
            for position, wire in enumerate(slot):
                if wire.node != target.name or wire.type != op.target_input:
                    continue
                if op.target_index is not None and wire.index != op.target_index:
                    continue
                del slot[position]
                _prune_output(workflow, source.name, op.source_output)
                return OperationOutcome(
                    workflow,
                    f"removed connection '{source.name}' {op.source_output}[{slot_index}] -> '{target.name}'",
                    warnings=warnings,
                )

        if op.ignore_errors:
            return OperationOutcome(
                workflow, f"no connection '{source.name}' -> '{target.name}' to remove (ignored)", warnings=warnings
            )
        raise ConnectionNotFoundError(
            f"No connection found from '{source.name}' to '{target.name}' on output '{op.source_output}'",
            details={'source': source.name, 'target': target.name, 'sourceOutput': op.source_output},
        )

    def _apply_rewire_connection(self, workflow: Workflow, op: RewireConnectionOperation) -> OperationOutcome:
        warnings: list[str] = []
        source = resolve_ref(workflow, op.source).unwrap('source node')
        old_target = resolve_ref(workflow, op.from_node).unwrap('"from" node')
        new_target = resolve_ref(workflow, op.to_node).unwrap('"to" node')
        source_index = resolve_port_index(source, op.source_index, op.branch, op.case, warnings=warnings)

        slots = workflow.connections.get(source.name, {}).get(op.source_output, [])
        slot = slots[source_index] if source_index < len(slots) else []
        for wire in slot:
            if wire.node == old_target.name and (op.target_input is None or wire.type == op.target_input):
                wire.node = new_target.name
                return OperationOutcome(
                    workflow,
                    f"rewired '{source.name}' {op.source_output}[{source_index}] from "
                    f"'{old_target.name}' to '{new_target.name}'",
                    warnings=warnings,
                )

        raise ConnectionNotFoundError(
            f"No connection from '{source.name}' to '{old_target.name}' on "
            f"{op.source_output}[{source_index}] to rewire",
            details={'source': source.name, 'from': old_target.name, 'sourceIndex': source_index},
        )

    def _apply_clean_stale_connections(
        self, workflow: Workflow, op: CleanStaleConnectionsOperation
    ) -> OperationOutcome:
        names = workflow.node_names()
        stale: list[dict[str, str]] = []
        stale_sources: list[str] = []
        for source, outputs in workflow.connections.items():
            if source not in names:
                stale_sources.append(source)
            for slots in outputs.values():
                for slot in slots:
                    for target in slot:
                        if source not in names or target.node not in names:
                            stale.append({'from': source, 'to': target.node})

        if op.dry_run:
            return OperationOutcome(
                workflow, f"found {len(stale)} stale connection(s) (dry run)", stale_connections=stale
            )

        for source in stale_sources:
            del workflow.connections[source]
        _drop_targets(workflow, lambda _source, target: target.node in names)
        return OperationOutcome(workflow, f"removed {len(stale)} stale connection(s)", stale_connections=stale)

    def _apply_replace_connections(self, workflow: Workflow, op: ReplaceConnectionsOperation) -> OperationOutcome:
        # node references are checked by structural validation, not here
        workflow.connections = copy.deepcopy(op.connections)
        return OperationOutcome(workflow, f"replaced connections of {len(workflow.connections)} source node(s)")

    # ============================================================================
    # Workflow metadata handlers
    # ============================================================================

    def _apply_update_settings(self, workflow: Workflow, op: UpdateSettingsOperation) -> OperationOutcome:
        workflow.settings.update(copy.deepcopy(op.settings))
        return OperationOutcome(workflow, f"updated settings: {', '.join(sorted(op.settings)) or 'none'}")

    def _apply_update_name(self, workflow: Workflow, op: UpdateNameOperation) -> OperationOutcome:
        old_name = workflow.name
        workflow.name = op.name
        return OperationOutcome(workflow, f"renamed workflow '{old_name}' to '{op.name}'")

    def _apply_add_tag(self, workflow: Workflow, op: AddTagOperation) -> OperationOutcome:
        if op.tag in workflow.tags:
            return OperationOutcome(workflow, f"tag '{op.tag}' already present")
        workflow.tags.append(op.tag)
        return OperationOutcome(workflow, f"added tag '{op.tag}'")

    def _apply_remove_tag(self, workflow: Workflow, op: RemoveTagOperation) -> OperationOutcome:
        if op.tag not in workflow.tags:
            return OperationOutcome(workflow, f"tag '{op.tag}' not present")
        workflow.tags = [tag for tag in workflow.tags if tag != op.tag]
        return OperationOutcome(workflow, f"removed tag '{op.tag}'")


_default_applier: Optional[OperationApplier] = None


def apply_operation(workflow: Workflow, operation: WorkflowDiffOperation) -> OperationOutcome:
    """Apply one operation to a copy of ``workflow`` with the shared applier."""
    global _default_applier
    if _default_applier is None:
        _default_applier = OperationApplier()
    return _default_applier.apply(workflow, operation)
