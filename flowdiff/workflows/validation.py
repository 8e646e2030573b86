"""
Whole-graph structural validation.

The diff engine only checks the preconditions of each operation. Whether the
resulting workflow is structurally sound is decided afterwards by a
StructureValidator, before the caller persists anything.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from flowdiff.workflows.spec import Workflow

logger = logging.getLogger(__name__)

BOOLEAN_BRANCH_SUFFIXES = ('if', 'filter')


@runtime_checkable
class StructureValidator(Protocol):
    """Anything that turns a workflow into a list of structural error strings."""

    def validate(self, workflow: Workflow) -> list[str]: ...


def _type_suffix(node_type: str) -> str:
    return node_type.rsplit('.', 1)[-1].lower()


def validate_workflow_structure(workflow: Workflow) -> list[str]:
    """Return structural defects of a workflow; an empty list means valid.

    Checks:
    - Node ids and node names are unique
    - Every connection source and target references an existing node
    - Boolean-branch nodes (IF, Filter) expose at most two output slots
    """
    errors: list[str] = []

    seen_ids: set[str] = set()
    seen_names: set[str] = set()
    for node in workflow.nodes:
        if node.id in seen_ids:
            errors.append(f"Duplicate node id: '{node.id}'")
        seen_ids.add(node.id)
        if node.name in seen_names:
            errors.append(f"Duplicate node name: '{node.name}'")
        seen_names.add(node.name)

    nodes_by_name = {node.name: node for node in workflow.nodes}

    for source, outputs in workflow.connections.items():
        if source not in nodes_by_name:
            errors.append(f"Connection references non-existent source node: '{source}'")
            continue
        source_node = nodes_by_name[source]
        main_slots = outputs.get('main', [])
        if _type_suffix(source_node.type) in BOOLEAN_BRANCH_SUFFIXES and len(main_slots) > 2:
            errors.append(
                f"Node '{source}' has {len(main_slots)} main output branches but only supports 2 (true/false)"
            )
        for output, slots in outputs.items():
            for slot in slots:
                for target in slot:
                    if target.node not in nodes_by_name:
                        errors.append(
                            f"Connection from '{source}' ({output}) references non-existent target node: "
                            f"'{target.node}'"
                        )

    if errors:
        logger.debug(f"Structural validation found {len(errors)} issue(s) in workflow {workflow.id}")
    return errors


class DefaultStructureValidator:
    """StructureValidator backed by validate_workflow_structure."""

    def validate(self, workflow: Workflow) -> list[str]:
        return validate_workflow_structure(workflow)
