"""Reference resolution for diff operations.

Operations address nodes by id or by display name and address output slots
either explicitly (``sourceIndex``) or through smart parameters (``branch``,
``case``). Resolution never falls back silently: it returns a tagged
Resolution that callers unwrap.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional

from flowdiff.exceptions import AmbiguousReferenceError, NodeNotFoundError
from flowdiff.diff.operations import NodeReference
from flowdiff.workflows.spec import Workflow, WorkflowNode

logger = logging.getLogger(__name__)

BRANCH_INDEX = {'true': 0, 'false': 1}
BOOLEAN_BRANCH_TYPES = frozenset({'if', 'filter'})
MULTI_CASE_TYPES = frozenset({'switch'})


class ResolutionStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a NodeReference."""
    status: ResolutionStatus
    reference: NodeReference
    node: Optional[WorkflowNode] = None

    @property
    def found(self) -> bool:
        return self.status is ResolutionStatus.FOUND

    def unwrap(self, role: str = 'node') -> WorkflowNode:
        """Return the node or raise the matching error."""
        if self.status is ResolutionStatus.FOUND:
            return self.node  # type: ignore[return-value]
        if self.status is ResolutionStatus.AMBIGUOUS:
            raise AmbiguousReferenceError(f"{role.capitalize()} reference needs a node id or a node name")
        raise NodeNotFoundError(str(self.reference), role=role)


def resolve_node(workflow: Workflow, ref: NodeReference) -> Resolution:
    """Resolve a reference: id first, then exact name.

    A reference that only carries an id is also tried as a name, so connection
    operations can pass whichever the caller knows.
    """
    if not ref.id and not ref.name:
        return Resolution(ResolutionStatus.AMBIGUOUS, ref)

    if ref.id:
        node = workflow.find_node_by_id(ref.id)
        if node is not None:
            return Resolution(ResolutionStatus.FOUND, ref, node)
    if ref.name:
        node = workflow.find_node_by_name(ref.name)
        if node is not None:
            return Resolution(ResolutionStatus.FOUND, ref, node)
    if ref.id and not ref.name:
        node = workflow.find_node_by_name(ref.id)
        if node is not None:
            return Resolution(ResolutionStatus.FOUND, ref, node)
    return Resolution(ResolutionStatus.NOT_FOUND, ref)


def resolve_ref(workflow: Workflow, value: str) -> Resolution:
    """Resolve a bare id-or-name string."""
    return resolve_node(workflow, NodeReference(id=value))


def node_type_family(node: WorkflowNode) -> str:
    """``n8n-nodes-base.if`` -> ``if``."""
    return node.type.rsplit('.', 1)[-1].lower()


def resolve_port_index(
    node: WorkflowNode,
    explicit: Optional[int] = None,
    branch: Optional[Literal['true', 'false']] = None,
    case: Optional[int] = None,
    default: Optional[int] = 0,
    warnings: Optional[list[str]] = None,
) -> Optional[int]:
    """Return the output slot index addressed by an operation.

    Precedence: explicit index, then ``branch`` ('true' -> 0, 'false' -> 1),
    then ``case`` (passed through), then ``default``. Smart parameters on a node
    type that does not branch that way still resolve; a note is appended to
    ``warnings`` when a list is given.
    """
    if explicit is not None:
        return explicit

    family = node_type_family(node)
    if branch is not None:
        if family not in BOOLEAN_BRANCH_TYPES and warnings is not None:
            warnings.append(
                f"'branch' used on node '{node.name}' of type {node.type}, which has no true/false outputs; "
                f"using output index {BRANCH_INDEX[branch]}"
            )
        return BRANCH_INDEX[branch]
    if case is not None:
        if family not in MULTI_CASE_TYPES and warnings is not None:
            warnings.append(
                f"'case' used on node '{node.name}' of type {node.type}, which is not a selector node; "
                f"using output index {case}"
            )
        return case
    return default
