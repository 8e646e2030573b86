"""Tests for node and port resolution."""

import pytest

from flowdiff.diff.operations import NodeReference
from flowdiff.diff.resolver import ResolutionStatus, resolve_node, resolve_port_index, resolve_ref
from flowdiff.exceptions import AmbiguousReferenceError, NodeNotFoundError
from flowdiff.workflows.spec import WorkflowNode


def test_resolve_by_id(workflow):
    resolution = resolve_node(workflow, NodeReference(id='n-fetch'))
    assert resolution.status is ResolutionStatus.FOUND
    assert resolution.node.name == 'Fetch'


def test_resolve_by_name(workflow):
    resolution = resolve_node(workflow, NodeReference(name='Notify'))
    assert resolution.found
    assert resolution.unwrap().id == 'n-notify'


def test_id_wins_over_name(workflow):
    resolution = resolve_node(workflow, NodeReference(id='n-fetch', name='Check'))
    assert resolution.node.name == 'Fetch'


def test_name_used_when_id_misses(workflow):
    resolution = resolve_node(workflow, NodeReference(id='gone', name='Check'))
    assert resolution.node.id == 'n-check'


def test_bare_value_falls_back_to_name(workflow):
    assert resolve_ref(workflow, 'Route').node.id == 'n-route'
    assert resolve_ref(workflow, 'n-route').node.name == 'Route'


def test_not_found(workflow):
    resolution = resolve_node(workflow, NodeReference(id='does-not-exist'))
    assert resolution.status is ResolutionStatus.NOT_FOUND
    with pytest.raises(NodeNotFoundError) as exc_info:
        resolution.unwrap('source node')
    assert exc_info.value.kind == 'NodeNotFound'
    assert str(exc_info.value) == 'Source node not found: does-not-exist'


def test_empty_reference_is_ambiguous(workflow):
    resolution = resolve_node(workflow, NodeReference())
    assert resolution.status is ResolutionStatus.AMBIGUOUS
    with pytest.raises(AmbiguousReferenceError):
        resolution.unwrap()


def _node(node_type: str) -> WorkflowNode:
    return WorkflowNode(name='N', type=node_type, position=(0, 0))


@pytest.mark.parametrize('branch,expected', [('true', 0), ('false', 1)])
def test_branch_maps_to_index(branch, expected):
    assert resolve_port_index(_node('n8n-nodes-base.if'), branch=branch) == expected


def test_case_passes_through():
    assert resolve_port_index(_node('n8n-nodes-base.switch'), case=3) == 3


def test_explicit_index_wins():
    node = _node('n8n-nodes-base.if')
    assert resolve_port_index(node, explicit=2, branch='false') == 2
    assert resolve_port_index(node, explicit=0, case=4) == 0


def test_defaults():
    node = _node('n8n-nodes-base.noOp')
    assert resolve_port_index(node) == 0
    assert resolve_port_index(node, default=None) is None


def test_smart_parameter_on_other_node_types_warns():
    warnings: list[str] = []
    assert resolve_port_index(_node('n8n-nodes-base.noOp'), branch='false', warnings=warnings) == 1
    assert resolve_port_index(_node('n8n-nodes-base.if'), case=1, warnings=warnings) == 1
    assert len(warnings) == 2
    assert "'branch' used on node 'N'" in warnings[0]
    assert "'case' used on node 'N'" in warnings[1]


def test_smart_parameter_on_matching_type_is_silent():
    warnings: list[str] = []
    resolve_port_index(_node('IF'), branch='true', warnings=warnings)
    resolve_port_index(_node('n8n-nodes-base.switch'), case=0, warnings=warnings)
    assert warnings == []
