"""Tests for whole-graph structural validation."""

from flowdiff.workflows.spec import Workflow
from flowdiff.workflows.validation import (
    DefaultStructureValidator,
    StructureValidator,
    validate_workflow_structure,
)


def test_valid_workflow(workflow):
    assert validate_workflow_structure(workflow) == []
    assert isinstance(DefaultStructureValidator(), StructureValidator)


def test_dangling_connections(workflow):
    data = workflow.to_document()
    data['connections']['Check']['main'][1].append({'node': 'Ghost', 'type': 'main', 'index': 0})
    data['connections']['Phantom'] = {'main': [[{'node': 'Check', 'type': 'main', 'index': 0}]]}

    errors = validate_workflow_structure(Workflow.model_validate(data))

    assert len(errors) == 2
    assert any("non-existent target node: 'Ghost'" in e for e in errors)
    assert any("non-existent source node: 'Phantom'" in e for e in errors)


def test_duplicate_names_and_ids(workflow):
    data = workflow.to_document()
    data['nodes'].append(dict(data['nodes'][0]))
    errors = validate_workflow_structure(Workflow.model_validate(data))
    assert "Duplicate node id: 'n-webhook'" in errors
    assert "Duplicate node name: 'Webhook'" in errors


def test_if_node_with_extra_branch(workflow):
    data = workflow.to_document()
    data['connections']['Check']['main'].append([{'node': 'Route', 'type': 'main', 'index': 0}])
    errors = DefaultStructureValidator().validate(Workflow.model_validate(data))
    assert errors == ["Node 'Check' has 3 main output branches but only supports 2 (true/false)"]
