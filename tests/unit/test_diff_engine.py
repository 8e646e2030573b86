"""Tests for WorkflowDiffEngine and its execution policies."""

import pytest

from flowdiff.diff.engine import (
    AtomicPolicy,
    BestEffortPolicy,
    DiffRun,
    DiffRunState,
    WorkflowDiffEngine,
)
from flowdiff.diff.handlers import OperationApplier
from flowdiff.diff.operations import DiffRequest, UpdateNameOperation
from flowdiff.diff.result import DiffValidationError


@pytest.fixture
def engine():
    return WorkflowDiffEngine()


def update_then_remove_missing():
    return [
        {'type': 'updateNode', 'nodeId': 'n-fetch', 'updates': {'parameters.url': 'https://a'}},
        {'type': 'removeNode', 'nodeId': 'does-not-exist'},
    ]


# ============================================================================
# Atomic mode
# ============================================================================

def test_atomic_success(engine, workflow):
    result = engine.apply_diff(workflow, [
        {'type': 'addNode', 'node': {'name': 'Log', 'type': 'n8n-nodes-base.noOp', 'position': [800, 0]}},
        {'type': 'addConnection', 'source': 'Notify', 'target': 'Log'},
        {'type': 'addTag', 'tag': 'crm'},
    ])

    assert result.success is True
    assert result.operations_applied == 3
    assert result.applied is None
    assert result.failed is None
    assert result.errors is None
    assert result.workflow.connections['Notify']['main'][0][0].node == 'Log'
    assert result.message == 'Successfully applied 3 operation(s)'


def test_atomic_failure_discards_everything(engine, workflow):
    before = workflow.model_copy(deep=True)
    result = engine.apply_diff(workflow, update_then_remove_missing())

    assert result.success is False
    assert result.operations_applied == 0
    assert result.workflow == before
    assert result.workflow.find_node_by_id('n-fetch').parameters['url'] == 'https://old.example.com'
    assert workflow == before
    assert [(e.operation, e.kind) for e in result.errors] == [(1, 'NodeNotFound')]
    assert 'No changes were applied' in result.message


def test_atomic_stops_at_first_failure(engine, workflow):
    result = engine.apply_diff(workflow, [
        {'type': 'removeNode', 'nodeId': 'missing-1'},
        {'type': 'removeNode', 'nodeId': 'missing-2'},
    ])
    assert [e.operation for e in result.errors] == [0]


# ============================================================================
# Best-effort mode
# ============================================================================

def test_best_effort_keeps_valid_operations(engine, workflow):
    result = engine.apply_diff(workflow, update_then_remove_missing(), continue_on_error=True)

    assert result.success is False
    assert result.applied == [0]
    assert result.failed == [1]
    assert result.operations_applied == 1
    assert result.workflow.find_node_by_id('n-fetch').parameters['url'] == 'https://a'
    assert workflow.find_node_by_id('n-fetch').parameters['url'] == 'https://old.example.com'


def test_best_effort_index_accounting(engine, workflow):
    operations = [
        {'type': 'disableNode', 'nodeName': 'Notify'},
        {'type': 'removeConnection', 'source': 'Webhook', 'target': 'Fetch'},
        {'type': 'addNode', 'node': {'name': 'Log', 'type': 'n8n-nodes-base.noOp', 'position': [0, 300]}},
        {'type': 'bogus'},
        {'type': 'addConnection', 'source': 'Log', 'target': 'Ghost'},
        {'type': 'updateName', 'name': 'Renamed'},
    ]
    result = engine.apply_diff(workflow, operations, continue_on_error=True)

    applied, failed = set(result.applied), set(result.failed)
    assert result.operations_applied == len(result.applied)
    assert applied.isdisjoint(failed)
    assert applied | failed == set(range(len(operations)))
    assert result.applied == [0, 2, 5]
    assert [(e.operation, e.kind) for e in result.errors] == [
        (1, 'ConnectionNotFound'),
        (3, 'InvalidOperationInput'),
        (4, 'NodeNotFound'),
    ]
    assert result.message == 'Applied 3 of 6 operation(s); 3 failed'


def test_best_effort_later_operations_see_earlier_effects(engine, workflow):
    result = engine.apply_diff(workflow, [
        {'type': 'addNode', 'node': {'name': 'Fetch', 'type': 'n8n-nodes-base.noOp', 'position': [0, 0]}},
        {'type': 'addConnection', 'source': 'Check', 'target': 'Fetch 2'},
        {'type': 'addNode', 'node': {'name': 'Fetch 2', 'type': 'n8n-nodes-base.noOp', 'position': [0, 0]}},
        {'type': 'addConnection', 'source': 'Check', 'target': 'Fetch 2'},
    ], continue_on_error=True)

    assert result.applied == [2, 3]
    assert result.failed == [0, 1]
    assert result.workflow.connections['Check']['main'][0][-1].node == 'Fetch 2'


def test_best_effort_all_succeed(engine, workflow):
    result = engine.apply_diff(workflow, [{'type': 'addTag', 'tag': 'crm'}], continue_on_error=True)
    assert result.success is True
    assert result.applied == [0]
    assert result.failed == []


# ============================================================================
# Validate-only
# ============================================================================

def test_validate_only_discards_workflow(engine, workflow):
    result = engine.apply_diff(workflow, [{'type': 'removeNode', 'nodeName': 'Check'}], validate_only=True)

    assert result.success is True
    assert result.workflow is None
    assert result.operations_applied == 0
    assert result.message.startswith('Validation successful')
    assert workflow.find_node_by_name('Check') is not None


def test_validate_only_reports_failures(engine, workflow):
    result = engine.apply_diff(workflow, update_then_remove_missing(), validate_only=True)
    assert result.success is False
    assert result.workflow is None
    assert result.errors[0].operation == 1


def test_apply_request(engine, workflow):
    request = DiffRequest.model_validate({
        'id': 'wf-1',
        'operations': update_then_remove_missing(),
        'continueOnError': True,
    })
    result = engine.apply_request(workflow, request)
    assert result.applied == [0]


# ============================================================================
# Envelope details
# ============================================================================

def test_stale_connections_reported(engine, workflow):
    result = engine.apply_diff(workflow, [
        {'type': 'replaceConnections', 'connections': {
            'Webhook': {'main': [[{'node': 'Ghost', 'type': 'main', 'index': 0}]]},
        }},
        {'type': 'cleanStaleConnections'},
    ])
    assert [(s.from_node, s.to_node) for s in result.stale_connections_removed] == [('Webhook', 'Ghost')]
    assert result.workflow.connections == {}


def test_stale_connections_absent_without_scan(engine, workflow):
    result = engine.apply_diff(workflow, [{'type': 'addTag', 'tag': 'x'}])
    assert result.stale_connections_removed is None


def test_warnings_keep_operation_index(engine, workflow):
    result = engine.apply_diff(workflow, [
        {'type': 'addTag', 'tag': 'x'},
        {'type': 'addConnection', 'source': 'Notify', 'target': 'Route', 'case': 2},
    ])
    assert len(result.warnings) == 1
    assert result.warnings[0].operation == 1
    assert result.warnings[0].kind == 'Warning'


def test_typed_operations_accepted(engine, workflow):
    result = engine.apply_diff(workflow, [UpdateNameOperation(type='updateName', name='Typed')])
    assert result.workflow.name == 'Typed'


def test_payload_uses_wire_names(engine, workflow):
    payload = engine.apply_diff(workflow, update_then_remove_missing(), continue_on_error=True).to_payload()
    assert payload['operationsApplied'] == 1
    assert payload['applied'] == [0]
    assert payload['errors'][0]['kind'] == 'NodeNotFound'
    assert 'staleConnectionsRemoved' not in payload


def test_unexpected_handler_errors_are_reported(workflow):
    class BrokenApplier(OperationApplier):
        def apply(self, workflow, operation):
            if operation.type == 'addTag':
                raise RuntimeError('boom')
            return super().apply(workflow, operation)

    engine = WorkflowDiffEngine(applier=BrokenApplier())
    result = engine.apply_diff(workflow, [
        {'type': 'addTag', 'tag': 'x'},
        {'type': 'updateName', 'name': 'Still runs'},
    ], continue_on_error=True)

    assert result.failed == [0]
    assert result.errors[0].kind == 'InternalError'
    assert result.workflow.name == 'Still runs'


# ============================================================================
# Policies
# ============================================================================

def _run(workflow, applied, failed):
    run = DiffRun(original=workflow, working=workflow, total=len(applied) + len(failed))
    run.applied = list(applied)
    run.errors = [DiffValidationError(operation=i, kind='NodeNotFound', message='x') for i in failed]
    return run


@pytest.mark.parametrize('applied,failed,state', [
    ([0, 1], [], DiffRunState.COMMITTED),
    ([0], [1], DiffRunState.PARTIALLY_COMMITTED),
    ([], [0], DiffRunState.ABORTED),
])
def test_best_effort_terminal_states(workflow, applied, failed, state):
    run = _run(workflow, applied, failed)
    BestEffortPolicy().finalize(run)
    assert run.state is state


def test_atomic_terminal_states(workflow):
    committed = _run(workflow, [0], [])
    AtomicPolicy().finalize(committed)
    assert committed.state is DiffRunState.COMMITTED

    aborted = _run(workflow, [0], [1])
    result = AtomicPolicy().finalize(aborted)
    assert aborted.state is DiffRunState.ABORTED
    assert result.operations_applied == 0
