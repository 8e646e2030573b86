import pytest

from flowdiff.workflows.spec import Workflow


def _build_workflow() -> Workflow:
    return Workflow.model_validate({
        'id': 'wf-1',
        'name': 'Lead intake',
        'nodes': [
            {'id': 'n-webhook', 'name': 'Webhook', 'type': 'n8n-nodes-base.webhook',
             'typeVersion': 2, 'position': [0, 0], 'parameters': {'path': 'leads'}},
            {'id': 'n-check', 'name': 'Check', 'type': 'n8n-nodes-base.if',
             'typeVersion': 2.2, 'position': [200, 0], 'parameters': {}},
            {'id': 'n-fetch', 'name': 'Fetch', 'type': 'n8n-nodes-base.httpRequest',
             'typeVersion': 4, 'position': [400, -100],
             'parameters': {'url': 'https://old.example.com', 'options': {'timeout': 1000}}},
            {'id': 'n-notify', 'name': 'Notify', 'type': 'n8n-nodes-base.noOp',
             'position': [400, 100]},
            {'id': 'n-route', 'name': 'Route', 'type': 'n8n-nodes-base.switch',
             'typeVersion': 3, 'position': [600, 0]},
        ],
        'connections': {
            'Webhook': {'main': [[{'node': 'Check', 'type': 'main', 'index': 0}]]},
            'Check': {'main': [
                [{'node': 'Fetch', 'type': 'main', 'index': 0}],
                [{'node': 'Notify', 'type': 'main', 'index': 0}],
            ]},
        },
        'settings': {'executionOrder': 'v1'},
        'tags': ['sales'],
    })


@pytest.fixture
def workflow() -> Workflow:
    """Five-node workflow: Webhook -> Check (IF) -> Fetch / Notify, plus an unwired Switch."""
    return _build_workflow()
