"""JSON event logging for partial workflow updates.

An update request binds its identifying fields once (workflow id, operation
count, execution mode) and every event logged while the binding is active
carries them. Fields learned mid-request, such as how many operations were
applied, are added with ``bind_request_fields``.

Example:
    events = DiffEventLogger()
    with request_log_context('wf-1', operations=3, mode='atomic'):
        bind_request_fields(operations_applied=3)
        events.info('workflow_persisted', nodes=12)
    # {"event": "workflow_persisted", "mode": "atomic", "nodes": 12,
    #  "operations": 3, "operations_applied": 3, "workflow_id": "wf-1"}
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional

EVENT_LOGGER_NAME = 'flowdiff.events'

_request_fields: ContextVar[Optional[dict[str, Any]]] = ContextVar('flowdiff_request_fields', default=None)


def request_mode(*, validate_only: bool, continue_on_error: bool) -> str:
    """Name of the execution mode a request runs in."""
    if validate_only:
        return 'validate_only'
    return 'best_effort' if continue_on_error else 'atomic'


@contextmanager
def request_log_context(workflow_id: str, *, operations: int, mode: str) -> Iterator[dict[str, Any]]:
    """Bind the fields of one update request for the duration of the block."""
    token = _request_fields.set({'workflow_id': workflow_id, 'operations': operations, 'mode': mode})
    try:
        yield _request_fields.get()
    finally:
        _request_fields.reset(token)


def bind_request_fields(**fields: Any) -> None:
    """Add fields to the active request; ignored outside ``request_log_context``."""
    bound = _request_fields.get()
    if bound is not None:
        bound.update({key: value for key, value in fields.items() if value is not None})


def current_request_fields() -> dict[str, Any]:
    return dict(_request_fields.get() or {})


class DiffEventLogger:
    """Writes one JSON object per event, merged with the bound request fields.

    The event name is also attached to the log record as ``flowdiff_event`` so
    handlers can filter without parsing the message.
    """

    def __init__(self, name: str = EVENT_LOGGER_NAME) -> None:
        self.logger = logging.getLogger(name)

    def event(self, level: int, event: str, **fields: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        payload = {'event': event, **current_request_fields(), **fields}
        self.logger.log(
            level,
            json.dumps(payload, default=_encode, sort_keys=True),
            extra={'flowdiff_event': event},
        )

    def debug(self, event: str, **fields: Any) -> None:
        self.event(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self.event(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self.event(logging.WARNING, event, **fields)


def _encode(value: Any) -> Any:
    if hasattr(value, 'model_dump'):
        return value.model_dump(mode='json', by_alias=True)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)
