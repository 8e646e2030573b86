"""
Operation models for workflow diffs.

An operation is one of fifteen variants sharing the ``type`` discriminant::

    {"type": "addConnection", "source": "Check", "target": "Notify", "branch": "false"}

Field names follow the camelCase wire format (``nodeId``, ``sourceOutput``,
``ignoreErrors`` ...); snake_case names are accepted too. Adding a new kind means
adding a variant here and a handler in ``flowdiff.diff.handlers``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from flowdiff.exceptions import InvalidOperationInputError
from flowdiff.workflows.spec import Connections, Position, normalize_connections


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError('must not be empty')
    return value


NonEmptyStr = Annotated[str, AfterValidator(_not_blank)]
PortIndex = Annotated[int, Field(ge=0)]


@dataclass(frozen=True)
class NodeReference:
    """A node addressed by id, by name, or by a value that may be either."""
    id: Optional[str] = None
    name: Optional[str] = None

    def __str__(self) -> str:
        return self.id or self.name or '<empty reference>'


class _Operation(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    description: Optional[str] = None
    """Free text carried for auditing, never interpreted"""


class _NodeTargetOperation(_Operation):
    node_id: Optional[str] = Field(default=None, alias='nodeId')
    node_name: Optional[str] = Field(default=None, alias='nodeName')

    @property
    def reference(self) -> NodeReference:
        return NodeReference(id=self.node_id or None, name=self.node_name or None)


class _SmartPortOperation(_Operation):
    """Connection operations addressing a source output slot.

    ``sourceIndex`` wins over the smart parameters; ``branch`` targets the
    true/false outputs of IF-like nodes and ``case`` the outputs of selector nodes.
    """

    source_index: Optional[PortIndex] = Field(default=None, alias='sourceIndex')
    branch: Optional[Literal['true', 'false']] = None
    case: Optional[PortIndex] = None

    @field_validator('branch', mode='before')
    @classmethod
    def accept_bool_branch(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return 'true' if value else 'false'
        return value

    @model_validator(mode='after')
    def branch_or_case(self):
        if self.branch is not None and self.case is not None:
            raise ValueError("'branch' and 'case' are mutually exclusive")
        return self

    @property
    def selects_slot(self) -> bool:
        return self.source_index is not None or self.branch is not None or self.case is not None


# ============================================================================
# Node operations
# ============================================================================


class NewNode(BaseModel):
    """Node payload of an addNode operation; the id is generated when absent."""

    model_config = ConfigDict(extra='allow', populate_by_name=True)

    id: Optional[str] = None
    name: NonEmptyStr
    type: NonEmptyStr
    position: Position
    type_version: Optional[Union[int, float]] = Field(default=None, alias='typeVersion')
    parameters: dict[str, Any] = Field(default_factory=dict)
    disabled: bool = False


class AddNodeOperation(_Operation):
    type: Literal['addNode']
    node: NewNode


class RemoveNodeOperation(_NodeTargetOperation):
    type: Literal['removeNode']


class UpdateNodeOperation(_NodeTargetOperation):
    type: Literal['updateNode']
    updates: dict[str, Any] = Field(min_length=1)
    """Dot-path -> value, e.g. ``{"parameters.url": "https://..."}``"""


class MoveNodeOperation(_NodeTargetOperation):
    type: Literal['moveNode']
    position: Position


class EnableNodeOperation(_NodeTargetOperation):
    type: Literal['enableNode']


class DisableNodeOperation(_NodeTargetOperation):
    type: Literal['disableNode']


# ============================================================================
# Connection operations
# ============================================================================


class AddConnectionOperation(_SmartPortOperation):
    type: Literal['addConnection']
    source: NonEmptyStr
    target: NonEmptyStr
    source_output: str = Field(default='main', alias='sourceOutput')
    target_input: str = Field(default='main', alias='targetInput')
    target_index: PortIndex = Field(default=0, alias='targetIndex')


class RemoveConnectionOperation(_SmartPortOperation):
    type: Literal['removeConnection']
    source: NonEmptyStr
    target: NonEmptyStr
    source_output: str = Field(default='main', alias='sourceOutput')
    target_input: str = Field(default='main', alias='targetInput')
    target_index: Optional[PortIndex] = Field(default=None, alias='targetIndex')
    ignore_errors: bool = Field(default=False, alias='ignoreErrors')


class RewireConnectionOperation(_SmartPortOperation):
    type: Literal['rewireConnection']
    source: NonEmptyStr
    from_node: NonEmptyStr = Field(alias='from')
    to_node: NonEmptyStr = Field(alias='to')
    source_output: str = Field(default='main', alias='sourceOutput')
    target_input: Optional[str] = Field(default=None, alias='targetInput')


class CleanStaleConnectionsOperation(_Operation):
    type: Literal['cleanStaleConnections']
    dry_run: bool = Field(default=False, alias='dryRun')


class ReplaceConnectionsOperation(_Operation):
    type: Literal['replaceConnections']
    connections: Connections

    @field_validator('connections', mode='before')
    @classmethod
    def fill_empty_slots(cls, value: Any) -> Any:
        return normalize_connections(value)


# ============================================================================
# Workflow metadata operations
# ============================================================================


class UpdateSettingsOperation(_Operation):
    type: Literal['updateSettings']
    settings: dict[str, Any]


class UpdateNameOperation(_Operation):
    type: Literal['updateName']
    name: NonEmptyStr


class AddTagOperation(_Operation):
    type: Literal['addTag']
    tag: NonEmptyStr


class RemoveTagOperation(_Operation):
    type: Literal['removeTag']
    tag: NonEmptyStr


WorkflowDiffOperation = Annotated[
    Union[
        AddNodeOperation,
        RemoveNodeOperation,
        UpdateNodeOperation,
        MoveNodeOperation,
        EnableNodeOperation,
        DisableNodeOperation,
        AddConnectionOperation,
        RemoveConnectionOperation,
        RewireConnectionOperation,
        UpdateSettingsOperation,
        UpdateNameOperation,
        AddTagOperation,
        RemoveTagOperation,
        CleanStaleConnectionsOperation,
        ReplaceConnectionsOperation,
    ],
    Field(discriminator='type'),
]

NODE_OPERATION_TYPES = frozenset(
    {'addNode', 'removeNode', 'updateNode', 'moveNode', 'enableNode', 'disableNode'}
)
CONNECTION_OPERATION_TYPES = frozenset(
    {'addConnection', 'removeConnection', 'rewireConnection', 'cleanStaleConnections', 'replaceConnections'}
)
METADATA_OPERATION_TYPES = frozenset({'updateSettings', 'updateName', 'addTag', 'removeTag'})
OPERATION_TYPES = NODE_OPERATION_TYPES | CONNECTION_OPERATION_TYPES | METADATA_OPERATION_TYPES

_operation_adapter: TypeAdapter[WorkflowDiffOperation] = TypeAdapter(WorkflowDiffOperation)


def parse_operation(raw: Union[_Operation, Mapping[str, Any]]) -> WorkflowDiffOperation:
    """Turn a raw mapping into its operation variant.

    Raises:
        InvalidOperationInputError: Unknown ``type``, wrong field types or
            missing required fields.
    """
    if isinstance(raw, _Operation):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, Mapping):
        raise InvalidOperationInputError(f"Operation must be an object, got {type(raw).__name__}")

    op_type = raw.get('type')
    if op_type not in OPERATION_TYPES:
        raise InvalidOperationInputError(
            f"Unknown operation type: {op_type!r}",
            details={'supported': sorted(OPERATION_TYPES)},
        )
    try:
        return _operation_adapter.validate_python(dict(raw))
    except ValidationError as e:
        problems = '; '.join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or op_type}: {err['msg']}" for err in e.errors()
        )
        raise InvalidOperationInputError(
            f"Invalid {op_type} operation: {problems}",
            details={'errors': e.errors(include_url=False, include_context=False)},
        ) from e


def operation_to_dict(operation: Union[_Operation, Mapping[str, Any]]) -> dict[str, Any]:
    """Wire-format dump of an operation (raw mappings are copied as-is)."""
    if isinstance(operation, BaseModel):
        return operation.model_dump(mode='json', by_alias=True, exclude_none=True)
    return dict(operation)


class DiffRequest(BaseModel):
    """A batch of operations targeting one stored workflow.

    Operations stay raw here and are parsed one by one by the engine, so a
    malformed entry fails only its own index.
    """

    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    id: NonEmptyStr
    operations: list[dict[str, Any]]
    validate_only: bool = Field(default=False, alias='validateOnly')
    continue_on_error: bool = Field(default=False, alias='continueOnError')
    create_backup: Optional[bool] = Field(default=None, alias='createBackup')
