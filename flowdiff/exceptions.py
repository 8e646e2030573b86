"""
Exceptions for flowdiff.

Every failure the diff engine can report derives from WorkflowDiffError and
carries a ``kind`` tag; the engine converts them into result-envelope entries
instead of letting them cross its boundary.
"""

from typing import Any, Optional


class WorkflowDiffError(Exception):
    """General flowdiff error."""

    kind: str = 'WorkflowDiffError'

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind!r}, message={self.message!r})"


class NodeNotFoundError(WorkflowDiffError):
    """Raised when a node reference matches neither a node id nor a node name."""

    kind = 'NodeNotFound'

    def __init__(self, reference: str, *, role: str = 'node', details: Optional[dict[str, Any]] = None) -> None:
        self.reference = reference
        self.role = role
        super().__init__(f"{role.capitalize()} not found: {reference}", details=details)


class AmbiguousReferenceError(WorkflowDiffError):
    """Raised when a node reference carries neither an id nor a name."""

    kind = 'AmbiguousReference'


class ConnectionNotFoundError(WorkflowDiffError):
    """Raised when no connection matches a remove/rewire request."""

    kind = 'ConnectionNotFound'


class DuplicateNodeError(WorkflowDiffError):
    """Raised when a node name or id is already taken."""

    kind = 'DuplicateNode'


class InvalidPathError(WorkflowDiffError):
    """Raised when a dot-path update cannot be applied to a node."""

    kind = 'InvalidPath'


class InvalidOperationInputError(WorkflowDiffError):
    """Raised for schema-level problems: wrong types or missing required fields."""

    kind = 'InvalidOperationInput'


class StructuralValidationFailedError(WorkflowDiffError):
    """Raised when whole-graph validation rejects a diffed workflow."""

    kind = 'StructuralValidationFailed'

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        if len(self.errors) == 1:
            message = f"Workflow validation failed: {self.errors[0]}"
        else:
            message = f"Workflow validation failed with {len(self.errors)} structural issues"
        super().__init__(message, details={'errors': self.errors})


class RemoteStoreError(WorkflowDiffError):
    """Raised by workflow stores on fetch/persist failures."""

    kind = 'RemoteStoreError'

    def __init__(self, message: str, *, code: str = 'STORE_ERROR', details: Optional[dict[str, Any]] = None) -> None:
        self.code = code
        super().__init__(message, details=details)


class BackupFailedError(WorkflowDiffError):
    """Raised by versioning services; callers log it and carry on."""

    kind = 'BackupFailed'
