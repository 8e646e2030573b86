"""
Configuration for the partial-update service.

Flags that callers used to read from the process environment are explicit
fields here; the diff engine itself never consults the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

_TRUTHY = {'1', 'true', 'yes', 'on'}


@dataclass
class DiffServiceConfig:
    """Configuration for PartialWorkflowUpdater.

    Attributes:
        debug: Log request shapes at debug level (default: False)
        skip_workflow_validation: Persist even when structural validation
            reports errors; the errors are still logged (default: False)
        create_backup_by_default: Snapshot before applying when the request
            does not say otherwise (default: True)
        max_backup_versions: Versions kept per workflow by the default
            versioning service (default: 10)
    """
    debug: bool = False
    skip_workflow_validation: bool = False
    create_backup_by_default: bool = True
    max_backup_versions: int = 10

    def __post_init__(self):
        """Validate configuration."""
        if self.max_backup_versions < 1:
            raise ValueError(f"max_backup_versions must be at least 1, got {self.max_backup_versions}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> 'DiffServiceConfig':
        """Build a configuration from ``FLOWDIFF_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``
            **overrides: Field values that win over the environment
        """
        env = os.environ if environ is None else environ
        values = {
            'debug': env.get('FLOWDIFF_DEBUG', '').lower() in _TRUTHY,
            'skip_workflow_validation': env.get('FLOWDIFF_SKIP_WORKFLOW_VALIDATION', '').lower() in _TRUTHY,
        }
        if 'FLOWDIFF_MAX_BACKUP_VERSIONS' in env:
            values['max_backup_versions'] = int(env['FLOWDIFF_MAX_BACKUP_VERSIONS'])
        values.update(overrides)
        return cls(**values)
