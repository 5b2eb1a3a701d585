"""
Domain models — Pydantic types for the dispatcher.

All models are re-exported here for convenient access:

    from playbook_dispatch.core.models import DeployConfig, OsProfile, ExecutionOutcome
"""

from playbook_dispatch.core.models.config import DeployConfig
from playbook_dispatch.core.models.credentials import (
    CredentialBundle,
    CredentialHandle,
    SshKeyHandle,
    WinRmHandle,
)
from playbook_dispatch.core.models.outcome import Command, ExecutionOutcome
from playbook_dispatch.core.models.target import (
    Classification,
    OsFamily,
    OsProfile,
    TargetSpec,
)

__all__ = [
    # target.py
    "Classification",
    # outcome.py
    "Command",
    # credentials.py
    "CredentialBundle",
    "CredentialHandle",
    # config.py
    "DeployConfig",
    "ExecutionOutcome",
    "OsFamily",
    "OsProfile",
    "SshKeyHandle",
    "TargetSpec",
    "WinRmHandle",
]
