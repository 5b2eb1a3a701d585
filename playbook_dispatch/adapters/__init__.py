"""Adapters — bindings for Ansible, secrets and notifications.

Public re-exports for convenient access.
"""

from playbook_dispatch.adapters.base import (
    CommandResult,
    CommandRunner,
    CredentialStore,
    ExecutionContext,
    InventorySource,
    NotificationSink,
)

__all__ = [
    "CommandResult",
    "CommandRunner",
    "CredentialStore",
    "ExecutionContext",
    "InventorySource",
    "NotificationSink",
]
