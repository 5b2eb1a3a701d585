"""Dispatch engine — classify, resolve, build, execute."""

from playbook_dispatch.core.engine.classifier import HostClassifier
from playbook_dispatch.core.engine.command_builder import CommandBuilder
from playbook_dispatch.core.engine.coordinator import ExecutionCoordinator, Stage
from playbook_dispatch.core.engine.credentials import CredentialResolver

__all__ = [
    "CommandBuilder",
    "CredentialResolver",
    "ExecutionCoordinator",
    "HostClassifier",
    "Stage",
]
