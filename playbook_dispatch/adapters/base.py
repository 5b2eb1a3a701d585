"""
Adapter base — the contracts between the dispatcher and the outside world.

The core only talks to Ansible, secrets and notification channels
through these four interfaces, never directly. Each run hands the
command runner an explicit ``ExecutionContext``; nothing is injected
into the process-wide environment.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict

from playbook_dispatch.core.models.config import DeployConfig
from playbook_dispatch.core.models.outcome import Command, ExecutionOutcome


class ExecutionContext(BaseModel):
    """Everything a runner needs to execute one command.

    The environment travels inside ``command.env`` and is layered
    over the parent environment for this child process only.
    """

    model_config = ConfigDict(frozen=True)

    command: Command
    timeout: float
    cwd: str | None = None


class CommandResult(BaseModel):
    """Exit code and captured output of a finished command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner(ABC):
    """Runs commands as child processes."""

    @abstractmethod
    def execute(self, context: ExecutionContext) -> CommandResult:
        """Run ``context.command`` to completion.

        Raises:
            ExecutionTimeout: If ``context.timeout`` elapsed. The child
                process MUST be terminated before this is raised.
            ExecutionFailure: If the command could not be started.
        """

    def is_available(self, program: str) -> bool:
        """Whether ``program`` can be found. Should be fast and never raise."""
        return True

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class InventorySource(ABC):
    """Read-only queries against an Ansible inventory."""

    @abstractmethod
    def list_hosts(self, target: str, inventory: str | None) -> str:
        """Hosts matched by ``target``, as raw text.

        Raises:
            InventoryUnavailable: If the query could not be answered.
        """

    @abstractmethod
    def gather_facts(self, target: str, inventory: str | None, fact_filter: str) -> str:
        """Facts for ``target`` restricted by ``fact_filter``, as raw text.

        Raises:
            InventoryUnavailable: If the query could not be answered.
        """

    def ping(self, target: str, inventory: str | None) -> str:
        """Connectivity check. Optional; defaults to a host listing."""
        return self.list_hosts(target, inventory)


class CredentialStore(ABC):
    """Secret lookup keyed by an opaque identifier. Never mutated."""

    @abstractmethod
    def get_ssh_key(self, credential_id: str) -> tuple[str, str]:
        """Return ``(key_material, username)``.

        Raises:
            CredentialNotFound: If no SSH key exists under ``credential_id``.
        """

    @abstractmethod
    def get_username_password(self, credential_id: str) -> tuple[str, str]:
        """Return ``(username, password)``.

        Raises:
            CredentialNotFound: If no such credential exists.
        """


class NotificationSink(ABC):
    """Consumer of finished outcomes. Called exactly once per run."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def notify(self, outcome: ExecutionOutcome, config: DeployConfig) -> None:
        """Deliver ``outcome``. Implementations should not raise."""
