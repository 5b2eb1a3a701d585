"""
Mock adapters — test doubles for every external collaborator.

Each mock records what it was asked and answers from configurable
canned responses, so the dispatcher can be exercised end to end
without Ansible, a secret store or a mail server.

The test suite injects them directly. ``deploy --mock`` wires them in
through ``build_mock_adapters`` for a rehearsal run that still checks
files and writes the audit ledger.
"""

from __future__ import annotations

from playbook_dispatch.adapters.base import (
    CommandResult,
    CommandRunner,
    CredentialStore,
    ExecutionContext,
    InventorySource,
    NotificationSink,
)
from playbook_dispatch.core.errors import (
    CredentialNotFound,
    DispatchError,
    ExecutionTimeout,
    InventoryUnavailable,
)
from playbook_dispatch.core.models.config import DeployConfig
from playbook_dispatch.core.models.outcome import ExecutionOutcome


class MockCommandRunner(CommandRunner):
    """Command runner that never starts a process.

    Responses are matched by an argument that must appear in the
    command's argv (e.g. ``"--syntax-check"`` or ``"ansible-playbook"``).
    The first matching rule wins; unmatched commands succeed.
    """

    def __init__(self, default_output: str = "[mock] executed", available: bool = True):
        self._default_output = default_output
        self._available = available
        self._rules: list[tuple[str, CommandResult | DispatchError]] = []
        self._call_log: list[ExecutionContext] = []

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_with(self, arg: str) -> list[ExecutionContext]:
        """Recorded calls whose argv contains ``arg``."""
        return [c for c in self._call_log if arg in c.command.argv]

    def is_available(self, program: str) -> bool:
        return self._available

    def set_response(self, match: str, result: CommandResult) -> None:
        self._rules.append((match, result))

    def set_failure(self, match: str, exit_code: int = 2, stderr: str = "Mock failure") -> None:
        self._rules.append((match, CommandResult(exit_code=exit_code, stderr=stderr)))

    def set_timeout(self, match: str) -> None:
        """Make matching commands behave as if they exceeded their timeout."""
        self._rules.append((match, ExecutionTimeout(0)))

    def set_error(self, match: str, error: DispatchError) -> None:
        self._rules.append((match, error))

    def execute(self, context: ExecutionContext) -> CommandResult:
        self._call_log.append(context)

        for match, response in self._rules:
            if match not in context.command.argv:
                continue
            if isinstance(response, ExecutionTimeout):
                raise ExecutionTimeout(context.timeout)
            if isinstance(response, DispatchError):
                raise response
            return response

        return CommandResult(exit_code=0, stdout=self._default_output)

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._rules.clear()


class MockInventory(InventorySource):
    """Inventory that answers from canned text."""

    def __init__(
        self,
        facts: str = "",
        hosts: str = "",
        available: bool = True,
    ):
        self.facts = facts
        self.hosts = hosts
        self.available = available
        self.queries: list[tuple[str, str]] = []    # (method, target)

    def list_hosts(self, target: str, inventory: str | None) -> str:
        self.queries.append(("list_hosts", target))
        if not self.available:
            raise InventoryUnavailable("Mock inventory unavailable")
        return self.hosts

    def gather_facts(self, target: str, inventory: str | None, fact_filter: str) -> str:
        self.queries.append(("gather_facts", target))
        if not self.available:
            raise InventoryUnavailable("Mock inventory unavailable")
        return self.facts


class MockCredentialStore(CredentialStore):
    """In-memory credential store."""

    def __init__(
        self,
        ssh_keys: dict[str, tuple[str, str]] | None = None,
        passwords: dict[str, tuple[str, str]] | None = None,
    ):
        self.ssh_keys = dict(ssh_keys or {})
        self.passwords = dict(passwords or {})
        self.lookups: list[str] = []

    def get_ssh_key(self, credential_id: str) -> tuple[str, str]:
        self.lookups.append(credential_id)
        if credential_id not in self.ssh_keys:
            raise CredentialNotFound(credential_id)
        return self.ssh_keys[credential_id]

    def get_username_password(self, credential_id: str) -> tuple[str, str]:
        self.lookups.append(credential_id)
        if credential_id not in self.passwords:
            raise CredentialNotFound(credential_id)
        return self.passwords[credential_id]


class RecordingNotifier(NotificationSink):
    """Sink that keeps every notification it receives."""

    def __init__(self) -> None:
        self.notifications: list[tuple[ExecutionOutcome, DeployConfig]] = []

    @property
    def count(self) -> int:
        return len(self.notifications)

    @property
    def last(self) -> ExecutionOutcome | None:
        return self.notifications[-1][0] if self.notifications else None

    def notify(self, outcome: ExecutionOutcome, config: DeployConfig) -> None:
        self.notifications.append((outcome, config))
