"""
Deploy use case — wire real adapters and run one deployment.

This is the vertical slice from user intent to audited execution:
load config, build the coordinator, run, and hand back a result the
CLI can print or serialize.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from playbook_dispatch.adapters.ansible.inventory import AnsibleInventory
from playbook_dispatch.adapters.base import (
    CommandRunner,
    CredentialStore,
    InventorySource,
    NotificationSink,
)
from playbook_dispatch.adapters.credentials import EnvCredentialStore, FileCredentialStore
from playbook_dispatch.adapters.mock import MockCommandRunner, MockCredentialStore, MockInventory
from playbook_dispatch.adapters.notify import (
    AuditNotifier,
    CompositeNotifier,
    LogNotifier,
    ReportFileNotifier,
)
from playbook_dispatch.adapters.shell.command import SubprocessRunner
from playbook_dispatch.core.config.loader import ConfigError, load_deploy_config
from playbook_dispatch.core.engine.coordinator import ExecutionCoordinator
from playbook_dispatch.core.errors import DispatchError
from playbook_dispatch.core.models.config import DeployConfig, parse_vars_text
from playbook_dispatch.core.models.outcome import ExecutionOutcome
from playbook_dispatch.core.persistence.audit import AuditWriter

logger = logging.getLogger(__name__)


@dataclass
class DeployResult:
    """Result of a deployment request."""

    config: DeployConfig | None = None
    outcome: ExecutionOutcome | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.outcome is not None and self.outcome.success

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"ok": self.ok}
        if self.error:
            result["error"] = self.error
        if self.config is not None:
            result["config"] = self.config.summary()
        if self.outcome is not None:
            result["outcome"] = self.outcome.to_dict()
        return result


def build_credential_store(credentials_path: Path | None = None) -> CredentialStore:
    """File store when a credentials file is given, else the environment."""
    if credentials_path is not None:
        return FileCredentialStore(credentials_path)
    return EnvCredentialStore()


def build_mock_adapters(config: DeployConfig) -> tuple[CommandRunner, InventorySource, CredentialStore]:
    """Runner, inventory and credentials that never touch Ansible or a secret.

    The inventory knows no facts, so hosts are classified by name and
    the configured credential for that family is a placeholder.
    """
    credentials = MockCredentialStore(
        ssh_keys={config.linux_credential_id: ("[mock] private key", "mock")},
        passwords={config.windows_credential_id: ("mock", "[mock] password")},
    )
    return MockCommandRunner(), MockInventory(), credentials


def build_notifier(
    state_dir: Path,
    report_path: Path | None = None,
) -> NotificationSink:
    """Log + audit ledger + report file."""
    return CompositeNotifier([
        LogNotifier(),
        AuditNotifier(AuditWriter(project_root=state_dir)),
        ReportFileNotifier(report_path or state_dir / "deployment-report.json"),
    ])


def build_coordinator(
    config: DeployConfig,
    credentials: CredentialStore,
    state_dir: Path,
    runner: CommandRunner | None = None,
    inventory: InventorySource | None = None,
    notifier: NotificationSink | None = None,
    report_path: Path | None = None,
) -> ExecutionCoordinator:
    """Coordinator with production adapters unless overridden."""
    runner = runner or SubprocessRunner()
    return ExecutionCoordinator(
        inventory=inventory or AnsibleInventory(runner, ansible_path=config.ansible_path),
        credentials=credentials,
        runner=runner,
        notifier=notifier or build_notifier(state_dir, report_path),
    )


def run_deploy(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    credentials_path: Path | None = None,
    state_dir: Path | None = None,
    report_path: Path | None = None,
    runner: CommandRunner | None = None,
    inventory: InventorySource | None = None,
    credentials: CredentialStore | None = None,
    notifier: NotificationSink | None = None,
    mock_mode: bool = False,
) -> DeployResult:
    """Load configuration and run one deployment.

    Never raises for deployment problems; they are reported in the
    result (``error`` for setup problems, ``outcome`` for runs).
    ``mock_mode`` swaps the runner, inventory and credential store for
    mocks; files are still validated and the outcome is still audited.
    """
    result = DeployResult()

    try:
        config = load_deploy_config(config_path, overrides)
        result.config = config
        if mock_mode:
            mock_runner, mock_inventory, mock_credentials = build_mock_adapters(config)
            runner = runner or mock_runner
            inventory = inventory or mock_inventory
            credentials = credentials or mock_credentials
        if credentials is None:
            credentials = build_credential_store(credentials_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    if state_dir is None:
        state_dir = config_path.parent.resolve() if config_path else Path.cwd()

    coordinator = build_coordinator(
        config,
        credentials,
        state_dir,
        runner=runner,
        inventory=inventory,
        notifier=notifier,
        report_path=report_path,
    )

    try:
        result.outcome = coordinator.run(config)
    except DispatchError as e:
        result.outcome = e.outcome
        result.error = e.message
    return result


def quick_deploy(
    role: str,
    target: str | None = None,
    playbook: str = "site.yml",
    extra_vars: str = "",
    **kwargs: Any,
) -> DeployResult:
    """Shorthand deploy of one role.

    The target defaults to a group named after the role, and the role
    is passed to the playbook as the ``role`` extra variable.
    """
    ansible_vars = {"role": role}
    ansible_vars.update(parse_vars_text(extra_vars))

    overrides = dict(kwargs.pop("overrides", None) or {})
    overrides.update({
        "playbook": playbook,
        "target_servers": target or role,
        "ansible_vars": ansible_vars,
    })
    return run_deploy(overrides=overrides, **kwargs)
