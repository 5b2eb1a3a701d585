"""
Pre-flight use cases — look before deploying.

    classify      which OS families a target contains
    validate      files, syntax check, host membership
    ping          connectivity to every target host
    prerequisites ansible / ansible-playbook are installed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from playbook_dispatch.adapters.ansible.inventory import AnsibleInventory
from playbook_dispatch.adapters.base import (
    CommandRunner,
    ExecutionContext,
    InventorySource,
)
from playbook_dispatch.adapters.shell.command import SubprocessRunner
from playbook_dispatch.core.config.loader import ConfigError, load_deploy_config
from playbook_dispatch.core.engine.classifier import HostClassifier
from playbook_dispatch.core.engine.validation import ValidationReport, validate
from playbook_dispatch.core.errors import DispatchError
from playbook_dispatch.core.models.config import DeployConfig
from playbook_dispatch.core.models.outcome import Command
from playbook_dispatch.core.models.target import Classification, TargetSpec

logger = logging.getLogger(__name__)

REQUIRED_PROGRAMS = ("ansible", "ansible-playbook")


@dataclass
class PreflightResult:
    """Result of a pre-flight check."""

    ok: bool = False
    config: DeployConfig | None = None
    classification: Classification | None = None
    validation: ValidationReport | None = None
    output: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"ok": self.ok}
        if self.error:
            result["error"] = self.error
        if self.classification is not None:
            profile = self.classification.profile
            result["classification"] = {
                "status": self.classification.status,
                "family": profile.family.value,
                "has_linux": profile.has_linux,
                "has_windows": profile.has_windows,
                "reason": self.classification.reason,
                "hosts": dict(self.classification.hosts),
            }
        if self.validation is not None:
            result["validation"] = self.validation.to_dict()
        if self.output:
            result["output"] = self.output
        if self.details:
            result["details"] = self.details
        return result


def _load(config_path: Path | None, overrides: dict[str, Any] | None) -> DeployConfig:
    return load_deploy_config(config_path, overrides)


def _inventory_for(
    config: DeployConfig,
    runner: CommandRunner,
    inventory: InventorySource | None,
) -> InventorySource:
    return inventory or AnsibleInventory(runner, ansible_path=config.ansible_path)


def run_classify(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    inventory: InventorySource | None = None,
) -> PreflightResult:
    """Classify the configured target."""
    result = PreflightResult()
    try:
        config = _load(config_path, overrides)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.config = config
    if not config.target_servers:
        result.error = "Parameter 'targetServers' is mandatory"
        return result

    source = _inventory_for(config, SubprocessRunner(), inventory)
    result.classification = HostClassifier(source).classify_detailed(
        TargetSpec(expression=config.target_servers, inventory=config.inventory)
    )
    result.ok = True
    return result


def run_validate(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    runner: CommandRunner | None = None,
    inventory: InventorySource | None = None,
) -> PreflightResult:
    """Required parameters, files, syntax check, host membership."""
    result = PreflightResult()
    try:
        config = _load(config_path, overrides)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.config = config
    runner = runner or SubprocessRunner()
    try:
        config.require_parameters()
        result.validation = validate(config, runner, _inventory_for(config, runner, inventory))
    except DispatchError as e:
        result.error = e.message
        return result

    result.ok = True
    return result


def run_ping(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    inventory: InventorySource | None = None,
) -> PreflightResult:
    """Ansible ping against every target host."""
    result = PreflightResult()
    try:
        config = _load(config_path, overrides)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.config = config
    source = _inventory_for(config, SubprocessRunner(), inventory)
    try:
        result.output = source.ping(config.target_servers or "all", config.inventory)
    except DispatchError as e:
        result.error = e.message
        return result

    result.ok = "UNREACHABLE" not in result.output and "FAILED" not in result.output
    if not result.ok:
        result.error = "Some hosts did not answer"
    return result


def check_prerequisites(
    runner: CommandRunner | None = None,
    ansible_path: str = "",
) -> PreflightResult:
    """Check that the Ansible binaries are installed and report the version."""
    runner = runner or SubprocessRunner()
    result = PreflightResult()

    missing = []
    for program in REQUIRED_PROGRAMS:
        binary = str(Path(ansible_path) / program) if ansible_path else program
        found = runner.is_available(binary)
        result.details[program] = found
        if not found:
            missing.append(program)

    if missing:
        result.error = f"Missing Ansible prerequisites: {', '.join(missing)}"
        return result

    binary = str(Path(ansible_path) / "ansible") if ansible_path else "ansible"
    try:
        version = runner.execute(ExecutionContext(
            command=Command(argv=(binary, "--version")), timeout=30,
        ))
    except DispatchError as e:
        result.error = e.message
        return result

    lines = version.stdout.strip().splitlines()
    result.output = lines[0] if lines else ""
    result.ok = version.ok
    if not version.ok:
        result.error = f"ansible --version exited {version.exit_code}"
    return result
