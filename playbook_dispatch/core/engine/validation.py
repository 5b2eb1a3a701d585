"""
Pre-flight validation — the checks that run before a playbook does.

    1. Playbook file exists; inventory exists when it is a file path
    2. ``ansible-playbook --syntax-check`` passes
    3. Target expression matches at least one inventory host
    4. A requested ``role`` var names a directory under ``roles/``

Steps 1-2 are fatal. Steps 3-4 only produce warnings: Ansible itself
fails later if the target or role really does not exist.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from playbook_dispatch.adapters.base import (
    CommandRunner,
    ExecutionContext,
    InventorySource,
)
from playbook_dispatch.core.errors import (
    DispatchError,
    HostMembershipWarning,
    InventoryUnavailable,
    PlaybookSyntaxError,
    ResourceNotFound,
)
from playbook_dispatch.core.models.config import DeployConfig
from playbook_dispatch.core.models.outcome import Command

logger = logging.getLogger(__name__)

SYNTAX_CHECK_TIMEOUT = 300.0

# "  hosts (0):" as printed by `ansible --list-hosts`
_HOST_COUNT_RE = re.compile(r"hosts \((\d+)\)")


@dataclass
class ValidationReport:
    """Outcome of the non-fatal checks."""

    playbook_path: Path | None = None
    host_count: int | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "playbook_path": str(self.playbook_path) if self.playbook_path else None,
            "host_count": self.host_count,
            "warnings": self.warnings,
        }


def inventory_is_path(inventory: str) -> bool:
    """Whether ``inventory`` names a file rather than an inline host list."""
    return "," not in inventory


def count_hosts(listing: str) -> int:
    """Number of hosts in ``ansible --list-hosts`` output."""
    match = _HOST_COUNT_RE.search(listing)
    if match:
        return int(match.group(1))
    return sum(1 for line in listing.splitlines() if line.strip())


def check_files(config: DeployConfig) -> Path:
    """Playbook (and file inventory) must exist.

    Raises:
        ResourceNotFound: If either is missing.
    """
    playbook_path = config.playbook_path
    if not playbook_path.is_file():
        available = sorted(p.name for p in playbook_path.parent.glob("*.y*ml"))
        hint = f" (available: {', '.join(available)})" if available else ""
        raise ResourceNotFound(f"Playbook not found: {playbook_path}{hint}")

    if config.inventory and inventory_is_path(config.inventory):
        if not Path(config.inventory).expanduser().exists():
            raise ResourceNotFound(f"Inventory not found: {config.inventory}")

    return playbook_path


def check_syntax(config: DeployConfig, runner: CommandRunner, env: dict[str, str]) -> None:
    """Run ``ansible-playbook --syntax-check``.

    Raises:
        PlaybookSyntaxError: If the check exits non-zero or cannot run.
    """
    binary = "ansible-playbook"
    if config.ansible_path:
        binary = os.path.join(config.ansible_path, binary)

    argv = [binary, "--syntax-check"]
    if config.inventory:
        argv += ["-i", config.inventory]
    argv.append(str(config.playbook_path))

    context = ExecutionContext(
        command=Command(argv=tuple(argv), env=env),
        timeout=min(config.timeout, SYNTAX_CHECK_TIMEOUT),
    )
    try:
        result = runner.execute(context)
    except DispatchError as e:
        raise PlaybookSyntaxError(f"Syntax check could not run: {e.message}") from e

    if not result.ok:
        detail = result.stderr.strip() or result.stdout.strip() or f"exit {result.exit_code}"
        raise PlaybookSyntaxError(f"Syntax check failed for {config.playbook}: {detail}")
    logger.debug("Syntax check passed: %s", config.playbook)


def check_membership(config: DeployConfig, inventory: InventorySource) -> int | None:
    """Count hosts matched by the target.

    Raises:
        HostMembershipWarning: If the lookup failed or matched nothing.
    """
    try:
        listing = inventory.list_hosts(config.target_servers, config.inventory)
    except InventoryUnavailable as e:
        raise HostMembershipWarning(
            f"Host lookup for '{config.target_servers}' failed: {e.message}"
        ) from e

    count = count_hosts(listing)
    if count == 0:
        raise HostMembershipWarning(f"No inventory host matches '{config.target_servers}'")
    return count


def check_role(config: DeployConfig) -> str | None:
    """Warning text when the ``role`` var names a role missing from ``roles/``.

    Only checked when the playbook directory has a ``roles/`` directory;
    roles may also come from collections or ``roles_path``.
    """
    role = config.ansible_vars.get("role")
    roles_dir = Path(config.playbook_dir) / "roles"
    if not role or not roles_dir.is_dir() or (roles_dir / role).is_dir():
        return None
    available = sorted(p.name for p in roles_dir.iterdir() if p.is_dir())
    return (
        f"Role '{role}' not found in {roles_dir}"
        f" (available: {', '.join(available) or 'none'})"
    )


def validate(
    config: DeployConfig,
    runner: CommandRunner,
    inventory: InventorySource,
    env: dict[str, str] | None = None,
) -> ValidationReport:
    """Run all pre-flight checks.

    Raises:
        ResourceNotFound / PlaybookSyntaxError: Fatal problems.
    """
    report = ValidationReport()
    report.playbook_path = check_files(config)
    check_syntax(config, runner, env or {})

    try:
        report.host_count = check_membership(config, inventory)
    except HostMembershipWarning as e:
        logger.warning("%s", e.message)
        report.warnings.append(e.message)

    role_warning = check_role(config)
    if role_warning:
        logger.warning("%s", role_warning)
        report.warnings.append(role_warning)

    return report
