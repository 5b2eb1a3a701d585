"""
Ansible inventory adapter — host and fact queries via the ``ansible`` CLI.

All queries go through a ``CommandRunner`` so tests can swap in a
mock. Partial output (some hosts unreachable) is still returned;
only an empty, failed answer counts as unavailable.
"""

from __future__ import annotations

import logging
import os

from playbook_dispatch.adapters.base import (
    CommandRunner,
    ExecutionContext,
    InventorySource,
)
from playbook_dispatch.core.errors import (
    DispatchError,
    InventoryUnavailable,
)
from playbook_dispatch.core.models.outcome import Command

logger = logging.getLogger(__name__)

# Inventory queries are short; a stuck SSH handshake must not stall the run
QUERY_TIMEOUT = 120.0


class AnsibleInventory(InventorySource):
    """Query an inventory with ad-hoc ``ansible`` commands.

    Args:
        runner: Runner used for every query.
        ansible_path: Optional directory holding the ``ansible`` binary.
        timeout: Per-query timeout in seconds.
    """

    def __init__(
        self,
        runner: CommandRunner,
        ansible_path: str = "",
        timeout: float = QUERY_TIMEOUT,
    ):
        self._runner = runner
        self._binary = os.path.join(ansible_path, "ansible") if ansible_path else "ansible"
        self._timeout = timeout

    def list_hosts(self, target: str, inventory: str | None) -> str:
        return self._query(target, inventory, ["--list-hosts"])

    def gather_facts(self, target: str, inventory: str | None, fact_filter: str) -> str:
        return self._query(
            target, inventory, ["-m", "setup", "-a", f"filter={fact_filter}", "--one-line"]
        )

    def ping(self, target: str, inventory: str | None) -> str:
        return self._query(target, inventory, ["-m", "ping", "--one-line"])

    def _query(self, target: str, inventory: str | None, extra: list[str]) -> str:
        argv = [self._binary, target]
        if inventory:
            argv += ["-i", inventory]
        argv += extra

        context = ExecutionContext(command=Command(argv=tuple(argv)), timeout=self._timeout)
        try:
            result = self._runner.execute(context)
        except DispatchError as e:
            raise InventoryUnavailable(f"Inventory query failed: {e.message}") from e

        output = result.stdout.strip()
        if not result.ok and not output:
            raise InventoryUnavailable(
                f"Inventory query exited {result.exit_code}: "
                f"{result.stderr.strip() or 'no output'}"
            )
        if not result.ok:
            logger.debug("Inventory query exited %d with partial output", result.exit_code)
        return output
