"""
Host classifier — decide which OS families a target contains.

Two independent signals are OR-merged per family:

    1. Inventory text: an ``ansible_os_family`` fact query (falling
       back to a host listing), scanned for known vocabulary.
    2. The target expression itself: naming conventions such as
       ``winweb01`` or ``db-cluster``. A Windows marker in the name
       outranks the role-style Linux markers (``web``, ``db``).

If neither signal says anything, ``DEFAULT_FAMILY_POLICY`` applies and
the target is treated as Linux-only. An unreachable inventory is never
fatal; it only downgrades the result to ``degraded``.
"""

from __future__ import annotations

import json
import logging
import re

from playbook_dispatch.adapters.base import InventorySource
from playbook_dispatch.core.errors import InventoryUnavailable
from playbook_dispatch.core.models.target import Classification, OsProfile, TargetSpec

logger = logging.getLogger(__name__)

# Substrings looked for in inventory output (lowercased)
WINDOWS_FACT_MARKERS = ("windows", "win")
LINUX_FACT_MARKERS = ("redhat", "ubuntu", "debian", "centos")

# Substrings looked for in the target expression (lowercased)
WINDOWS_NAME_MARKERS = ("win", "windows")
LINUX_NAME_MARKERS = ("linux",)
# Role-style names count as Linux only when nothing in the name says Windows
LINUX_ROLE_MARKERS = ("web", "db")

OS_FAMILY_FACT = "ansible_os_family"

# No signal at all → assume Linux. Linux is the common case, and a
# wrong guess fails at SSH connect time rather than silently.
DEFAULT_FAMILY_POLICY = "linux"

# "web01 | SUCCESS => {...}" as printed by `ansible -m setup --one-line`
_ONE_LINE_RE = re.compile(r"^(?P<host>\S+) \| (?P<state>[A-Z!]+) => (?P<body>\{.*\})\s*$")


def _contains_any(text: str, markers: tuple[str, ...]) -> bool:
    return any(marker in text for marker in markers)


def parse_host_facts(text: str) -> dict[str, str]:
    """Map each host in one-line fact output to its ``ansible_os_family``.

    Hosts that answered without the fact (unreachable, failed) map to
    ``""``. Lines in any other shape are ignored.
    """
    hosts: dict[str, str] = {}
    for line in text.splitlines():
        match = _ONE_LINE_RE.match(line.strip())
        if not match:
            continue
        try:
            body = json.loads(match.group("body"))
        except ValueError:
            body = {}
        facts = body.get("ansible_facts") if isinstance(body, dict) else None
        family = facts.get(OS_FAMILY_FACT, "") if isinstance(facts, dict) else ""
        hosts[match.group("host")] = str(family)
    return hosts


def apply_default_policy(profile: OsProfile) -> OsProfile:
    """Turn an unknown profile into the default Linux-only profile."""
    if not profile.is_unknown:
        return profile
    return OsProfile(has_linux=True, has_windows=False, defaulted=True)


class HostClassifier:
    """Classify a ``TargetSpec`` into an ``OsProfile``.

    Stateless between calls: target membership may change between
    runs, so nothing is cached.
    """

    def __init__(self, inventory: InventorySource):
        self._inventory = inventory

    def classify(self, target: TargetSpec) -> OsProfile:
        return self.classify_detailed(target).profile

    def classify_detailed(self, target: TargetSpec) -> Classification:
        """Classify and report whether the inventory contributed."""
        inventory_text, reason = self._query(target)

        has_windows = False
        has_linux = False

        if inventory_text:
            text = inventory_text.lower()
            has_windows = _contains_any(text, WINDOWS_FACT_MARKERS)
            has_linux = _contains_any(text, LINUX_FACT_MARKERS)

        name = target.expression.lower()
        windows_named = _contains_any(name, WINDOWS_NAME_MARKERS)
        if windows_named:
            if not has_windows:
                logger.debug("Windows inferred from target name: %s", target.expression)
            has_windows = True
        if _contains_any(name, LINUX_NAME_MARKERS):
            has_linux = True
        elif not windows_named and _contains_any(name, LINUX_ROLE_MARKERS):
            has_linux = True

        profile = apply_default_policy(
            OsProfile(has_linux=has_linux, has_windows=has_windows)
        )
        if profile.defaulted:
            logger.info(
                "No OS signal for '%s', defaulting to %s", target.expression, DEFAULT_FAMILY_POLICY
            )
        logger.info("Target '%s' classified as %s", target.expression, profile.family.value)

        if reason:
            return Classification.degraded(profile, reason)
        return Classification.success(profile, parse_host_facts(inventory_text))

    def _query(self, target: TargetSpec) -> tuple[str, str]:
        """Return ``(inventory_text, degraded_reason)``."""
        try:
            return (
                self._inventory.gather_facts(target.expression, target.inventory, OS_FAMILY_FACT),
                "",
            )
        except InventoryUnavailable as e:
            logger.debug("Fact query failed, trying host listing: %s", e)

        try:
            return self._inventory.list_hosts(target.expression, target.inventory), ""
        except InventoryUnavailable as e:
            logger.warning("Cannot determine OS of '%s': %s", target.expression, e)
            return "", str(e)
