"""
Notification sinks.

``LogNotifier`` and ``AuditNotifier`` always record. Sinks that deliver
to a person (the report file) honour ``config.notification``. The
coordinator only ever sees one sink; fan-out is ``CompositeNotifier``'s job.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from playbook_dispatch.adapters.base import NotificationSink
from playbook_dispatch.core.models.config import DeployConfig
from playbook_dispatch.core.models.outcome import ExecutionOutcome
from playbook_dispatch.core.persistence.audit import AuditEntry, AuditWriter
from playbook_dispatch.core.redaction import MASK, is_secret_name

logger = logging.getLogger(__name__)

DEFAULT_REPORT_FILE = "deployment-report.json"

# CI variables copied into reports when present
_CI_ENV_KEYS = ("BUILD_NUMBER", "BUILD_URL", "JOB_NAME")


def redacted_vars(ansible_vars: Mapping[str, str]) -> dict[str, str]:
    return {k: MASK if is_secret_name(k) else v for k, v in ansible_vars.items()}


class LogNotifier(NotificationSink):
    """Log a one-line summary of every outcome."""

    def notify(self, outcome: ExecutionOutcome, config: DeployConfig) -> None:
        if outcome.success:
            logger.info(
                "✓ %s → %s succeeded in %dms",
                config.playbook,
                config.target_servers,
                outcome.duration_ms,
            )
        else:
            logger.error(
                "✗ %s → %s failed after %dms: %s",
                config.playbook or "(no playbook)",
                config.target_servers or "(no target)",
                outcome.duration_ms,
                outcome.error_message,
            )


class AuditNotifier(NotificationSink):
    """Append every outcome to the NDJSON audit ledger."""

    def __init__(self, writer: AuditWriter):
        self._writer = writer

    def notify(self, outcome: ExecutionOutcome, config: DeployConfig) -> None:
        self._writer.write(AuditEntry.from_outcome(outcome, config))


class ReportFileNotifier(NotificationSink):
    """Write a JSON deployment report, overwriting the previous one."""

    def __init__(
        self,
        path: Path = Path(DEFAULT_REPORT_FILE),
        environ: Mapping[str, str] | None = None,
    ):
        self._path = path
        self._environ = os.environ if environ is None else environ

    @property
    def path(self) -> Path:
        return self._path

    def build_report(self, outcome: ExecutionOutcome, config: DeployConfig) -> dict[str, Any]:
        report = config.summary()
        report.update({
            "ansible_vars": redacted_vars(config.ansible_vars),
            "operation_id": outcome.operation_id,
            "status": outcome.status,
            "exit_code": outcome.exit_code,
            "family": outcome.family,
            "duration": f"{outcome.duration_ms / 1000:.1f}s",
            "error": outcome.error_message,
            "warnings": list(outcome.warnings),
            "timestamp": datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S"),
        })
        ci = {k.lower(): self._environ[k] for k in _CI_ENV_KEYS if k in self._environ}
        if ci:
            report["ci"] = ci
        return report

    def notify(self, outcome: ExecutionOutcome, config: DeployConfig) -> None:
        if not config.notification:
            logger.debug("Notifications disabled; skipping report file")
            return

        report = self.build_report(outcome, config)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(report, indent=2) + "\n", encoding="utf-8")
            logger.info("Deployment report saved: %s", self._path)
        except OSError as e:
            logger.warning("Cannot save deployment report %s: %s", self._path, e)


class CompositeNotifier(NotificationSink):
    """Fan one notification out to several sinks.

    A failing sink is logged and skipped; it never stops the others.
    """

    def __init__(self, sinks: list[NotificationSink]):
        self._sinks = list(sinks)

    @property
    def sinks(self) -> list[NotificationSink]:
        return list(self._sinks)

    def notify(self, outcome: ExecutionOutcome, config: DeployConfig) -> None:
        for sink in self._sinks:
            try:
                sink.notify(outcome, config)
            except Exception as e:
                logger.error("Notification sink %s failed: %s", sink.name, e)
