"""
Deployment ledger — one NDJSON line per dispatched run.

Lines are only ever appended. ``history`` reads the tail back; nothing
rewrites or prunes the file, so rotating it is left to the operator.

Default location::

    <state dir>/.state/audit.ndjson
"""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, ValidationError

if TYPE_CHECKING:
    from playbook_dispatch.core.models.config import DeployConfig
    from playbook_dispatch.core.models.outcome import ExecutionOutcome

logger = logging.getLogger(__name__)

LEDGER_DIR = ".state"
LEDGER_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """What ran, where, and how it ended."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""

    playbook: str = ""
    target_servers: str = ""
    inventory: str = ""
    family: str = ""               # linux | windows | mixed | default_linux
    check_mode: bool = False

    status: str = ""               # success | failure
    exit_code: int = -1
    duration_ms: int = 0
    error_kind: str = ""

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: ExecutionOutcome, config: DeployConfig) -> AuditEntry:
        return cls(
            operation_id=outcome.operation_id,
            playbook=config.playbook,
            target_servers=config.target_servers,
            inventory=config.inventory or "",
            family=outcome.family or "",
            check_mode=config.check_mode,
            status=outcome.status,
            exit_code=outcome.exit_code,
            duration_ms=outcome.duration_ms,
            error_kind=outcome.error_kind or "",
            errors=[outcome.error_message] if outcome.error_message else [],
            warnings=list(outcome.warnings),
        )


def ledger_path(state_dir: Path | None = None) -> Path:
    """Ledger file under ``state_dir`` (the working directory by default)."""
    return (state_dir or Path()) / LEDGER_DIR / LEDGER_FILE


class AuditWriter:
    """Appends to and reads back the deployment ledger."""

    def __init__(self, path: Path | None = None, project_root: Path | None = None):
        self._path = path if path is not None else ledger_path(project_root)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append ``entry``.

        A ledger that cannot be written is logged, never raised: the
        deployment already happened and its outcome must still reach
        the other sinks.
        """
        line = entry.model_dump_json() + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error("Cannot append to ledger %s: %s", self._path, e)
            return
        logger.debug("Ledger += %s (%s)", entry.operation_id, entry.status)

    def iter_entries(self) -> Iterator[AuditEntry]:
        """Entries oldest first; unparseable lines are skipped with a warning."""
        if not self._path.is_file():
            return
        with self._path.open(encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    yield AuditEntry.model_validate(json.loads(line))
                except (ValueError, ValidationError) as e:
                    logger.warning("%s:%d: skipping bad ledger line: %s", self._path, line_num, e)

    def read_all(self) -> list[AuditEntry]:
        return list(self.iter_entries())

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """Last ``n`` entries, oldest first."""
        return list(deque(self.iter_entries(), maxlen=max(n, 0)))

    def entry_count(self) -> int:
        if not self._path.is_file():
            return 0
        with self._path.open(encoding="utf-8") as f:
            return sum(1 for line in f if line.strip())
