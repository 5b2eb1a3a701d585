"""
Command and ExecutionOutcome — what gets run and what came of it.

A ``Command`` is an argument list plus the environment it needs; it
is never a shell string. An ``ExecutionOutcome`` is created once per
run, frozen, and handed to the notification sink.
"""

from __future__ import annotations

import shlex
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from playbook_dispatch.core.redaction import is_secret_name, redact


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Command(BaseModel):
    """A directly executable command description."""

    model_config = ConfigDict(frozen=True)

    argv: tuple[str, ...]
    env: dict[str, str] = Field(default_factory=dict)

    @property
    def program(self) -> str:
        return self.argv[0] if self.argv else ""

    def count(self, arg: str) -> int:
        """How many times ``arg`` appears in the argument list."""
        return sum(1 for a in self.argv if a == arg)

    def display(self) -> str:
        """Shell-quoted one-liner with secret values masked, for logs."""
        secrets = [v for k, v in self.env.items() if is_secret_name(k)]
        return redact(shlex.join(self.argv), secrets)

    def __repr__(self) -> str:
        # env may hold passwords; never show it
        return f"Command({self.display()!r}, env_keys={sorted(self.env)!r})"


class ExecutionOutcome(BaseModel):
    """Structured result of one deployment run."""

    model_config = ConfigDict(frozen=True)

    success: bool
    exit_code: int = -1
    duration_ms: int = 0

    stdout: str = ""
    stderr: str = ""
    error_message: str | None = None
    error_kind: str | None = None
    timed_out: bool = False

    operation_id: str = ""
    family: str | None = None                 # OsFamily value, None if not classified
    stages: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)

    @property
    def status(self) -> str:
        return "success" if self.success else "failure"

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
