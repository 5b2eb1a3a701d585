"""
Subprocess runner — execute argument-list commands with a hard timeout.

This is the single place where child processes are started. Commands
are never run through a shell. Each child gets its own process group
so a timeout kills the whole tree (ansible forks workers).
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import time

from playbook_dispatch.adapters.base import CommandResult, CommandRunner, ExecutionContext
from playbook_dispatch.core.errors import ExecutionFailure, ExecutionTimeout

logger = logging.getLogger(__name__)

# Seconds between SIGTERM and SIGKILL when a run times out
TERMINATE_GRACE = 5.0


class SubprocessRunner(CommandRunner):
    """Run commands with ``subprocess.Popen`` and capture their output."""

    def __init__(self, terminate_grace: float = TERMINATE_GRACE):
        self._terminate_grace = terminate_grace

    def is_available(self, program: str) -> bool:
        return shutil.which(program) is not None

    def execute(self, context: ExecutionContext) -> CommandResult:
        command = context.command
        env = os.environ.copy()
        env.update(command.env)

        logger.debug("Executing: %s (cwd=%s)", command.display(), context.cwd)
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                list(command.argv),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                encoding="utf-8",
                errors="replace",
                env=env,
                cwd=context.cwd,
                start_new_session=True,
            )
        except OSError as e:
            raise ExecutionFailure(f"Cannot start {command.program}: {e}") from e

        try:
            stdout, stderr = proc.communicate(timeout=context.timeout)
        except subprocess.TimeoutExpired:
            stdout, stderr = self._terminate(proc)
            logger.error(
                "Command timed out after %ss, process group %d terminated",
                context.timeout,
                proc.pid,
            )
            raise ExecutionTimeout(context.timeout, stdout=stdout, stderr=stderr)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug("Exit %d after %dms", proc.returncode, elapsed_ms)
        return CommandResult(
            exit_code=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration_ms=elapsed_ms,
        )

    def _terminate(self, proc: subprocess.Popen) -> tuple[str, str]:
        """SIGTERM the process group, then SIGKILL after the grace period."""
        self._signal_group(proc, signal.SIGTERM)
        try:
            stdout, stderr = proc.communicate(timeout=self._terminate_grace)
        except subprocess.TimeoutExpired:
            self._signal_group(proc, signal.SIGKILL)
            stdout, stderr = proc.communicate()
        return stdout or "", stderr or ""

    @staticmethod
    def _signal_group(proc: subprocess.Popen, sig: int) -> None:
        try:
            os.killpg(os.getpgid(proc.pid), sig)
        except ProcessLookupError:
            pass
