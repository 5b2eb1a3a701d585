"""
Error taxonomy — every way a deployment can stop or degrade.

Fatal errors abort the remaining pipeline (release and notify still
run). Non-fatal errors are recorded and execution continues.

The coordinator attaches the final ``ExecutionOutcome`` to fatal
errors it re-raises, so callers get the report and the exception.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playbook_dispatch.core.models.outcome import ExecutionOutcome


class DispatchError(Exception):
    """Base class for all dispatcher errors."""

    fatal: bool = True
    kind: str = "dispatch_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.outcome: ExecutionOutcome | None = None


# ── Fatal, pre-execution ────────────────────────────────────────


class MissingParameter(DispatchError):
    """A required config field (playbook, target_servers) is empty."""

    kind = "missing_parameter"

    def __init__(self, parameter: str):
        super().__init__(f"Parameter '{parameter}' is mandatory")
        self.parameter = parameter


class InvalidParameter(DispatchError):
    """A config field is present but unusable (e.g. bad variable name)."""

    kind = "invalid_parameter"


class CredentialNotFound(DispatchError):
    """The credential store has no entry for the configured identifier."""

    kind = "credential_not_found"

    def __init__(self, credential_id: str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Credential '{credential_id}' not found{detail}")
        self.credential_id = credential_id


class ResourceNotFound(DispatchError):
    """Playbook or inventory file does not exist."""

    kind = "resource_not_found"


class PlaybookSyntaxError(DispatchError):
    """``ansible-playbook --syntax-check`` rejected the playbook."""

    kind = "playbook_syntax_error"


# ── Fatal, mid-execution ────────────────────────────────────────


class ExecutionTimeout(DispatchError):
    """The playbook run exceeded its wall-clock timeout."""

    kind = "execution_timeout"

    def __init__(self, timeout: float, stdout: str = "", stderr: str = ""):
        super().__init__(f"Execution timed out after {timeout:g}s")
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr


class ExecutionFailure(DispatchError):
    """The playbook run exited non-zero or could not be started."""

    kind = "execution_failure"

    def __init__(self, message: str, exit_code: int = -1):
        super().__init__(message)
        self.exit_code = exit_code


# ── Non-fatal ───────────────────────────────────────────────────


class InventoryUnavailable(DispatchError):
    """The inventory could not be queried. Triggers default classification."""

    fatal = False
    kind = "inventory_unavailable"


class HostMembershipWarning(DispatchError):
    """The target expression matched no hosts, or the lookup failed."""

    fatal = False
    kind = "host_membership_warning"
