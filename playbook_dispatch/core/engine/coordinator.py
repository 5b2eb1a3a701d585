"""
Execution coordinator — the central orchestration of one deployment.

Flow:
    init → classifying → resolving_credentials → validating
         → building_command → executing → succeeded | failed
         → notifying_and_releasing → done

One execution attempt, never retried. Credentials are released and
the notification sink is called on every exit path, exactly once.
Errors raised before execution are re-raised after notification with
the failure outcome attached; execution failures and timeouts are
returned as outcomes.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from playbook_dispatch.adapters.base import (
    CommandRunner,
    CredentialStore,
    ExecutionContext,
    InventorySource,
    NotificationSink,
)
from playbook_dispatch.core.engine.classifier import HostClassifier
from playbook_dispatch.core.engine.command_builder import CommandBuilder
from playbook_dispatch.core.engine.credentials import CredentialResolver
from playbook_dispatch.core.engine.validation import ValidationReport, validate
from playbook_dispatch.core.errors import (
    DispatchError,
    ExecutionFailure,
    ExecutionTimeout,
)
from playbook_dispatch.core.models.config import DeployConfig
from playbook_dispatch.core.models.credentials import CredentialBundle
from playbook_dispatch.core.models.outcome import ExecutionOutcome
from playbook_dispatch.core.models.target import OsProfile, TargetSpec
from playbook_dispatch.core.redaction import redact, secret_values

logger = logging.getLogger(__name__)

# Exit code reported for a run killed by its timeout (same as timeout(1))
TIMEOUT_EXIT_CODE = 124


class Stage(str, Enum):
    INIT = "init"
    CLASSIFYING = "classifying"
    RESOLVING_CREDENTIALS = "resolving_credentials"
    VALIDATING = "validating"
    BUILDING_COMMAND = "building_command"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOTIFYING_AND_RELEASING = "notifying_and_releasing"
    DONE = "done"


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"


@dataclass
class _Run:
    """Mutable bookkeeping for a single ``run()`` call. Never shared."""

    operation_id: str = field(default_factory=generate_operation_id)
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    start: float = field(default_factory=time.monotonic)
    stages: list[Stage] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    secrets: list[str] = field(default_factory=list)
    profile: OsProfile | None = None
    bundle: CredentialBundle | None = None

    # Filled by the executing stage
    exit_code: int = -1
    stdout: str = ""
    stderr: str = ""
    failure: DispatchError | None = None

    def enter(self, stage: Stage) -> None:
        logger.debug("[%s] → %s", self.operation_id, stage.value)
        self.stages.append(stage)

    def release(self) -> None:
        if self.bundle is not None:
            self.bundle.release()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.start) * 1000)


class ExecutionCoordinator:
    """Run deployments: classify → resolve → validate → build → execute → report.

    The coordinator holds only its collaborators. Every ``run()`` call
    builds its own bundle, command and outcome, so concurrent runs on
    one coordinator share no mutable state.

    Args:
        inventory: Inventory queries (classification, membership).
        credentials: Read-only credential store.
        runner: Executes the syntax check and the playbook.
        notifier: Receives exactly one outcome per run.
        builder: Command builder (default: ``CommandBuilder()``).
        key_dir: Where SSH keys are materialized (default: system temp).
        cwd: Working directory for ansible-playbook.
    """

    def __init__(
        self,
        inventory: InventorySource,
        credentials: CredentialStore,
        runner: CommandRunner,
        notifier: NotificationSink,
        builder: CommandBuilder | None = None,
        key_dir: str | None = None,
        cwd: str | None = None,
    ):
        self._inventory = inventory
        self._credentials = credentials
        self._runner = runner
        self._notifier = notifier
        self._classifier = HostClassifier(inventory)
        self._builder = builder or CommandBuilder()
        self._key_dir = key_dir
        self._cwd = cwd

    def run(self, config: DeployConfig) -> ExecutionOutcome:
        """Execute one deployment and report it.

        Returns:
            The outcome, for both successful and failed executions.

        Raises:
            DispatchError: Pre-execution fatal errors (missing parameter,
                credential not found, missing files, syntax error), after
                release and notification. ``error.outcome`` holds the report.
        """
        run = _Run()
        error: Exception | None = None

        logger.info(
            "[%s] Deploying %s → %s",
            run.operation_id,
            config.playbook or "(no playbook)",
            config.target_servers or "(no target)",
        )

        try:
            self._run_stages(config, run)
        except Exception as e:
            error = e
            run.enter(Stage.FAILED)
        finally:
            run.enter(Stage.NOTIFYING_AND_RELEASING)
            run.release()

        # The outcome is the final record, so it is built after done is entered
        run.enter(Stage.DONE)
        outcome = self._make_outcome(run, error)
        self._notify(outcome, config)

        if error is not None:
            if isinstance(error, DispatchError):
                error.outcome = outcome
            else:
                logger.exception("[%s] Unexpected error", run.operation_id, exc_info=error)
            raise error
        return outcome

    def classify(self, config: DeployConfig) -> OsProfile:
        """Classification only, without credentials or execution."""
        return self._classifier.classify(TargetSpec(
            expression=config.target_servers, inventory=config.inventory,
        ))

    def preflight(self, config: DeployConfig) -> ValidationReport:
        """Init and validation checks only. Nothing is executed or bound.

        Raises:
            DispatchError: On the first fatal problem.
        """
        config.require_parameters()
        return validate(config, self._runner, self._inventory)

    # ── Stages ──────────────────────────────────────────────────

    def _run_stages(self, config: DeployConfig, run: _Run) -> None:
        run.enter(Stage.INIT)
        config.require_parameters()
        run.secrets.extend(secret_values(config.ansible_vars))

        run.enter(Stage.CLASSIFYING)
        classification = self._classifier.classify_detailed(TargetSpec(
            expression=config.target_servers, inventory=config.inventory,
        ))
        run.profile = classification.profile
        if not classification.ok:
            run.warnings.append(f"OS classification degraded: {classification.reason}")

        run.enter(Stage.RESOLVING_CREDENTIALS)
        resolver = CredentialResolver.for_config(self._credentials, config, key_dir=self._key_dir)
        run.bundle = resolver.resolve(run.profile)
        run.secrets.extend(run.bundle.secret_values())

        run.enter(Stage.VALIDATING)
        report = validate(config, self._runner, self._inventory, env=run.bundle.env())
        run.warnings.extend(report.warnings)

        run.enter(Stage.BUILDING_COMMAND)
        command = self._builder.build(config, run.profile, run.bundle)
        logger.info("[%s] %s", run.operation_id, command.display())

        run.enter(Stage.EXECUTING)
        self._execute(config, run, ExecutionContext(
            command=command, timeout=config.timeout, cwd=self._cwd,
        ))
        run.enter(Stage.FAILED if run.failure else Stage.SUCCEEDED)

    def _execute(self, config: DeployConfig, run: _Run, context: ExecutionContext) -> None:
        """The single execution attempt. Failures are recorded, not raised."""
        try:
            result = self._runner.execute(context)
        except ExecutionTimeout as e:
            run.exit_code = TIMEOUT_EXIT_CODE
            run.stdout, run.stderr = e.stdout, e.stderr
            run.failure = e
            return
        except ExecutionFailure as e:
            run.failure = e
            return

        run.exit_code = result.exit_code
        run.stdout, run.stderr = result.stdout, result.stderr
        if not result.ok:
            run.failure = ExecutionFailure(
                f"Playbook {config.playbook} failed (exit code {result.exit_code})",
                exit_code=result.exit_code,
            )

    # ── Reporting ───────────────────────────────────────────────

    def _make_outcome(self, run: _Run, error: Exception | None) -> ExecutionOutcome:
        failure: Exception | None = error or run.failure
        message = kind = None

        if failure is not None:
            if isinstance(failure, DispatchError):
                message, kind = failure.message, failure.kind
            else:
                message, kind = f"Unexpected error: {failure}", "internal_error"
            message = redact(message, run.secrets)

        return ExecutionOutcome(
            success=failure is None,
            exit_code=run.exit_code,
            duration_ms=run.elapsed_ms,
            stdout=redact(run.stdout, run.secrets),
            stderr=redact(run.stderr, run.secrets),
            error_message=message,
            error_kind=kind,
            timed_out=isinstance(failure, ExecutionTimeout),
            operation_id=run.operation_id,
            family=run.profile.family.value if run.profile else None,
            stages=tuple(s.value for s in run.stages),
            warnings=tuple(run.warnings),
            started_at=run.started_at,
        )

    def _notify(self, outcome: ExecutionOutcome, config: DeployConfig) -> None:
        try:
            self._notifier.notify(outcome, config)
        except Exception as e:
            logger.error("[%s] Notification failed: %s", outcome.operation_id, e)
