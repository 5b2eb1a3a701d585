"""
Tests for the execution coordinator — end-to-end runs with mock adapters.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from playbook_dispatch.adapters.base import CommandResult, NotificationSink
from playbook_dispatch.adapters.mock import (
    MockCommandRunner,
    MockCredentialStore,
    MockInventory,
    RecordingNotifier,
)
from playbook_dispatch.core.engine.command_builder import CommandBuilder
from playbook_dispatch.core.engine.coordinator import TIMEOUT_EXIT_CODE, ExecutionCoordinator
from playbook_dispatch.core.errors import (
    CredentialNotFound,
    MissingParameter,
    PlaybookSyntaxError,
    ResourceNotFound,
)
from playbook_dispatch.core.models.config import (
    DEFAULT_LINUX_CREDENTIAL_ID,
    DEFAULT_WINDOWS_CREDENTIAL_ID,
    DeployConfig,
)
from playbook_dispatch.core.redaction import MASK

WIN_PASSWORD = "S3cret-Pa55"
REDHAT = 'web01 | SUCCESS => {"ansible_facts": {"ansible_os_family": "RedHat"}}'
WINDOWS = 'win01 | SUCCESS => {"ansible_facts": {"ansible_os_family": "Windows"}}'

# The playbook run is the only command carrying --forks; the syntax check is not
PLAYBOOK_RUN = "--forks"


def _playbook_calls(runner: MockCommandRunner):
    return runner.calls_with(PLAYBOOK_RUN)


def _with(config: DeployConfig, **changes) -> DeployConfig:
    return config.model_copy(update=changes)


class TestScenarios:
    """The reference deployment scenarios."""

    def test_linux_target(self, coordinator, deploy_config, runner, notifier, key_dir, credential_store):
        """web01 with RedHat facts → Linux, SSH key, --become, success."""
        outcome = coordinator.run(deploy_config)

        assert outcome.success is True
        assert outcome.exit_code == 0
        assert outcome.family == "linux"
        assert outcome.error_message is None

        [call] = _playbook_calls(runner)
        assert "--become" in call.command.argv
        assert "SSH_KEY_FILE" in call.command.env
        assert "WIN_USER" not in call.command.env
        assert credential_store.lookups == [DEFAULT_LINUX_CREDENTIAL_ID]

        assert notifier.count == 1
        assert notifier.last is outcome
        assert list(key_dir.iterdir()) == []

    def test_windows_by_name(self, credential_store, runner, notifier, key_dir, deploy_config):
        """winweb01 without inventory signal → Windows, no become, WinRM env."""
        coordinator = ExecutionCoordinator(
            inventory=MockInventory(facts="", hosts="  hosts (1):\n    winweb01"),
            credentials=credential_store,
            runner=runner,
            notifier=notifier,
            key_dir=str(key_dir),
        )
        outcome = coordinator.run(_with(deploy_config, target_servers="winweb01"))

        assert outcome.success
        assert outcome.family == "windows"

        [call] = _playbook_calls(runner)
        assert "--become" not in call.command.argv
        env = call.command.env
        assert env["WIN_USER"] == "Administrator"
        assert env["WIN_PASSWORD"] == WIN_PASSWORD
        assert env["ANSIBLE_WINRM_TRANSPORT"] == "ntlm"
        assert env["ANSIBLE_WINRM_SERVER_CERT_VALIDATION"] == "ignore"
        assert "SSH_KEY_FILE" not in env

    def test_mixed_group(self, credential_store, runner, notifier, key_dir, deploy_config):
        """Inventory reports RedHat and Windows → both credentials bound."""
        coordinator = ExecutionCoordinator(
            inventory=MockInventory(facts=f"{REDHAT}\n{WINDOWS}", hosts="  hosts (2):"),
            credentials=credential_store,
            runner=runner,
            notifier=notifier,
            key_dir=str(key_dir),
        )
        outcome = coordinator.run(_with(deploy_config, target_servers="mixedgroup"))

        assert outcome.success
        assert outcome.family == "mixed"
        assert sorted(credential_store.lookups) == sorted(
            [DEFAULT_LINUX_CREDENTIAL_ID, DEFAULT_WINDOWS_CREDENTIAL_ID]
        )

        [call] = _playbook_calls(runner)
        assert {"SSH_KEY_FILE", "ANSIBLE_PRIVATE_KEY_FILE", "WIN_USER", "WIN_PASSWORD"} <= call.command.env.keys()
        assert list(key_dir.iterdir()) == []

    def test_missing_playbook(self, coordinator, deploy_config, runner, inventory, notifier, credential_store):
        """Empty playbook → MissingParameter before anything else runs."""
        with pytest.raises(MissingParameter) as exc_info:
            coordinator.run(_with(deploy_config, playbook=""))

        outcome = exc_info.value.outcome
        assert outcome is not None
        assert outcome.success is False
        assert outcome.error_kind == "missing_parameter"
        assert outcome.stages == ("init", "failed", "notifying_and_releasing", "done")

        assert inventory.queries == []
        assert credential_store.lookups == []
        assert runner.call_count == 0
        assert notifier.count == 1
        assert notifier.last.status == "failure"

    def test_timeout(self, coordinator, deploy_config, runner, notifier, key_dir):
        """Run exceeds its timeout → failed outcome, credentials released."""
        runner.set_timeout(PLAYBOOK_RUN)
        outcome = coordinator.run(_with(deploy_config, timeout=5))

        assert outcome.success is False
        assert outcome.timed_out is True
        assert outcome.exit_code == TIMEOUT_EXIT_CODE
        assert outcome.error_kind == "execution_timeout"
        assert "timed out after 5s" in outcome.error_message
        assert len(_playbook_calls(runner)) == 1
        assert _playbook_calls(runner)[0].timeout == 5
        assert notifier.count == 1
        assert list(key_dir.iterdir()) == []


class TestExecution:
    """One attempt, failures reported."""

    def test_stages_on_success(self, coordinator, deploy_config):
        outcome = coordinator.run(deploy_config)
        assert outcome.stages == (
            "init",
            "classifying",
            "resolving_credentials",
            "validating",
            "building_command",
            "executing",
            "succeeded",
            "notifying_and_releasing",
            "done",
        )
        assert outcome.operation_id.startswith("op-")
        assert outcome.duration_ms >= 0

    def test_nonzero_exit_is_returned(self, coordinator, deploy_config, runner, notifier):
        runner.set_failure(PLAYBOOK_RUN, exit_code=2, stderr="fatal: [web01]: UNREACHABLE!")
        outcome = coordinator.run(deploy_config)

        assert outcome.success is False
        assert outcome.exit_code == 2
        assert outcome.error_kind == "execution_failure"
        assert "exit code 2" in outcome.error_message
        assert "UNREACHABLE" in outcome.stderr
        assert "failed" in outcome.stages
        assert notifier.count == 1

    def test_never_retried(self, coordinator, deploy_config, runner):
        runner.set_failure(PLAYBOOK_RUN, exit_code=4)
        coordinator.run(deploy_config)
        assert len(_playbook_calls(runner)) == 1

    def test_output_captured(self, coordinator, deploy_config, runner):
        runner.set_response(PLAYBOOK_RUN, CommandResult(exit_code=0, stdout="PLAY RECAP ok=3"))
        outcome = coordinator.run(deploy_config)
        assert outcome.stdout == "PLAY RECAP ok=3"

    def test_cwd_passed_to_runner(self, inventory, credential_store, runner, notifier, deploy_config, tmp_path):
        coordinator = ExecutionCoordinator(
            inventory, credential_store, runner, notifier, cwd=str(tmp_path),
        )
        coordinator.run(deploy_config)
        assert _playbook_calls(runner)[0].cwd == str(tmp_path)

    def test_syntax_check_gets_credentials(self, coordinator, deploy_config, runner):
        coordinator.run(deploy_config)
        [check] = runner.calls_with("--syntax-check")
        assert "SSH_KEY_FILE" in check.command.env

    def test_concurrent_runs_are_independent(self, coordinator, deploy_config, key_dir):
        configs = [_with(deploy_config, ansible_vars={"n": str(i)}) for i in range(4)]
        with ThreadPoolExecutor(max_workers=4) as pool:
            outcomes = list(pool.map(coordinator.run, configs))

        assert all(o.success for o in outcomes)
        assert len({o.operation_id for o in outcomes}) == 4
        assert list(key_dir.iterdir()) == []


class TestPreExecutionFailures:
    """Fatal errors before the playbook runs."""

    def test_credential_not_found(self, inventory, runner, notifier, deploy_config, key_dir):
        coordinator = ExecutionCoordinator(
            inventory, MockCredentialStore(), runner, notifier, key_dir=str(key_dir),
        )
        with pytest.raises(CredentialNotFound) as exc_info:
            coordinator.run(deploy_config)

        outcome = exc_info.value.outcome
        assert outcome.error_kind == "credential_not_found"
        assert "resolving_credentials" in outcome.stages
        assert "executing" not in outcome.stages
        assert runner.call_count == 0
        assert notifier.count == 1

    def test_playbook_file_missing(self, coordinator, deploy_config, runner, notifier, key_dir):
        with pytest.raises(ResourceNotFound, match="site.yml"):
            coordinator.run(_with(deploy_config, playbook="missing.yml"))
        assert runner.call_count == 0
        assert notifier.count == 1
        assert list(key_dir.iterdir()) == []

    def test_inventory_file_missing(self, coordinator, deploy_config, ansible_project: Path):
        with pytest.raises(ResourceNotFound, match="Inventory not found"):
            coordinator.run(_with(deploy_config, inventory=str(ansible_project / "nope.ini")))

    def test_syntax_error(self, coordinator, deploy_config, runner, notifier, key_dir):
        runner.set_failure("--syntax-check", exit_code=4, stderr="ERROR! conflicting action statements")
        with pytest.raises(PlaybookSyntaxError, match="conflicting action"):
            coordinator.run(deploy_config)

        assert _playbook_calls(runner) == []
        assert notifier.last.error_kind == "playbook_syntax_error"
        assert list(key_dir.iterdir()) == []

    def test_unexpected_error(self, inventory, credential_store, runner, notifier, deploy_config, key_dir):
        class BrokenBuilder(CommandBuilder):
            def build(self, config, profile, bundle):
                raise RuntimeError("boom")

        coordinator = ExecutionCoordinator(
            inventory, credential_store, runner, notifier,
            builder=BrokenBuilder(), key_dir=str(key_dir),
        )
        with pytest.raises(RuntimeError, match="boom"):
            coordinator.run(deploy_config)

        assert notifier.last.error_kind == "internal_error"
        assert list(key_dir.iterdir()) == []


class TestWarnings:
    """Non-fatal problems are recorded, execution continues."""

    def test_inventory_unavailable(self, credential_store, runner, notifier, deploy_config, key_dir):
        coordinator = ExecutionCoordinator(
            MockInventory(available=False), credential_store, runner, notifier, key_dir=str(key_dir),
        )
        outcome = coordinator.run(deploy_config)

        assert outcome.success
        assert outcome.family == "linux"     # web01 by name
        assert any("classification degraded" in w for w in outcome.warnings)
        assert any("Host lookup" in w for w in outcome.warnings)

    def test_no_matching_hosts(self, credential_store, runner, notifier, deploy_config):
        coordinator = ExecutionCoordinator(
            MockInventory(facts=REDHAT, hosts="  hosts (0):"), credential_store, runner, notifier,
        )
        outcome = coordinator.run(deploy_config)
        assert outcome.success
        assert outcome.warnings == ("No inventory host matches 'web01'",)


class TestRedaction:
    """Secrets never reach the outcome."""

    def test_var_secret_masked_in_output(self, coordinator, deploy_config, runner):
        runner.set_response(
            PLAYBOOK_RUN, CommandResult(exit_code=0, stdout="using hunter2 to connect"),
        )
        outcome = coordinator.run(_with(deploy_config, ansible_vars={"db_password": "hunter2"}))
        assert "hunter2" not in outcome.stdout
        assert MASK in outcome.stdout

    def test_winrm_password_masked_in_stderr(self, credential_store, runner, notifier, deploy_config):
        runner.set_failure(PLAYBOOK_RUN, exit_code=1, stderr=f"ntlm: bad password {WIN_PASSWORD}")
        coordinator = ExecutionCoordinator(MockInventory(facts=WINDOWS), credential_store, runner, notifier)
        outcome = coordinator.run(_with(deploy_config, target_servers="win01"))

        assert WIN_PASSWORD not in outcome.stderr
        assert WIN_PASSWORD not in str(outcome.to_dict())


class TestNotification:
    """Exactly one notification per run, whatever happens."""

    def test_notifier_failure_does_not_break_run(self, inventory, credential_store, runner, deploy_config):
        class ExplodingNotifier(NotificationSink):
            def notify(self, outcome, config):
                raise OSError("smtp down")

        coordinator = ExecutionCoordinator(inventory, credential_store, runner, ExplodingNotifier())
        assert coordinator.run(deploy_config).success

    def test_notification_disabled_still_notifies(self, coordinator, deploy_config, notifier):
        coordinator.run(_with(deploy_config, notification=False))
        assert notifier.count == 1
        assert notifier.notifications[0][1].notification is False


class TestPreflightAndClassify:
    """Partial pipelines that never execute."""

    def test_classify(self, coordinator, deploy_config, credential_store):
        profile = coordinator.classify(deploy_config)
        assert profile.has_linux and not profile.has_windows
        assert credential_store.lookups == []

    def test_preflight(self, coordinator, deploy_config, runner, notifier):
        report = coordinator.preflight(deploy_config)
        assert report.host_count == 1
        assert report.warnings == []
        assert _playbook_calls(runner) == []
        assert notifier.count == 0

    def test_preflight_missing_target(self, coordinator, deploy_config):
        with pytest.raises(MissingParameter):
            coordinator.preflight(_with(deploy_config, target_servers=""))


def test_recording_notifier_starts_empty():
    assert RecordingNotifier().last is None
