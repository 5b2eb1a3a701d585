"""
Command builder — turn a DeployConfig into an ansible-playbook argv.

Rules are applied in a fixed order:

    1. base         ansible-playbook <playbook_dir>/<playbook> [-i inv] --forks N
    2. limit        --limit=<targets>          (skipped for "all")
    3. become       --become --become-user=X   (skipped for Windows-only)
    4. tags         --tags=... / --skip-tags=...
    5. check mode   --check
    6. verbosity    -vvv
    7. extra vars   caller vars, then HOST=<targets>, one JSON object each

``HOST`` is always injected last and always wins over a caller
supplied ``HOST``. Playbooks rely on it to know their target.
"""

from __future__ import annotations

import json
import logging
import os

from playbook_dispatch.core.models.config import ALL_HOSTS, DeployConfig
from playbook_dispatch.core.models.credentials import CredentialBundle
from playbook_dispatch.core.models.outcome import Command
from playbook_dispatch.core.models.target import OsProfile

logger = logging.getLogger(__name__)

HOST_VAR = "HOST"
CHECK_FLAG = "--check"
VERBOSE_FLAG = "-vvv"

# Extra vars that would switch check mode back off inside the play
_CHECK_MODE_OVERRIDES = frozenset({"ansible_check_mode"})


def encode_extra_var(name: str, value: str) -> str:
    """Encode one variable as an ``--extra-vars`` argument.

    ansible-playbook reads an argument starting with ``{`` as JSON, so
    any value (trailing backslashes, quotes, ``{{``) arrives unchanged.
    The ``key=value`` form has no escaping that survives every value.
    """
    return json.dumps({name: value}, ensure_ascii=False)


def extra_vars(config: DeployConfig) -> dict[str, str]:
    """Caller vars plus the injected ``HOST``, in argument order."""
    variables = {k: config.ansible_vars[k] for k in sorted(config.ansible_vars)}

    if HOST_VAR in variables and variables[HOST_VAR] != config.target_servers:
        logger.warning(
            "Extra var %s=%r is overridden by the target (%r)",
            HOST_VAR,
            variables[HOST_VAR],
            config.target_servers,
        )
    variables.pop(HOST_VAR, None)

    if config.check_mode:
        for name in _CHECK_MODE_OVERRIDES & variables.keys():
            logger.warning("Dropping extra var %s: check mode cannot be overridden", name)
            variables.pop(name)

    variables[HOST_VAR] = config.target_servers
    return variables


class CommandBuilder:
    """Build the playbook command for one run. Stateless."""

    def build(
        self,
        config: DeployConfig,
        profile: OsProfile,
        bundle: CredentialBundle,
    ) -> Command:
        """Assemble argv and environment.

        Raises:
            MissingParameter / InvalidParameter: From the config precondition.
            RuntimeError: If the bundle was already released.
        """
        config.require_parameters()

        binary = "ansible-playbook"
        if config.ansible_path:
            binary = os.path.join(config.ansible_path, binary)

        # 1. base
        argv = [binary, str(config.playbook_path)]
        if config.inventory:
            argv += ["-i", config.inventory]
        argv += ["--forks", str(config.forks)]

        # 2. host limiting
        if config.target_servers != ALL_HOSTS:
            argv.append(f"--limit={config.target_servers}")

        # 3. privilege escalation
        if config.become and not profile.is_windows_only:
            argv.append("--become")
            if config.become_user:
                argv.append(f"--become-user={config.become_user}")

        # 4. tags
        if config.tags:
            argv.append(f"--tags={config.tags}")
        if config.skip_tags:
            argv.append(f"--skip-tags={config.skip_tags}")

        # 5. check mode
        if config.check_mode:
            argv.append(CHECK_FLAG)

        # 6. verbosity
        if config.verbose:
            argv.append(VERBOSE_FLAG)

        # 7-8. extra vars, one argument each
        for name, value in extra_vars(config).items():
            argv += ["--extra-vars", encode_extra_var(name, value)]

        command = Command(argv=tuple(argv), env=bundle.env())
        if config.check_mode and command.count(CHECK_FLAG) != 1:
            raise RuntimeError(f"{CHECK_FLAG} must appear exactly once in a check-mode command")

        logger.debug("Built command: %s", command.display())
        return command
