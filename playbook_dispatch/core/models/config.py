"""
Deploy configuration — the full invocation descriptor.

Every option has a named default here instead of being merged in
from a defaults map at runtime. Field aliases accept the camelCase
names used by pipeline callers (``targetServers``, ``ansibleVars``...).
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from playbook_dispatch.core.errors import InvalidParameter, MissingParameter

DEFAULT_TIMEOUT = 3600
DEFAULT_FORKS = 10
DEFAULT_BECOME_USER = "root"
DEFAULT_LINUX_CREDENTIAL_ID = "ssh-key-ansible-user-secret-file"
DEFAULT_WINDOWS_CREDENTIAL_ID = "credentials-id-windows-user-password"

ALL_HOSTS = "all"

_VAR_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def parse_vars_text(text: str) -> dict[str, str]:
    """Parse newline-separated ``key=value`` lines into a mapping.

    Blank lines and lines without ``=`` are ignored. Only the first
    ``=`` splits, so values may contain ``=``.
    """
    result: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or "=" not in line:
            continue
        key, value = line.split("=", 1)
        result[key.strip()] = value.strip()
    return result


class DeployConfig(BaseModel):
    """Everything needed to run one playbook against one target."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    playbook: str = ""
    playbook_dir: str = "."
    inventory: str | None = None
    target_servers: str = Field(default="", alias="targetServers")

    ansible_vars: dict[str, str] = Field(default_factory=dict, alias="ansibleVars")
    tags: str = ""
    skip_tags: str = Field(default="", alias="skipTags")

    check_mode: bool = Field(default=False, alias="checkMode")
    verbose: bool = False
    become: bool = True
    become_user: str = Field(default=DEFAULT_BECOME_USER, alias="becomeUser")

    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)     # seconds
    forks: int = Field(default=DEFAULT_FORKS, ge=1)
    notification: bool = True

    linux_credential_id: str = Field(
        default=DEFAULT_LINUX_CREDENTIAL_ID, alias="linuxCredentialId",
    )
    windows_credential_id: str = Field(
        default=DEFAULT_WINDOWS_CREDENTIAL_ID, alias="windowsCredentialId",
    )
    ansible_path: str = Field(default="", alias="ansiblePath")   # dir holding the ansible binaries

    @field_validator("ansible_vars", mode="before")
    @classmethod
    def _coerce_vars(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, str):
            return parse_vars_text(value)
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value

    @property
    def playbook_path(self) -> Path:
        """Playbook resolved against ``playbook_dir``."""
        return Path(self.playbook_dir) / self.playbook

    def require_parameters(self) -> None:
        """Precondition for building a command.

        Raises:
            MissingParameter: If ``playbook`` or ``target_servers`` is empty.
            InvalidParameter: If an extra variable name is not a valid
                Ansible identifier.
        """
        if not self.playbook.strip():
            raise MissingParameter("playbook")
        if not self.target_servers.strip():
            raise MissingParameter("targetServers")

        invalid = [k for k in self.ansible_vars if not _VAR_NAME_RE.match(k)]
        if invalid:
            raise InvalidParameter(
                f"Invalid Ansible variable names: {', '.join(sorted(invalid))}"
            )

    def summary(self) -> dict[str, Any]:
        """Non-secret fields for reports and notifications."""
        return {
            "playbook": self.playbook,
            "target_servers": self.target_servers,
            "inventory": self.inventory,
            "tags": self.tags or "all",
            "skip_tags": self.skip_tags,
            "check_mode": self.check_mode,
        }
