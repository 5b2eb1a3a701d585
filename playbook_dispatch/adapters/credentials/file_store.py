"""
File credential store — credentials declared in a YAML file.

Example ``credentials.yml``::

    credentials:
      ssh-key-ansible-user-secret-file:
        type: ssh_key
        username: ansible
        private_key_file: ~/.ssh/ansible_ed25519
      credentials-id-windows-user-password:
        type: username_password
        username: Administrator
        password_env: WIN_ADMIN_PASSWORD

Secrets may be inline (``private_key``, ``password``), on disk
(``private_key_file``) or in the environment (``password_env``).
The file is read once at construction and never written.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ValidationError

from playbook_dispatch.adapters.base import CredentialStore
from playbook_dispatch.core.config.loader import ConfigError
from playbook_dispatch.core.errors import CredentialNotFound

logger = logging.getLogger(__name__)


class CredentialEntry(BaseModel):
    """One credential declaration."""

    type: Literal["ssh_key", "username_password"]
    username: str
    private_key: str | None = None
    private_key_file: str | None = None
    password: str | None = None
    password_env: str | None = None


class FileCredentialStore(CredentialStore):
    """Read-only store backed by a YAML credentials file."""

    def __init__(
        self,
        path: Path,
        environ: Mapping[str, str] | None = None,
    ):
        self._path = path
        self._environ = os.environ if environ is None else environ
        self._entries = self._load(path)

    @property
    def path(self) -> Path:
        return self._path

    def credential_ids(self) -> list[str]:
        return sorted(self._entries)

    def get_ssh_key(self, credential_id: str) -> tuple[str, str]:
        entry = self._entry(credential_id, "ssh_key")

        if entry.private_key:
            return entry.private_key, entry.username

        if entry.private_key_file:
            key_path = Path(entry.private_key_file).expanduser()
            try:
                return key_path.read_text(encoding="utf-8"), entry.username
            except OSError as e:
                raise CredentialNotFound(
                    credential_id, f"cannot read key file {key_path}: {e}"
                ) from e

        raise CredentialNotFound(credential_id, "no private_key or private_key_file")

    def get_username_password(self, credential_id: str) -> tuple[str, str]:
        entry = self._entry(credential_id, "username_password")

        if entry.password is not None:
            return entry.username, entry.password

        if entry.password_env:
            password = self._environ.get(entry.password_env)
            if password is None:
                raise CredentialNotFound(
                    credential_id, f"environment variable {entry.password_env} is not set"
                )
            return entry.username, password

        raise CredentialNotFound(credential_id, "no password or password_env")

    def _entry(self, credential_id: str, kind: str) -> CredentialEntry:
        entry = self._entries.get(credential_id)
        if entry is None:
            raise CredentialNotFound(credential_id)
        if entry.type != kind:
            raise CredentialNotFound(
                credential_id, f"expected type '{kind}', found '{entry.type}'"
            )
        return entry

    @staticmethod
    def _load(path: Path) -> dict[str, CredentialEntry]:
        if not path.is_file():
            raise ConfigError(f"Credentials file not found: {path}")

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read credentials file {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

        raw = data.get("credentials", data)
        if not isinstance(raw, dict):
            raise ConfigError(f"'credentials' in {path} must be a mapping")

        entries: dict[str, CredentialEntry] = {}
        for cred_id, fields in raw.items():
            try:
                entries[str(cred_id)] = CredentialEntry.model_validate(fields)
            except ValidationError as e:
                raise ConfigError(f"Invalid credential '{cred_id}' in {path}: {e}") from e

        logger.debug("Loaded %d credentials from %s", len(entries), path)
        return entries
