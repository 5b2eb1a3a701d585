"""
Environment credential store — credentials injected by the CI runner.

The identifier is upper-cased with non-alphanumerics turned into
underscores to form a prefix. For ``ssh-key-ansible-user-secret-file``
the store reads ``SSH_KEY_ANSIBLE_USER_SECRET_FILE_USERNAME`` plus
``..._PRIVATE_KEY`` or ``..._PRIVATE_KEY_FILE``; username/password
credentials read ``..._USERNAME`` and ``..._PASSWORD``.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path

from playbook_dispatch.adapters.base import CredentialStore
from playbook_dispatch.core.errors import CredentialNotFound


def env_prefix(credential_id: str) -> str:
    """Environment variable prefix for a credential identifier."""
    return re.sub(r"[^A-Za-z0-9]+", "_", credential_id).strip("_").upper()


class EnvCredentialStore(CredentialStore):
    """Read-only store backed by environment variables."""

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = os.environ if environ is None else environ

    def get_ssh_key(self, credential_id: str) -> tuple[str, str]:
        prefix = env_prefix(credential_id)
        username = self._require(credential_id, f"{prefix}_USERNAME")

        key = self._environ.get(f"{prefix}_PRIVATE_KEY")
        if key:
            return key, username

        key_file = self._environ.get(f"{prefix}_PRIVATE_KEY_FILE")
        if key_file:
            try:
                return Path(key_file).expanduser().read_text(encoding="utf-8"), username
            except OSError as e:
                raise CredentialNotFound(credential_id, f"cannot read {key_file}: {e}") from e

        raise CredentialNotFound(
            credential_id, f"set {prefix}_PRIVATE_KEY or {prefix}_PRIVATE_KEY_FILE"
        )

    def get_username_password(self, credential_id: str) -> tuple[str, str]:
        prefix = env_prefix(credential_id)
        username = self._require(credential_id, f"{prefix}_USERNAME")
        password = self._require(credential_id, f"{prefix}_PASSWORD")
        return username, password

    def _require(self, credential_id: str, var: str) -> str:
        value = self._environ.get(var)
        if not value:
            raise CredentialNotFound(credential_id, f"{var} is not set")
        return value
