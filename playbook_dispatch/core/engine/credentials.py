"""
Credential resolver — bind the credentials an OS profile needs.

    Linux-only   → SSH key (written to a private temp file)
    Windows-only → username/password + WinRM NTLM connection mode
    Mixed        → both at once; the inventory picks per host

Acquisition is scoped: use ``acquire()`` as a context manager, or
call ``release()`` on the returned bundle yourself. A missing
credential is fatal and nothing stays bound after the error.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager

from pydantic import SecretStr

from playbook_dispatch.adapters.base import CredentialStore
from playbook_dispatch.core.models.config import (
    DEFAULT_LINUX_CREDENTIAL_ID,
    DEFAULT_WINDOWS_CREDENTIAL_ID,
    DeployConfig,
)
from playbook_dispatch.core.models.credentials import (
    CredentialBundle,
    SshKeyHandle,
    WinRmHandle,
)
from playbook_dispatch.core.models.target import OsProfile

logger = logging.getLogger(__name__)


class CredentialResolver:
    """Map an ``OsProfile`` to a ``CredentialBundle``.

    Args:
        store: Read-only credential store.
        linux_credential_id: Identifier of the SSH key credential.
        windows_credential_id: Identifier of the WinRM credential.
        key_dir: Directory for materialized key files (default: system temp).
    """

    def __init__(
        self,
        store: CredentialStore,
        linux_credential_id: str = DEFAULT_LINUX_CREDENTIAL_ID,
        windows_credential_id: str = DEFAULT_WINDOWS_CREDENTIAL_ID,
        key_dir: str | None = None,
    ):
        self._store = store
        self._linux_id = linux_credential_id
        self._windows_id = windows_credential_id
        self._key_dir = key_dir

    @classmethod
    def for_config(
        cls,
        store: CredentialStore,
        config: DeployConfig,
        key_dir: str | None = None,
    ) -> CredentialResolver:
        return cls(
            store,
            linux_credential_id=config.linux_credential_id,
            windows_credential_id=config.windows_credential_id,
            key_dir=key_dir,
        )

    def resolve(self, profile: OsProfile) -> CredentialBundle:
        """Acquire every credential ``profile`` requires.

        The caller owns the returned bundle and must release it.

        Raises:
            CredentialNotFound: If a required credential is missing.
            ValueError: If the profile is still unknown.
        """
        if profile.is_unknown:
            raise ValueError("Cannot resolve credentials for an unknown profile")

        bundle = CredentialBundle()
        try:
            if profile.has_linux:
                bundle.linux = self._acquire_ssh_key()
            if profile.has_windows:
                bundle.windows = self._acquire_winrm()
        except BaseException:
            bundle.release()
            raise

        logger.info(
            "Credentials bound for %s profile: %s",
            profile.family.value,
            ", ".join(h.credential_id for h in bundle.handles),
        )
        return bundle

    @contextmanager
    def acquire(self, profile: OsProfile) -> Iterator[CredentialBundle]:
        """Resolve credentials and release them when the block exits."""
        bundle = self.resolve(profile)
        try:
            yield bundle
        finally:
            bundle.release()

    def _acquire_ssh_key(self) -> SshKeyHandle:
        key_material, username = self._store.get_ssh_key(self._linux_id)
        key_file = self._write_key_file(key_material)
        logger.debug("SSH key '%s' bound for user %s", self._linux_id, username)
        return SshKeyHandle(
            credential_id=self._linux_id,
            username=username,
            key_file=key_file,
            owns_key_file=True,
        )

    def _acquire_winrm(self) -> WinRmHandle:
        username, password = self._store.get_username_password(self._windows_id)
        logger.warning(
            "WinRM credential '%s' bound with NTLM transport and server "
            "certificate validation DISABLED",
            self._windows_id,
        )
        return WinRmHandle(
            credential_id=self._windows_id,
            username=username,
            password=SecretStr(password),
        )

    def _write_key_file(self, key_material: str) -> str:
        """Write key material to a 0600 temp file and return its path."""
        fd, path = tempfile.mkstemp(prefix="pbd-key-", suffix=".pem", dir=self._key_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(key_material if key_material.endswith("\n") else key_material + "\n")
        except OSError:
            os.unlink(path)
            raise
        os.chmod(path, 0o600)
        return path
