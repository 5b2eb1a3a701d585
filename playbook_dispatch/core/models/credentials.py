"""
Credential models — per-run handles and the bundle that owns them.

A ``CredentialBundle`` lives for exactly one playbook run. Whoever
acquires it must release it; ``release()`` scrubs every handle and
removes any key file written to disk. Releasing twice is a no-op.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from pydantic import BaseModel, PrivateAttr, SecretStr

logger = logging.getLogger(__name__)


class SshKeyHandle(BaseModel):
    """Linux credential: a private key file plus the login user."""

    credential_id: str
    username: str
    key_file: str
    owns_key_file: bool = False      # True when we wrote the file ourselves

    def env(self) -> dict[str, str]:
        return {
            "SSH_KEY_FILE": self.key_file,
            "SSH_USER": self.username,
            "ANSIBLE_PRIVATE_KEY_FILE": self.key_file,
            "ANSIBLE_REMOTE_USER": self.username,
        }


class WinRmHandle(BaseModel):
    """Windows credential: username/password over WinRM.

    The connection mode is NTLM with server certificate validation
    disabled. That relaxation is deliberate for self-signed WinRM
    listeners and is logged on every acquisition.
    """

    credential_id: str
    username: str
    password: SecretStr
    transport: str = "ntlm"
    cert_validation: str = "ignore"

    def env(self) -> dict[str, str]:
        return {
            "WIN_USER": self.username,
            "WIN_PASSWORD": self.password.get_secret_value(),
            "ANSIBLE_WINRM_TRANSPORT": self.transport,
            "ANSIBLE_WINRM_SERVER_CERT_VALIDATION": self.cert_validation,
        }


CredentialHandle = Union[SshKeyHandle, WinRmHandle]


class CredentialBundle(BaseModel):
    """0-2 credential handles bound for a single run."""

    linux: SshKeyHandle | None = None
    windows: WinRmHandle | None = None

    _released: bool = PrivateAttr(default=False)

    @property
    def released(self) -> bool:
        return self._released

    @property
    def handles(self) -> list[CredentialHandle]:
        return [h for h in (self.linux, self.windows) if h is not None]

    def env(self) -> dict[str, str]:
        """Environment variables the run needs to connect.

        Raises:
            RuntimeError: If the bundle was already released.
        """
        if self._released:
            raise RuntimeError("Credential bundle already released")
        env: dict[str, str] = {}
        for handle in self.handles:
            env.update(handle.env())
        return env

    def secret_values(self) -> list[str]:
        """Raw secret strings, for redacting captured output."""
        values = []
        if self.windows is not None:
            values.append(self.windows.password.get_secret_value())
        return [v for v in values if v]

    def release(self) -> None:
        """Scrub all handles and delete owned key files. Idempotent."""
        if self._released:
            return
        self._released = True

        if self.linux is not None and self.linux.owns_key_file:
            try:
                Path(self.linux.key_file).unlink(missing_ok=True)
            except OSError as e:
                logger.error("Failed to remove key file %s: %s", self.linux.key_file, e)

        ids = [h.credential_id for h in self.handles]
        self.linux = None
        self.windows = None
        logger.debug("Released credentials: %s", ", ".join(ids) or "(none)")

    def __enter__(self) -> CredentialBundle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
