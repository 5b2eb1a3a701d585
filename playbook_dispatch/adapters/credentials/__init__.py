"""Credential store implementations."""

from playbook_dispatch.adapters.credentials.env_store import EnvCredentialStore
from playbook_dispatch.adapters.credentials.file_store import FileCredentialStore

__all__ = ["EnvCredentialStore", "FileCredentialStore"]
