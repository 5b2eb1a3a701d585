"""Playbook Dispatch — credential-routing ansible-playbook dispatcher."""

__version__ = "0.1.0"
