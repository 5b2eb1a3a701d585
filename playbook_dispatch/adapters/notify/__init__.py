"""Notification sinks — consumers of finished deployment outcomes."""

from playbook_dispatch.adapters.notify.sinks import (
    AuditNotifier,
    CompositeNotifier,
    LogNotifier,
    ReportFileNotifier,
)

__all__ = [
    "AuditNotifier",
    "CompositeNotifier",
    "LogNotifier",
    "ReportFileNotifier",
]
