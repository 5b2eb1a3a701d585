"""
Logging configuration for the dispatcher CLI.

main.py calls ``setup_logging`` once; modules log through
``logging.getLogger(__name__)`` as usual.

Console level precedence::

    --debug / --verbose / --quiet  >  PBD_LOG_LEVEL  >  WARNING

A second, independent file handler is attached when PBD_LOG_FILE is
set (its level comes from PBD_LOG_FILE_LEVEL). Both handlers pass
records through ``SecretMaskingFilter`` so a ``password=...`` that
slips into a log call never reaches the terminal or a CI artifact.
"""

from __future__ import annotations

import logging
import sys

from playbook_dispatch.core.redaction import redact

# level -> (format, datefmt) for the console
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s %(levelname)-5s %(message)s", "%H:%M:%S"),
}
_CONSOLE_DEFAULT = ("%(levelname)s: %(message)s", None)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(process)d] %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%dT%H:%M:%S"

# Loggers that stay at WARNING unless the console is at DEBUG
_CHATTY_LOGGERS = ("playbook_dispatch.adapters.ansible",)


class SecretMaskingFilter(logging.Filter):
    """Mask secret-looking ``name=value`` pairs in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = redact(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def level_number(name: str | None) -> int:
    """Numeric level for ``name``; unknown or empty names mean WARNING."""
    value = logging.getLevelName(name.upper()) if name else None
    return value if isinstance(value, int) else logging.WARNING


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env_level: str | None = None,
) -> str:
    """Console level name from CLI flags, else the env var."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return env_level or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_inventory: bool = True,
) -> None:
    """(Re)configure the root logger for this process.

    Args:
        level: Console level name.
        log_file: Optional log file path, appended to.
        log_file_level: Level for the file; defaults to ``level``.
        quiet_inventory: Hold the inventory adapter's per-host chatter at
            WARNING unless the console is at DEBUG.
    """
    console_level = level_number(level)
    fmt, datefmt = _CONSOLE_FORMATS.get(console_level, _CONSOLE_DEFAULT)
    masking = SecretMaskingFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    console.addFilter(masking)
    handlers: list[logging.Handler] = [console]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level_number(log_file_level) if log_file_level else console_level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        file_handler.addFilter(masking)
        handlers.append(file_handler)

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
        if any(isinstance(f, SecretMaskingFilter) for f in old.filters):
            old.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(h.level for h in handlers))

    chatty_level = logging.WARNING if quiet_inventory and console_level > logging.DEBUG else logging.NOTSET
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)
