"""
Secret redaction — mask credential-like values before they leave a run.

A variable is secret when its lowercased name contains one of
``SECRET_NAME_PATTERNS``. This is the single source of truth::

    from playbook_dispatch.core.redaction import is_secret_name
    is_secret_name("WIN_PASSWORD")  # → True
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

SECRET_NAME_PATTERNS = (
    "password",
    "passwd",
    "secret",
    "token",
    "private_key",
    "api_key",
)

MASK = "********"


def is_secret_name(name: str) -> bool:
    """Classify a variable name as secret based on name patterns."""
    lower = name.lower()
    return any(pattern in lower for pattern in SECRET_NAME_PATTERNS)


def secret_values(variables: Mapping[str, str]) -> list[str]:
    """Values of every secret-named entry in ``variables``."""
    return [v for k, v in variables.items() if v and is_secret_name(k)]


def redact(text: str, values: Iterable[str] = ()) -> str:
    """Mask secrets in ``text``.

    Two passes: every literal occurrence of a known secret value, then
    any ``name=value`` / ``name: value`` pair whose name looks secret.
    """
    if not text:
        return text

    # Longest first so a value containing another is masked whole
    for value in sorted({v for v in values if v}, key=len, reverse=True):
        text = text.replace(value, MASK)

    return _ASSIGNMENT_RE.sub(_mask_assignment, text)


# name=value, name: value, and JSON "name": "value"
_ASSIGNMENT_RE = re.compile(
    r"""(?P<q>["']?)(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?P=q)(?P<sep>\s*[=:]\s*)"""
    r"""(?P<value>"(?:[^"\\]|\\.)*"|"[^"]*"|'[^']*'|[^\s,;'"}]+)"""
)


def _mask_assignment(match: re.Match[str]) -> str:
    name = match.group("name")
    if not is_secret_name(name) or match.group("value") == MASK:
        return match.group(0)
    quote = match.group("q")
    return f"{quote}{name}{quote}{match.group('sep')}{MASK}"
