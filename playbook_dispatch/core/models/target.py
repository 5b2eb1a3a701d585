"""
Target and classification models.

A ``TargetSpec`` says what to operate on. An ``OsProfile`` says what
kind of hosts it turned out to be. A ``Classification`` wraps the
profile with how trustworthy the answer is.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class OsFamily(str, Enum):
    """The four states a classified profile can be in."""

    LINUX = "linux"
    WINDOWS = "windows"
    MIXED = "mixed"
    DEFAULT_LINUX = "default_linux"   # no signal at all, Linux assumed


class TargetSpec(BaseModel):
    """A host/group expression plus the inventory it resolves against."""

    model_config = ConfigDict(frozen=True)

    expression: str
    inventory: str | None = None


class OsProfile(BaseModel):
    """OS families present in a target set."""

    model_config = ConfigDict(frozen=True)

    has_linux: bool = False
    has_windows: bool = False
    defaulted: bool = False           # Linux was assumed, not observed

    @property
    def is_mixed(self) -> bool:
        return self.has_linux and self.has_windows

    @property
    def is_unknown(self) -> bool:
        return not self.has_linux and not self.has_windows

    @property
    def is_windows_only(self) -> bool:
        return self.has_windows and not self.has_linux

    @property
    def family(self) -> OsFamily:
        """Which of the mutually exclusive families this profile is.

        Raises:
            ValueError: If the profile is still unknown (never classified).
        """
        if self.is_mixed:
            return OsFamily.MIXED
        if self.has_windows:
            return OsFamily.WINDOWS
        if self.has_linux:
            return OsFamily.DEFAULT_LINUX if self.defaulted else OsFamily.LINUX
        raise ValueError("OsProfile is unknown; apply the default policy first")


class Classification(BaseModel):
    """Result of classifying a target.

    ``ok`` means the inventory answered; ``degraded`` means it did not
    and only the name heuristic (or the default) was used. Both carry
    a usable profile.
    """

    model_config = ConfigDict(frozen=True)

    status: Literal["ok", "degraded"] = "ok"
    profile: OsProfile
    reason: str = ""
    hosts: dict[str, str] = Field(default_factory=dict)   # hostname -> os family ("" if unreachable)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(cls, profile: OsProfile, hosts: dict[str, str] | None = None) -> Classification:
        return cls(status="ok", profile=profile, hosts=hosts or {})

    @classmethod
    def degraded(cls, profile: OsProfile, reason: str) -> Classification:
        return cls(status="degraded", profile=profile, reason=reason)
