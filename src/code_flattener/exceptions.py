from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class FlattenerError(Exception):
    """Base exception for errors in the code_flattener module."""


@dataclass(frozen=True)
class UnknownProfileError(FlattenerError):
    """Raised when a requested profile name is not registered."""

    name: str
    available: tuple[str, ...] = ()

    def __str__(self) -> str:
        msg = f"Unknown profile '{self.name}'"
        if self.available:
            msg += f" (available: {', '.join(self.available)})"
        return msg


@dataclass(frozen=True)
class CyclicProfileExtensionError(FlattenerError):
    """Raised when a chain of `extends` references loops back on itself."""

    chain: tuple[str, ...]

    def __str__(self) -> str:
        return "Cyclic profile extension: " + " -> ".join(self.chain)


@dataclass(frozen=True)
class MalformedGlobPatternError(FlattenerError):
    """Raised when a profile declares a glob pattern that cannot be compiled."""

    pattern: str
    profile: str = ""
    reason: str = ""

    def __str__(self) -> str:
        where = f" in profile '{self.profile}'" if self.profile else ""
        why = f": {self.reason}" if self.reason else ""
        return f"Malformed glob pattern {self.pattern!r}{where}{why}"


@dataclass(frozen=True)
class ProviderUnavailableError(FlattenerError):
    """Raised when an external discovery tool is missing, fails or times out."""

    provider: str
    reason: str

    def __str__(self) -> str:
        return f"Profile provider '{self.provider}' unavailable: {self.reason}"


@dataclass(frozen=True)
class UnreadableFileError(FlattenerError):
    """Raised when a selected file cannot be decoded as text."""

    file: Path
    reason: str = "not valid UTF-8 text"

    def __str__(self) -> str:
        return f"{self.file}: {self.reason}"


@dataclass(frozen=True)
class ConfigFileError(FlattenerError):
    """Raised when the configuration file is missing or cannot be parsed."""

    file: Path
    message: str = "The configuration file could not be loaded."
    details: list[str] = field(default_factory=list, hash=False, compare=False)

    def __str__(self) -> str:
        text = f"{self.file}: {self.message}"
        if self.details:
            text += " (" + "; ".join(self.details) + ")"
        return text


@dataclass(frozen=True)
class EmptyProfileError(FlattenerError):
    """Raised when the effective profile cannot select any file."""

    profile: str
    message: str = "No allowed extensions, filenames, or include globs specified."

    def __str__(self) -> str:
        return f"{self.profile}: {self.message}"


@dataclass(frozen=True)
class DuplicateProfileError(FlattenerError):
    """Raised when a profile name is registered twice without intent to override."""

    name: str

    def __str__(self) -> str:
        return f"Profile '{self.name}' is already registered; pass override=True to replace it"
