from __future__ import annotations

from enum import StrEnum, auto
from typing import TYPE_CHECKING

from code_flattener.exceptions import DuplicateProfileError, FlattenerError, UnknownProfileError
from code_flattener.logging import logger
from code_flattener.profiles import BUILTIN_PROFILES, Profile
from code_flattener.providers import ProfileProvider

if TYPE_CHECKING:
    from collections.abc import Iterable

    ProfileEntry = Profile | ProfileProvider


class ProfileSource(StrEnum):
    """Where a registered profile comes from."""

    BUILTIN = auto()
    PLUGIN = auto()
    USER = auto()


class ProfileRegistry:
    """Holds built-in, plugin-provided and user-defined profiles.

    Two layers are kept apart: the baseline (built-ins and plugin providers) and
    the user layer loaded from configuration. A user profile with a baseline name
    replaces it for `get`, while `get_baseline` still reaches the original, which
    is what a user profile extending its own name inherits from.

    Instances are independent: build one per run (or per test) and hand it to the
    resolver explicitly.
    """

    def __init__(
        self,
        builtins: Iterable[Profile] = BUILTIN_PROFILES,
        providers: Iterable[ProfileProvider] = (),
    ) -> None:
        self._baseline: dict[str, ProfileEntry] = {}
        self._sources: dict[str, ProfileSource] = {}
        self._user: dict[str, Profile] = {}
        self._errors: dict[str, FlattenerError] = {}
        for profile in builtins:
            self._baseline[profile.name] = profile
            self._sources[profile.name] = ProfileSource.BUILTIN
        for provider in providers:
            self.register_provider(provider)

    def register(self, profile: Profile, *, override: bool = False) -> None:
        """Register a user-defined profile.

        Args:
            profile (Profile): the profile to register
            override (bool): allow replacing a built-in, plugin or user profile of the
                same name

        Raises:
            DuplicateProfileError: if the name is taken and `override` is False
        """
        name = profile.name
        taken = name in self._baseline or name in self._user or name in self._errors
        if taken and not override:
            raise DuplicateProfileError(name=name)
        if name in self._baseline:
            logger.info("User profile %s overrides %s profile", name, self._sources[name])
        self._errors.pop(name, None)
        self._user[name] = profile

    def register_provider(self, provider: ProfileProvider) -> None:
        """Register a lazily materialized profile under the provider's reserved name.

        A provider replaces any baseline entry of the same name.
        """
        self._baseline[provider.name] = provider
        self._sources[provider.name] = ProfileSource.PLUGIN

    def register_error(self, name: str, error: FlattenerError) -> None:
        """Record that the user definition of `name` failed to load.

        `get(name)` re-raises the error; other profiles are unaffected.
        """
        self._user.pop(name, None)
        self._errors[name] = error

    def get(self, name: str) -> ProfileEntry:
        """Look a profile up, user layer first.

        Raises:
            UnknownProfileError: if no profile of that name is registered
            FlattenerError: the recorded load error for a malformed user profile

        Returns:
            Profile | ProfileProvider: the registered entry
        """
        if name in self._errors:
            raise self._errors[name]
        if name in self._user:
            return self._user[name]
        return self.get_baseline(name)

    def get_baseline(self, name: str) -> ProfileEntry:
        """Look a profile up among built-ins and providers only."""
        try:
            return self._baseline[name]
        except KeyError:
            raise UnknownProfileError(name=name, available=tuple(self.names())) from None

    def has_baseline(self, name: str) -> bool:
        return name in self._baseline

    def __contains__(self, name: object) -> bool:
        return name in self._user or name in self._baseline or name in self._errors

    def names(self) -> list[str]:
        return sorted(set(self._baseline) | set(self._user) | set(self._errors))

    def describe(self) -> list[tuple[str, str, str]]:
        """List `(name, description, source)` for every profile, sorted by name."""
        rows: list[tuple[str, str, str]] = []
        for name in self.names():
            if name in self._errors:
                rows.append((name, f"invalid: {self._errors[name]}", ProfileSource.USER.value))
                continue
            if name in self._user:
                profile = self._user[name]
                desc = profile.description or (
                    f"Custom profile extending {profile.extends}" if profile.extends else "Custom profile"
                )
                rows.append((name, desc, ProfileSource.USER.value))
                continue
            entry = self._baseline[name]
            desc = entry.fallback.description if isinstance(entry, ProfileProvider) else entry.description
            rows.append((name, desc, self._sources[name].value))
        return rows
