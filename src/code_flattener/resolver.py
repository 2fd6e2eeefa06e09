"""Profile resolution: registry lookup, `extends` chains and layered merging.

Precedence, lowest to highest: built-in defaults < parent < child < CLI overrides.
Set-valued fields are unioned through inheritance, but a non-empty CLI list
replaces the inherited value outright. Scalars are taken from the highest layer
that defines them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from code_flattener.exceptions import CyclicProfileExtensionError, ProviderUnavailableError
from code_flattener.logging import logger
from code_flattener.matcher import normalize_globs
from code_flattener.profiles import (
    BUILTIN_DEFAULTS,
    SCALAR_FIELDS,
    SET_FIELDS,
    Profile,
    normalize_extensions,
    unique,
)
from code_flattener.providers import ProfileProvider

if TYPE_CHECKING:
    from code_flattener.registry import ProfileRegistry

AD_HOC_PROFILE = "ad-hoc"


class CliOverrides(BaseModel):
    """Highest-precedence layer supplied on the command line.

    A set-valued field left as None (or given as an empty list) inherits from the
    profile; a non-empty list replaces it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    extensions: tuple[str, ...] | None = None
    allowed_filenames: tuple[str, ...] | None = None
    include_globs: tuple[str, ...] | None = None
    exclude_globs: tuple[str, ...] | None = None
    max_depth: int | None = Field(default=None, ge=0)
    max_file_size_bytes: int | None = Field(default=None, ge=0)
    exclude_common_dependency_dirs: bool | None = None
    exclude_hidden_dirs: bool | None = None
    markdown: bool | None = None

    @field_validator("extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Any) -> tuple[str, ...] | None:  # noqa: ANN401
        if value is None:
            return None
        return normalize_extensions(value) or None

    @field_validator("allowed_filenames", mode="before")
    @classmethod
    def _normalize_filenames(cls, value: Any) -> tuple[str, ...] | None:  # noqa: ANN401
        if value is None:
            return None
        return unique(value) or None

    @field_validator("include_globs", "exclude_globs", mode="before")
    @classmethod
    def _normalize_globs(cls, value: Any) -> tuple[str, ...] | None:  # noqa: ANN401
        if value is None:
            return None
        return normalize_globs(value, profile="command line") or None


class ResolvedProfile(BaseModel):
    """The fully merged, parent-free rule set applied by the file selector."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    extensions: tuple[str, ...] = ()
    allowed_filenames: tuple[str, ...] = ()
    include_globs: tuple[str, ...] = ()
    exclude_globs: tuple[str, ...] = ()
    max_depth: int | None = None
    max_file_size_bytes: int
    exclude_common_dependency_dirs: bool
    exclude_hidden_dirs: bool = False
    markdown: bool = False
    source_chain: tuple[str, ...] = Field(default=(), description="Profiles merged, parent first.")
    warnings: tuple[str, ...] = Field(default=(), description="Non-fatal diagnostics.")

    @property
    def selects_anything(self) -> bool:
        return bool(self.extensions or self.allowed_filenames or self.include_globs)


def merge_profiles(parent: Profile, child: Profile) -> Profile:
    """Merge `child` over `parent`: sets are unioned, defined child scalars win.

    Args:
        parent (Profile): the lower-precedence layer
        child (Profile): the higher-precedence layer

    Returns:
        Profile: a parent-free profile named after the child
    """
    values: dict[str, Any] = {
        "name": child.name,
        "description": child.description or parent.description,
    }
    for field in SET_FIELDS:
        values[field] = (*getattr(parent, field), *getattr(child, field))
    for field in SCALAR_FIELDS:
        child_value = getattr(child, field)
        values[field] = child_value if child_value is not None else getattr(parent, field)
    return Profile(**values)


class ProfileResolver:
    """Turns a requested profile name plus CLI overrides into a ResolvedProfile.

    Provider-backed profiles are materialized at most once per resolver, so a
    resolver should live for exactly one run.
    """

    def __init__(self, registry: ProfileRegistry, defaults: Profile = BUILTIN_DEFAULTS) -> None:
        self.registry = registry
        self.defaults = defaults
        self._materialized: dict[str, tuple[Profile, str | None]] = {}

    def resolve(
        self,
        requested_name: str | None,
        cli_overrides: CliOverrides | None = None,
    ) -> ResolvedProfile:
        """Resolve a profile name into the effective rule set.

        Args:
            requested_name (str | None): registered profile name, or None for an
                ad-hoc profile built from the overrides alone
            cli_overrides (CliOverrides | None): command-line overrides

        Raises:
            UnknownProfileError: if the profile or one of its ancestors is not registered
            CyclicProfileExtensionError: if the `extends` chain loops
            MalformedGlobPatternError: if a user profile failed to load for that reason

        Returns:
            ResolvedProfile: the merged, parent-free profile
        """
        overrides = cli_overrides or CliOverrides()
        warnings: list[str] = []
        if requested_name is None:
            profile, chain = Profile(name=AD_HOC_PROFILE, description="Ad-hoc filters."), ()
        else:
            profile, chain = self._resolve_chain(requested_name, (), warnings, baseline=False)

        merged = merge_profiles(self.defaults, profile)
        values = merged.model_dump(exclude={"extends"})
        for field in (*SET_FIELDS, *SCALAR_FIELDS):
            override = getattr(overrides, field)
            if override is not None:
                values[field] = override

        resolved = ResolvedProfile(**values, source_chain=chain, warnings=tuple(warnings))
        logger.info(
            "Resolved profile",
            profile=resolved.name,
            chain=list(chain),
            extensions=list(resolved.extensions),
            allowed_filenames=list(resolved.allowed_filenames),
            include_globs=list(resolved.include_globs),
            exclude_globs=list(resolved.exclude_globs),
            max_file_size_bytes=resolved.max_file_size_bytes,
        )
        return resolved

    def _resolve_chain(
        self,
        name: str,
        visited: tuple[tuple[str, bool], ...],
        warnings: list[str],
        *,
        baseline: bool,
    ) -> tuple[Profile, tuple[str, ...]]:
        key = (name, baseline)
        if key in visited:
            raise CyclicProfileExtensionError(chain=(*(n for n, _ in visited), name))
        visited = (*visited, key)

        entry = self.registry.get_baseline(name) if baseline else self.registry.get(name)
        if isinstance(entry, ProfileProvider):
            return self._materialize(entry, warnings), (name,)

        if entry.extends is None:
            return entry, (name,)

        parent_name = entry.extends
        if parent_name == name:
            # A user profile extending the built-in it replaces.
            if baseline or not self.registry.has_baseline(name):
                raise CyclicProfileExtensionError(chain=(*(n for n, _ in visited), name))
            logger.debug("Profile %s extends the baseline profile of the same name", name)
            parent, chain = self._resolve_chain(name, visited, warnings, baseline=True)
        else:
            logger.debug("Resolving parent %s for profile %s", parent_name, name)
            parent, chain = self._resolve_chain(parent_name, visited, warnings, baseline=False)
        return merge_profiles(parent, entry), (*chain, name)

    def _materialize(self, provider: ProfileProvider, warnings: list[str]) -> Profile:
        if provider.name not in self._materialized:
            try:
                profile, warning = provider.discover(), None
            except ProviderUnavailableError as e:
                logger.warning("Provider %s unavailable, using fallback profile: %s", provider.name, e.reason)
                profile, warning = provider.fallback, str(e)
            self._materialized[provider.name] = (profile, warning)
        profile, warning = self._materialized[provider.name]
        if warning:
            warnings.append(warning)
        return profile
