"""Loading of `.flattener.toml` configuration files.

Example:

    profile = "backend"
    max_size = 1.5
    exclude_dirs = ["fixtures"]
    respect_gitignore = false

    [profiles.backend]
    extends = "rust"
    extensions = [".ron"]
    exclude_globs = ["src/generated/**"]
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tomlkit.exceptions import TOMLKitError

from code_flattener.config import DEFAULT_CONFIG_FILE, MIB
from code_flattener.exceptions import ConfigFileError, FlattenerError
from code_flattener.logging import logger
from code_flattener.profiles import Profile

if TYPE_CHECKING:
    from code_flattener.registry import ProfileRegistry


def mb_to_bytes(megabytes: float) -> int:
    """Convert a size in megabytes (MiB) to bytes."""
    return int(megabytes * MIB)


def _validation_details(error: ValidationError) -> list[str]:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in error.errors()]


class ProfileDefinition(BaseModel):
    """A `[profiles.<name>]` table as written by the user."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    description: str | None = None
    extends: str | None = Field(default=None, alias="profile")
    extensions: list[str] | None = None
    allowed_filenames: list[str] | None = None
    include_globs: list[str] | None = None
    exclude_globs: list[str] | None = None
    max_depth: int | None = Field(default=None, ge=0)
    max_size: float | None = Field(default=None, ge=0, description="Size bound in MB.")
    max_file_size_bytes: int | None = Field(default=None, ge=0)
    exclude_common_dependency_dirs: bool | None = None
    exclude_hidden_dirs: bool | None = None
    markdown: bool | None = None

    def to_profile(self, name: str) -> Profile:
        """Build the immutable Profile.

        Raises:
            MalformedGlobPatternError: if a glob cannot be compiled
        """
        size = self.max_file_size_bytes
        if size is None and self.max_size is not None:
            size = mb_to_bytes(self.max_size)
        return Profile(
            name=name,
            description=self.description or "",
            extends=self.extends,
            extensions=self.extensions or (),
            allowed_filenames=self.allowed_filenames or (),
            include_globs=self.include_globs or (),
            exclude_globs=self.exclude_globs or (),
            max_depth=self.max_depth,
            max_file_size_bytes=size,
            exclude_common_dependency_dirs=self.exclude_common_dependency_dirs,
            exclude_hidden_dirs=self.exclude_hidden_dirs,
            markdown=self.markdown,
        )


class ConfigFile(BaseModel):
    """Top-level structure of the configuration file.

    Selection keys at the top level act as defaults for command-line flags.
    Profile tables are kept raw so that one malformed profile does not prevent
    the others from loading.
    """

    model_config = ConfigDict(extra="ignore")

    profile: str | None = None
    extensions: list[str] | None = None
    allowed_filenames: list[str] | None = None
    include_globs: list[str] | None = None
    exclude_globs: list[str] | None = None
    max_size: float | None = Field(default=None, ge=0)
    max_depth: int | None = Field(default=None, ge=0)
    markdown: bool | None = None
    exclude_node_modules: bool | None = None
    exclude_build_dirs: bool | None = None
    exclude_hidden_dirs: bool | None = None
    include_dirs: list[str] | None = None
    exclude_dirs: list[str] | None = None
    respect_gitignore: bool | None = None
    ignore_file: str | None = None
    profiles: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def override_defaults(self) -> dict[str, Any]:
        """Map top-level keys onto CliOverrides field names, skipping unset ones."""
        values: dict[str, Any] = {
            "extensions": self.extensions,
            "allowed_filenames": self.allowed_filenames,
            "include_globs": self.include_globs,
            "exclude_globs": self.exclude_globs,
            "max_depth": self.max_depth,
            "markdown": self.markdown,
            "exclude_hidden_dirs": self.exclude_hidden_dirs,
        }
        if self.max_size is not None:
            values["max_file_size_bytes"] = mb_to_bytes(self.max_size)
        if self.exclude_node_modules or self.exclude_build_dirs:
            values["exclude_common_dependency_dirs"] = True
        return {k: v for k, v in values.items() if v is not None}

    def walk_defaults(self) -> dict[str, Any]:
        """Top-level keys feeding WalkOptions, skipping unset ones."""
        values: dict[str, Any] = {
            "include_dirs": self.include_dirs,
            "exclude_dirs": self.exclude_dirs,
            "respect_gitignore": self.respect_gitignore,
            "ignore_file": self.ignore_file,
        }
        return {k: v for k, v in values.items() if v is not None}


def load_config(config_path: Path | None = None) -> ConfigFile | None:
    """Load the configuration file from `config_path` or `.flattener.toml`.

    Args:
        config_path (Path | None): explicit configuration path, if any

    Raises:
        ConfigFileError: if an explicit path does not exist, or the file cannot
            be read, parsed or validated

    Returns:
        ConfigFile | None: the parsed configuration, or None when the default
            file is absent
    """
    path = config_path or Path(DEFAULT_CONFIG_FILE)
    if not path.exists():
        if config_path is not None:
            raise ConfigFileError(file=path, message="Configuration file not found.")
        return None
    try:
        doc = tomlkit.parse(path.read_text(encoding="utf-8"))
    except (OSError, TOMLKitError) as e:
        raise ConfigFileError(file=path, message="Failed to parse config file.", details=[str(e)]) from e
    try:
        config = ConfigFile.model_validate(doc.unwrap())
    except ValidationError as e:
        raise ConfigFileError(
            file=path,
            message="Invalid configuration.",
            details=_validation_details(e),
        ) from e
    logger.info("Loaded configuration", file=str(path), profiles=sorted(config.profiles))
    return config


def register_user_profiles(registry: ProfileRegistry, config: ConfigFile, source: Path | None = None) -> None:
    """Register every `[profiles.*]` table, recording per-profile load errors.

    A table that fails validation (including a malformed glob) is stored as an
    error under its name: resolving that profile fails, the others stay usable.
    """
    origin = source or Path(DEFAULT_CONFIG_FILE)
    for name, raw in config.profiles.items():
        try:
            profile = ProfileDefinition.model_validate(raw).to_profile(name)
        except ValidationError as e:
            error: FlattenerError = ConfigFileError(
                file=origin,
                message=f"Invalid profile '{name}'.",
                details=_validation_details(e),
            )
        except FlattenerError as e:
            error = e
        else:
            registry.register(profile, override=True)
            continue
        logger.warning("Profile %s could not be loaded: %s", name, error)
        registry.register_error(name, error)
