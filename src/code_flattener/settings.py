from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from code_flattener.providers import DEFAULT_WP_TIMEOUT

ENV_FILE = find_dotenv(usecwd=True)
load_dotenv(ENV_FILE)


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


class Settings(BaseModel):
    """Configuration settings for one code_flattener invocation.

    Selection flags left as None inherit from the configuration file and then
    from the profile.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    target_dirs: list[Path] = Field(default_factory=lambda: [Path()], description="Walk roots.")
    output: Path | None = Field(default=None, description="Output file; stdout when unset.")
    profile: str | None = Field(default=None, description="Profile name.")
    list_profiles: bool = Field(default=False, description="List profiles and exit.")
    config: Path | None = Field(default=None, description="Configuration file path.")
    log_file: str = Field(default="", description="Log file path.")

    extensions: list[str] | None = Field(default=None, description="Override extensions.")
    allowed_filenames: list[str] | None = Field(default=None, description="Override filenames.")
    include_globs: list[str] | None = Field(default=None, description="Override include globs.")
    exclude_globs: list[str] | None = Field(default=None, description="Override exclude globs.")
    max_size: float | None = Field(default=None, ge=0, description="Maximum file size in MB.")
    max_depth: int | None = Field(default=None, ge=0, description="Maximum walk depth.")
    exclude_hidden_dirs: bool | None = Field(default=None, description="Skip dot-directories.")
    include_dependency_dirs: bool = Field(
        default=False,
        description="Walk node_modules/.git/target-style directories.",
    )
    include_dirs: list[str] | None = Field(default=None, description="Only walk below these directories.")
    exclude_dirs: list[str] | None = Field(default=None, description="Skip these directories.")
    respect_gitignore: bool | None = Field(default=None, description="Honour .gitignore files.")
    ignore_file: str | None = Field(default=None, description="Tool ignore file name.")

    markdown: bool | None = Field(default=None, description="Markdown fenced output.")
    dry_run: bool = Field(default=False, description="Report decisions, read nothing.")
    workers: int = Field(default=1, ge=1, description="Threads evaluating files.")

    wp_cli: str = Field(
        default_factory=lambda: os.environ.get("CODE_FLATTENER_WP_CLI", "wp"),
        description="wp-cli executable.",
    )
    wp_timeout: float = Field(
        default_factory=lambda: _env_float("CODE_FLATTENER_WP_TIMEOUT", DEFAULT_WP_TIMEOUT),
        gt=0,
        description="Timeout for each wp-cli call, in seconds.",
    )
    wp_exclude_plugins: list[str] = Field(default_factory=list, description="Plugin slugs to exclude.")
    wp_include_only_plugins: list[str] = Field(default_factory=list, description="Only these plugins.")
    wp_include_theme: str | None = Field(default=None, description="Theme to include.")
