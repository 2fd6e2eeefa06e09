"""
code_flattener: flatten a directory tree into one text artifact for an LLM.

Overview
--------
A *profile* names a bundle of selection rules (extensions, exact filenames,
include/exclude globs, size and depth bounds). Profiles come from three places:

1) **Built-ins** (`rust`, `python`, `cpp-cmake`, `nextjs-ts-prisma`),
2) **Plugins** (`wordpress`, which asks `wp-cli` for the active theme and
   plugins and falls back to a static profile when `wp` is unavailable),
3) **User profiles** declared in `.flattener.toml` under `[profiles.<name>]`,
   optionally extending another profile.

Command-line selection flags replace the matching profile fields outright.

Usage
-----
Run `code-flattener --help` for full options. Common examples:
    - Rust crate to stdout:
        code-flattener -p rust .

    - Markdown export of a custom profile:
        code-flattener -p backend --markdown -o flat.md .

    - See what would be selected, and why the rest is not:
        code-flattener -p python --dry-run src tests
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from code_flattener import __version__
from code_flattener.config import IGNORE_FILE, WalkOptions
from code_flattener.config_file import load_config, mb_to_bytes, register_user_profiles
from code_flattener.exceptions import EmptyProfileError, FlattenerError
from code_flattener.logging import setup_logging
from code_flattener.output_construction import (
    approx_token_count,
    build_dry_run_report,
    build_markdown,
    build_plain,
)
from code_flattener.providers import WordPressProfileProvider
from code_flattener.registry import ProfileRegistry
from code_flattener.resolver import CliOverrides, ProfileResolver
from code_flattener.selector import FileSelector
from code_flattener.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from code_flattener.config_file import ConfigFile

logger = setup_logging()


def _csv(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _words(value: str) -> list[str]:
    return value.split()


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    p = argparse.ArgumentParser(
        prog="code-flattener",
        description="Flatten code files from directories into one text artifact, with profile support.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("target_dirs", nargs="*", default=["."], help="Directories to walk.")
    p.add_argument("-o", "--output", type=str, default=None, help="Output file (stdout when omitted).")
    p.add_argument("-p", "--profile", type=str, default=None, help="Profile to use.")
    p.add_argument("--list-profiles", action="store_true", help="List profiles and exit.")
    p.add_argument("-c", "--config", type=str, default=None, help="Configuration file path.")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")

    sel = p.add_argument_group("selection (replaces the profile's value)")
    sel.add_argument(
        "-e",
        "--extensions",
        type=_csv,
        action="extend",
        default=None,
        help="Comma-separated extensions, e.g. .py,.toml",
    )
    sel.add_argument(
        "-a",
        "--allowed-filenames",
        type=_words,
        action="extend",
        default=None,
        help="Exact filenames to include; repeat the flag or quote a space-separated list.",
    )
    sel.add_argument(
        "--include-globs",
        type=_csv,
        action="extend",
        default=None,
        help="Comma-separated include globs.",
    )
    sel.add_argument(
        "--exclude-globs",
        type=_csv,
        action="extend",
        default=None,
        help="Comma-separated exclude globs.",
    )
    sel.add_argument("--max-size", type=float, default=None, help="Maximum file size in MB.")
    sel.add_argument("--max-depth", type=int, default=None, help="Maximum directory depth.")
    sel.add_argument(
        "--exclude-hidden-dirs",
        action="store_const",
        const=True,
        default=None,
        help="Skip directories starting with a dot.",
    )
    sel.add_argument(
        "--include-dependency-dirs",
        action="store_true",
        help="Walk node_modules, .git, target, build and similar directories.",
    )

    walk = p.add_argument_group("walk scope")
    walk.add_argument(
        "--include-dirs",
        type=_csv,
        action="extend",
        default=None,
        help="Comma-separated root-relative directories; only files below them are selected.",
    )
    walk.add_argument(
        "--exclude-dirs",
        type=_csv,
        action="extend",
        default=None,
        help="Comma-separated root-relative directories to skip.",
    )
    walk.add_argument(
        "--no-respect-gitignore",
        dest="respect_gitignore",
        action="store_const",
        const=False,
        default=None,
        help="Do not honour .gitignore files.",
    )
    walk.add_argument(
        "--ignore-file",
        type=str,
        default=None,
        help=f"Tool ignore file name (default: {IGNORE_FILE}).",
    )

    out = p.add_argument_group("output")
    out.add_argument(
        "--markdown",
        action="store_const",
        const=True,
        default=None,
        help="Wrap each file in a fenced code block.",
    )
    out.add_argument("--dry-run", action="store_true", help="Report selection decisions only.")
    out.add_argument("--workers", type=int, default=1, help="Threads evaluating files.")

    wp = p.add_argument_group("wordpress profile")
    wp.add_argument("--wp-exclude-plugins", type=_csv, action="extend", default=[], help="Plugin slugs to exclude.")
    wp.add_argument(
        "--wp-include-only-plugins",
        type=_csv,
        action="extend",
        default=[],
        help="Only include these plugin slugs.",
    )
    wp.add_argument("--wp-include-theme", type=str, default=None, help="Theme to include.")

    a = p.parse_args(argv)
    return Settings(
        target_dirs=[Path(d) for d in a.target_dirs],
        output=Path(a.output) if a.output else None,
        profile=a.profile,
        list_profiles=a.list_profiles,
        config=Path(a.config) if a.config else None,
        log_file=a.log_file,
        extensions=a.extensions,
        allowed_filenames=a.allowed_filenames,
        include_globs=a.include_globs,
        exclude_globs=a.exclude_globs,
        max_size=a.max_size,
        max_depth=a.max_depth,
        exclude_hidden_dirs=a.exclude_hidden_dirs,
        include_dependency_dirs=a.include_dependency_dirs,
        include_dirs=a.include_dirs,
        exclude_dirs=a.exclude_dirs,
        respect_gitignore=a.respect_gitignore,
        ignore_file=a.ignore_file,
        markdown=a.markdown,
        dry_run=a.dry_run,
        workers=a.workers,
        wp_exclude_plugins=a.wp_exclude_plugins,
        wp_include_only_plugins=a.wp_include_only_plugins,
        wp_include_theme=a.wp_include_theme,
    )


def build_registry(settings: Settings, config: ConfigFile | None) -> ProfileRegistry:
    """Built-ins, the WordPress provider rooted at the first target, then user profiles."""
    provider = WordPressProfileProvider(
        root=settings.target_dirs[0],
        wp_cli=settings.wp_cli,
        timeout=settings.wp_timeout,
        exclude_plugins=settings.wp_exclude_plugins,
        include_only_plugins=settings.wp_include_only_plugins,
        include_theme=settings.wp_include_theme,
    )
    registry = ProfileRegistry(providers=[provider])
    if config is not None:
        register_user_profiles(registry, config, settings.config)
    return registry


def build_overrides(settings: Settings, config: ConfigFile | None) -> CliOverrides:
    """Command-line flags over configuration-file defaults, field by field."""
    values: dict[str, Any] = config.override_defaults() if config is not None else {}
    cli: dict[str, Any] = {
        "extensions": settings.extensions,
        "allowed_filenames": settings.allowed_filenames,
        "include_globs": settings.include_globs,
        "exclude_globs": settings.exclude_globs,
        "max_depth": settings.max_depth,
        "exclude_hidden_dirs": settings.exclude_hidden_dirs,
        "markdown": settings.markdown,
    }
    if settings.max_size is not None:
        cli["max_file_size_bytes"] = mb_to_bytes(settings.max_size)
    if settings.include_dependency_dirs:
        cli["exclude_common_dependency_dirs"] = False
    values.update({k: v for k, v in cli.items() if v is not None})
    return CliOverrides(**values)


def build_walk_options(settings: Settings, config: ConfigFile | None) -> WalkOptions:
    """Ignore-file and directory scoping: flags over configuration-file keys."""
    values: dict[str, Any] = config.walk_defaults() if config is not None else {}
    cli: dict[str, Any] = {
        "include_dirs": settings.include_dirs,
        "exclude_dirs": settings.exclude_dirs,
        "respect_gitignore": settings.respect_gitignore,
        "ignore_file": settings.ignore_file,
    }
    values.update({k: v for k, v in cli.items() if v is not None})
    return WalkOptions(**values)


def root_label(target_dirs: Sequence[Path]) -> str:
    """Name shown at the top of the markdown tree."""
    names = [d.resolve().name or str(d) for d in target_dirs]
    return names[0] if len(names) == 1 else ", ".join(names)


def write_output(content: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(content)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(content, encoding="utf-8")
    logger.info("Flattened code written to %s", output)


def run(settings: Settings) -> int:
    if settings.log_file:
        setup_logging(settings.log_file)
    config = load_config(settings.config)
    registry = build_registry(settings, config)

    if settings.list_profiles:
        lines = ["Available profiles:"]
        lines += [f"  - {name} [{source}]: {desc}" for name, desc, source in registry.describe()]
        sys.stdout.write("\n".join(lines) + "\n")
        return 0

    name = settings.profile or (config.profile if config is not None else None)
    profile = ProfileResolver(registry).resolve(name, build_overrides(settings, config))
    for warning in profile.warnings:
        sys.stderr.write(f"warning: {warning}\n")
    if not profile.selects_anything:
        raise EmptyProfileError(profile=profile.name)

    options = build_walk_options(settings, config)
    multi_root = len(settings.target_dirs) > 1
    if settings.dry_run:
        selector = FileSelector(profile, workers=settings.workers, read_contents=False, options=options)
        report, count = build_dry_run_report(selector.select(settings.target_dirs), prefix_root=multi_root)
        sys.stdout.write(report)
        logger.info("Dry run complete", files=count)
        return 0

    selector = FileSelector(profile, workers=settings.workers, options=options)
    files = list(selector.files(settings.target_dirs))
    if profile.markdown:
        content = build_markdown(root_label(settings.target_dirs), files, profile=profile, prefix_root=multi_root)
    else:
        content = build_plain(files, prefix_root=multi_root)
    write_output(content, settings.output)

    readable = [f for f in files if not f.is_unreadable]
    logger.info(
        "Processing complete",
        profile=profile.name,
        files=len(readable),
        unreadable=len(files) - len(readable),
        tokens=approx_token_count(content),
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
        return run(settings)
    except ValidationError as e:
        sys.stderr.write(f"error: invalid arguments: {e}\n")
        return 2
    except FlattenerError as e:
        logger.error("Run aborted: %s", e)
        sys.stderr.write(f"error: {e}\n")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
