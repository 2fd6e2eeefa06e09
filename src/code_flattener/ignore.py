"""Ignore files: `.gitignore` in walked directories and the tool's own ignore file."""

from __future__ import annotations

from pathlib import Path

import pathspec

from code_flattener.config import GITIGNORE_FILE
from code_flattener.logging import logger


def _read_spec(path: Path) -> pathspec.GitIgnoreSpec | None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Cannot read ignore file %s: %s", path, e)
        return None
    lines = [line for line in lines if line.strip() and not line.strip().startswith("#")]
    if not lines:
        return None
    return pathspec.GitIgnoreSpec.from_lines(lines)


def load_gitignore(directory: Path) -> pathspec.GitIgnoreSpec | None:
    """
    Read `.gitignore` in the given directory and return a compiled spec,
    or `None` if the file doesn't exist or holds no pattern.
    """
    gitignore = directory / GITIGNORE_FILE
    if not gitignore.is_file():
        return None
    return _read_spec(gitignore)


def load_tool_ignore(ignore_name: str, start_dir: Path) -> tuple[Path, pathspec.GitIgnoreSpec] | None:
    """Walk up from `start_dir` looking for `ignore_name` (e.g. `.flattenerignore`).

    Args:
        ignore_name (str): basename of the ignore file
        start_dir (Path): directory the lookup starts from

    Returns:
        tuple[Path, pathspec.GitIgnoreSpec] | None: the directory holding the
            first file found (patterns are relative to it) and its compiled
            spec, or None
    """
    current = start_dir.resolve()
    while True:
        candidate = current / ignore_name
        if candidate.is_file():
            spec = _read_spec(candidate)
            return (current, spec) if spec is not None else None
        parent = current.parent
        if parent == current:
            return None
        current = parent
