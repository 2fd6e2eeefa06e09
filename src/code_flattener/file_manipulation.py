from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from code_flattener.config import BINARY_EXTENSIONS
from code_flattener.exceptions import UnreadableFileError

if TYPE_CHECKING:
    from collections.abc import Sequence


def relpath(path: Path, root: Path) -> str:
    """Root-relative POSIX path of a walked entry; paths outside `root` stay absolute."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def canonical(path: Path) -> Path:
    """Absolute path with symlinks resolved, used as the deduplication key."""
    return Path(os.path.realpath(path))


def has_binary_extension(path: Path) -> bool:
    return path.suffix.lower() in BINARY_EXTENSIONS


def extension_matches(name: str, extensions: Sequence[str]) -> str | None:
    """Return the first extension `name` ends with, case-insensitively.

    Multi-dot extensions such as `.env.local` are supported, and a dotfile named
    exactly like an extension (`.env`) matches it.

    Args:
        name (str): the file basename
        extensions (Sequence[str]): normalized extensions, each with a leading dot

    Returns:
        str | None: the matching extension, or None
    """
    low = name.lower()
    for ext in extensions:
        if low.endswith(ext):
            return ext
    return None


def read_text_bytes(path: Path) -> bytes:
    """Read a file and make sure it holds UTF-8 text.

    Args:
        path (Path): the file to read

    Raises:
        UnreadableFileError: if the file has a binary extension, contains NUL
            bytes or is not valid UTF-8
        OSError: if the file cannot be opened

    Returns:
        bytes: the raw content
    """
    if has_binary_extension(path):
        raise UnreadableFileError(file=path, reason="binary file extension")
    data = path.read_bytes()
    if b"\x00" in data:
        raise UnreadableFileError(file=path, reason="binary content")
    try:
        data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise UnreadableFileError(file=path, reason=f"invalid UTF-8 at byte {e.start}") from e
    return data


def build_tree_lines(root_name: str, rel_paths: Sequence[str]) -> list[str]:
    """Draw root-relative POSIX paths as an indented tree, directories suffixed with `/`.

    Example:
        >>> build_tree_lines("demo", ["src/main.rs", "Cargo.toml"])
        ['demo', '├── Cargo.toml', '└── src/', '    └── main.rs']
    """
    # Directories map to a nested dict, files to None.
    tree: dict[str, Any] = {}
    for rel in rel_paths:
        *dirs, leaf = rel.replace("\\", "/").strip("/").split("/")
        if not leaf:
            continue
        node = tree
        for d in dirs:
            node = node.setdefault(d, {})
        node.setdefault(leaf, None)
    return [root_name, *_render(tree, "")]


def _render(node: dict[str, Any], indent: str) -> list[str]:
    lines: list[str] = []
    names = sorted(node)
    for name in names:
        last = name == names[-1]
        child = node[name]
        lines.append(f"{indent}{'└── ' if last else '├── '}{name}{'' if child is None else '/'}")
        if child is not None:
            lines += _render(child, indent + ("    " if last else "│   "))
    return lines


def now_iso(moment: datetime | None = None) -> str:
    """Local-time ISO 8601 stamp, to the second, of `moment` (default: now)."""
    return (moment or datetime.now(UTC)).astimezone().isoformat(timespec="seconds")
