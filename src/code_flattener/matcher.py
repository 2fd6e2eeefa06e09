"""Glob and literal-filename matching on root-relative POSIX paths.

Patterns are anchored at the walk root and match the whole path: `*` never
crosses a `/`, `**` spans any number of segments (including none) and `?`
matches one character. Directory pruning additionally uses `pathspec`
(gitwildmatch flavour), so a pattern naming a directory prunes its subtree.
Paths are normalized to forward slashes before matching, which keeps results
identical on every platform.
"""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import TYPE_CHECKING

import pathspec

from code_flattener.exceptions import MalformedGlobPatternError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


def normalize_path(path: str | PurePath) -> str:
    """Return `path` with POSIX separators and without a leading `./`.

    Args:
        path (str | PurePath): the path to normalize

    Returns:
        str: the normalized path
    """
    text = str(path).replace("\\", "/")
    while text.startswith("./"):
        text = text[2:]
    return text


def normalize_glob(pattern: str) -> str:
    """Strip whitespace and convert backslashes to forward slashes.

    Args:
        pattern (str): a raw glob pattern

    Returns:
        str: the normalized pattern, empty when nothing is left
    """
    return normalize_path((pattern or "").strip())


def _unbalanced_bracket(pattern: str) -> bool:
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "[":
            j = i + 1
            if j < n and pattern[j] in "!^":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            while j < n and pattern[j] not in "]/":
                j += 1
            if j >= n or pattern[j] == "/":
                return True
            i = j
        i += 1
    return False


def _anchor(pattern: str) -> str:
    return pattern if pattern.startswith("/") else "/" + pattern


def _class_to_regex(body: str) -> str:
    if body[:1] in {"!", "^"}:
        body = "^" + body[1:]
    return "[" + body.replace("\\", "\\\\") + "]"


def glob_to_regex(pattern: str) -> str:
    """Translate a normalized glob into a regex matching one whole path.

    `*` and `?` stay within a segment, `**/` spans zero or more directories and
    a trailing `**` matches everything below. Unlike gitignore patterns, a
    pattern naming a directory does not match the files beneath it.

    Args:
        pattern (str): a normalized glob pattern

    Returns:
        str: a regex for use with `re.fullmatch`
    """
    pat = pattern.lstrip("/")
    out: list[str] = []
    i = 0
    n = len(pat)
    while i < n:
        ch = pat[i]
        if pat.startswith("**", i) and (i == 0 or pat[i - 1] == "/"):
            if pat.startswith("**/", i):
                out.append("(?:.*/)?")
                i += 3
            elif i + 2 == n:
                out.append(".*")
                i += 2
            else:
                out.append("[^/]*")
                i += 2
        elif ch == "*":
            out.append("[^/]*")
            i += 1
        elif ch == "?":
            out.append("[^/]")
            i += 1
        elif ch == "[":
            j = i + 1
            if j < n and pat[j] in "!^":
                j += 1
            if j < n and pat[j] == "]":
                j += 1
            j = pat.index("]", j)
            out.append(_class_to_regex(pat[i + 1 : j]))
            i = j + 1
        else:
            out.append(re.escape(ch))
            i += 1
    return "".join(out)


class CompiledGlob:
    """One glob, compiled for file matching and for directory pruning.

    Files match only when the pattern covers the whole path. Directories are
    also tested with gitignore semantics, so `target/**`, `build/` or `docs`
    prune the directory and everything below it.
    """

    def __init__(self, pattern: str, regex: re.Pattern[str], spec: pathspec.PathSpec) -> None:
        self.pattern = pattern
        self._regex = regex
        self._spec = spec

    def match_file(self, rel: str) -> bool:
        return self._regex.fullmatch(rel) is not None

    def match_dir(self, rel: str) -> bool:
        return self.match_file(rel) or self._spec.match_file(rel + "/")


def compile_glob(pattern: str, profile: str = "") -> CompiledGlob:
    """Compile a single normalized glob, anchored at the walk root.

    Args:
        pattern (str): a normalized glob pattern
        profile (str): profile name used in error messages

    Raises:
        MalformedGlobPatternError: if the pattern has an unterminated character
            class or is rejected by the pattern engine

    Returns:
        CompiledGlob: the compiled pattern
    """
    if _unbalanced_bracket(pattern):
        raise MalformedGlobPatternError(pattern=pattern, profile=profile, reason="unterminated '['")
    try:
        regex = re.compile(glob_to_regex(pattern))
        spec = pathspec.PathSpec.from_lines("gitwildmatch", [_anchor(pattern)])
    except (re.error, ValueError) as e:
        raise MalformedGlobPatternError(pattern=pattern, profile=profile, reason=str(e)) from e
    return CompiledGlob(pattern, regex, spec)


def normalize_globs(globs: Iterable[str], profile: str = "") -> tuple[str, ...]:
    """Normalize, validate and deduplicate glob patterns, preserving order.

    Args:
        globs (Iterable[str]): raw glob patterns
        profile (str): profile name used in error messages

    Raises:
        MalformedGlobPatternError: if any pattern cannot be compiled

    Returns:
        tuple[str, ...]: the normalized patterns
    """
    out: list[str] = []
    for g in globs:
        g2 = normalize_glob(g)
        if not g2 or g2 in out:
            continue
        compile_glob(g2, profile)
        out.append(g2)
    return tuple(out)


class PathMatcher:
    """Evaluates root-relative paths against an ordered set of glob patterns."""

    def __init__(self, patterns: Sequence[str]) -> None:
        self.patterns: tuple[str, ...] = normalize_globs(patterns)
        self._compiled: list[CompiledGlob] = [compile_glob(p) for p in self.patterns]

    def __bool__(self) -> bool:
        return bool(self._compiled)

    def first_match(self, path: str | PurePath, *, is_dir: bool = False) -> str | None:
        """Return the first pattern matching `path`, or None.

        Files must match the whole path. Directories also match any pattern
        that covers everything below them, so `target/**` or `build/` prune
        the directory itself.
        """
        rel = normalize_path(path).strip("/")
        if not rel:
            return None
        for glob in self._compiled:
            matched = glob.match_dir(rel) if is_dir else glob.match_file(rel)
            if matched:
                return glob.pattern
        return None

    def matches(self, path: str | PurePath, *, is_dir: bool = False) -> bool:
        return self.first_match(path, is_dir=is_dir) is not None


def matches(path: str | PurePath, patterns: Sequence[str]) -> bool:
    """Check if a root-relative path matches any of the glob patterns.

    Args:
        path (str | PurePath): the path to check, relative to the walk root
        patterns (Sequence[str]): the glob patterns to match against

    Returns:
        bool: True if `path` matches any pattern, False otherwise
    """
    return PathMatcher(patterns).matches(path)


def matches_filename(path: str | PurePath, filenames: Iterable[str]) -> bool:
    """Case-sensitive basename equality check."""
    name = PurePath(normalize_path(path)).name
    return name in set(filenames)
