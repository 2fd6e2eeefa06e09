from __future__ import annotations

import io
import re
from typing import TYPE_CHECKING

from code_flattener.config import Verdict
from code_flattener.file_manipulation import build_tree_lines, now_iso

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from code_flattener.config import SelectedFile, SelectionDecision
    from code_flattener.resolver import ResolvedProfile

_BACKTICK_RUN = re.compile(r"`+")


def display_path(root: Path, rel: str, *, prefix_root: bool = False) -> str:
    """Path shown to the reader; with several walk roots, prefixed by the root's name."""
    if not prefix_root:
        return rel
    return f"{root.name or root.as_posix()}/{rel}"


def fence_for(body: str) -> str:
    """Backtick fence one longer than the longest backtick run in `body`, at least three."""
    longest = max((len(m) for m in _BACKTICK_RUN.findall(body)), default=0)
    return "`" * max(3, longest + 1)


def _write_unreadable(out: io.StringIO, unreadable: Sequence[SelectedFile], prefix_root: bool) -> None:
    if not unreadable:
        return
    out.write("\n\n# --- Skipped (unreadable) ---\n")
    for rec in unreadable:
        out.write(f"{display_path(rec.root, rec.rel, prefix_root=prefix_root)} (size={rec.size} bytes)\n")


def build_plain(files: Sequence[SelectedFile], *, prefix_root: bool = False) -> str:
    """Concatenate selected files with a plain `# --- File: ... ---` header each.

    Args:
        files (Sequence[SelectedFile]): the ordered selected files
        prefix_root (bool): prefix each path with its walk root's name

    Returns:
        str: the flattened text
    """
    out = io.StringIO()
    for rec in files:
        if rec.is_unreadable:
            continue
        out.write(f"\n\n# --- File: {display_path(rec.root, rec.rel, prefix_root=prefix_root)} ---\n\n")
        out.write(rec.text)
    _write_unreadable(out, [r for r in files if r.is_unreadable], prefix_root)
    return out.getvalue()


def build_markdown(
    root_name: str,
    files: Sequence[SelectedFile],
    *,
    profile: ResolvedProfile,
    prefix_root: bool = False,
) -> str:
    """Build a markdown document with a structure tree and one fenced block per file.

    Args:
        root_name (str): name shown at the top of the tree
        files (Sequence[SelectedFile]): the ordered selected files
        profile (ResolvedProfile): the profile used, named in the header
        prefix_root (bool): prefix each path with its walk root's name, so
            files from several roots stay apart in headings and in the tree

    Returns:
        str: the generated markdown
    """
    readable = [r for r in files if not r.is_unreadable]
    shown = [display_path(r.root, r.rel, prefix_root=prefix_root) for r in readable]
    out = io.StringIO()
    out.write("# Flattened code\n")
    out.write(f"profile={profile.name}\n")
    out.write(f"generated_at={now_iso()}\n")
    out.write(f"files={len(readable)}\n\n")

    out.write("## Structure\n")
    out.write("```text\n")
    out.write("\n".join(build_tree_lines(root_name, shown)))
    out.write("\n```\n\n")

    for rec, path in zip(readable, shown, strict=True):
        body = rec.text.rstrip("\n")
        fence = fence_for(body)
        out.write(f"## {path}\n")
        out.write(f"{fence}{rec.language}\n{body}\n{fence}\n\n")

    _write_unreadable(out, [r for r in files if r.is_unreadable], prefix_root)
    return out.getvalue().rstrip() + "\n"


def build_dry_run_report(decisions: Iterable[SelectionDecision], *, prefix_root: bool = False) -> tuple[str, int]:
    """Describe what a run would do, without reading any file content.

    Returns:
        tuple[str, int]: the report text and the number of files that would be processed
    """
    lines: list[str] = []
    count = 0
    for d in decisions:
        cand = d.candidate
        shown = display_path(cand.root, cand.rel, prefix_root=prefix_root) + ("/" if cand.is_dir else "")
        if d.verdict is Verdict.INCLUDE:
            count += 1
            lines.append(f"DRY-RUN: would process {shown}")
        else:
            lines.append(f"DRY-RUN: skip {shown} [{d.verdict.value}] {d.rule}")
    lines.append(f"DRY-RUN: {count} file(s) would be processed")
    return "\n".join(lines) + "\n", count


def approx_token_count(text: str) -> int:
    """Rough token estimate: whitespace-separated words."""
    return len(text.split())
