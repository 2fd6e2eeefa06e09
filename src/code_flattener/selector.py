"""File selection: a deterministic depth-first walk filtered by a ResolvedProfile.

Entries are visited in lexicographic order of their basename, roots in the order
given. Evaluating a file is a pure function of (path, profile), so evaluation can
be fanned out to a thread pool; results are consumed in walk order, which keeps
the emitted sequence identical whatever the number of workers.

Besides the profile, a WalkOptions value scopes the walk: `.gitignore` files
found in the tree, the tool ignore file looked up from each root upwards, and
root-relative directory prefixes to keep or skip.
"""

from __future__ import annotations

import os
import stat
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from code_flattener.config import (
    DEPENDENCY_DIRS,
    GITIGNORE_FILE,
    CandidatePath,
    SelectedFile,
    SelectionDecision,
    Verdict,
    WalkOptions,
)
from code_flattener.exceptions import UnreadableFileError
from code_flattener.file_manipulation import canonical, extension_matches, read_text_bytes, relpath
from code_flattener.ignore import load_gitignore, load_tool_ignore
from code_flattener.logging import logger
from code_flattener.matcher import PathMatcher

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence
    from concurrent.futures import Future

    import pathspec

    from code_flattener.resolver import ResolvedProfile

    Evaluated = tuple[SelectionDecision, bytes | None]
    # (base directory, compiled patterns, rule label)
    IgnoreChain = tuple[tuple[Path, pathspec.PathSpec, str], ...]

NO_MATCH_RULE = "no matching extension, filename or include glob"
INCLUDE_DIRS_RULE = "outside include_dirs"

# In-flight evaluations per worker thread.
WINDOW_PER_WORKER = 4


class FileSelector:
    """Applies a ResolvedProfile to one or more walk roots.

    The selector holds no state between calls: every call to `select` or `files`
    walks the roots again from scratch.

    Args:
        profile: the effective profile
        workers: number of threads evaluating files; 1 evaluates inline
        read_contents: read accepted files to check they are text (needed to
            flag skip-unreadable and to hand contents to output assembly)
        options: ignore files and directory scoping; defaults honour
            `.gitignore` and `.flattenerignore`
    """

    def __init__(
        self,
        profile: ResolvedProfile,
        *,
        workers: int = 1,
        read_contents: bool = True,
        options: WalkOptions | None = None,
    ) -> None:
        self.profile = profile
        self.workers = max(1, workers)
        self.read_contents = read_contents
        self.options = options or WalkOptions()
        self._exclude = PathMatcher(profile.exclude_globs)
        self._include = PathMatcher(profile.include_globs)
        self._filenames = frozenset(profile.allowed_filenames)

    def select(self, roots: Sequence[Path | str]) -> Iterator[SelectionDecision]:
        """Yield a decision for every candidate, in deterministic walk order.

        Pruned directories are reported once; their content is not visited.
        """
        for decision, _content in self._run(roots):
            yield decision

    def files(self, roots: Sequence[Path | str]) -> Iterator[SelectedFile]:
        """Yield accepted files (included or skip-unreadable) with their content."""
        for decision, content in self._run(roots):
            if not decision.accepted:
                continue
            cand = decision.candidate
            yield SelectedFile(path=cand.path, rel=cand.rel, root=cand.root, size=cand.size, content=content)

    def _run(self, roots: Sequence[Path | str]) -> Iterator[Evaluated]:
        items = self._walk_roots(roots)
        if self.workers == 1:
            yield from self._dedup(map(self._evaluate, items))
            return
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="code-flattener") as pool:
            yield from self._dedup(self._windowed(pool, items))

    def _windowed(
        self,
        pool: ThreadPoolExecutor,
        items: Iterable[CandidatePath | SelectionDecision],
    ) -> Iterator[Evaluated | None]:
        """Evaluate `items` on `pool`, keeping a bounded number in flight.

        Results come back in submission order, i.e. walk order, and the walk
        only advances as results are consumed.
        """
        window: deque[Future[Evaluated | None]] = deque()
        limit = self.workers * WINDOW_PER_WORKER
        try:
            for item in items:
                window.append(pool.submit(self._evaluate, item))
                if len(window) >= limit:
                    yield window.popleft().result()
            while window:
                yield window.popleft().result()
        finally:
            for future in window:
                future.cancel()

    @staticmethod
    def _dedup(results: Iterable[Evaluated | None]) -> Iterator[Evaluated]:
        accepted: set[Path] = set()
        rejected: set[Path] = set()
        for result in results:
            if result is None:
                continue
            decision, _content = result
            if decision.candidate.is_dir:
                yield result
                continue
            key = canonical(decision.candidate.path)
            if decision.accepted:
                if key in accepted:
                    continue
                accepted.add(key)
            else:
                if key in accepted or key in rejected:
                    continue
                rejected.add(key)
            yield result

    def _walk_roots(self, roots: Sequence[Path | str]) -> Iterator[CandidatePath | SelectionDecision]:
        for raw in roots:
            root = Path(raw)
            if not root.is_dir():
                logger.warning("Skipping walk root %s: not a directory", root)
                continue
            root = root.resolve()
            chain: IgnoreChain = ()
            if self.options.ignore_file:
                found = load_tool_ignore(self.options.ignore_file, root)
                if found is not None:
                    base, spec = found
                    logger.debug("Using ignore file %s", base / self.options.ignore_file)
                    chain = ((base, spec, f"ignore_file:{self.options.ignore_file}"),)
            yield from self._walk(root, root, 0, chain)

    def _walk(
        self,
        root: Path,
        directory: Path,
        depth: int,
        chain: IgnoreChain,
    ) -> Iterator[CandidatePath | SelectionDecision]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("Cannot list directory %s: %s", directory, e)
            return

        if self.options.respect_gitignore:
            spec = load_gitignore(directory)
            if spec is not None:
                label = f"gitignore:{relpath(directory / GITIGNORE_FILE, root)}"
                chain = (*chain, (directory, spec, label))

        for entry in entries:
            path = Path(entry.path)
            rel = relpath(path, root)
            entry_depth = depth + 1
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError as e:
                logger.warning("Skipping %s: %s", path, e)
                continue

            if is_dir:
                cand = CandidatePath(path=path, rel=rel, root=root, depth=entry_depth, is_dir=True)
                pruned = self._prune(cand, chain)
                if pruned is not None:
                    yield pruned
                else:
                    yield from self._walk(root, path, entry_depth, chain)
                continue

            try:
                st = entry.stat()
            except OSError as e:
                logger.warning("Skipping %s: %s", path, e)
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            cand = CandidatePath(path=path, rel=rel, root=root, depth=entry_depth, size=st.st_size)
            ignored = self._ignored(cand, chain)
            yield ignored if ignored is not None else cand

    @staticmethod
    def _ignored(cand: CandidatePath, chain: IgnoreChain) -> SelectionDecision | None:
        """Match the candidate against every ignore file in scope, outermost first."""
        for base, spec, label in chain:
            rel = cand.path.relative_to(base).as_posix()
            if spec.match_file(rel + "/" if cand.is_dir else rel):
                return SelectionDecision(candidate=cand, verdict=Verdict.EXCLUDE_BY_RULE, rule=label)
        return None

    def _scoped_out(self, cand: CandidatePath) -> SelectionDecision | None:
        """Apply `exclude_dirs` then `include_dirs` to a root-relative path."""
        rel = cand.rel
        for d in self.options.exclude_dirs:
            if rel == d or rel.startswith(d + "/"):
                return SelectionDecision(candidate=cand, verdict=Verdict.EXCLUDE_BY_RULE, rule=f"exclude_dirs:{d}")
        include = self.options.include_dirs
        if not include:
            return None
        if cand.is_dir:
            # Ancestors of an included directory must still be entered.
            inside = any(rel == d or rel.startswith(d + "/") or d.startswith(rel + "/") for d in include)
        else:
            inside = any(rel.startswith(d + "/") for d in include)
        if inside:
            return None
        return SelectionDecision(candidate=cand, verdict=Verdict.EXCLUDE_BY_RULE, rule=INCLUDE_DIRS_RULE)

    def _prune(self, cand: CandidatePath, chain: IgnoreChain = ()) -> SelectionDecision | None:
        """Return a decision when a directory must not be entered, else None."""
        p = self.profile
        name = cand.path.name
        if p.exclude_common_dependency_dirs and name in DEPENDENCY_DIRS:
            return SelectionDecision(candidate=cand, verdict=Verdict.EXCLUDE_BY_RULE, rule=f"dependency_dir:{name}")
        if p.exclude_hidden_dirs and name.startswith("."):
            return SelectionDecision(candidate=cand, verdict=Verdict.EXCLUDE_BY_RULE, rule=f"hidden_dir:{name}")
        decision = self._ignored(cand, chain) or self._scoped_out(cand)
        if decision is not None:
            return decision
        pattern = self._exclude.first_match(cand.rel, is_dir=True)
        if pattern is not None:
            return SelectionDecision(candidate=cand, verdict=Verdict.EXCLUDE_BY_RULE, rule=f"exclude_globs:{pattern}")
        if p.max_depth is not None and cand.depth >= p.max_depth:
            return SelectionDecision(candidate=cand, verdict=Verdict.EXCLUDE_BY_DEPTH, rule=f"max_depth={p.max_depth}")
        return None

    def decide(self, cand: CandidatePath) -> SelectionDecision:
        """Evaluate a file candidate against the profile, without reading it.

        Exclusions are checked first so that an exclude glob always beats an
        allowed filename, extension or include glob. Ignore files are applied
        by the walk before this point.
        """
        p = self.profile
        if p.max_depth is not None and cand.depth > p.max_depth:
            return SelectionDecision(candidate=cand, verdict=Verdict.EXCLUDE_BY_DEPTH, rule=f"max_depth={p.max_depth}")
        scoped = self._scoped_out(cand)
        if scoped is not None:
            return scoped
        if cand.size > p.max_file_size_bytes:
            return SelectionDecision(
                candidate=cand,
                verdict=Verdict.EXCLUDE_BY_SIZE,
                rule=f"max_file_size_bytes={p.max_file_size_bytes}",
            )
        pattern = self._exclude.first_match(cand.rel)
        if pattern is not None:
            return SelectionDecision(candidate=cand, verdict=Verdict.EXCLUDE_BY_RULE, rule=f"exclude_globs:{pattern}")

        name = cand.path.name
        if name in self._filenames:
            return SelectionDecision(candidate=cand, verdict=Verdict.INCLUDE, rule=f"allowed_filenames:{name}")
        ext = extension_matches(name, p.extensions)
        if ext is not None:
            return SelectionDecision(candidate=cand, verdict=Verdict.INCLUDE, rule=f"extensions:{ext}")
        pattern = self._include.first_match(cand.rel)
        if pattern is not None:
            return SelectionDecision(candidate=cand, verdict=Verdict.INCLUDE, rule=f"include_globs:{pattern}")
        return SelectionDecision(candidate=cand, verdict=Verdict.EXCLUDE_BY_RULE, rule=NO_MATCH_RULE)

    def _evaluate(self, item: CandidatePath | SelectionDecision) -> Evaluated | None:
        if isinstance(item, SelectionDecision):
            return item, None
        decision = self.decide(item)
        if decision.verdict is not Verdict.INCLUDE or not self.read_contents:
            return decision, None
        try:
            return decision, read_text_bytes(item.path)
        except UnreadableFileError as e:
            logger.warning("Unreadable file %s: %s", item.rel, e.reason)
            return SelectionDecision(candidate=item, verdict=Verdict.SKIP_UNREADABLE, rule=e.reason), None
        except OSError as e:
            logger.warning("Skipping %s: %s", item.path, e)
            return None


def select(
    roots: Sequence[Path | str],
    profile: ResolvedProfile,
    *,
    workers: int = 1,
    options: WalkOptions | None = None,
) -> Iterator[SelectionDecision]:
    """Yield selection decisions for `roots` under `profile`."""
    return FileSelector(profile, workers=workers, options=options).select(roots)


def select_files(
    roots: Sequence[Path | str],
    profile: ResolvedProfile,
    *,
    workers: int = 1,
    options: WalkOptions | None = None,
) -> list[SelectedFile]:
    """Return the ordered, deduplicated list of accepted files with contents."""
    return list(FileSelector(profile, workers=workers, options=options).files(roots))
