from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

MIB = 1024 * 1024

DEFAULT_MAX_FILE_SIZE_BYTES = 2 * MIB
DEFAULT_CONFIG_FILE = ".flattener.toml"
WORDPRESS_PROFILE = "wordpress"
IGNORE_FILE = ".flattenerignore"
GITIGNORE_FILE = ".gitignore"


class Verdict(StrEnum):
    """Outcome of evaluating one candidate path against the effective profile."""

    INCLUDE = "include"
    EXCLUDE_BY_RULE = "exclude-by-rule"
    EXCLUDE_BY_SIZE = "exclude-by-size"
    EXCLUDE_BY_DEPTH = "exclude-by-depth"
    SKIP_UNREADABLE = "skip-unreadable"


# Dependency and build-artifact directories pruned when
# `exclude_common_dependency_dirs` is set.
DEPENDENCY_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".venv",
        "venv",
        "__pycache__",
        ".mypy_cache",
        ".ruff_cache",
        ".pytest_cache",
        ".tox",
        ".ipynb_checkpoints",
        "node_modules",
        "bower_components",
        ".next",
        "target",
        "build",
        "dist",
        ".gradle",
        ".idea",
        ".vscode",
    },
)

BINARY_EXTENSIONS = frozenset(
    {
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".ico",
        ".webp",
        ".svg",
        ".bmp",
        ".tiff",
        ".tif",
        ".mp4",
        ".avi",
        ".mov",
        ".wmv",
        ".flv",
        ".webm",
        ".mkv",
        ".mp3",
        ".wav",
        ".ogg",
        ".zip",
        ".tar",
        ".gz",
        ".bz2",
        ".7z",
        ".rar",
        ".pdf",
        ".doc",
        ".docx",
        ".xls",
        ".xlsx",
        ".exe",
        ".dll",
        ".so",
        ".dylib",
        ".woff",
        ".woff2",
        ".ttf",
        ".eot",
    },
)

EXT2LANG: dict[str, str] = {
    ".bash": "bash",
    ".c": "c",
    ".cc": "cpp",
    ".cfg": "ini",
    ".cmake": "cmake",
    ".conf": "ini",
    ".cpp": "cpp",
    ".css": "css",
    ".go": "go",
    ".h": "c",
    ".hpp": "cpp",
    ".htm": "html",
    ".html": "html",
    ".ini": "ini",
    ".java": "java",
    ".js": "javascript",
    ".json": "json",
    ".jsx": "jsx",
    ".less": "less",
    ".md": "markdown",
    ".mdx": "markdown",
    ".php": "php",
    ".prisma": "prisma",
    ".py": "python",
    ".rs": "rust",
    ".sass": "sass",
    ".scss": "scss",
    ".sh": "bash",
    ".sql": "sql",
    ".toml": "toml",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".xml": "xml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".zsh": "bash",
}


class CandidatePath(BaseModel):
    """A filesystem entry discovered during the walk.

    Attributes:
        path: Absolute path of the entry.
        rel: Path relative to the walk root, with POSIX separators.
        root: The walk root the entry was discovered under.
        depth: Number of path components between the root and the entry.
        size: Size in bytes (0 for directories).
        is_dir: Whether the entry is a directory.
    """

    model_config = ConfigDict(frozen=True)

    path: Path = Field(..., description="Absolute path")
    rel: str = Field(..., description="Path relative to the walk root")
    root: Path = Field(..., description="Walk root")
    depth: int = Field(..., ge=0, description="Depth below the walk root")
    size: int = Field(default=0, ge=0, description="Size in bytes")
    is_dir: bool = Field(default=False, description="Directory flag")


class SelectionDecision(BaseModel):
    """Verdict for one candidate, with the rule that produced it."""

    model_config = ConfigDict(frozen=True)

    candidate: CandidatePath
    verdict: Verdict
    rule: str = Field(default="", description="Rule or pattern responsible")

    @computed_field
    @property
    def accepted(self) -> bool:
        """Whether the candidate reaches the output (possibly as unreadable)."""
        return self.verdict in {Verdict.INCLUDE, Verdict.SKIP_UNREADABLE}


class WalkOptions(BaseModel):
    """Walk scoping that sits outside profiles: ignore files and directory prefixes.

    Attributes:
        include_dirs: Root-relative directories; when set, only files below one
            of them are selected.
        exclude_dirs: Root-relative directories whose subtrees are skipped.
        respect_gitignore: Honour `.gitignore` files found in the walked tree.
        ignore_file: Name of the tool ignore file looked up from each root
            upwards, or None to disable it.
    """

    model_config = ConfigDict(frozen=True)

    include_dirs: tuple[str, ...] = ()
    exclude_dirs: tuple[str, ...] = ()
    respect_gitignore: bool = True
    ignore_file: str | None = IGNORE_FILE

    @field_validator("include_dirs", "exclude_dirs", mode="before")
    @classmethod
    def _normalize_dirs(cls, value: Any) -> tuple[str, ...]:  # noqa: ANN401
        out: list[str] = []
        for raw in value or ():
            d = str(raw).replace("\\", "/").strip().strip("/")
            while d.startswith("./"):
                d = d[2:]
            if d and d != "." and d not in out:
                out.append(d)
        return tuple(out)


class SelectedFile(BaseModel):
    """A file handed to output assembly: content bytes, or None when unreadable."""

    model_config = ConfigDict(frozen=True)

    path: Path
    rel: str
    root: Path
    size: int = Field(..., ge=0)
    content: bytes | None = None

    @computed_field
    @property
    def language(self) -> str:
        """Suggested code fence language based on the extension."""
        return EXT2LANG.get(self.path.suffix.lower(), "")

    @computed_field
    @property
    def is_unreadable(self) -> bool:
        """Whether the content was flagged skip-unreadable."""
        return self.content is None

    @property
    def text(self) -> str:
        """Decoded content, empty for unreadable files."""
        if self.content is None:
            return ""
        return self.content.decode("utf-8")
