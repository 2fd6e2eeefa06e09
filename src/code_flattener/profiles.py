from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from code_flattener.config import DEFAULT_MAX_FILE_SIZE_BYTES
from code_flattener.matcher import normalize_globs

if TYPE_CHECKING:
    from collections.abc import Iterable

SET_FIELDS = ("extensions", "allowed_filenames", "include_globs", "exclude_globs")
SCALAR_FIELDS = (
    "max_depth",
    "max_file_size_bytes",
    "exclude_common_dependency_dirs",
    "exclude_hidden_dirs",
    "markdown",
)


def normalize_extensions(extensions: Iterable[str]) -> tuple[str, ...]:
    """Lowercase extensions and give each a leading dot, preserving order.

    Args:
        extensions (Iterable[str]): raw extensions such as `rs`, `.RS` or `.env.local`

    Returns:
        tuple[str, ...]: the normalized, deduplicated extensions
    """
    out: list[str] = []
    for ext in extensions:
        e = (ext or "").strip().lower()
        if not e:
            continue
        if not e.startswith("."):
            e = "." + e
        if e not in out:
            out.append(e)
    return tuple(out)


def unique(items: Iterable[str]) -> tuple[str, ...]:
    """Deduplicate while keeping first-seen order and dropping blanks."""
    out: list[str] = []
    for item in items:
        s = (item or "").strip()
        if s and s not in out:
            out.append(s)
    return tuple(out)


class Profile(BaseModel):
    """An immutable named bundle of file-selection rules.

    Set-valued fields are stored as ordered, deduplicated tuples. Scalar fields
    left as None are undefined and inherit from the next lower layer during
    resolution.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Unique profile identifier.")
    description: str = Field(default="", description="Human readable summary.")
    extends: str | None = Field(default=None, description="Parent profile name.")
    extensions: tuple[str, ...] = Field(default=(), description="Allowed suffixes.")
    allowed_filenames: tuple[str, ...] = Field(default=(), description="Exact basenames.")
    include_globs: tuple[str, ...] = Field(default=(), description="Include glob patterns.")
    exclude_globs: tuple[str, ...] = Field(default=(), description="Exclude glob patterns.")
    max_depth: int | None = Field(default=None, ge=0, description="Maximum walk depth.")
    max_file_size_bytes: int | None = Field(default=None, ge=0, description="Size bound.")
    exclude_common_dependency_dirs: bool | None = Field(
        default=None,
        description="Skip node_modules/.git/target-style directories.",
    )
    exclude_hidden_dirs: bool | None = Field(
        default=None,
        description="Skip directories whose name starts with a dot.",
    )
    markdown: bool | None = Field(default=None, description="Prefer markdown output.")

    @field_validator("extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Any) -> tuple[str, ...]:  # noqa: ANN401
        return normalize_extensions(value or ())

    @field_validator("allowed_filenames", mode="before")
    @classmethod
    def _normalize_filenames(cls, value: Any) -> tuple[str, ...]:  # noqa: ANN401
        return unique(value or ())

    @field_validator("include_globs", "exclude_globs", mode="before")
    @classmethod
    def _normalize_globs(cls, value: Any, info: ValidationInfo) -> tuple[str, ...]:  # noqa: ANN401
        return normalize_globs(value or (), profile=str(info.data.get("name", "")))

    @field_validator("extends", mode="before")
    @classmethod
    def _blank_extends(cls, value: Any) -> Any:  # noqa: ANN401
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def selects_anything(self) -> bool:
        """Whether any positive rule (extension, filename or include glob) is present."""
        return bool(self.extensions or self.allowed_filenames or self.include_globs)


BUILTIN_DEFAULTS = Profile(
    name="defaults",
    description="Built-in defaults.",
    max_file_size_bytes=DEFAULT_MAX_FILE_SIZE_BYTES,
    exclude_common_dependency_dirs=True,
    exclude_hidden_dirs=False,
    markdown=False,
)

BUILTIN_PROFILES: tuple[Profile, ...] = (
    Profile(
        name="rust",
        description="Rust project files.",
        extensions=[".rs"],
        allowed_filenames=["Cargo.toml", "Cargo.lock"],
    ),
    Profile(
        name="nextjs-ts-prisma",
        description="Next.js, TypeScript, Prisma project files.",
        extensions=[
            ".ts",
            ".tsx",
            ".js",
            ".jsx",
            ".json",
            ".css",
            ".scss",
            ".md",
            ".env",
            ".env.local",
            ".prisma",
        ],
        allowed_filenames=[
            "next.config.js",
            "tailwind.config.js",
            "postcss.config.js",
            "middleware.ts",
            "schema.prisma",
        ],
    ),
    Profile(
        name="cpp-cmake",
        description="C/C++ and CMake project files.",
        extensions=[".c", ".cpp", ".h", ".hpp", ".cmake", ".md"],
        allowed_filenames=["CMakeLists.txt"],
    ),
    Profile(
        name="python",
        description="Python project files.",
        extensions=[".py", ".pyi", ".toml", ".cfg", ".ini"],
        allowed_filenames=[
            "pyproject.toml",
            "setup.py",
            "setup.cfg",
            "requirements.txt",
            "requirements-dev.txt",
            "Makefile",
            "Dockerfile",
        ],
    ),
)
