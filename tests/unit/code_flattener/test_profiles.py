from __future__ import annotations

import pytest
from pydantic import ValidationError

from code_flattener.exceptions import MalformedGlobPatternError
from code_flattener.profiles import BUILTIN_PROFILES, Profile, normalize_extensions


@pytest.mark.unit
def test_extensions_are_lowercased_with_leading_dot() -> None:
    profile = Profile(name="p", extensions=["RS", ".Toml", "", ".rs", "env.local"])

    assert profile.extensions == (".rs", ".toml", ".env.local")


@pytest.mark.unit
def test_normalize_extensions_keeps_first_seen_order() -> None:
    assert normalize_extensions([".b", ".a", ".B"]) == (".b", ".a")


@pytest.mark.unit
def test_globs_are_forward_slash_normalized() -> None:
    profile = Profile(name="p", include_globs=["src\\**\\*.rs"], exclude_globs=[" target/** "])

    assert profile.include_globs == ("src/**/*.rs",)
    assert profile.exclude_globs == ("target/**",)


@pytest.mark.unit
def test_malformed_glob_names_the_profile() -> None:
    with pytest.raises(MalformedGlobPatternError) as excinfo:
        Profile(name="bad", exclude_globs=["[oops"])

    assert excinfo.value.profile == "bad"


@pytest.mark.unit
def test_profile_is_immutable() -> None:
    profile = Profile(name="p", extensions=[".rs"])

    with pytest.raises(ValidationError):
        profile.name = "other"  # type: ignore[misc]


@pytest.mark.unit
def test_negative_bounds_are_rejected() -> None:
    with pytest.raises(ValidationError):
        Profile(name="p", max_depth=-1)


@pytest.mark.unit
def test_blank_extends_means_no_parent() -> None:
    assert Profile(name="p", extends="  ").extends is None


@pytest.mark.unit
def test_builtin_rust_profile() -> None:
    rust = next(p for p in BUILTIN_PROFILES if p.name == "rust")

    assert rust.extensions == (".rs",)
    assert set(rust.allowed_filenames) == {"Cargo.toml", "Cargo.lock"}
    assert rust.extends is None


@pytest.mark.unit
def test_builtin_names_are_unique() -> None:
    names = [p.name for p in BUILTIN_PROFILES]

    assert len(names) == len(set(names))
