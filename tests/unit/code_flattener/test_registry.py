from __future__ import annotations

import pytest

from code_flattener.exceptions import DuplicateProfileError, MalformedGlobPatternError, UnknownProfileError
from code_flattener.profiles import Profile
from code_flattener.providers import StaticProfileProvider
from code_flattener.registry import ProfileRegistry


@pytest.mark.unit
def test_builtins_are_registered_by_default() -> None:
    registry = ProfileRegistry()

    assert "rust" in registry
    assert registry.get("rust").name == "rust"


@pytest.mark.unit
def test_unknown_profile_lists_available_names() -> None:
    registry = ProfileRegistry(builtins=[Profile(name="only")])

    with pytest.raises(UnknownProfileError) as excinfo:
        registry.get("missing")

    assert excinfo.value.name == "missing"
    assert excinfo.value.available == ("only",)


@pytest.mark.unit
def test_overriding_a_builtin_requires_explicit_intent() -> None:
    registry = ProfileRegistry()
    custom = Profile(name="rust", extensions=[".ron"])

    with pytest.raises(DuplicateProfileError):
        registry.register(custom)

    registry.register(custom, override=True)

    assert registry.get("rust") == custom
    assert registry.get_baseline("rust").extensions == (".rs",)


@pytest.mark.unit
def test_provider_is_stored_not_materialized() -> None:
    calls: list[str] = []

    class Recording(StaticProfileProvider):
        def discover(self) -> Profile:
            calls.append("discover")
            return super().discover()

    provider = Recording(Profile(name="dynamic", extensions=[".php"]))
    registry = ProfileRegistry(providers=[provider])

    assert registry.get("dynamic") is provider
    assert calls == []


@pytest.mark.unit
def test_recorded_error_is_raised_for_that_profile_only() -> None:
    registry = ProfileRegistry()
    error = MalformedGlobPatternError(pattern="[x", profile="broken")
    registry.register_error("broken", error)

    with pytest.raises(MalformedGlobPatternError):
        registry.get("broken")
    assert registry.get("rust").name == "rust"


@pytest.mark.unit
def test_describe_is_sorted_and_tags_sources() -> None:
    registry = ProfileRegistry(
        builtins=[Profile(name="rust", description="Rust.")],
        providers=[StaticProfileProvider(Profile(name="wordpress", description="WP."))],
    )
    registry.register(Profile(name="app", extends="rust"))
    registry.register(Profile(name="rust", description="Mine."), override=True)

    assert registry.describe() == [
        ("app", "Custom profile extending rust", "user"),
        ("rust", "Mine.", "user"),
        ("wordpress", "WP.", "plugin"),
    ]


@pytest.mark.unit
def test_registries_are_independent() -> None:
    first = ProfileRegistry()
    first.register(Profile(name="extra"))

    assert "extra" not in ProfileRegistry()
