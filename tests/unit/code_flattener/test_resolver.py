from __future__ import annotations

from pathlib import Path

import pytest

from code_flattener.config import DEFAULT_MAX_FILE_SIZE_BYTES
from code_flattener.exceptions import (
    CyclicProfileExtensionError,
    MalformedGlobPatternError,
    UnknownProfileError,
)
from code_flattener.profiles import Profile
from code_flattener.providers import WordPressProfileProvider, wordpress_fallback_profile
from code_flattener.registry import ProfileRegistry
from code_flattener.resolver import AD_HOC_PROFILE, CliOverrides, ProfileResolver, merge_profiles


def _resolver(*user: Profile, builtins: tuple[Profile, ...] | None = None) -> ProfileResolver:
    registry = ProfileRegistry() if builtins is None else ProfileRegistry(builtins=builtins)
    for profile in user:
        registry.register(profile, override=True)
    return ProfileResolver(registry)


@pytest.mark.unit
def test_builtin_resolves_with_defaults() -> None:
    resolved = _resolver().resolve("rust")

    assert resolved.extensions == (".rs",)
    assert set(resolved.allowed_filenames) == {"Cargo.toml", "Cargo.lock"}
    assert resolved.max_file_size_bytes == DEFAULT_MAX_FILE_SIZE_BYTES
    assert resolved.exclude_common_dependency_dirs is True
    assert resolved.exclude_hidden_dirs is False
    assert resolved.source_chain == ("rust",)
    assert resolved.warnings == ()


@pytest.mark.unit
def test_child_extensions_are_unioned_with_parent() -> None:
    resolved = _resolver(Profile(name="crate", extends="rust", extensions=[".ron"])).resolve("crate")

    assert set(resolved.extensions) == {".rs", ".ron"}
    assert resolved.source_chain == ("rust", "crate")


@pytest.mark.unit
def test_cli_list_replaces_instead_of_unioning() -> None:
    resolved = _resolver().resolve("rust", CliOverrides(extensions=[".py"]))

    assert resolved.extensions == (".py",)
    assert set(resolved.allowed_filenames) == {"Cargo.toml", "Cargo.lock"}


@pytest.mark.unit
def test_empty_cli_list_inherits() -> None:
    resolved = _resolver().resolve("rust", CliOverrides(extensions=[]))

    assert resolved.extensions == (".rs",)


@pytest.mark.unit
def test_empty_overrides_are_identity() -> None:
    resolver = _resolver()

    assert resolver.resolve("python", CliOverrides()) == resolver.resolve("python")


@pytest.mark.unit
def test_resolving_twice_gives_equal_profiles() -> None:
    resolver = _resolver(Profile(name="crate", extends="rust", exclude_globs=["examples/**"]))

    assert resolver.resolve("crate") == resolver.resolve("crate")


@pytest.mark.unit
def test_scalars_come_from_the_highest_layer() -> None:
    resolver = _resolver(
        Profile(name="base", extensions=[".c"], max_depth=5, max_file_size_bytes=100),
        Profile(name="child", extends="base", max_depth=2),
    )

    resolved = resolver.resolve("child", CliOverrides(max_file_size_bytes=10))

    assert resolved.max_depth == 2
    assert resolved.max_file_size_bytes == 10


@pytest.mark.unit
def test_two_profile_cycle_is_detected() -> None:
    resolver = _resolver(Profile(name="a", extends="b"), Profile(name="b", extends="a"))

    with pytest.raises(CyclicProfileExtensionError) as excinfo:
        resolver.resolve("a")

    assert excinfo.value.chain == ("a", "b", "a")


@pytest.mark.unit
def test_self_extension_without_baseline_is_a_cycle() -> None:
    resolver = _resolver(Profile(name="loop", extends="loop", extensions=[".x"]))

    with pytest.raises(CyclicProfileExtensionError):
        resolver.resolve("loop")


@pytest.mark.unit
def test_user_profile_can_extend_the_builtin_it_replaces() -> None:
    resolved = _resolver(Profile(name="rust", extends="rust", extensions=[".ron"])).resolve("rust")

    assert set(resolved.extensions) == {".rs", ".ron"}
    assert resolved.source_chain == ("rust", "rust")


@pytest.mark.unit
def test_unknown_profile() -> None:
    with pytest.raises(UnknownProfileError) as excinfo:
        _resolver().resolve("nope")

    assert "rust" in excinfo.value.available


@pytest.mark.unit
def test_unknown_parent() -> None:
    with pytest.raises(UnknownProfileError) as excinfo:
        _resolver(Profile(name="child", extends="ghost")).resolve("child")

    assert excinfo.value.name == "ghost"


@pytest.mark.unit
def test_recorded_glob_error_surfaces_on_resolve() -> None:
    registry = ProfileRegistry()
    registry.register_error("broken", MalformedGlobPatternError(pattern="[x", profile="broken"))

    with pytest.raises(MalformedGlobPatternError):
        ProfileResolver(registry).resolve("broken")
    assert ProfileResolver(registry).resolve("rust").name == "rust"


@pytest.mark.unit
def test_no_profile_name_builds_ad_hoc_profile() -> None:
    resolved = _resolver().resolve(None, CliOverrides(extensions=["py"]))

    assert resolved.name == AD_HOC_PROFILE
    assert resolved.extensions == (".py",)
    assert resolved.source_chain == ()


@pytest.mark.unit
def test_ad_hoc_profile_without_rules_selects_nothing() -> None:
    assert not _resolver().resolve(None).selects_anything


@pytest.mark.unit
def test_cli_glob_is_validated() -> None:
    with pytest.raises(MalformedGlobPatternError) as excinfo:
        CliOverrides(exclude_globs=["src/[abc"])

    assert excinfo.value.profile == "command line"


@pytest.mark.unit
def test_wordpress_without_wp_cli_falls_back_with_warning(tmp_path: Path) -> None:
    provider = WordPressProfileProvider(tmp_path, wp_cli="wp-cli-that-does-not-exist-anywhere")
    resolver = ProfileResolver(ProfileRegistry(providers=[provider]))

    resolved = resolver.resolve("wordpress")
    fallback = wordpress_fallback_profile()

    assert resolved.extensions == fallback.extensions
    assert resolved.exclude_globs == fallback.exclude_globs
    assert len(resolved.warnings) == 1
    assert "wp-cli-that-does-not-exist-anywhere" in resolved.warnings[0]


@pytest.mark.unit
def test_provider_is_materialized_once_per_resolver(mocker) -> None:
    provider = WordPressProfileProvider(".")
    discover = mocker.patch.object(
        provider,
        "discover",
        return_value=Profile(name="wordpress", extensions=[".php"]),
    )
    resolver = ProfileResolver(ProfileRegistry(providers=[provider]))
    resolver.resolve("wordpress")
    resolver.resolve("wordpress")

    assert discover.call_count == 1


@pytest.mark.unit
def test_user_profile_extending_a_provider() -> None:
    provider = WordPressProfileProvider(".", wp_cli="wp-cli-that-does-not-exist-anywhere")
    registry = ProfileRegistry(providers=[provider])
    registry.register(Profile(name="site", extends="wordpress", exclude_globs=["vendor/**"]))

    resolved = ProfileResolver(registry).resolve("site")

    assert "vendor/**" in resolved.exclude_globs
    assert "wp-admin/**" in resolved.exclude_globs
    assert resolved.source_chain == ("wordpress", "site")
    assert resolved.warnings


@pytest.mark.unit
def test_merge_profiles_unions_and_keeps_child_name() -> None:
    parent = Profile(name="p", extensions=[".a"], max_depth=3, markdown=True)
    child = Profile(name="c", extensions=[".b", ".a"], max_depth=1)

    merged = merge_profiles(parent, child)

    assert merged.name == "c"
    assert merged.extensions == (".a", ".b")
    assert merged.max_depth == 1
    assert merged.markdown is True
