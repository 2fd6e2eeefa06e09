from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from code_flattener import cli
from code_flattener.config import MIB
from code_flattener.config_file import ConfigFile
from code_flattener.profiles import Profile
from code_flattener.providers import WordPressProfileProvider

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


@pytest.mark.integration
def test_parse_args_collects_selection_flags() -> None:
    settings = cli.parse_args(
        [
            "src",
            "tests",
            "-p",
            "python",
            "-e",
            ".py,.pyi",
            "-e",
            ".toml",
            "-a",
            "Makefile Dockerfile",
            "--exclude-globs",
            "tests/fixtures/**",
            "--max-size",
            "0.5",
            "--dry-run",
            "--workers",
            "4",
        ],
    )

    assert settings.target_dirs == [Path("src"), Path("tests")]
    assert settings.profile == "python"
    assert settings.extensions == [".py", ".pyi", ".toml"]
    assert settings.allowed_filenames == ["Makefile", "Dockerfile"]
    assert settings.exclude_globs == ["tests/fixtures/**"]
    assert settings.max_size == 0.5
    assert settings.dry_run is True
    assert settings.workers == 4
    assert settings.markdown is None


@pytest.mark.integration
def test_allowed_filenames_flag_does_not_swallow_targets(tmp_path: Path) -> None:
    settings = cli.parse_args(["-a", "Cargo.toml", str(tmp_path), "-a", "Makefile"])

    assert settings.target_dirs == [tmp_path]
    assert settings.allowed_filenames == ["Cargo.toml", "Makefile"]


@pytest.mark.integration
def test_walk_options_layer_cli_over_config() -> None:
    config = ConfigFile(exclude_dirs=["fixtures"], respect_gitignore=True, ignore_file=".customignore")
    settings = cli.parse_args(["--include-dirs", "src,./lib/", "--no-respect-gitignore"])

    options = cli.build_walk_options(settings, config)

    assert options.include_dirs == ("src", "lib")
    assert options.exclude_dirs == ("fixtures",)
    assert options.respect_gitignore is False
    assert options.ignore_file == ".customignore"


@pytest.mark.integration
def test_walk_options_default_to_gitignore_and_tool_ignore_file() -> None:
    options = cli.build_walk_options(cli.parse_args([]), None)

    assert options.respect_gitignore is True
    assert options.ignore_file == ".flattenerignore"
    assert options.include_dirs == ()


@pytest.mark.integration
def test_parse_args_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--version"])

    assert exc_info.value.code == 0
    assert cli.__version__ in capsys.readouterr().out


@pytest.mark.integration
def test_build_overrides_layers_cli_over_config() -> None:
    config = ConfigFile(extensions=[".c"], max_size=1, max_depth=3)
    settings = cli.parse_args(["--max-depth", "5", "--include-dependency-dirs"])

    overrides = cli.build_overrides(settings, config)

    assert overrides.extensions == (".c",)
    assert overrides.max_file_size_bytes == MIB
    assert overrides.max_depth == 5
    assert overrides.exclude_common_dependency_dirs is False


@pytest.mark.integration
def test_build_registry_registers_wordpress_and_user_profiles(tmp_path: Path) -> None:
    config = ConfigFile(profiles={"site": {"extends": "wordpress", "exclude_globs": ["vendor/**"]}})
    settings = cli.parse_args([str(tmp_path), "--wp-exclude-plugins", "akismet"])

    registry = cli.build_registry(settings, config)

    provider = registry.get("wordpress")
    assert isinstance(provider, WordPressProfileProvider)
    assert provider.root == tmp_path
    assert provider.exclude_plugins == ["akismet"]
    assert registry.get("site").extends == "wordpress"


@pytest.mark.integration
def test_run_wordpress_with_discovered_profile(
    tmp_path: Path,
    mocker: MockerFixture,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.chdir(tmp_path)
    plugin = tmp_path / "wp-content" / "plugins" / "shop" / "shop.php"
    plugin.parent.mkdir(parents=True)
    plugin.write_text("<?php // shop\n", encoding="utf-8")
    core = tmp_path / "wp-includes" / "load.php"
    core.parent.mkdir(parents=True)
    core.write_text("<?php // core\n", encoding="utf-8")

    mocker.patch.object(
        WordPressProfileProvider,
        "discover",
        return_value=Profile(
            name="wordpress",
            include_globs=["wp-content/plugins/shop/shop.php"],
            exclude_globs=["wp-includes/**"],
        ),
    )

    exit_code = cli.main(["-p", "wordpress", str(tmp_path)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "# --- File: wp-content/plugins/shop/shop.php ---" in out
    assert "core" not in out
