"""Profile providers: deferred computations that materialize a Profile.

A provider always wraps a static fallback profile. `discover()` may consult an
external tool and raise `ProviderUnavailableError`; `provide()` never raises for
that reason and degrades to the fallback instead.
"""

from __future__ import annotations

import json
import shutil
import subprocess  # noqa: S404
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from code_flattener.config import WORDPRESS_PROFILE
from code_flattener.exceptions import ProviderUnavailableError
from code_flattener.logging import logger
from code_flattener.profiles import Profile

if TYPE_CHECKING:
    from collections.abc import Sequence

DEFAULT_WP_TIMEOUT = 10.0

WP_EXTENSIONS = [
    ".php",
    ".js",
    ".css",
    ".scss",
    ".sass",
    ".less",
    ".html",
    ".htm",
    ".md",
    ".mdx",
    ".json",
    ".xml",
    ".yml",
    ".yaml",
    ".ini",
    ".env",
    ".env.local",
    ".env.development",
    ".env.production",
    ".txt",
]

WP_FILENAMES = [
    "wp-config.php",
    "wp-cli.yml",
    "composer.json",
    "package.json",
    "webpack.config.js",
    "tailwind.config.js",
    "postcss.config.js",
]

WP_CORE_FILES = [
    "xmlrpc.php",
    "wp-activate.php",
    "wp-cron.php",
    "wp-load.php",
    "wp-blog-header.php",
    "wp-settings.php",
    "wp-login.php",
    "wp-signup.php",
    "wp-trackback.php",
    "wp-comments-post.php",
    "wp-links-opml.php",
    "wp-mail.php",
]

WP_CORE_EXCLUDES = [
    "wp-admin/**",
    "wp-includes/**",
    "wp-content/uploads/**",
    "wp-content/cache/**",
    *WP_CORE_FILES,
]

PLUGINS_DIR = "wp-content/plugins"
THEMES_DIR = "wp-content/themes"


class ProfileProvider(ABC):
    """A named provider producing a Profile on demand."""

    name: str

    @property
    @abstractmethod
    def fallback(self) -> Profile:
        """The static, conservative profile used when discovery is unavailable."""

    @abstractmethod
    def discover(self) -> Profile:
        """Materialize the profile, raising ProviderUnavailableError on failure."""

    def provide(self) -> Profile:
        """Materialize the profile, falling back to the static one on failure.

        Returns:
            Profile: the discovered profile, or the fallback
        """
        try:
            return self.discover()
        except ProviderUnavailableError as e:
            logger.warning("Provider %s unavailable, using fallback: %s", self.name, e.reason)
            return self.fallback


class StaticProfileProvider(ProfileProvider):
    """Provider for a fixed profile; discovery cannot fail."""

    def __init__(self, profile: Profile) -> None:
        self.name = profile.name
        self._profile = profile

    @property
    def fallback(self) -> Profile:
        return self._profile

    def discover(self) -> Profile:
        return self._profile


def wordpress_fallback_profile() -> Profile:
    """Conservative WordPress profile that needs no external tool."""
    return Profile(
        name=WORDPRESS_PROFILE,
        description="WordPress site with active theme and plugins.",
        extensions=WP_EXTENSIONS,
        allowed_filenames=WP_FILENAMES,
        exclude_globs=WP_CORE_EXCLUDES,
    )


class WordPressProfileProvider(ProfileProvider):
    """Derives a path-aware WordPress profile from `wp-cli`.

    Active theme and plugins are queried with `wp theme list` and
    `wp plugin list`; installed but inactive components are excluded so the
    export only carries code that actually runs on the site.
    """

    def __init__(
        self,
        root: Path | str = ".",
        *,
        wp_cli: str = "wp",
        timeout: float = DEFAULT_WP_TIMEOUT,
        exclude_plugins: Sequence[str] = (),
        include_only_plugins: Sequence[str] = (),
        include_theme: str | None = None,
    ) -> None:
        self.name = WORDPRESS_PROFILE
        self.root = Path(root)
        self.wp_cli = wp_cli
        self.timeout = timeout
        self.exclude_plugins = [_slug(p) for p in exclude_plugins if p.strip()]
        self.include_only_plugins = [_slug(p) for p in include_only_plugins if p.strip()]
        self.include_theme = (include_theme or "").strip() or None

    @property
    def fallback(self) -> Profile:
        return wordpress_fallback_profile()

    def discover(self) -> Profile:
        if self.include_only_plugins or self.include_theme:
            return self._explicit_profile()

        themes = self._run_wp(["theme", "list", "--format=json", "--status=active"])
        plugins = self._run_wp(["plugin", "list", "--format=json", "--status=active"])

        theme = next((str(t["name"]) for t in themes if t.get("name")), None)
        slugs = [_slug(str(p["name"])) for p in plugins if p.get("name")]
        if not slugs:
            slugs = self._installed(PLUGINS_DIR)
        excluded = {s.lower() for s in self.exclude_plugins}
        active = [s for s in slugs if s.lower() not in excluded]

        include_globs = ["wp-config.php"]
        if theme:
            theme_dir = f"{THEMES_DIR}/{theme}"
            include_globs += [f"{theme_dir}/functions.php", f"{theme_dir}/style.css"]
        include_globs += [f"{PLUGINS_DIR}/{s}/{s}.php" for s in active]

        exclude_globs = list(WP_CORE_EXCLUDES)
        exclude_globs += [
            f"{PLUGINS_DIR}/{s}/**" for s in self._installed(PLUGINS_DIR) if s not in active
        ]
        exclude_globs += [f"{PLUGINS_DIR}/{s}/**" for s in self.exclude_plugins]
        if theme:
            exclude_globs += [f"{THEMES_DIR}/{t}/**" for t in self._installed(THEMES_DIR) if t != theme]

        logger.info(
            "WordPress discovery complete",
            root=str(self.root),
            theme=theme,
            plugins=active,
        )
        return Profile(
            name=WORDPRESS_PROFILE,
            description=(
                "WordPress site with active theme and plugins (path-aware): "
                f"theme={theme or 'none'}, plugins={len(active)}."
            ),
            extensions=[".js", ".css", ".scss", ".sass", ".less", ".json", ".txt", ".md", ".php"],
            allowed_filenames=["wp-config.php"],
            include_globs=include_globs,
            exclude_globs=exclude_globs,
        )

    def _explicit_profile(self) -> Profile:
        logger.info("Using explicit include profile for WordPress")
        include_globs = ["wp-config.php"]
        if self.include_theme:
            include_globs.append(f"{THEMES_DIR}/{self.include_theme}/**")
        include_globs += [f"{PLUGINS_DIR}/{s}/**" for s in self.include_only_plugins]
        return Profile(
            name=WORDPRESS_PROFILE,
            description="WordPress site with specific theme/plugins.",
            include_globs=include_globs,
            exclude_globs=[
                *WP_CORE_EXCLUDES,
                *(f"{PLUGINS_DIR}/{s}/**" for s in self.exclude_plugins),
            ],
        )

    def _installed(self, subdir: str) -> list[str]:
        base = self.root / subdir
        try:
            return sorted(
                p.name for p in base.iterdir() if p.is_dir() and not p.name.startswith(".")
            )
        except OSError:
            return []

    def _run_wp(self, args: list[str]) -> list[dict[str, Any]]:
        """Run a wp-cli command and parse its JSON list output.

        Args:
            args (list[str]): arguments passed to the wp-cli executable

        Raises:
            ProviderUnavailableError: if wp-cli is missing, times out, exits with a
                non-zero status or prints something that is not a JSON list

        Returns:
            list[dict[str, Any]]: the parsed records
        """
        exe = shutil.which(self.wp_cli)
        if exe is None:
            raise ProviderUnavailableError(provider=self.name, reason=f"'{self.wp_cli}' not found")
        try:
            out = subprocess.run(  # noqa: S603
                [exe, *args],
                cwd=str(self.root),
                text=True,
                capture_output=True,
                check=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ProviderUnavailableError(
                provider=self.name,
                reason=f"'wp {' '.join(args[:2])}' timed out after {self.timeout}s",
            ) from e
        except subprocess.CalledProcessError as e:
            raise ProviderUnavailableError(
                provider=self.name,
                reason=f"'wp {' '.join(args[:2])}' exited with {e.returncode}: {(e.stderr or '').strip()}",
            ) from e
        except OSError as e:
            raise ProviderUnavailableError(provider=self.name, reason=str(e)) from e
        try:
            data = json.loads(out.stdout or "[]")
        except json.JSONDecodeError as e:
            raise ProviderUnavailableError(provider=self.name, reason=f"invalid JSON from wp-cli: {e}") from e
        if not isinstance(data, list):
            raise ProviderUnavailableError(provider=self.name, reason="wp-cli did not return a JSON list")
        return [item for item in data if isinstance(item, dict)]


def _slug(name: str) -> str:
    return name.strip().split("/", 1)[0]
