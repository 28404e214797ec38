"""THYPRESS configuration.

ThypressConfig is the central configuration object, frozen after creation.
It is computed once at startup and threaded through the Service; nothing
reads process-wide globals for mode or paths.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from thypress._types import Mode

DEFAULT_THEME_ID = ".default"
DEFAULT_PORT = 3009
DEFAULT_CACHE_MAX_SIZE = 50 * 1024 * 1024

# config.json key -> ThypressConfig field.  Anything not listed here is
# carried in ``extras`` and forwarded untouched to templates.
CONFIG_KEYS: dict[str, str] = {
    "title": "title",
    "description": "description",
    "url": "url",
    "author": "author",
    "contentDir": "content_dir",
    "skipDirs": "skip_dirs",
    "theme": "theme",
    "readingSpeed": "reading_speed",
    "escapeTextFiles": "escape_text_files",
    "strictImages": "strict_images",
    "strictThemeIsolation": "strict_theme_isolation",
    "forceTheme": "force_theme",
    "discoverTemplates": "discover_templates",
    "fingerprintAssets": "fingerprint_assets",
    "disablePreRender": "disable_pre_render",
    "preCompressContent": "pre_compress_content",
    "disableLiveReload": "disable_live_reload",
    "strictPreRender": "strict_pre_render",
    "strictTemplateValidation": "strict_template_validation",
    "allowExternalRedirects": "allow_external_redirects",
    "allowedRedirectDomains": "allowed_redirect_domains",
    "cacheMaxSize": "cache_max_size",
    "index": "index",
}


@dataclass(frozen=True, slots=True)
class ThypressConfig:
    """Configuration for a THYPRESS site.

    Attributes:
        root: Project root (contains config.json, content/, templates/).
              Always resolved to an absolute path on construction.
        mode: Serving mode. Only ``dynamic`` enables watchers, live reload
            and just-in-time rendering.
        host: Bind address for the HTTP server.
        port: Bind port for the HTTP server.
        explicit_port: True when the port came from ``PORT`` and must not
            be probed upward.
        title: Site title.
        description: Site description.
        url: Canonical site URL, used by feeds and the sitemap.
        author: Default author name.
        content_dir: Content root, relative to ``root``.
        skip_dirs: Extra directory names ignored on every walk.
        theme: Active theme id.
        reading_speed: Words per minute for reading-time estimates.
        escape_text_files: HTML-escape ``.txt`` bodies inside ``<pre>``.
        strict_images: Abort ingestion on a broken image reference.
        strict_theme_isolation: Skip the embedded fallback layer.
        force_theme: Install a theme even when validation fails.
        discover_templates: Accepted for compatibility; templates are
            always discovered from the theme directory.
        fingerprint_assets: Content-hash asset filenames on build.
        disable_pre_render: Skip the warm-up render in dynamic mode.
        pre_compress_content: Run the precompression sweep after warm-up.
        disable_live_reload: Never inject or serve live reload.
        strict_pre_render: Abort startup if any page fails during warm-up.
        strict_template_validation: Abort on template syntax errors
            instead of skipping the file.
        allow_external_redirects: Permit redirects to other hosts.
        allowed_redirect_domains: Hosts permitted as redirect targets.
        cache_max_size: Byte budget for the static-asset cache layer.
        index: Slug of the entry served at ``/``.
        extras: Unrecognized config.json keys, forwarded to templates.

    """

    root: Path = field(default_factory=Path.cwd)
    mode: Mode = "dynamic"
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    explicit_port: bool = False
    title: str = "My Site"
    description: str = "A site powered by THYPRESS"
    url: str = "https://example.com"
    author: str = "Anonymous"
    content_dir: str = "content"
    skip_dirs: tuple[str, ...] = ()
    theme: str = DEFAULT_THEME_ID
    reading_speed: int = 200
    escape_text_files: bool = True
    strict_images: bool = False
    strict_theme_isolation: bool = False
    force_theme: bool = False
    discover_templates: bool = False
    fingerprint_assets: bool = False
    disable_pre_render: bool = False
    pre_compress_content: bool = False
    disable_live_reload: bool = False
    strict_pre_render: bool = True
    strict_template_validation: bool = True
    allow_external_redirects: bool = False
    allowed_redirect_domains: tuple[str, ...] = ()
    cache_max_size: int = DEFAULT_CACHE_MAX_SIZE
    index: str | None = None
    extras: MappingProxyType[str, Any] = field(
        default_factory=lambda: MappingProxyType({}),
    )

    def __post_init__(self) -> None:
        # watchfiles reports absolute paths; relative_to() needs an absolute root.
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())
        if not isinstance(self.extras, MappingProxyType):
            object.__setattr__(self, "extras", MappingProxyType(dict(self.extras)))
        if self.reading_speed <= 0:
            object.__setattr__(self, "reading_speed", 200)

    @property
    def is_dynamic(self) -> bool:
        """True in dynamic mode (watchers, live reload, JIT rendering)."""
        return self.mode == "dynamic"

    @property
    def live_reload(self) -> bool:
        """Whether live-reload injection and the SSE endpoint are active."""
        return self.is_dynamic and not self.disable_live_reload

    @property
    def content_path(self) -> Path:
        """Absolute path to the content root."""
        return self.root / self.content_dir

    @property
    def templates_path(self) -> Path:
        """Absolute path to the disk themes directory."""
        return self.root / "templates"

    @property
    def theme_path(self) -> Path:
        """Absolute path to the active disk theme (may not exist)."""
        return self.templates_path / self.theme

    @property
    def cache_path(self) -> Path:
        """Absolute path to the derivative-artifact cache directory."""
        return self.root / ".cache"

    @property
    def images_cache_path(self) -> Path:
        """Absolute path to optimized image variants."""
        return self.cache_path / "images"

    @property
    def build_path(self) -> Path:
        """Absolute path to the static export target."""
        return self.root / "build"

    @property
    def config_file(self) -> Path:
        """Absolute path to config.json."""
        return self.root / "config.json"

    @property
    def redirects_file(self) -> Path:
        """Absolute path to redirects.json."""
        return self.root / "redirects.json"

    def site_context(self) -> dict[str, Any]:
        """Return the full merged config map exposed to templates as ``config``.

        Recognized options appear under their config.json (camelCase)
        names; unrecognized keys are passed through untouched.

        """
        merged: dict[str, Any] = {}
        for key, attr in CONFIG_KEYS.items():
            value = getattr(self, attr)
            merged[key] = list(value) if isinstance(value, tuple) else value
        merged.update(self.extras)
        return merged
