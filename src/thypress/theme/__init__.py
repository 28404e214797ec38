"""THYPRESS theme resolver — three layers composed into one lookup surface.

Layers, latest wins file by file:

    L1  embedded ``.default`` (skipped under ``strictThemeIsolation``)
    L2  another embedded theme named by ``config.theme``
    L3  ``templates/<config.theme>/`` on disk

Every load builds fresh template and partial maps and a fresh Jinja2
environment, so nothing registered by a previous load survives a reload.

Thread Safety:
    A composed :class:`Theme` is immutable and shared by request handlers.
    Jinja2 templates are safe to render concurrently.

"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal

import jinja2

from thypress._errors import ThemeError
from thypress.config import DEFAULT_THEME_ID
from thypress.theme.loader import Asset, LayeredLoader, LayerFiles, create_environment, read_layer
from thypress.theme.validation import ThemeValidation, validate_theme

if TYPE_CHECKING:
    from collections.abc import Iterable

    from thypress.config import ThypressConfig
    from thypress.content.processor import Entry

type ThemeState = Literal["ready", "reloading", "broken"]

_SINGLE_FILE_ALIASES = ("entry", "page")


def embedded_root() -> Path:
    """Directory holding the embedded theme bundles."""
    return Path(__file__).parent / "embedded"


def embedded_themes(root: Path | None = None) -> dict[str, Path]:
    """Embedded theme id (``.<dirname>``) -> bundle directory."""
    root = root or embedded_root()
    if not root.is_dir():
        return {}
    return {
        f".{child.name}": child
        for child in sorted(root.iterdir())
        if child.is_dir() and not child.name.startswith((".", "_"))
    }


# ---------------------------------------------------------------------------
# Composed theme
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Theme:
    """A composed theme.

    Attributes:
        active_id: ``config.theme`` at load time.
        templates: Page template name -> compiled template.
        partials: Partial name -> source.
        assets: Theme-relative path -> Asset.
        asset_templates: Compiled templated assets, keyed like ``assets``.
        metadata: Theme metadata (``theme.json`` or index front matter).
        validation: Validation result for the disk layer.
        disk_path: Active disk theme directory, if present.
        single_file: True when ``entry``/``page`` alias ``index``.

    """

    active_id: str
    templates: MappingProxyType[str, jinja2.Template]
    partials: MappingProxyType[str, str]
    assets: MappingProxyType[str, Asset]
    asset_templates: MappingProxyType[str, jinja2.Template] = field(
        default_factory=lambda: MappingProxyType({}),
    )
    metadata: MappingProxyType[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    validation: ThemeValidation = field(default_factory=ThemeValidation)
    disk_path: Path | None = None
    single_file: bool = False

    def has(self, name: str) -> bool:
        return name in self.templates

    def get(self, name: str) -> jinja2.Template | None:
        return self.templates.get(name)

    def first(self, *names: str | None) -> str | None:
        """The first of *names* that this theme provides."""
        for name in names:
            if name and name in self.templates:
                return name
        return None

    def select_template(self, entry: Entry) -> str | None:
        """Template name for an entry page.

        Order: front matter ``template`` -> ``entry.section`` -> ``index``
        for the home entry -> ``entry`` -> ``page`` -> ``index``.

        """
        home = "index" if entry.slug in ("", "index") else None
        return self.first(entry.template, entry.section, home, "entry", "page", "index")

    def list_template(self, page_type: str) -> str | None:
        """Template name for a list view (index, tag, category, series)."""
        if page_type == "index":
            return self.first("index")
        return self.first(page_type, "tag", "index")

    def render_asset(self, key: str, context: dict[str, Any]) -> bytes | None:
        """Render a templated asset; None if *key* is not templated."""
        template = self.asset_templates.get(key)
        if template is None:
            return None
        return template.render(context).encode("utf-8")


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def _merge(target: LayerFiles, layer: LayerFiles) -> None:
    target.templates.update(layer.templates)
    target.partials.update(layer.partials)
    target.assets.update(layer.assets)
    target.skipped.extend(layer.skipped)


def _compile_all(
    env: jinja2.Environment,
    names: Iterable[str],
    *,
    strict: bool,
) -> tuple[dict[str, jinja2.Template], list[str]]:
    from thypress.console import warning

    compiled: dict[str, jinja2.Template] = {}
    failures: list[str] = []
    for name in names:
        try:
            compiled[name] = env.get_template(name)
        except jinja2.TemplateSyntaxError as exc:
            message = f"Template '{name}' has a syntax error (line {exc.lineno}): {exc.message}"
            if strict:
                raise ThemeError(message) from exc
            warning(f"{message} (skipped)")
            failures.append(name)
    return compiled, failures


def _is_single_file(active: LayerFiles, disk: LayerFiles | None) -> bool:
    if "entry" in active.templates or "index" not in active.templates:
        return False
    if active.metadata.get("singleFile") is True:
        return True
    if disk is None:
        return False
    pages = [p for p in disk.root_pages if p != "404"]
    return pages == ["index"]


def compose_theme(
    config: ThypressConfig,
    *,
    registry: Path | None = None,
    entries: Iterable[Entry] | None = None,
) -> Theme:
    """Compose L1-L3 into a :class:`Theme`.

    Args:
        config: Site configuration.
        registry: Embedded theme directory (tests substitute their own).
        entries: Current content, for content-aware validation warnings.

    Raises:
        ThemeError: On a template syntax error under
            ``strictTemplateValidation``, or when no ``index`` template
            exists after composition.

    """
    from thypress import __version__

    bundles = embedded_themes(registry)
    active_id = config.theme
    merged = LayerFiles()

    isolate = config.strict_theme_isolation and active_id != DEFAULT_THEME_ID
    if not isolate and DEFAULT_THEME_ID in bundles:
        fallback = read_layer(bundles[DEFAULT_THEME_ID])
        _merge(merged, fallback)
        merged.metadata = dict(fallback.metadata)

    # L2 + L3 together form the active theme
    active = LayerFiles()
    if active_id != DEFAULT_THEME_ID and active_id in bundles:
        embedded = read_layer(bundles[active_id])
        _merge(active, embedded)
        active.metadata = dict(embedded.metadata)

    disk: LayerFiles | None = None
    disk_path = config.templates_path / active_id
    if disk_path.is_dir():
        disk = read_layer(disk_path)
        _merge(active, disk)
        active.root_pages = list(disk.root_pages)
        if disk.metadata:
            active.metadata = dict(disk.metadata)
    else:
        disk_path = None

    _merge(merged, active)
    if active.metadata:
        merged.metadata = active.metadata

    single_file = _is_single_file(active, disk)
    strict = config.strict_template_validation

    env = create_environment(merged.templates, merged.partials)
    templates, failed = _compile_all(env, sorted(merged.templates), strict=strict)
    _, failed_partials = _compile_all(env, sorted(merged.partials), strict=strict)
    for name in failed:
        merged.templates.pop(name, None)
    for name in failed_partials:
        merged.partials.pop(name, None)

    if single_file and "index" in templates:
        handles = merged.metadata.get("handles") or []
        if isinstance(handles, str):
            handles = [handles]
        for alias in (*_SINGLE_FILE_ALIASES, *map(str, handles)):
            templates[alias] = templates["index"]

    asset_env = create_environment(merged.templates, merged.partials, autoescape=False)
    asset_templates: dict[str, jinja2.Template] = {}
    for key, asset in merged.assets.items():
        if asset.source is None:
            continue
        try:
            asset_templates[key] = asset_env.from_string(asset.source)
        except jinja2.TemplateSyntaxError as exc:
            message = f"Templated asset '{key}' has a syntax error (line {exc.lineno}): {exc.message}"
            if strict:
                raise ThemeError(message) from exc
            from thypress.console import warning

            warning(f"{message} (skipped)")

    if "index" not in templates:
        msg = f"Theme '{active_id}' has no index template"
        raise ThemeError(msg)

    validation = ThemeValidation()
    if disk is not None:
        loader = env.loader
        assert isinstance(loader, LayeredLoader)
        validation = validate_theme(
            active_id,
            disk,
            loader.resolve,
            __version__,
            entries,
        )

    return Theme(
        active_id=active_id,
        templates=MappingProxyType(templates),
        partials=MappingProxyType(dict(merged.partials)),
        assets=MappingProxyType(dict(merged.assets)),
        asset_templates=MappingProxyType(asset_templates),
        metadata=MappingProxyType(dict(merged.metadata)),
        validation=validation,
        disk_path=disk_path,
        single_file=single_file,
    )


# ---------------------------------------------------------------------------
# Reload state machine
# ---------------------------------------------------------------------------


class ThemeResolver:
    """Holds the current theme and drives reloads.

    States: ``ready`` -> ``reloading`` -> ``ready`` on success.  A reload
    that fails validation keeps the prior theme (``ready``) unless
    ``forceTheme`` is set, in which case the new theme is installed and
    the state becomes ``broken``.  A reload that cannot compose at all
    keeps the prior theme.

    Args:
        config: Site configuration.
        registry: Embedded theme directory override (tests).

    """

    def __init__(self, config: ThypressConfig, *, registry: Path | None = None) -> None:
        self._config = config
        self._registry = registry
        self.theme: Theme | None = None
        self.state: ThemeState = "ready"

    @property
    def config(self) -> ThypressConfig:
        return self._config

    def load(self, entries: Iterable[Entry] | None = None) -> Theme:
        """Initial load.  Any failure is fatal to startup.

        Raises:
            ThemeError: If composition fails, or validation fails without
                ``forceTheme``.

        """
        from thypress.console import warning

        theme = compose_theme(self._config, registry=self._registry, entries=entries)
        for message in theme.validation.warnings:
            warning(message)
        if not theme.validation.valid:
            details = "\n".join(theme.validation.errors)
            if not self._config.force_theme:
                msg = f"Theme '{theme.active_id}' failed validation:\n{details}"
                raise ThemeError(msg)
            warning(f"Theme '{theme.active_id}' failed validation (forced):\n{details}")
            self.state = "broken"
        else:
            self.state = "ready"
        self.theme = theme
        return theme

    def reload(
        self,
        config: ThypressConfig | None = None,
        entries: Iterable[Entry] | None = None,
    ) -> bool:
        """Recompose after a template or config change.

        Returns:
            True if a new theme was installed.

        """
        from thypress.console import error, success, warning

        if config is not None:
            self._config = config
        self.state = "reloading"
        try:
            theme = compose_theme(self._config, registry=self._registry, entries=entries)
        except ThemeError as exc:
            error(f"Theme reload failed: {exc}")
            self.state = "ready" if self.theme is not None else "broken"
            return False

        for message in theme.validation.warnings:
            warning(message)
        if not theme.validation.valid:
            for message in theme.validation.errors:
                error(message)
            if not self._config.force_theme:
                error("Theme reload rejected; keeping previous theme")
                self.state = "ready"
                return False
            self.state = "broken"
        else:
            self.state = "ready"
        self.theme = theme
        success(f"Theme reloaded: {theme.active_id}")
        return True


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def scan_available_themes(
    config: ThypressConfig,
    *,
    registry: Path | None = None,
) -> list[dict[str, Any]]:
    """List embedded and disk themes with their metadata."""
    from thypress.theme.loader import read_theme_metadata

    themes: list[dict[str, Any]] = []
    for theme_id, bundle in embedded_themes(registry).items():
        meta = read_theme_metadata(bundle)
        themes.append({
            "id": theme_id,
            "name": meta.get("name", theme_id),
            "version": meta.get("version", "unknown"),
            "description": meta.get("description", "Built-in THYPRESS theme"),
            "author": meta.get("author", "THYPRESS"),
            "requires": meta.get("requires", []),
            "embedded": True,
            "valid": True,
            "active": theme_id == config.theme,
        })

    templates = config.templates_path
    if not templates.is_dir():
        return themes
    for child in sorted(templates.iterdir()):
        if not child.is_dir() or child.name.startswith("."):
            continue
        meta = read_theme_metadata(child)
        has_index = (child / "index.html").is_file()
        info: dict[str, Any] = {
            "id": child.name,
            "name": meta.get("name", child.name),
            "version": meta.get("version", "unknown"),
            "description": meta.get("description", "No description available"),
            "author": meta.get("author", "Unknown"),
            "requires": meta.get("requires", []),
            "embedded": False,
            "valid": has_index,
            "active": child.name == config.theme,
        }
        if not has_index:
            info["error"] = "Missing required file: index.html"
        themes.append(info)
    return themes


__all__ = [
    "Asset",
    "Theme",
    "ThemeResolver",
    "ThemeState",
    "compose_theme",
    "embedded_themes",
    "scan_available_themes",
]
