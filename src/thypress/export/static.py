"""Static export — render the whole site to plain files under ``build/``.

The export goes through the same :class:`~thypress.render.renderer.Renderer`
as the live server, so a page served in dynamic mode and the file
written here are byte-identical (minus the live-reload script, which is
never part of a rendered body).
"""

from __future__ import annotations

import html
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from thypress._errors import ExportError, RenderError
from thypress.content.images import reconcile_images
from thypress.render.feeds import META_FILES
from thypress.render.taxonomy import TAXONOMIES, all_terms, taxonomy_url

if TYPE_CHECKING:
    from collections.abc import Callable

    from thypress.render.renderer import Renderer
    from thypress.service import Service

type SourceType = Literal["content", "list", "taxonomy", "asset", "image", "meta", "redirect", "error_page"]

REDIRECTS_FILENAME = "_redirects"

_REDIRECT_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Redirecting...</title>
<link rel="canonical" href="{to}">
<meta http-equiv="refresh" content="0; url={to}">
</head>
<body>
<p>Redirecting to <a href="{to}">{to}</a></p>
</body>
</html>
"""


@dataclass(frozen=True, slots=True)
class ExportedFile:
    """Record of a single file written during export.

    Attributes:
        source_path: Logical source (e.g., ``"/docs/getting-started/"``).
        output_path: Absolute filesystem path to the written file.
        source_type: Category of the exported file.
        size_bytes: Size of the written file in bytes.
        duration_ms: Time taken to render and write this file.

    """

    source_path: str
    output_path: Path
    source_type: SourceType
    size_bytes: int
    duration_ms: float


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Aggregate result of a full static export.

    Attributes:
        files: All files written during export.
        total_pages: Number of entry, list and taxonomy pages exported.
        total_assets: Number of theme assets, static files and image
            variants copied.
        duration_ms: Total wall-clock time for the export.
        output_dir: Absolute path to the output directory.
        manifest: Original -> fingerprinted asset paths (empty unless
            ``fingerprintAssets`` is set).

    """

    files: tuple[ExportedFile, ...]
    total_pages: int
    total_assets: int
    duration_ms: float
    output_dir: Path
    manifest: dict[str, str]


class StaticExporter:
    """Exports a loaded :class:`~thypress.service.Service` as static files.

    Args:
        service: A service whose :meth:`~thypress.service.Service.load`
            has completed.
        output_dir: Target directory (defaults to ``config.build_path``).

    """

    def __init__(self, service: Service, output_dir: Path | None = None) -> None:
        self._service = service
        self._output_dir = output_dir if output_dir is not None else service.config.build_path

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def export(self) -> ExportResult:
        """Run the full export pipeline and return the result.

        Pipeline order:
            1. Clean output directory
            2. Render entries, home list pages and taxonomy pages
            3. Write meta files and 404.html
            4. Copy theme assets, content static files and image variants
            5. Fingerprint assets and rewrite references (if enabled)
            6. Write ``_redirects`` and meta-refresh fallbacks

        Raises:
            ExportError: If any step of the pipeline fails.

        """
        from thypress.export.assets import fingerprint_assets, rewrite_asset_refs, write_manifest

        start = time.perf_counter()
        output_dir = self._output_dir
        renderer = self._service.state.renderer

        self._clean_output(output_dir)

        files: list[ExportedFile] = []
        files.extend(self._render_pages(renderer, output_dir))
        files.extend(self._write_meta_files(renderer, output_dir))
        files.extend(self._copy_theme_assets(renderer, output_dir))
        files.extend(self._copy_static_files(output_dir))
        files.extend(self._copy_images(output_dir))

        manifest: dict[str, str] = {}
        if self._service.config.fingerprint_assets:
            manifest = fingerprint_assets(output_dir)
            rewrite_asset_refs(output_dir, manifest)
            write_manifest(output_dir, manifest)

        files.extend(self._write_redirects(output_dir))

        elapsed = (time.perf_counter() - start) * 1000
        return ExportResult(
            files=tuple(files),
            total_pages=sum(1 for f in files if f.source_type in ("content", "list", "taxonomy")),
            total_assets=sum(1 for f in files if f.source_type in ("asset", "image")),
            duration_ms=elapsed,
            output_dir=output_dir,
            manifest=manifest,
        )

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _clean_output(self, output_dir: Path) -> None:
        """Remove and recreate the output directory."""
        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

    def _render_pages(self, renderer: Renderer, output_dir: Path) -> list[ExportedFile]:
        """Entries, ``/page/<n>/`` and every tag, category and series page."""
        content = renderer.content
        jobs: list[tuple[str, SourceType, Callable[[], str | None]]] = [
            (entry.url, "content", lambda e=entry: renderer.render_entry(e)) for entry in content.ordered
        ]

        # The first list page doubles as the home page unless an entry owns "/"
        home_taken = renderer.home_entry() is not None
        for page in range(1, renderer.page_count() + 1):
            url = f"/page/{page}/"
            jobs.append((url, "list", lambda n=page: renderer.render_list(n)))
            if page == 1 and not home_taken:
                jobs.append(("/", "list", lambda: renderer.render_list(1)))
        if home_taken:
            home = renderer.home_entry()
            if home is not None and home.url != "/":
                jobs.append(("/", "content", lambda: renderer.render_entry(home)))

        for taxonomy in TAXONOMIES:
            jobs.extend(
                (taxonomy_url(taxonomy, term), "taxonomy", lambda t=taxonomy, v=term: renderer.render_taxonomy(t, v))
                for term in all_terms(content.ordered, taxonomy)
            )

        results: list[ExportedFile] = []
        for url, source_type, job in jobs:
            t0 = time.perf_counter()
            try:
                html_text = job()
            except RenderError as exc:
                msg = f"Failed to render {url!r}: {exc}"
                raise ExportError(msg) from exc
            if html_text is None:
                continue
            filepath = self._permalink_to_filepath(url, output_dir)
            size = self._write_bytes(filepath, html_text.encode("utf-8"))
            results.append(ExportedFile(
                source_path=url,
                output_path=filepath,
                source_type=source_type,
                size_bytes=size,
                duration_ms=(time.perf_counter() - t0) * 1000,
            ))
        return results

    def _write_meta_files(self, renderer: Renderer, output_dir: Path) -> list[ExportedFile]:
        results: list[ExportedFile] = []
        for path, (key, _mime, generate) in META_FILES.items():
            t0 = time.perf_counter()
            try:
                data = generate(renderer)
            except RenderError as exc:
                msg = f"Failed to generate {path}: {exc}"
                raise ExportError(msg) from exc
            filepath = output_dir / key
            size = self._write_bytes(filepath, data)
            results.append(ExportedFile(path, filepath, "meta", size, (time.perf_counter() - t0) * 1000))

        t0 = time.perf_counter()
        filepath = output_dir / "404.html"
        size = self._write_bytes(filepath, renderer.render_404().encode("utf-8"))
        results.append(ExportedFile("/404.html", filepath, "error_page", size, (time.perf_counter() - t0) * 1000))
        return results

    def _copy_theme_assets(self, renderer: Renderer, output_dir: Path) -> list[ExportedFile]:
        """Every non-HTML theme file; templated ones are rendered first."""
        results: list[ExportedFile] = []
        for key, asset in sorted(renderer.theme.assets.items()):
            # Meta files were already generated from the same sources
            if f"/{key}" in META_FILES or key.endswith(".html"):
                continue
            t0 = time.perf_counter()
            if asset.is_templated:
                try:
                    data = renderer.render_asset(key)
                except RenderError as exc:
                    msg = f"Failed to render theme asset {key!r}: {exc}"
                    raise ExportError(msg) from exc
            else:
                data = asset.data
            if data is None:
                continue
            filepath = output_dir / key
            size = self._write_bytes(filepath, data)
            results.append(ExportedFile(f"/{key}", filepath, "asset", size, (time.perf_counter() - t0) * 1000))
        return results

    def _copy_static_files(self, output_dir: Path) -> list[ExportedFile]:
        """Non-content files under the content root, at the same relative path."""
        results: list[ExportedFile] = []
        for source in self._service.store.source.static_files():
            t0 = time.perf_counter()
            dest = output_dir / source.relative
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source.path, dest)
            results.append(ExportedFile(
                f"/{source.relative}",
                dest,
                "asset",
                dest.stat().st_size,
                (time.perf_counter() - t0) * 1000,
            ))
        return results

    def _copy_images(self, output_dir: Path) -> list[ExportedFile]:
        """Generate missing image variants, then copy the referenced ones."""
        from thypress.console import warning

        cache_dir = self._service.config.images_cache_path
        refs = self._service.store.snapshot.image_refs()
        result = reconcile_images(refs, cache_dir)
        for failed in result.failed:
            warning(f"Image variants missing for {failed}")

        results: list[ExportedFile] = []
        seen: set[str] = set()
        for ref in refs:
            for size, fmt in ref.variants():
                relative = ref.variant_relative(size, fmt)
                source = cache_dir / relative
                if relative in seen or not source.is_file():
                    continue
                seen.add(relative)
                t0 = time.perf_counter()
                dest = output_dir / relative
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, dest)
                results.append(ExportedFile(
                    f"/{relative}",
                    dest,
                    "image",
                    dest.stat().st_size,
                    (time.perf_counter() - t0) * 1000,
                ))
        return results

    def _write_redirects(self, output_dir: Path) -> list[ExportedFile]:
        """``_redirects`` host file plus a meta-refresh page per exact internal rule."""
        rules = self._service.state.redirects
        if not rules:
            return []

        results: list[ExportedFile] = []
        t0 = time.perf_counter()
        lines = [f"{rule.source} {rule.to} {rule.status_code}" for rule in rules]
        filepath = output_dir / REDIRECTS_FILENAME
        size = self._write_bytes(filepath, ("\n".join(lines) + "\n").encode("utf-8"))
        results.append(ExportedFile(f"/{REDIRECTS_FILENAME}", filepath, "redirect", size, (time.perf_counter() - t0) * 1000))

        for rule in rules:
            if rule.is_parameterized or rule.is_external:
                continue
            filepath = self._permalink_to_filepath(rule.source, output_dir)
            # Never overwrite a real page
            if filepath.exists():
                continue
            t0 = time.perf_counter()
            page = _REDIRECT_PAGE.format(to=html.escape(rule.to, quote=True))
            size = self._write_bytes(filepath, page.encode("utf-8"))
            results.append(ExportedFile(rule.source, filepath, "redirect", size, (time.perf_counter() - t0) * 1000))
        return results

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _permalink_to_filepath(permalink: str, output_dir: Path) -> Path:
        """Convert a URL permalink to an output file path.

        Clean URL convention:
            ``/``                  -> ``output/index.html``
            ``/about/``           -> ``output/about/index.html``
            ``/tag/python/``      -> ``output/tag/python/index.html``
            ``/old.html``         -> ``output/old.html``

        """
        clean = permalink.strip("/")
        if not clean:
            return output_dir / "index.html"
        if clean.endswith(".html"):
            return output_dir / clean
        return output_dir / clean / "index.html"

    @staticmethod
    def _write_bytes(filepath: Path, data: bytes) -> int:
        """Write *data*, creating parent dirs as needed; returns its size."""
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_bytes(data)
        return len(data)
