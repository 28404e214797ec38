"""Responsive images — references, dimensions, variants, reconciliation.

Markdown images pointing at local files are replaced by a ``<picture>``
element offering WebP and JPEG variants at several widths.  Variant
files live in ``.cache/images/`` keyed by ``<name>-<size>-<hash>.<ext>``
where ``hash`` is the first 8 hex chars of ``md5(source_path)``.

Widths are the standard sizes below the intrinsic width plus the
intrinsic width itself.  Intrinsic widths come from a dimensions cache
filled by a pre-scan over markdown sources before rendering; when a
width is unknown the standard sizes are used as-is.

Reconciliation (generate missing variants, delete stale ones) is
debounced by :class:`ImageOptimizer` and never runs twice at once.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import re
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from thypress.content.text import escape_html

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

STANDARD_IMAGE_SIZES: tuple[int, ...] = (400, 800, 1200)
VARIANT_FORMATS: tuple[str, ...] = ("webp", "jpg")
DEBOUNCE_SECONDS = 0.5

_MARKDOWN_IMAGE_RE = re.compile(r"!\[[^\]]*\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
_VARIANT_RE = re.compile(r"-(\d+)-([0-9a-f]{8})\.(webp|jpg)$")


def is_external(src: str) -> bool:
    """True for absolute URLs and protocol-relative references."""
    return src.startswith(("http://", "https://", "//", "data:"))


def is_variant_name(name: str) -> bool:
    """True for generated variant file names (``<name>-<size>-<hash>.<ext>``)."""
    return _VARIANT_RE.search(name) is not None


def image_hash(source_path: Path | str) -> str:
    """First 8 hex chars of the MD5 of the resolved source path."""
    return hashlib.md5(str(source_path).encode("utf-8")).hexdigest()[:8]


def sizes_for_width(width: int | None) -> tuple[int, ...]:
    """Standard sizes below *width*, plus *width* itself, ascending.

    Unknown widths fall back to the standard sizes.

    """
    if not width:
        return STANDARD_IMAGE_SIZES
    sizes = {s for s in STANDARD_IMAGE_SIZES if s < width}
    sizes.add(width)
    return tuple(sorted(sizes))


def resolve_image_source(src: str, entry_relative: str, content_root: Path) -> tuple[Path, str]:
    """Resolve an image ``src`` against the referencing entry.

    Absolute sources (``/img/a.png``) are rooted at the content root;
    everything else is relative to the entry's directory.

    Returns:
        ``(absolute_source_path, content_relative_web_path)``

    """
    src = src.split("#", 1)[0].split("?", 1)[0]
    if src.startswith("/"):
        resolved = content_root / src.lstrip("/")
    else:
        entry_dir = (content_root / entry_relative).parent
        resolved = entry_dir / src
    resolved = Path(os.path.normpath(resolved))
    try:
        relative = resolved.relative_to(content_root).as_posix()
    except ValueError:
        relative = PurePosixPath(src).name
    return resolved, relative


@dataclass(frozen=True, slots=True)
class ImageRef:
    """A local image referenced by an entry.

    Attributes:
        src: The ``src`` exactly as written in the source.
        source_path: Absolute path of the original image.
        output_key: Content-relative stem for variants (``blog/photo``).
        hash: 8 hex chars of ``md5(source_path)``.
        sizes: Widths to generate, ascending.

    """

    src: str
    source_path: Path
    output_key: str
    hash: str
    sizes: tuple[int, ...]

    @property
    def basename(self) -> str:
        return PurePosixPath(self.output_key).name

    @property
    def url_base(self) -> str:
        """Directory part of the variant URL, with trailing slash (or empty)."""
        parent = PurePosixPath(self.output_key).parent.as_posix()
        return "" if parent == "." else f"{parent}/"

    @property
    def middle_size(self) -> int:
        return self.sizes[len(self.sizes) // 2]

    def variant_name(self, size: int, fmt: str) -> str:
        return f"{self.basename}-{size}-{self.hash}.{fmt}"

    def variant_url(self, size: int, fmt: str) -> str:
        return f"/{self.url_base}{self.variant_name(size, fmt)}"

    def variant_relative(self, size: int, fmt: str) -> str:
        """Path of a variant below the image cache directory."""
        return f"{self.url_base}{self.variant_name(size, fmt)}"

    def variants(self) -> list[tuple[int, str]]:
        return [(size, fmt) for size in self.sizes for fmt in VARIANT_FORMATS]

    @property
    def og_image(self) -> str:
        """URL of the JPEG at the middle size, used for social previews."""
        return self.variant_url(self.middle_size, "jpg")


def make_image_ref(
    src: str,
    entry_relative: str,
    content_root: Path,
    dimensions: DimensionCache | None = None,
) -> ImageRef:
    """Build an ImageRef for *src* as referenced from *entry_relative*."""
    source_path, relative = resolve_image_source(src, entry_relative, content_root)
    stem = str(PurePosixPath(relative).with_suffix(""))
    width = dimensions.get(source_path) if dimensions is not None else None
    return ImageRef(
        src=src,
        source_path=source_path,
        output_key=stem,
        hash=image_hash(source_path),
        sizes=sizes_for_width(width),
    )


def picture_markup(ref: ImageRef, alt: str) -> str:
    """Render the responsive ``<picture>`` element for *ref*."""
    sizes = ref.sizes
    sizes_attr = (
        f"(max-width: {sizes[0]}px) {sizes[0]}px, "
        f"(max-width: {ref.middle_size}px) {ref.middle_size}px, "
        f"{sizes[-1]}px"
    )
    webp = ", ".join(f"{ref.variant_url(s, 'webp')} {s}w" for s in sizes)
    jpeg = ", ".join(f"{ref.variant_url(s, 'jpg')} {s}w" for s in sizes)
    return (
        "<picture>\n"
        f'  <source srcset="{webp}" type="image/webp" sizes="{sizes_attr}">\n'
        f'  <source srcset="{jpeg}" type="image/jpeg" sizes="{sizes_attr}">\n'
        f'  <img src="{ref.variant_url(ref.middle_size, "jpg")}" '
        f'alt="{escape_html(alt)}" loading="lazy" decoding="async">\n'
        "</picture>"
    )


# ---------------------------------------------------------------------------
# Dimensions cache
# ---------------------------------------------------------------------------


class DimensionCache:
    """Intrinsic image widths keyed by absolute source path.

    Filled synchronously by :meth:`prescan` before an ingest wave so that
    the first render already knows real widths.

    Thread Safety:
        Guarded by a ``threading.Lock``; safe to read from render workers.

    """

    __slots__ = ("_lock", "_widths")

    def __init__(self) -> None:
        self._widths: dict[Path, int] = {}
        self._lock = threading.Lock()

    def get(self, path: Path) -> int | None:
        with self._lock:
            return self._widths.get(path)

    def set(self, path: Path, width: int) -> None:
        with self._lock:
            self._widths[path] = width

    def discard(self, path: Path) -> None:
        with self._lock:
            self._widths.pop(path, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._widths)

    def prescan(self, markdown: str, entry_relative: str, content_root: Path) -> int:
        """Read widths of every local image referenced in *markdown*.

        Returns the number of newly measured images.  Unreadable images
        are skipped; they render with the standard sizes.

        """
        from PIL import Image, UnidentifiedImageError

        measured = 0
        for match in _MARKDOWN_IMAGE_RE.finditer(markdown):
            src = match.group(1)
            if is_external(src):
                continue
            path, _ = resolve_image_source(src, entry_relative, content_root)
            if self.get(path) is not None or not path.is_file():
                continue
            try:
                with Image.open(path) as img:
                    self.set(path, img.width)
                    measured += 1
            except (OSError, UnidentifiedImageError):
                continue
        return measured


# ---------------------------------------------------------------------------
# Variant generation
# ---------------------------------------------------------------------------


def optimize_image(ref: ImageRef, cache_dir: Path) -> list[Path]:
    """Write every missing WebP/JPEG variant of *ref* under *cache_dir*.

    Variants never enlarge the source.  Existing files are left alone.

    Returns:
        Paths of the variants written by this call.

    """
    from PIL import Image

    missing = [
        (size, fmt) for size, fmt in ref.variants()
        if not (cache_dir / ref.variant_relative(size, fmt)).is_file()
    ]
    if not missing:
        return []

    written: list[Path] = []
    with Image.open(ref.source_path) as original:
        original.load()
        for size, fmt in missing:
            target = cache_dir / ref.variant_relative(size, fmt)
            target.parent.mkdir(parents=True, exist_ok=True)
            img = original
            if size < original.width:
                height = max(1, round(original.height * size / original.width))
                img = original.resize((size, height), Image.Resampling.LANCZOS)
            if fmt == "webp":
                img.save(target, "WEBP", quality=80, method=6)
            else:
                if img.mode not in ("RGB", "L"):
                    img = img.convert("RGB")
                img.save(target, "JPEG", quality=80, progressive=True, optimize=True)
            written.append(target)
    return written


def remove_variants(ref: ImageRef, cache_dir: Path) -> int:
    """Delete every variant of *ref* so the next pass regenerates it."""
    removed = 0
    for size, fmt in ref.variants():
        target = cache_dir / ref.variant_relative(size, fmt)
        try:
            target.unlink()
            removed += 1
        except FileNotFoundError:
            continue
    return removed


@dataclass(slots=True)
class OptimizationResult:
    """Outcome of one reconciliation pass."""

    generated: int = 0
    removed: int = 0
    failed: list[str] = field(default_factory=list)
    duration_ms: float = 0.0


def reconcile_images(refs: Iterable[ImageRef], cache_dir: Path) -> OptimizationResult:
    """Bring *cache_dir* in line with the current set of image references.

    Missing variants are produced; variant files that no current reference
    expects and that predate this pass are deleted.

    """
    from thypress.console import warning

    started = time.time()
    t0 = time.perf_counter()
    result = OptimizationResult()
    expected: set[str] = set()

    unique: dict[tuple[Path, str], ImageRef] = {}
    for ref in refs:
        unique.setdefault((ref.source_path, ref.output_key), ref)

    for ref in unique.values():
        expected.update(ref.variant_relative(s, f) for s, f in ref.variants())
        if not ref.source_path.is_file():
            continue
        try:
            result.generated += len(optimize_image(ref, cache_dir))
        except OSError as exc:
            result.failed.append(str(ref.source_path))
            warning(f"Could not optimize {ref.source_path.name}: {exc}")

    if cache_dir.is_dir():
        for path in cache_dir.rglob("*"):
            if not path.is_file() or not _VARIANT_RE.search(path.name):
                continue
            rel = path.relative_to(cache_dir).as_posix()
            if rel in expected:
                continue
            try:
                if path.stat().st_mtime < started:
                    path.unlink()
                    result.removed += 1
            except OSError:
                continue

    result.duration_ms = (time.perf_counter() - t0) * 1000
    return result


class ImageOptimizer:
    """Debounced, serialized image reconciliation.

    :meth:`schedule` may be called any number of times; work starts
    ``DEBOUNCE_SECONDS`` after the last call.  At most one pass runs at a
    time; calls during a pass schedule exactly one follow-up pass.

    Args:
        refs_provider: Returns the current image references when a pass starts.
        cache_dir: Image cache directory.
        delay: Trailing debounce in seconds.

    """

    def __init__(
        self,
        refs_provider: Callable[[], Iterable[ImageRef]],
        cache_dir: Path,
        *,
        delay: float = DEBOUNCE_SECONDS,
    ) -> None:
        self._refs_provider = refs_provider
        self._cache_dir = cache_dir
        self._delay = delay
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._follow_up = False
        self.passes = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_pending(self) -> bool:
        return self._timer is not None or self._follow_up

    def schedule(self) -> None:
        """Request a reconciliation pass (trailing debounce)."""
        if self.is_running:
            self._follow_up = True
            return
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._delay, self._fire)

    async def run_now(self) -> OptimizationResult:
        """Run one pass immediately in a worker thread (startup, build)."""
        refs = list(self._refs_provider())
        self.passes += 1
        return await asyncio.to_thread(reconcile_images, refs, self._cache_dir)

    async def drain(self) -> None:
        """Wait for any pending or running pass (used on shutdown and in tests)."""
        while self._timer is not None or self.is_running or self._follow_up:
            if self._task is not None:
                await asyncio.shield(self._task)
            else:
                await asyncio.sleep(self._delay / 4 or 0.01)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._follow_up = False

    def _fire(self) -> None:
        self._timer = None
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        from thypress.console import error, info

        try:
            result = await self.run_now()
            if result.generated or result.removed:
                info(
                    f"Images: {result.generated} generated, {result.removed} removed "
                    f"in {result.duration_ms:.0f}ms"
                )
        except Exception as exc:
            error(f"Image optimization failed: {exc}")
        finally:
            self._task = None
            if self._follow_up:
                self._follow_up = False
                self.schedule()
