"""Startup banner — mode-aware status output.

Prints a branded startup banner with timing and status indicators.
Color handling is shared with :mod:`thypress.console`.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from thypress.console import BOLD, CYAN, DIM, GREEN, RESET, YELLOW

if TYPE_CHECKING:
    from thypress.config import ThypressConfig


# ---------------------------------------------------------------------------
# Mode badges
# ---------------------------------------------------------------------------

_MODE_STYLES: dict[str, tuple[str, str]] = {
    "dynamic": (GREEN, "dynamic"),
    "static": (CYAN, "static"),
    "static_preview": (CYAN, "preview"),
    "build": (YELLOW, "build"),
}


def _mode_badge(mode: str) -> str:
    """Return a styled [mode] badge."""
    color, label = _MODE_STYLES.get(mode, (DIM, mode))
    return f"{color}[{label}]{RESET}"


def _clickable_url(url: str) -> str:
    """Wrap *url* in an OSC 8 hyperlink escape if color is enabled."""
    if not RESET:
        return url
    return f"\033]8;;{url}\033\\{BOLD}{CYAN}{url}{RESET}\033]8;;\033\\"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def print_banner(
    config: ThypressConfig,
    entry_count: int,
    mode: str,
    *,
    theme_id: str = "",
    live_reload: bool = False,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
    cache_stats: dict[str, int] | None = None,
) -> None:
    """Print the THYPRESS startup banner to stderr.

    Args:
        config: Resolved ThypressConfig.
        entry_count: Number of entries ingested.
        mode: ``"dynamic"``, ``"static"``, ``"static_preview"`` or ``"build"``.
        theme_id: Active theme id.
        live_reload: Whether the live-reload endpoint is active.
        load_ms: Time spent on ingestion and theme loading.
        warnings: Optional warning messages to display.
        cache_stats: ``CacheEngine.stats()`` after warm-up, if any.

    """
    from thypress import __version__
    from thypress.reactive.livereload import LIVE_RELOAD_ENDPOINT

    header = f"  {BOLD}THYPRESS{RESET} {DIM}v{__version__}{RESET}  {_mode_badge(mode)}"
    lines: list[str] = ["", header, f"  {DIM}{'─' * 43}{RESET}"]

    label = "entry" if entry_count == 1 else "entries"
    timing = f" {DIM}in {load_ms:.0f}ms{RESET}" if load_ms > 0 else ""
    lines.append(f"  {DIM}├─{RESET} {entry_count} {label} loaded{timing}")
    if theme_id:
        lines.append(f"  {DIM}├─{RESET} theme: {theme_id}")
    lines.append(f"  {DIM}├─{RESET} content: {DIM}{config.content_path}{RESET}")
    if cache_stats and cache_stats.get("rendered"):
        cached = f"{cache_stats['rendered']} rendered"
        if cache_stats.get("precompressed"):
            cached += f", {cache_stats['precompressed']} precompressed"
        lines.append(f"  {DIM}├─{RESET} cache: {cached}")

    if live_reload:
        lines.append(
            f"  {DIM}├─{RESET} {GREEN}live{RESET} "
            f"— SSE on {DIM}{LIVE_RELOAD_ENDPOINT}{RESET}"
        )

    if mode == "build":
        lines.append(f"  {DIM}└─{RESET} output: {DIM}{config.build_path}{RESET}")
    else:
        lines.append("")
        lines.append(f"  {_clickable_url(f'http://{config.host}:{config.port}')}")

    if mode == "dynamic":
        lines.append("")
        lines.append(f"  {DIM}Watching for changes...{RESET}")

    if warnings:
        lines.append("")
        lines.extend(f"  {YELLOW}!{RESET} {w}" for w in warnings)

    lines.append("")
    print("\n".join(lines), file=sys.stderr)
