"""Tests for thypress.banner — startup banner output."""

from __future__ import annotations

import io
import sys
from pathlib import Path
from unittest.mock import patch

from thypress.banner import print_banner
from thypress.config import ThypressConfig


class TestPrintBanner:
    """Tests for the startup banner."""

    def _capture_banner(self, mode: str, **kwargs: object) -> str:
        """Call print_banner and capture stderr output."""
        buf = io.StringIO()
        with patch.object(sys, "stderr", buf):
            config = ThypressConfig(root=Path("/tmp/test-site"))
            print_banner(config, 5, mode, **kwargs)
        return buf.getvalue()

    def test_dynamic_mode_banner(self) -> None:
        output = self._capture_banner("dynamic", live_reload=True, load_ms=42.4, theme_id=".default")

        assert "THYPRESS" in output
        assert "[dynamic]" in output
        assert "5 entries loaded" in output
        assert "42ms" in output
        assert "/__live_reload" in output
        assert "theme: .default" in output
        assert "http://127.0.0.1:3009" in output
        assert "Watching for changes" in output

    def test_build_mode_banner(self) -> None:
        output = self._capture_banner("build", load_ms=100.0)

        assert "[build]" in output
        assert "output:" in output
        assert "build" in output
        assert "http://" not in output
        assert "Watching" not in output

    def test_static_mode_has_no_live_reload(self) -> None:
        output = self._capture_banner("static")
        assert "[static]" in output
        assert "SSE" not in output
        assert "Watching" not in output

    def test_singular_entry(self) -> None:
        buf = io.StringIO()
        with patch.object(sys, "stderr", buf):
            print_banner(ThypressConfig(root=Path("/tmp/x")), 1, "static_preview")
        output = buf.getvalue()
        assert "1 entry loaded" in output
        assert "[preview]" in output

    def test_warnings_listed(self) -> None:
        output = self._capture_banner("dynamic", warnings=["Skipped blog/bad.md"])
        assert "Skipped blog/bad.md" in output

    def test_cache_stats_line(self) -> None:
        output = self._capture_banner("static", cache_stats={"rendered": 12, "precompressed": 24})
        assert "cache: 12 rendered, 24 precompressed" in output

    def test_empty_cache_stats_omitted(self) -> None:
        output = self._capture_banner("dynamic", cache_stats={"rendered": 0, "precompressed": 0})
        assert "cache:" not in output
