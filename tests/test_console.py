"""Tests for thypress.console — severity-prefixed stderr lines."""

from __future__ import annotations

import pytest

from thypress import console


class TestSeverityPrefixes:
    """Every line carries its severity label."""

    @pytest.mark.parametrize(
        ("func", "label"),
        [
            (console.info, "[INFO]"),
            (console.success, "[SUCCESS]"),
            (console.warning, "[WARNING]"),
            (console.error, "[ERROR]"),
        ],
    )
    def test_prefix(self, func, label: str, capsys: pytest.CaptureFixture[str]) -> None:
        func("hello")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert label in captured.err
        assert captured.err.rstrip().endswith("hello")

    def test_dim_has_no_label(self, capsys: pytest.CaptureFixture[str]) -> None:
        console.dim("detail")
        assert "[" not in capsys.readouterr().err


class TestSupportsColor:
    def test_no_color_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        monkeypatch.setenv("FORCE_COLOR", "1")
        assert console.supports_color() is False

    def test_force_color(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("FORCE_COLOR", "1")
        assert console.supports_color() is True

    def test_dumb_terminal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("FORCE_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert console.supports_color() is False
