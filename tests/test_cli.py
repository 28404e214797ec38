"""Tests for thypress._cli — argument parsing and command exit codes."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from thypress._cli import _build_parser, _with_default_command, main


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParser:
    @pytest.mark.parametrize(
        ("argv", "expected"),
        [
            ([], ["serve"]),
            (["site"], ["serve", "site"]),
            (["--port", "8080"], ["serve", "--port", "8080"]),
            (["build", "site"], ["build", "site"]),
            (["--version"], ["--version"]),
        ],
    )
    def test_default_command(self, argv: list[str], expected: list[str]) -> None:
        assert _with_default_command(argv) == expected

    def test_serve_defaults(self) -> None:
        args = _build_parser().parse_args(["serve"])
        assert args.root == "."
        assert args.port is None
        assert args.mode is None

    def test_serve_rejects_unknown_mode(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["serve", "--mode", "turbo"])

    def test_redirects_test_action(self) -> None:
        args = _build_parser().parse_args(["redirects", "--root", "s", "test", "/old/"])
        assert (args.root, args.action, args.path) == ("s", "test", "/old/")

    def test_validate_target(self) -> None:
        assert _build_parser().parse_args(["validate"]).target == "all"
        assert _build_parser().parse_args(["validate", "theme"]).target == "theme"

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--version"]) == 0
        assert capsys.readouterr().out.startswith("thypress ")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestServeCommand:
    def test_overrides_reach_serve(self, tmp_site: Path) -> None:
        with patch("thypress.app.serve") as serve:
            assert _run([str(tmp_site), "--port", "8123", "--mode", "static"]) == 0
        serve.assert_called_once_with(str(tmp_site), port=8123, explicit_port=True, mode="static")

    def test_invalid_port_env(self, tmp_site: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
        monkeypatch.setenv("PORT", "nope")
        assert _run(["build", str(tmp_site)]) == 1
        assert "[ERROR]" in capsys.readouterr().err


class TestBuildCommand:
    def test_build(self, tmp_site: Path) -> None:
        assert _run(["build", str(tmp_site)]) == 0
        assert (tmp_site / "build" / "index.html").is_file()

    def test_build_with_fingerprint(self, tmp_site: Path) -> None:
        assert _run(["build", str(tmp_site), "--fingerprint"]) == 0
        assert (tmp_site / "build" / "manifest.json").is_file()

    def test_build_then_serve(self, tmp_site: Path) -> None:
        with patch("thypress.app.preview") as preview:
            assert _run(["build", str(tmp_site), "--serve"]) == 0
        preview.assert_called_once_with(str(tmp_site))


class TestCleanCommand:
    def test_removes_cache_only(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (tmp_site / ".cache" / "images").mkdir(parents=True)
        (tmp_site / "build").mkdir()
        assert _run(["clean", str(tmp_site)]) == 0
        assert not (tmp_site / ".cache").exists()
        assert (tmp_site / "build").exists()
        assert "Clean" in capsys.readouterr().err

    def test_all(self, tmp_site: Path) -> None:
        (tmp_site / ".cache").mkdir()
        (tmp_site / "build").mkdir()
        assert _run(["clean", str(tmp_site), "--all"]) == 0
        assert not (tmp_site / "build").exists()

    def test_nothing_to_clean(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["clean", str(tmp_site)]) == 0
        assert "Nothing to clean" in capsys.readouterr().err


class TestValidateCommand:
    def test_all_ok(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["validate", "--root", str(tmp_site)]) == 0
        err = capsys.readouterr().err
        assert "Content OK: 5 entries" in err
        assert "Theme OK: .default" in err
        assert "No redirects.json" in err

    def test_content_failure(self, tmp_site: Path) -> None:
        (tmp_site / "content" / "broken.md").write_text("---\ntitle: [oops\n---\n")
        assert _run(["validate", "content", "--root", str(tmp_site)]) == 1

    def test_theme_failure(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        theme = tmp_site / "templates" / "empty"
        theme.mkdir(parents=True)
        (theme / "theme.json").write_text(json.dumps({"name": "Empty"}))
        config = json.loads((tmp_site / "config.json").read_text())
        config["theme"] = "empty"
        (tmp_site / "config.json").write_text(json.dumps(config))
        assert _run(["validate", "theme", "--root", str(tmp_site)]) == 1

    def test_redirect_errors(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (tmp_site / "redirects.json").write_text(json.dumps({"/a/": {"to": "/b/", "statusCode": 200}}))
        assert _run(["validate", "redirects", "--root", str(tmp_site)]) == 1
        assert "Invalid status code 200" in capsys.readouterr().err


class TestRedirectsCommand:
    """thypress redirects — list, test, validate, check."""

    def test_list_is_default(self, redirects_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["redirects", "--root", str(redirects_site)]) == 0
        out = capsys.readouterr().out
        assert "/old-about/" in out
        assert "(302)" in out

    def test_list_empty(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["redirects", "--root", str(tmp_site), "list"]) == 0
        assert "No redirect rules" in capsys.readouterr().err

    def test_test_match(self, redirects_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["redirects", "--root", str(redirects_site), "test", "/archive/hello/"]) == 0
        assert "/archive/hello/ -> /blog/hello/ (302" in capsys.readouterr().err

    def test_test_no_match(self, redirects_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["redirects", "--root", str(redirects_site), "test", "/nope/"]) == 0
        assert "No redirect for /nope/" in capsys.readouterr().err

    def test_test_external_refused(self, redirects_site: Path) -> None:
        assert _run(["redirects", "--root", str(redirects_site), "test", "/away/"]) == 1

    def test_validate_reports_loops(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (tmp_site / "redirects.json").write_text(json.dumps({"/a/": "/b/", "/b/": "/a/"}))
        assert _run(["redirects", "--root", str(tmp_site), "validate"]) == 0
        assert "Redirect loop" in capsys.readouterr().err

    def test_check(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (tmp_site / "redirects.json").write_text(json.dumps({
            "/old/": "/about/",
            "/doc/": "/files/doc.pdf",
            "/gone/": "/missing/",
        }))
        assert _run(["redirects", "--root", str(tmp_site), "check"]) == 1
        err = capsys.readouterr().err
        assert "/gone/ -> /missing/: target does not resolve" in err
