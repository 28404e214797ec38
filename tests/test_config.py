"""Tests for thypress.config and thypress.config_loader."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from thypress._errors import ConfigError
from thypress.config import DEFAULT_THEME_ID, ThypressConfig
from thypress.config_loader import load_config, parse_port, read_config_file


class TestThypressConfig:
    """ThypressConfig — frozen dataclass with sensible defaults."""

    def test_defaults(self) -> None:
        config = ThypressConfig()
        assert config.mode == "dynamic"
        assert config.host == "127.0.0.1"
        assert config.port == 3009
        assert config.explicit_port is False
        assert config.content_dir == "content"
        assert config.theme == DEFAULT_THEME_ID
        assert config.reading_speed == 200
        assert config.strict_pre_render is True
        assert config.cache_max_size == 50 * 1024 * 1024

    def test_frozen(self) -> None:
        config = ThypressConfig()
        with pytest.raises(AttributeError):
            config.port = 8000  # type: ignore[misc]

    def test_paths_resolve_from_root(self, tmp_path: Path) -> None:
        config = ThypressConfig(root=tmp_path, theme="mine")
        assert config.content_path == tmp_path / "content"
        assert config.templates_path == tmp_path / "templates"
        assert config.theme_path == tmp_path / "templates" / "mine"
        assert config.cache_path == tmp_path / ".cache"
        assert config.images_cache_path == tmp_path / ".cache" / "images"
        assert config.build_path == tmp_path / "build"
        assert config.config_file == tmp_path / "config.json"
        assert config.redirects_file == tmp_path / "redirects.json"

    def test_relative_root_resolved_to_absolute(self) -> None:
        config = ThypressConfig(root=Path("site"))
        assert config.root.is_absolute()

    def test_non_positive_reading_speed_falls_back(self) -> None:
        assert ThypressConfig(reading_speed=0).reading_speed == 200

    def test_live_reload_only_in_dynamic_mode(self) -> None:
        assert ThypressConfig().live_reload is True
        assert ThypressConfig(disable_live_reload=True).live_reload is False
        assert ThypressConfig(mode="static").live_reload is False
        assert ThypressConfig(mode="static_preview").is_dynamic is False

    def test_site_context_uses_config_json_names(self) -> None:
        config = ThypressConfig(title="T", skip_dirs=("a",), extras={"custom": 1})
        context = config.site_context()
        assert context["title"] == "T"
        assert context["skipDirs"] == ["a"]
        assert context["readingSpeed"] == 200
        assert context["custom"] == 1


class TestLoadConfig:
    """load_config — config.json merged with environment and overrides."""

    def test_missing_config_uses_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path)
        assert config.root == tmp_path.resolve()
        assert config.title == "My Site"

    def test_reads_known_keys_and_keeps_extras(self, tmp_site: Path) -> None:
        config = load_config(tmp_site)
        assert config.title == "Test Site"
        assert config.url == "https://example.com"
        assert config.extras["customKey"] == "custom"

    def test_list_and_integer_coercion(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text(json.dumps({
            "skipDirs": "vendor2",
            "allowedRedirectDomains": ["a.com", "b.com"],
            "readingSpeed": "250",
            "cacheMaxSize": "not a number",
        }))
        config = load_config(tmp_path)
        assert config.skip_dirs == ("vendor2",)
        assert config.allowed_redirect_domains == ("a.com", "b.com")
        assert config.reading_speed == 250
        assert config.cache_max_size == 50 * 1024 * 1024

    def test_overrides_win(self, tmp_site: Path) -> None:
        config = load_config(tmp_site, title="Override", mode="static")
        assert config.title == "Override"
        assert config.mode == "static"

    def test_port_from_environment_is_explicit(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "8123")
        config = load_config(tmp_path)
        assert config.port == 8123
        assert config.explicit_port is True

    def test_invalid_port_in_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "eighty")
        with pytest.raises(ConfigError, match="Invalid PORT"):
            load_config(tmp_path)

    def test_mode_from_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("THYPRESS_MODE", "static")
        assert load_config(tmp_path).mode == "static"

    def test_invalid_mode(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid mode"):
            load_config(tmp_path, mode="turbo")

    def test_malformed_config_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (tmp_path / "config.json").write_text("{not json")
        config = load_config(tmp_path)
        assert config.title == "My Site"
        assert "Using default configuration" in capsys.readouterr().err


class TestParsePort:
    """parse_port — PORT validation."""

    @pytest.mark.parametrize("value", ["1", "3009", "65535"])
    def test_valid(self, value: str) -> None:
        assert parse_port(value) == int(value)

    @pytest.mark.parametrize("value", ["0", "65536", "-1", "abc", ""])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ConfigError):
            parse_port(value)


class TestReadConfigFile:
    def test_non_object_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        assert read_config_file(path) == {}

    def test_absent(self, tmp_path: Path) -> None:
        assert read_config_file(tmp_path / "config.json") == {}
