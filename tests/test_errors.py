"""Tests for thypress._errors."""

from thypress._errors import (
    ConfigError,
    ContentError,
    ExportError,
    RedirectError,
    RenderError,
    ThemeError,
    ThypressError,
)

_ALL = (ConfigError, ContentError, ThemeError, RedirectError, RenderError, ExportError)


class TestErrorHierarchy:
    """All thypress errors inherit from ThypressError."""

    def test_base_is_exception(self) -> None:
        assert issubclass(ThypressError, Exception)

    def test_every_error_inherits(self) -> None:
        for error_cls in _ALL:
            assert issubclass(error_cls, ThypressError)

    def test_catch_all_thypress_errors(self) -> None:
        """All specific errors are catchable via ThypressError."""
        for error_cls in _ALL:
            try:
                raise error_cls("test")
            except ThypressError as exc:
                assert str(exc) == "test"
