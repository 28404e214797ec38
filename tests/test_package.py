"""Tests for thypress package exports and metadata."""

import pytest

import thypress


class TestPackageMetadata:
    """Package-level exports and metadata."""

    def test_version_string(self) -> None:
        assert isinstance(thypress.__version__, str)
        assert thypress.__version__.count(".") == 2

    def test_all_exports_resolvable(self) -> None:
        for name in thypress.__all__:
            assert getattr(thypress, name) is not None

    def test_lazy_entry_points_are_app_functions(self) -> None:
        from thypress import app

        assert thypress.serve is app.serve
        assert thypress.build is app.build
        assert thypress.preview is app.preview

    def test_invalid_attribute_raises(self) -> None:
        with pytest.raises(AttributeError, match="no attribute"):
            thypress.nonexistent_thing  # type: ignore[attr-defined]  # noqa: B018


class TestExportPackage:
    """thypress.export resolves its public names lazily."""

    def test_lazy_names(self) -> None:
        import thypress.export as export
        from thypress.export.preview import create_preview_app
        from thypress.export.static import StaticExporter

        assert export.StaticExporter is StaticExporter
        assert export.create_preview_app is create_preview_app

    def test_unknown_name(self) -> None:
        import thypress.export as export

        with pytest.raises(AttributeError):
            export.missing  # noqa: B018
