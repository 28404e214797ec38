"""Export layer — static output generation and static preview.

Renders the site to ``build/`` through the same renderer as the live
server, and serves a finished build through the cache engine.
"""

__all__ = ["ExportResult", "ExportedFile", "StaticExporter", "create_preview_app"]


def __getattr__(name: str) -> object:
    # Lazy: render.feeds imports export.sitemap while this package loads
    if name in ("ExportResult", "ExportedFile", "StaticExporter"):
        from thypress.export import static

        return getattr(static, name)

    if name == "create_preview_app":
        from thypress.export.preview import create_preview_app

        return create_preview_app

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
