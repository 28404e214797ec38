"""THYPRESS — content pipeline and multi-layer cache engine for static sites.

Point it at a directory of markdown, plaintext and HTML files and it
serves them through a themed renderer with layered caching, live reload
and incremental invalidation.  The same pipeline exports a static build.

Quick start::

    import thypress

    thypress.serve("my-site/")          # Dynamic preview with live reload
    thypress.build("my-site/")          # Static export to my-site/build/
    thypress.preview("my-site/")        # Serve the static build

On-disk layout::

    my-site/
        config.json         site config (watched)
        redirects.json      optional redirect rules (watched)
        content/            markdown, text, HTML, images
        templates/<theme>/  disk themes
        .cache/             optimized images (safe to delete)
        build/              static export target

"""

__version__ = "0.3.0"
__all__ = [
    "ThypressConfig",
    "__version__",
    "build",
    "load_config",
    "preview",
    "serve",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import thypress`` fast; the server stack is only imported when
    one of the entry points is used.
    """
    if name == "ThypressConfig":
        from thypress.config import ThypressConfig

        return ThypressConfig

    if name == "load_config":
        from thypress.config_loader import load_config

        return load_config

    if name == "serve":
        from thypress.app import serve

        return serve

    if name == "build":
        from thypress.app import build

        return build

    if name == "preview":
        from thypress.app import preview

        return preview

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
