"""THYPRESS error hierarchy.

All thypress-specific errors inherit from ThypressError for easy catching.
"""


class ThypressError(Exception):
    """Base error for all thypress operations."""


class ConfigError(ThypressError):
    """Invalid or missing configuration (bad PORT, unreadable config)."""


class ContentError(ThypressError):
    """Error in content ingestion (duplicate URLs, strict image failures)."""


class ThemeError(ThypressError):
    """Theme could not be composed (missing required template, syntax error)."""


class RedirectError(ThypressError):
    """Invalid redirect rules."""


class RenderError(ThypressError):
    """A page failed to render."""


class ExportError(ThypressError):
    """Error during static export."""
