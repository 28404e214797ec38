"""Renderer — entries and list views to HTML through the active theme."""

from thypress.render.renderer import NOT_FOUND_HTML, Renderer, page_key

__all__ = ["NOT_FOUND_HTML", "Renderer", "page_key"]
