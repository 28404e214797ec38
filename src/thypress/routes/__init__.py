"""Request routing — the ordered routing table and redirect rules.

Public API::

    from thypress.routes import Router, match_redirect

    router = Router(service)
    match = match_redirect("/old/", service.state.redirects)
"""

from thypress.routes.redirects import (
    RedirectMatch,
    RedirectRule,
    find_redirect_problems,
    load_redirects,
    match_redirect,
    parse_redirect_rules,
)
from thypress.routes.router import Router

__all__ = [
    "RedirectMatch",
    "RedirectRule",
    "Router",
    "find_redirect_problems",
    "load_redirects",
    "match_redirect",
    "parse_redirect_rules",
]
