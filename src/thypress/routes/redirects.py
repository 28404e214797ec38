"""Redirect rules — parsing, validation and request matching.

``redirects.json`` maps a source path to either a destination string
(status 301) or ``{"to": ..., "statusCode": ...}``.  Keys starting with
``_`` are comments.  ``:name`` segments match ``[^/]+`` and are
substituted into the destination::

    {
        "/old/": "/new/",
        "/blog/:slug/": {"to": "/posts/:slug/", "statusCode": 302}
    }

Matching is exact first, then a scan of parameterized rules in file
order.  Destinations on other hosts are refused unless
``allowExternalRedirects`` is set and the host is listed in
``allowedRedirectDomains``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from thypress._errors import RedirectError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

    from thypress.config import ThypressConfig

DEFAULT_STATUS_CODE = 301

# Status code -> (kind, description)
REDIRECT_STATUS_CODES: dict[int, tuple[str, str]] = {
    301: ("permanent", "Moved Permanently"),
    308: ("permanent", "Permanent Redirect (preserves method)"),
    302: ("temporary", "Found"),
    307: ("temporary", "Temporary Redirect (preserves method)"),
    303: ("functional", "See Other"),
}

_PARAM_RE = re.compile(r":(\w+)")


def is_external_target(to: str) -> bool:
    """Absolute and protocol-relative URLs leave the site.

    Browsers read ``//host`` and ``/\\host`` as a new authority, so both
    count as external alongside ``http(s)://``.
    """
    if to.startswith(("//", "/\\")):
        return True
    return bool(urlsplit(to).netloc) or to.startswith(("http://", "https://"))


@dataclass(frozen=True, slots=True)
class RedirectRule:
    """One redirect.

    Attributes:
        source: Request path (may contain ``:name`` parameters).
        to: Destination path or absolute URL.
        status_code: One of 301, 302, 303, 307, 308.

    """

    source: str
    to: str
    status_code: int = DEFAULT_STATUS_CODE
    pattern: re.Pattern[str] | None = field(default=None, compare=False, repr=False)

    @property
    def is_parameterized(self) -> bool:
        return ":" in self.source

    @property
    def is_external(self) -> bool:
        return is_external_target(self.to)

    @property
    def params(self) -> list[str]:
        return _PARAM_RE.findall(self.source)


def _compile(source: str) -> re.Pattern[str] | None:
    if ":" not in source:
        return None
    parts = _PARAM_RE.split(source)
    # split() alternates literal text and parameter names
    regex = "".join(
        re.escape(part) if i % 2 == 0 else f"(?P<{part}>[^/]+)"
        for i, part in enumerate(parts)
    )
    try:
        return re.compile(f"^{regex}$")
    except re.error:
        return None


@dataclass(frozen=True, slots=True)
class RedirectParseResult:
    """Rules that parsed cleanly, plus one message per rejected rule."""

    rules: tuple[RedirectRule, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors


def parse_redirect_rules(data: Mapping[str, Any]) -> RedirectParseResult:
    """Validate a decoded ``redirects.json`` object.

    Invalid rules are dropped with an error message; valid rules keep
    their file order.

    """
    rules: list[RedirectRule] = []
    errors: list[str] = []

    for source, value in data.items():
        if source.startswith("_"):
            continue
        if not source.startswith("/"):
            errors.append(f'Invalid "from" path "{source}": must start with /')
            continue

        if isinstance(value, str):
            to, status = value, DEFAULT_STATUS_CODE
        elif isinstance(value, dict) and isinstance(value.get("to"), str) and value["to"]:
            to = value["to"]
            status = value.get("statusCode") or DEFAULT_STATUS_CODE
        else:
            errors.append(
                f'Invalid redirect rule for "{source}": must be string or object with "to" property'
            )
            continue

        if not (to.startswith("/") or is_external_target(to)):
            errors.append(f'Invalid "to" path "{to}": must start with / or be absolute URL')
            continue

        if not isinstance(status, int) or isinstance(status, bool) or status not in REDIRECT_STATUS_CODES:
            errors.append(
                f'Invalid status code {status} for "{source}": must be 301, 302, 303, 307, or 308'
            )
            continue

        rules.append(RedirectRule(source, to, status, _compile(source)))

    return RedirectParseResult(tuple(rules), tuple(errors))


def read_redirects_file(path: Path) -> dict[str, Any]:
    """Decode ``redirects.json``.

    Raises:
        RedirectError: If the file is unreadable or not a JSON object.

    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        msg = f"Failed to parse {path.name}: {exc}"
        raise RedirectError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{path.name} must contain a JSON object"
        raise RedirectError(msg)
    return data


def load_redirects(path: Path) -> tuple[RedirectRule, ...]:
    """Load rules for serving.  Never raises: problems are logged and skipped."""
    from thypress.console import error, success, warning

    if not path.is_file():
        return ()
    try:
        data = read_redirects_file(path)
    except RedirectError as exc:
        error(str(exc))
        return ()
    result = parse_redirect_rules(data)
    for message in result.errors:
        warning(f"{message} (skipping)")
    if result.rules:
        success(f"Loaded {len(result.rules)} redirect rules")
    return result.rules


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RedirectProblems:
    """Loops and chains among exact-path rules.

    Attributes:
        loops: Each loop as the list of paths visited, ending where it began.
        chains: Each chain of three or more hops, ending at the final target.

    """

    loops: tuple[tuple[str, ...], ...] = ()
    chains: tuple[tuple[str, ...], ...] = ()


def find_redirect_problems(rules: Iterable[RedirectRule]) -> RedirectProblems:
    targets = {rule.source: rule.to for rule in rules}

    loops: list[tuple[str, ...]] = []
    seen_loops: set[frozenset[str]] = set()
    for start in targets:
        visited: list[str] = []
        current: str | None = start
        while current is not None:
            if current in visited:
                cycle = visited[visited.index(current):]
                key = frozenset(cycle)
                if key not in seen_loops:
                    seen_loops.add(key)
                    loops.append((*cycle, current))
                break
            visited.append(current)
            current = targets.get(current)

    looping = set().union(*seen_loops) if seen_loops else set()
    chains: list[tuple[str, ...]] = []
    for source, to in targets.items():
        if source in looping:
            continue
        chain = [source]
        current = to
        while current in targets and current not in chain:
            chain.append(current)
            current = targets[current]
        if len(chain) > 1:
            chain.append(current)
            chains.append(tuple(chain))

    return RedirectProblems(tuple(loops), tuple(chains))


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RedirectMatch:
    to: str
    status_code: int
    rule: RedirectRule


def match_redirect(path: str, rules: Iterable[RedirectRule]) -> RedirectMatch | None:
    """Find the rule for *path*: exact source first, then parameterized."""
    rules = tuple(rules)
    for rule in rules:
        if rule.source == path:
            return RedirectMatch(rule.to, rule.status_code, rule)

    for rule in rules:
        if rule.pattern is None:
            continue
        m = rule.pattern.match(path)
        if m is None:
            continue
        values = m.groupdict()
        to = _PARAM_RE.sub(lambda p: values.get(p.group(1), p.group(0)), rule.to)
        return RedirectMatch(to, rule.status_code, rule)
    return None


def is_allowed_destination(to: str, config: ThypressConfig) -> bool:
    """Internal targets are always allowed; external ones need opt-in."""
    if not is_external_target(to):
        return True
    if not config.allow_external_redirects:
        return False
    host = (urlsplit(to).hostname or "").lower()
    allowed = {d.lower() for d in config.allowed_redirect_domains}
    return host in allowed
