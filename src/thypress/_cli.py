"""THYPRESS CLI — thypress serve / build / clean / validate / redirects.

Entry point for the ``thypress`` command-line interface.  Every
:class:`~thypress._errors.ThypressError` ends the process with an
``[ERROR]`` line and exit status 1.
"""

from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from thypress._errors import ThypressError

if TYPE_CHECKING:
    from thypress.config import ThypressConfig
    from thypress.routes.redirects import RedirectRule

_COMMANDS = frozenset({"serve", "build", "clean", "validate", "redirects"})


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the thypress CLI."""
    parser = argparse.ArgumentParser(
        prog="thypress",
        description="Content pipeline and multi-layer cache engine for static sites.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # thypress serve
    serve_parser = subparsers.add_parser("serve", help="Serve the site (default command)")
    serve_parser.add_argument("root", nargs="?", default=".", help="Site root directory")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port (never probed upward)")
    serve_parser.add_argument(
        "--mode",
        choices=("dynamic", "static", "static_preview"),
        default=None,
        help="Serving mode (default: THYPRESS_MODE or dynamic)",
    )

    # thypress build
    build_parser = subparsers.add_parser("build", help="Export the site to build/")
    build_parser.add_argument("root", nargs="?", default=".", help="Site root directory")
    build_parser.add_argument("--serve", action="store_true", help="Preview the build afterwards")
    build_parser.add_argument(
        "--fingerprint", action="store_true", help="Enable asset fingerprinting",
    )

    # thypress clean
    clean_parser = subparsers.add_parser("clean", help="Remove .cache/ (and build/ with --all)")
    clean_parser.add_argument("root", nargs="?", default=".", help="Site root directory")
    clean_parser.add_argument("--all", action="store_true", help="Also remove build/")

    # thypress validate
    validate_parser = subparsers.add_parser("validate", help="Check theme, content and redirects")
    validate_parser.add_argument(
        "target",
        nargs="?",
        choices=("theme", "content", "redirects", "all"),
        default="all",
        help="What to validate (default: all)",
    )
    validate_parser.add_argument("--root", default=".", help="Site root directory")

    # thypress redirects
    redirects_parser = subparsers.add_parser("redirects", help="Inspect redirects.json")
    redirects_parser.add_argument("--root", default=".", help="Site root directory")
    actions = redirects_parser.add_subparsers(dest="action", help="Redirect actions")
    actions.add_parser("validate", help="Parse rules and report loops and chains")
    actions.add_parser("list", help="List every rule")
    test_parser = actions.add_parser("test", help="Show where a path redirects")
    test_parser.add_argument("path", help="Request path, e.g. /old-post/")
    actions.add_parser("check", help="Verify internal targets resolve")

    return parser


def _get_version() -> str:
    """Get the package version."""
    from thypress import __version__

    return __version__


def _with_default_command(argv: list[str]) -> list[str]:
    """``thypress``, ``thypress site/`` and ``thypress --port 8080`` mean serve."""
    if not argv:
        return ["serve"]
    first = argv[0]
    if first in _COMMANDS or first in ("-h", "--help", "--version"):
        return argv
    return ["serve", *argv]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _serve(args: argparse.Namespace) -> int:
    from thypress.app import serve

    overrides: dict[str, object] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
        overrides["explicit_port"] = True
    if args.mode is not None:
        overrides["mode"] = args.mode
    serve(args.root, **overrides)
    return 0


def _build(args: argparse.Namespace) -> int:
    from thypress.app import build, preview

    overrides: dict[str, object] = {}
    if args.fingerprint:
        overrides["fingerprint_assets"] = True
    build(args.root, **overrides)
    if args.serve:
        preview(args.root)
    return 0


def _clean(args: argparse.Namespace) -> int:
    from thypress.config_loader import load_config
    from thypress.console import info, success

    config = load_config(Path(args.root))
    targets = [config.cache_path]
    if args.all:
        targets.append(config.build_path)
    removed = 0
    for target in targets:
        if target.is_dir():
            shutil.rmtree(target)
            info(f"Removed {target}")
            removed += 1
    success("Clean" if removed else "Nothing to clean")
    return 0


def _validate(args: argparse.Namespace) -> int:
    from thypress.config_loader import load_config

    config = load_config(Path(args.root))
    target = args.target
    failures = 0
    if target in ("content", "all"):
        failures += _validate_content(config)
    if target in ("theme", "all"):
        failures += _validate_theme(config)
    if target in ("redirects", "all"):
        failures += _validate_redirects(config)
    return 1 if failures else 0


def _validate_content(config: ThypressConfig) -> int:
    from thypress.console import error, success
    from thypress.content.store import ContentStore

    store = ContentStore(config)
    snapshot = store.load_all()
    if store.skipped:
        error(f"{len(store.skipped)} content file(s) failed to parse")
        return 1
    success(f"Content OK: {len(snapshot)} entries")
    return 0


def _validate_theme(config: ThypressConfig) -> int:
    from thypress.console import error, success, warning
    from thypress.content.store import ContentStore
    from thypress.theme import compose_theme

    try:
        entries = ContentStore(config).load_all().ordered
    except ThypressError:
        entries = ()
    theme = compose_theme(config, entries=entries)
    for message in theme.validation.warnings:
        warning(message)
    for message in theme.validation.errors:
        error(message)
    if not theme.validation.valid:
        error(f"Theme '{theme.active_id}' failed validation")
        return 1
    success(f"Theme OK: {theme.active_id} ({len(theme.templates)} templates)")
    return 0


def _read_rules(config: ThypressConfig) -> tuple[tuple[RedirectRule, ...], list[str]]:
    from thypress.routes.redirects import parse_redirect_rules, read_redirects_file

    if not config.redirects_file.is_file():
        return (), []
    result = parse_redirect_rules(read_redirects_file(config.redirects_file))
    return result.rules, list(result.errors)


def _validate_redirects(config: ThypressConfig) -> int:
    from thypress.console import error, success, warning
    from thypress.routes.redirects import find_redirect_problems

    if not config.redirects_file.is_file():
        success("No redirects.json")
        return 0
    rules, errors = _read_rules(config)
    for message in errors:
        error(message)
    problems = find_redirect_problems(rules)
    for loop in problems.loops:
        warning(f"Redirect loop: {' -> '.join(loop)}")
    for chain in problems.chains:
        warning(f"Redirect chain: {' -> '.join(chain)}")
    if errors:
        return 1
    success(f"Redirects OK: {len(rules)} rules")
    return 0


def _redirects(args: argparse.Namespace) -> int:
    from thypress.config_loader import load_config

    config = load_config(Path(args.root))
    action = args.action or "list"
    if action == "validate":
        return _validate_redirects(config)
    if action == "list":
        return _list_redirects(config)
    if action == "test":
        return _test_redirect(config, args.path)
    return _check_redirects(config)


def _list_redirects(config: ThypressConfig) -> int:
    from thypress.console import dim

    rules, _errors = _read_rules(config)
    if not rules:
        dim("No redirect rules")
        return 0
    width = max(len(rule.source) for rule in rules)
    for rule in rules:
        print(f"  {rule.source.ljust(width)}  ->  {rule.to}  ({rule.status_code})")
    return 0


def _test_redirect(config: ThypressConfig, path: str) -> int:
    from thypress.console import info, warning
    from thypress.routes.redirects import is_allowed_destination, match_redirect

    rules, _errors = _read_rules(config)
    match = match_redirect(path, rules)
    if match is None:
        info(f"No redirect for {path}")
        return 0
    if not is_allowed_destination(match.to, config):
        warning(f"{path} -> {match.to} would be refused (external destination)")
        return 1
    info(f"{path} -> {match.to} ({match.status_code}, rule {match.rule.source})")
    return 0


def _check_redirects(config: ThypressConfig) -> int:
    from thypress.console import error, success
    from thypress.routes.router import known_paths
    from thypress.service import Service

    rules, _errors = _read_rules(config)
    service = Service(config)
    state = service.load()
    paths = known_paths(state)
    broken = 0
    for rule in rules:
        if rule.is_external or ":" in rule.to:
            continue
        target = rule.to.split("#", 1)[0].split("?", 1)[0]
        if target in paths or target.rstrip("/") + "/" in paths:
            continue
        if service.store.source.resolve_static(target) is None:
            error(f"{rule.source} -> {rule.to}: target does not resolve")
            broken += 1
    if broken:
        return 1
    success(f"All {len(rules)} redirect targets resolve")
    return 0


_HANDLERS = {
    "serve": _serve,
    "build": _build,
    "clean": _clean,
    "validate": _validate,
    "redirects": _redirects,
}


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    from thypress.console import error

    parser = _build_parser()
    args = parser.parse_args(_with_default_command(sys.argv[1:] if argv is None else argv))

    try:
        code = _HANDLERS[args.command](args)
    except ThypressError as exc:
        error(str(exc))
        sys.exit(1)
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
