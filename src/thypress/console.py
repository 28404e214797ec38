"""Severity-prefixed diagnostics on stderr.

Every line carries one of ``[INFO]``, ``[SUCCESS]``, ``[WARNING]`` or
``[ERROR]``.  Color is emitted only when stderr is a TTY and neither
``NO_COLOR`` nor ``TERM=dumb`` is set; ``FORCE_COLOR`` overrides detection.
"""

from __future__ import annotations

import os
import sys


# ---------------------------------------------------------------------------
# ANSI helpers; respect NO_COLOR (https://no-color.org)
# ---------------------------------------------------------------------------

def supports_color() -> bool:
    """Return True if stderr should receive ANSI colors."""
    if os.environ.get("NO_COLOR"):
        return False
    force = os.environ.get("FORCE_COLOR")
    if force is not None and force not in ("", "0", "false"):
        return True
    if os.environ.get("TERM") == "dumb":
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


_COLOR = supports_color()

RESET = "\033[0m" if _COLOR else ""
BOLD = "\033[1m" if _COLOR else ""
DIM = "\033[2m" if _COLOR else ""
RED = "\033[31m" if _COLOR else ""
GREEN = "\033[32m" if _COLOR else ""
YELLOW = "\033[33m" if _COLOR else ""
CYAN = "\033[36m" if _COLOR else ""


def _emit(color: str, label: str, message: str) -> None:
    print(f"{color}[{label}]{RESET} {message}", file=sys.stderr)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def info(message: str) -> None:
    """Print an informational line."""
    _emit(CYAN, "INFO", message)


def success(message: str) -> None:
    """Print a success line."""
    _emit(GREEN, "SUCCESS", message)


def warning(message: str) -> None:
    """Print a warning line."""
    _emit(YELLOW, "WARNING", message)


def error(message: str) -> None:
    """Print an error line."""
    _emit(RED, "ERROR", message)


def dim(message: str) -> None:
    """Print a de-emphasized detail line (no severity prefix)."""
    print(f"{DIM}{message}{RESET}", file=sys.stderr)
