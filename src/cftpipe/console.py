"""Terminal output and interactive prompts."""

from __future__ import annotations

import os
import sys
from typing import TextIO

from cftpipe.exceptions import SelectionError

_RED = "\033[0;31m"
_GREEN = "\033[0;32m"
_YELLOW = "\033[1;33m"
_CYAN = "\033[0;36m"
_BLUE = "\033[0;34m"
_RESET = "\033[0m"

BANNER = """\
╔══════════════════════════════════════════╗
║   Cloudflare Tunnel Pipe                 ║
╚══════════════════════════════════════════╝
"""


def _use_color(stream: TextIO) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def _emit(message: str, color: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    if _use_color(stream):
        message = f"{color}{message}{_RESET}"
    print(message, file=stream)


def print_banner() -> None:
    _emit(BANNER.rstrip("\n"), _BLUE)


def print_error(message: str) -> None:
    _emit(f"ERROR: {message}", _RED, sys.stderr)


def print_warning(message: str) -> None:
    _emit(f"Warning: {message}", _YELLOW)


def print_success(message: str) -> None:
    _emit(message, _GREEN)


def print_info(message: str) -> None:
    _emit(message, _CYAN)


# ---------------------------------------------------------------------------
# Interactive prompts
# ---------------------------------------------------------------------------


def prompt_yes_no(question: str, default: bool = False) -> bool:
    """Ask a yes/no question. Returns bool."""
    suffix = " [Y/n] " if default else " [y/N] "
    while True:
        try:
            answer = input(question + suffix).strip().lower()
        except EOFError:
            return default
        except KeyboardInterrupt:
            raise SystemExit(130) from None
        if answer == "":
            return default
        if answer in ("y", "yes"):
            return True
        if answer in ("n", "no"):
            return False
        print("Please answer y or n.")


def prompt_string(question: str, default: str = "") -> str:
    """Ask for a string value with optional default."""
    try:
        if default:
            answer = input(f"{question} [{default}]: ").strip()
            return answer if answer else default
        return input(f"{question}: ").strip()
    except EOFError:
        return default
    except KeyboardInterrupt:
        raise SystemExit(130) from None


def prompt_index(question: str, options: list[str]) -> int:
    """Show a numbered menu and return the 0-based index picked.

    Anything other than a number in ``1..len(options)`` raises
    ``SelectionError``.
    """
    if not options:
        raise SelectionError("Nothing to choose from")
    for i, opt in enumerate(options, 1):
        print(f"{i:2d}. {opt}")
    try:
        answer = input(f"{question} ").strip()
    except EOFError:
        answer = ""
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    try:
        choice = int(answer)
    except ValueError:
        raise SelectionError(
            f"Invalid selection {answer!r}; expected a number 1-{len(options)}"
        ) from None
    if not 1 <= choice <= len(options):
        raise SelectionError(
            f"Selection {choice} out of range; expected 1-{len(options)}"
        )
    return choice - 1
