"""Shared rich console and status printers for the CLI"""

from typing import Optional

from rich.console import Console
from rich.markup import escape

from wiremail.utils.errors import format_error_message

_console: Optional[Console] = None


def get_console() -> Console:
    """Get the shared Console instance"""
    global _console

    if _console is None:
        _console = Console(highlight=False)

    return _console


def reset_console() -> None:
    """Drop the shared Console so the next call builds a fresh one"""
    global _console
    _console = None


## Status Lines
# Messages often carry server text, so they are escaped before rich sees them


def _print_status(style: str, symbol: str, message: str, console: Optional[Console]) -> None:
    (console or get_console()).print(f"[{style}]{symbol} {escape(message)}[/{style}]")


def print_success(message: str, console: Optional[Console] = None) -> None:
    _print_status("green", "✓", message, console)


def print_error(message: str, console: Optional[Console] = None) -> None:
    _print_status("red", "✗", message, console)


def print_warning(message: str, console: Optional[Console] = None) -> None:
    _print_status("yellow", "!", message, console)


def print_failure(error: Exception, console: Optional[Console] = None) -> None:
    """Print the user-facing message for a failed command."""
    print_error(f"Error: {format_error_message(error)}", console)
