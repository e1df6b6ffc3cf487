"""
output.py: terminal output and error types shared by the CLI and server.

Everything user-facing goes through one rich Console so colours can be
switched off in one place (e.g. NO_COLOR, or when piping to a file).
"""

import traceback

from rich.console import Console
from rich.text import Text


console = Console(highlight=False)
error_console = Console(stderr=True, highlight=False)

BULLET = "\n  [bold green]→[/] "


class SketchError(Exception):
    """Base class for errors the CLI reports without a stack trace."""


class SketchExistsError(SketchError):
    pass


class TemplateNotFoundError(SketchError):
    pass


class EntryError(SketchError):
    pass


class EntryNotFoundError(EntryError):
    pass


class EntryUnreadableError(EntryError):
    pass


class ResolveError(SketchError):
    pass


class InstallError(SketchError):
    pass


class CommitError(SketchError):
    pass


class BundleError(SketchError):
    pass


def status(message, bullet=BULLET):
    """Print a bullet status line. `message` may contain rich markup."""
    console.print(f"{bullet}{message}")


def fail(message):
    """Print a red error line, indented like the status lines."""
    console.print(f"\n  [red]{message}[/]")


def split_traceback(exc):
    """Split a formatted exception into (message_lines, trace_lines).

    The message lines are the "ErrorType: text" part; the trace lines are
    the frames leading up to it. A bare exception with no traceback has no
    trace lines.
    """
    message = "".join(traceback.format_exception_only(type(exc), exc))
    trace = ""
    if exc.__traceback__ is not None:
        trace = "".join(traceback.format_tb(exc.__traceback__))
    return message.rstrip("\n").split("\n"), [l for l in trace.rstrip("\n").split("\n") if l]


def print_exception(exc):
    """Render an uncaught startup error: message in red, trace beneath."""
    message_lines, trace_lines = split_traceback(exc)
    error_console.print()
    error_console.print(Text("\n".join(message_lines), style="red"))
    if trace_lines:
        error_console.print(Text("\n".join(trace_lines), style="dim"))
    error_console.print()
