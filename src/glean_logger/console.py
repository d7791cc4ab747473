"""Developer console: the printing surface that interceptors wrap.

Application code calls ``console.log(...)``, ``console.warn(...)`` and so
on; ConsoleInterceptor replaces those methods on a Console instance to
capture the calls. ``emit`` is the facade's own output path and is never
intercepted.
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any, TextIO

if TYPE_CHECKING:
    from glean_logger.transport.entry import LogEntry

# Methods that interceptors wrap
CONSOLE_METHODS = ("log", "debug", "info", "warn", "error")

_COLORS = {
    "log": "",
    "debug": "\033[2m",
    "info": "\033[36m",
    "warn": "\033[33m",
    "error": "\033[31m",
    "fatal": "\033[1;31m",
}
_RESET = "\033[0m"


def render_arg(arg: Any) -> str:
    """Render one console argument the way developers expect to read it.

    Containers print as JSON, functions as ``[Function: name]`` and anything
    else through ``str``.
    """
    if isinstance(arg, str):
        return arg
    if isinstance(arg, dict | list | tuple):
        try:
            return json.dumps(arg, default=str)
        except (TypeError, ValueError):
            return repr(arg)
    if callable(arg) and not isinstance(arg, type):
        return f"[Function: {getattr(arg, '__name__', None) or 'anonymous'}]"
    return str(arg)


class Console:
    """A console with log/debug/info/warn/error methods.

    Args:
        output: Stream for log/debug/info (default: stdout)
        error_output: Stream for warn/error (default: stderr)
        colorize: Use ANSI colors when the stream is a TTY
    """

    def __init__(
        self,
        output: TextIO | None = None,
        error_output: TextIO | None = None,
        *,
        colorize: bool = True,
    ) -> None:
        self._output = output
        self._error_output = error_output
        self._colorize = colorize

    # Resolved lazily so pytest's capsys and redirected sys.stdout are honored
    @property
    def output(self) -> TextIO:
        return self._output or sys.stdout

    @property
    def error_output(self) -> TextIO:
        return self._error_output or sys.stderr

    def _write(self, method: str, args: tuple[Any, ...]) -> None:
        stream = self.error_output if method in ("warn", "error", "fatal") else self.output
        line = " ".join(render_arg(arg) for arg in args)
        color = _COLORS.get(method, "")
        if color and self._colorize and stream.isatty():
            line = f"{color}{line}{_RESET}"
        print(line, file=stream)

    def log(self, *args: Any) -> None:
        self._write("log", args)

    def debug(self, *args: Any) -> None:
        self._write("debug", args)

    def info(self, *args: Any) -> None:
        self._write("info", args)

    def warn(self, *args: Any) -> None:
        self._write("warn", args)

    def error(self, *args: Any) -> None:
        self._write("error", args)

    def emit(self, entry: LogEntry) -> None:
        """Print a log entry: ``[LEVEL] message {context}``."""
        level = entry.level.value
        args: tuple[Any, ...] = (f"[{level.upper()}]", entry.message)
        if entry.context:
            args = (*args, entry.context)
        self._write(level, args)


# Default target for interceptors and ClientLogger
console = Console()
