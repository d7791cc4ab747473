"""Console and uncaught-error interception.

ConsoleInterceptor is a two-state machine:
- inactive: the console target and the error hooks are untouched
- active: console methods are wrapped and errors are forwarded to a sink logger

Every wrapped method calls the original first, then forwards to the sink
unless a forward is already in progress on this interceptor. The sink may
itself print through the same console without recursing.

Uncaught exceptions are captured through ``sys.excepthook`` (global errors)
and, when an event loop is given, the loop's exception handler (errors
nobody awaited). Previously installed handlers always still run.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sys
import traceback
from typing import TYPE_CHECKING, Any, Protocol

from glean_logger.console import CONSOLE_METHODS, console, render_arg

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

logger = logging.getLogger(__name__)

# console method -> sink logger method
CONSOLE_LEVELS = {
    "log": "debug",
    "debug": "debug",
    "info": "info",
    "warn": "warn",
    "error": "error",
}

_MISSING = object()


class SinkLogger(Protocol):
    """Anything with leveled ``(message, context)`` methods, e.g. ClientLogger."""

    def debug(self, message: str, context: dict[str, Any] | None = None) -> Any: ...

    def info(self, message: str, context: dict[str, Any] | None = None) -> Any: ...

    def warn(self, message: str, context: dict[str, Any] | None = None) -> Any: ...

    def error(self, message: str, context: dict[str, Any] | None = None) -> Any: ...


def _raw(arg: Any) -> str:
    if callable(arg) and not isinstance(arg, type):
        return render_arg(arg)
    return str(arg)


def format_console_args(
    args: tuple[Any, ...],
    method: str = "log",
) -> tuple[str, dict[str, Any]]:
    """Turn console arguments into a message and structured context.

    None values are skipped. With two or more remaining arguments, a trailing
    dict is treated as context instead of message text.

    Args:
        args: Positional arguments of the console call
        method: Console method name, used for the empty-message placeholder

    Returns:
        (message, context) where context always includes ``console_args``
        when any argument was given
    """
    values = [arg for arg in args if arg is not None]
    context: dict[str, Any] = {}

    if len(values) > 1 and isinstance(values[-1], dict):
        context.update(values.pop())

    message = " ".join(render_arg(value) for value in values) or f"[console.{method}]"

    if args:
        context["console_args"] = [_raw(arg) for arg in args]

    return message, context


class ConsoleInterceptor:
    """Wraps a console's methods and the process error hooks.

    Args:
        target: Object whose log/debug/info/warn/error methods are wrapped
            (default: glean_logger.console.console)
    """

    def __init__(self, target: Any = None) -> None:
        self.target = target if target is not None else console
        self._active = False
        self._logger: SinkLogger | None = None
        self._dispatching = False

        self._originals: dict[str, Any] = {}
        self._previous_excepthook: Callable[..., Any] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_loop_handler: Callable[..., Any] | None = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def logger(self) -> SinkLogger | None:
        return self._logger

    @property
    def dispatching(self) -> bool:
        return self._dispatching

    # -------------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------------

    def install(
        self,
        sink: SinkLogger,
        *,
        capture_errors: bool = True,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Activate interception, or swap the sink if already active.

        Args:
            sink: Logger receiving the forwarded events
            capture_errors: Also hook sys.excepthook (and the loop, if given)
            loop: Event loop whose exception handler should be chained
        """
        if self._active:
            self._logger = sink
            return

        self._logger = sink
        self._active = True
        self._wrap_console()
        if capture_errors:
            self._install_error_hooks(loop)
        logger.debug("Console interceptors installed on %r", self.target)

    def uninstall(self) -> None:
        """Restore the original console methods and error hooks."""
        if not self._active:
            return

        self._active = False
        self._restore_console()
        self._remove_error_hooks()
        self._logger = None
        logger.debug("Console interceptors removed from %r", self.target)

    # -------------------------------------------------------------------------
    # Console wrapping
    # -------------------------------------------------------------------------

    def _wrap_console(self) -> None:
        instance_attrs = getattr(self.target, "__dict__", {})
        for name in CONSOLE_METHODS:
            # Remember whether the method was an instance attribute so that
            # uninstall can put back exactly what was there
            self._originals[name] = instance_attrs.get(name, _MISSING)
            original = getattr(self.target, name)
            setattr(self.target, name, self._make_wrapper(name, original))

    def _restore_console(self) -> None:
        for name, saved in self._originals.items():
            if saved is _MISSING:
                delattr(self.target, name)
            else:
                setattr(self.target, name, saved)
        self._originals.clear()

    def _make_wrapper(self, method: str, original: Callable[..., Any]) -> Callable[..., None]:
        level = CONSOLE_LEVELS[method]

        @functools.wraps(original)
        def wrapper(*args: Any) -> None:
            original(*args)

            if self._dispatching:
                return
            self._dispatching = True
            try:
                sink = self._logger
                if self._active and sink is not None:
                    message, context = format_console_args(args, method)
                    context.update(source="console", console_method=method)
                    getattr(sink, level)(message, context)
            finally:
                self._dispatching = False

        return wrapper

    # -------------------------------------------------------------------------
    # Error hooks
    # -------------------------------------------------------------------------

    def _install_error_hooks(self, loop: asyncio.AbstractEventLoop | None) -> None:
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._handle_uncaught

        if loop is not None:
            self._loop = loop
            self._previous_loop_handler = loop.get_exception_handler()
            loop.set_exception_handler(self._handle_loop_exception)

    def _remove_error_hooks(self) -> None:
        if self._previous_excepthook is not None:
            if sys.excepthook == self._handle_uncaught:
                sys.excepthook = self._previous_excepthook
            else:
                logger.warning("sys.excepthook was replaced after install; leaving it in place")
            self._previous_excepthook = None

        if self._loop is not None:
            self._loop.set_exception_handler(self._previous_loop_handler)
            self._loop = None
            self._previous_loop_handler = None

    def _forward_error(self, message: str, context: dict[str, Any]) -> None:
        sink = self._logger
        if not self._active or sink is None or self._dispatching:
            return
        self._dispatching = True
        try:
            sink.error(message, context)
        finally:
            self._dispatching = False

    def _handle_uncaught(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        previous = self._previous_excepthook or sys.__excepthook__
        try:
            self._forward_error(
                str(exc) or exc_type.__name__,
                {
                    "source": "error",
                    "error_type": "global-error",
                    "error_name": exc_type.__name__,
                    "stack": "".join(traceback.format_exception(exc_type, exc, tb)),
                },
            )
        finally:
            previous(exc_type, exc, tb)

    def _handle_loop_exception(
        self,
        loop: asyncio.AbstractEventLoop,
        context: dict[str, Any],
    ) -> None:
        exc = context.get("exception")
        if isinstance(exc, BaseException):
            message = str(exc) or type(exc).__name__
            error_name = type(exc).__name__
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        else:
            message = str(context.get("message") or "Unhandled task exception")
            error_name = "UnhandledRejection"
            stack = None

        try:
            self._forward_error(
                message,
                {
                    "source": "error",
                    "error_type": "unhandled-promise-rejection",
                    "error_name": error_name,
                    "stack": stack,
                },
            )
        finally:
            if self._previous_loop_handler is not None:
                self._previous_loop_handler(loop, context)
            else:
                loop.default_exception_handler(context)


# Default interceptor for applications with a single console
_default = ConsoleInterceptor()


def install_interceptors(
    sink: SinkLogger,
    *,
    capture_errors: bool = True,
    loop: asyncio.AbstractEventLoop | None = None,
) -> ConsoleInterceptor:
    """Install the default interceptor on glean_logger.console.console."""
    _default.install(sink, capture_errors=capture_errors, loop=loop)
    return _default


def uninstall_interceptors() -> None:
    _default.uninstall()


def are_interceptors_active() -> bool:
    return _default.active


def get_interceptor_logger() -> SinkLogger | None:
    return _default.logger
