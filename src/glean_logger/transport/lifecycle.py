"""Process-exit hooks used for the last-chance flush."""

from __future__ import annotations

import atexit
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable


class ExitHooks(Protocol):
    """Registers callbacks that run when the process is about to exit.

    Injectable so tests can fire the hook without exiting.
    """

    def register(self, callback: Callable[[], None]) -> None: ...

    def unregister(self, callback: Callable[[], None]) -> None: ...


class AtexitHooks:
    """Default hooks backed by the atexit module."""

    def register(self, callback: Callable[[], None]) -> None:
        atexit.register(callback)

    def unregister(self, callback: Callable[[], None]) -> None:
        atexit.unregister(callback)
