"""Log entries and their batched delivery to a collector.

Usage:
    from glean_logger.transport import ClientTransport, LogEntry

    transport = ClientTransport()
    await transport.send(LogEntry.create("warn", "slow render", {"ms": 840}))
"""

from glean_logger.transport.client import (
    ClientTransport,
    DeliveryError,
    TransportStats,
    get_client_transport,
    reset_client_transport,
)
from glean_logger.transport.entry import LogEntry, LogLevel, LogSource, now_ms
from glean_logger.transport.lifecycle import AtexitHooks, ExitHooks

__all__ = [
    "AtexitHooks",
    "ClientTransport",
    "DeliveryError",
    "ExitHooks",
    "LogEntry",
    "LogLevel",
    "LogSource",
    "TransportStats",
    "get_client_transport",
    "now_ms",
    "reset_client_transport",
]
