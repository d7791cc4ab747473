"""glean-logger: client-side log capture, redaction and batched delivery.

Usage:
    from glean_logger import ClientLogger, ClientTransport, ClientTransportConfig

    transport = ClientTransport(ClientTransportConfig(endpoint="https://example.test/api/logs"))
    logger = ClientLogger(transport=transport)
    logger.info("checkout started", {"cart_id": "c-42", "password": "hunter2"})
"""

__version__ = "0.3.0"

from glean_logger.config import ClientTransportConfig, ServerTransportConfig
from glean_logger.facade import ClientLogger
from glean_logger.interceptors import (
    ConsoleInterceptor,
    are_interceptors_active,
    install_interceptors,
    uninstall_interceptors,
)
from glean_logger.redaction import (
    RedactionPolicy,
    RedactionPolicyBuilder,
    redact,
)
from glean_logger.transport import (
    ClientTransport,
    LogEntry,
    LogLevel,
    LogSource,
    get_client_transport,
)

__all__ = [
    "ClientLogger",
    "ClientTransport",
    "ClientTransportConfig",
    "ConsoleInterceptor",
    "LogEntry",
    "LogLevel",
    "LogSource",
    "RedactionPolicy",
    "RedactionPolicyBuilder",
    "ServerTransportConfig",
    "__version__",
    "are_interceptors_active",
    "get_client_transport",
    "install_interceptors",
    "redact",
    "uninstall_interceptors",
]
