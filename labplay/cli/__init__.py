"""labplay CLI: service clients, session state, health polling and the REPL."""

from labplay.cli.client import AgentClient, BackendError, ExecutionClient, ServiceUnavailable, StreamError
from labplay.cli.session import SessionManager

__all__ = [
    "AgentClient",
    "BackendError",
    "ExecutionClient",
    "ServiceUnavailable",
    "SessionManager",
    "StreamError",
]
