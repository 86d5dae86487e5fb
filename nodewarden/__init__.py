"""Web API, background maintenance operations and state sync for blockchain nodes."""

__version__ = "1.4.0"

__all__ = [
    "rpc_client",
    "state_sync",
    "models",
    "health_handlers",
    "operation_handlers",
    "server",
]