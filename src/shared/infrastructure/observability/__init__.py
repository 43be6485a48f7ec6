"""
Shared Observability Infrastructure
Structured logging
"""
from .logger import bind_context, clear_context, configure_logging, get_logger, log_security_event

__all__ = [
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "log_security_event",
]
