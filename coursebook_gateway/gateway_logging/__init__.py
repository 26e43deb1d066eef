"""
Structured logging for the Coursebook gateway.

Use get_logger() in every module; components accept an injected logger so the
app factory can hand one context to all of them.
"""

from coursebook_gateway.gateway_logging.logger import bind_request, configure_structlog, get_logger

__all__ = ["bind_request", "configure_structlog", "get_logger"]
