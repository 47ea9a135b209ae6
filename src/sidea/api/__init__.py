"""Request-layer glue (exception → HTTP status mapping)."""

from sidea.api.exception_handlers import register_exception_handlers

__all__ = ["register_exception_handlers"]
