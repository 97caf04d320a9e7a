"""
Shared logging configuration for the rule manager.
"""

import sys
import structlog
import logging
import uuid
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Request-scoped fields added to every event
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
tenant_id_var: ContextVar[Optional[str]] = ContextVar('tenant_id', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure JSON logging on stdout for ``service_name``."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            add_service_context,
            add_request_context,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # Logger names are "<service>.<component>"
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".")[0]
    return event_dict


def add_request_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the current request id and tenant, when set."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    tenant_id = tenant_id_var.get()
    if tenant_id:
        event_dict["tenant_id"] = tenant_id

    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id, generating one when the caller sent none."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_tenant_context(tenant_id: Optional[str]) -> None:
    if tenant_id:
        tenant_id_var.set(tenant_id)


def clear_context() -> None:
    request_id_var.set(None)
    tenant_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
