# Infrastructure module - Logging, audit trail and runtime configuration

from .audit import AuditLog, AuditEntry, EventType, Actor, VerifyResult, record_audit_event
from .config import BridgeConfig, ConfigError, load_config
from .logging import (
    get_logger, configure_logging, RequestContext,
    get_request_id, generate_request_id
)

__all__ = [
    # Audit
    "AuditLog",
    "AuditEntry",
    "EventType",
    "Actor",
    "VerifyResult",
    "record_audit_event",
    # Config
    "BridgeConfig",
    "ConfigError",
    "load_config",
    # Logging
    "get_logger",
    "configure_logging",
    "RequestContext",
    "get_request_id",
    "generate_request_id",
]
