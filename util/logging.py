"""
Structured audit logging for the credit bureau core.
Every store access, lifecycle transition and reveal attempt goes through here.
"""

import logging
from typing import Any, Dict, List

# Field names whose values are never written to the log in clear
SENSITIVE_FIELDS = ['score', 'plain_score', 'opaque_score', 'value', 'signature', 'secret']


class StructuredLogger:
    """Structured logger for report, store and reveal operations."""

    def __init__(self, name: str = "credit_bureau"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_store_operation(self, operation: str, key: str, status: str = "success", details: Dict[str, Any] = None):
        """Log a key-value store access."""
        log_details = {"key": key}
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation(f"store.{operation}", status, log_details, level)

    def log_report_submitted(self, report_id: str, owner: str, sources: List[str], indexed: bool = True):
        """Log a new report submission."""
        log_details = {
            "report_id": report_id,
            "owner": owner,
            "sources": list(sources),
            "indexed": indexed
        }
        status = "pending" if indexed else "orphaned"
        level = logging.INFO if indexed else logging.WARNING
        self.log_operation("report.submitted", status, log_details, level)

    def log_transition(self, report_id: str, from_status: str, to_status: str, actor: str, operation: str = None):
        """Log a report status transition."""
        log_details = {
            "report_id": report_id,
            "from": from_status,
            "to": to_status,
            "actor": actor
        }
        if operation:
            log_details["transform"] = operation

        self.log_operation("report.transition", to_status, log_details)

    def log_transition_denied(self, report_id: str, actor: str, reason: str):
        """Log a refused approve/reject attempt."""
        log_details = {
            "report_id": report_id,
            "actor": actor,
            "reason": reason[:100] if reason else ""
        }
        self.log_operation("report.transition", "denied", log_details, logging.WARNING)

    def log_reveal_attempt(self, status: str, details: Dict[str, Any] = None):
        """Log a signature-gated reveal."""
        level = logging.INFO if status == "revealed" else logging.WARNING
        self.log_operation("reveal", status, sanitize_payload(details or {}), level)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None, sensitive_fields: List[str] = None):
    """General audit event logging with redaction of score-bearing fields."""
    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    # Determine operation type from event_type
    if event_type.startswith("report"):
        operation = "report"
    elif event_type.startswith("reveal"):
        operation = "reveal"
    elif event_type.startswith("store"):
        operation = "store"
    else:
        operation = event_type.replace(".", "_")

    logger.log_operation(operation, "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
