"""Structured audit events for admin actions."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from ..types import AuditEventDict

audit_logger = logging.getLogger("scoutrace.audit")

# Never written to the audit log, whatever the caller passes
_SECRET_FIELDS = frozenset({"password", "token", "session", "password_hash"})


def record_event(event: str, ip: str, outcome: str, **fields: Any) -> AuditEventDict:
    """
    Emit one audit event as a JSON line.

    Args:
        event: Event name, e.g. "admin.login"
        ip: Actor IP address
        outcome: "success", "failure", "rate_limited", ...
        **fields: Extra context (registration id, ...)

    Returns:
        The event as written
    """
    entry: AuditEventDict = {
        "event": event,
        "ip": ip,
        "outcome": outcome,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    entry.update({k: v for k, v in fields.items() if k not in _SECRET_FIELDS})
    audit_logger.info(json.dumps(entry, ensure_ascii=False, default=str))
    return entry
