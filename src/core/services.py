"""Audit helpers shared by every app."""
from typing import Any

from core.models import AuditLog


def create_audit_log(
    performed_by,
    action: str,
    entity_type: str,
    entity_id,
    details: dict[str, Any] | None = None,
) -> AuditLog:
    """Create and return a new :class:`~core.models.AuditLog` entry."""
    return AuditLog.objects.create(
        performed_by=performed_by,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details=details or {},
    )
