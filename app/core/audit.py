"""Audit trail for admin decisions and money movement."""

from typing import Any

from app.models.audit_log import AuditLog


async def log_event(
    actor_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    subject_user_id: str | None = None,
) -> None:
    """Append to audit_logs. Subject defaults to the actor (a user acting on their own account)."""
    await AuditLog(
        actor_id=actor_id,
        subject_user_id=subject_user_id or actor_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata or {},
    ).insert()


async def list_events_for_user(subject_user_id: str, limit: int = 50) -> list[AuditLog]:
    return (
        await AuditLog.find(AuditLog.subject_user_id == subject_user_id)
        .sort(-AuditLog.created_at)
        .limit(limit)
        .to_list()
    )
