"""Audit service for logging payment lifecycle events."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from condo_finance.models.audit_log import AuditLog


def _json_safe(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class AuditService:
    """Service for audit log operations.

    Provides static method to create minimal audit log entries. Entries are
    added to the caller's session so they commit or roll back together with
    the mutation they describe.
    """

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Create audit log entry (one-liner).

        Args:
            db: Database session
            entity_type: Type of entity ("payment")
            entity_id: Primary key of the entity
            action: Action performed ("create", "cancel", etc.)
            actor_id: User who performed the action (None for system jobs)
            changes: Optional snapshot of changed fields; Decimal, date and
                enum values are stored as strings

        Returns:
            Created AuditLog object
        """
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes={k: _json_safe(v) for k, v in changes.items()} if changes else None,
        )
        db.add(audit)
        return audit


__all__ = ["AuditService"]
