"""
Best-effort audit trail.

Entries are written in their own session after the business transaction has
committed; a failed write is logged and never reaches the caller.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.core.database import async_session_factory
from app.models.audit_log import AuditLog

log = structlog.get_logger()


class AuditAction(str, Enum):
    USER_REGISTERED = "USER_REGISTERED"
    USER_CREATED_GOOGLE = "USER_CREATED_GOOGLE"
    USER_LINKED_GOOGLE = "USER_LINKED_GOOGLE"
    ORG_SWITCHED = "ORG_SWITCHED"
    MEMBER_ADDED = "MEMBER_ADDED"
    MEMBER_ROLE_CHANGED = "MEMBER_ROLE_CHANGED"
    MEMBER_REMOVED = "MEMBER_REMOVED"
    PASSWORD_RESET = "PASSWORD_RESET"


class AuditLogger:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def log_action(
        self,
        action: AuditAction,
        *,
        organization_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> None:
        entry = AuditLog(
            organization_id=organization_id,
            user_id=user_id,
            action=action.value,
            details=details or {},
            ip_address=ip_address,
        )
        try:
            async with self._session_factory() as session:
                session.add(entry)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            log.warning("audit.write_failed", action=action.value, error=str(exc))


def get_audit_logger() -> AuditLogger:
    return AuditLogger(async_session_factory)
