"""Audit log entries for security-relevant account events."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin


class AuditLog(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id", index=True)
    user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True)
    action: str = Field(nullable=False, index=True)
    details: dict = Field(
        default_factory=dict,
        sa_type=sa.JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
    )
    ip_address: Optional[str] = None
