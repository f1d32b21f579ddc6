"""User model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    name: str = Field(nullable=False)
    email: str = Field(unique=True, index=True, nullable=False)  # stored lowercased
    password_hash: Optional[str] = Field(default=None)  # NULL for Google-only accounts
    avatar_url: Optional[str] = None
    is_verified: bool = Field(default=False, nullable=False)
    verification_token: Optional[str] = Field(default=None, index=True)
    reset_token: Optional[str] = Field(default=None, index=True)
    reset_token_expires_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    google_id: Optional[str] = Field(default=None, unique=True)
    auth_provider: str = Field(default="local", nullable=False)  # local | google | google_linked
    # current organization; must name one of the user's memberships
    organization_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id", index=True
    )
