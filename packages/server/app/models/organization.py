"""Organization model (tenant boundary)."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    slug: str = Field(unique=True, nullable=False, index=True)
    join_code: str = Field(unique=True, nullable=False, index=True)
    logo_url: Optional[str] = None
    # users <-> organizations reference each other; created via ALTER
    owner_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=sa.Column(
            sa.Uuid,
            sa.ForeignKey("users.id", use_alter=True, name="fk_organizations_owner_id"),
            nullable=True,
        ),
    )
