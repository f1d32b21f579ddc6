"""
Organization member administration schemas.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import Role


class MemberAddRequest(BaseModel):
    """Link an already-registered user into the caller's organization."""
    email: EmailStr
    role: Role = Role.USER

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.strip().lower()


class MemberRoleUpdateRequest(BaseModel):
    role: Role


class MemberResponse(BaseModel):
    user_id: uuid.UUID
    name: str
    email: str
    avatar_url: Optional[str] = None
    is_verified: bool
    role: Role
    joined_at: datetime


class MemberEnvelope(BaseModel):
    success: bool = True
    member: MemberResponse


class MemberListResponse(BaseModel):
    success: bool = True
    members: list[MemberResponse]
    join_code: str = Field(serialization_alias="joinCode")
