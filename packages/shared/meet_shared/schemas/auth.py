"""
Authentication and session schemas shared between the server and its clients.

Request bodies accept the camelCase keys the web client sends (``joinCode``,
``organizationName``...) as well as snake_case. Responses serialize
``accessToken`` and ``joinCode`` in camelCase and the user projection in
snake_case.
"""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

from .common import Role

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128


def _normalize_email(value: str) -> str:
    return value.strip().lower()


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    """Self-service registration.

    Exactly one of ``organization_name`` (admin path, creates a new org) or
    ``join_code`` (member path, joins an existing org) must be present.
    """
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    organization_name: Optional[str] = Field(
        default=None,
        min_length=2,
        max_length=100,
        validation_alias=AliasChoices("organizationName", "orgName", "organization_name"),
    )
    role: Optional[Role] = None
    join_code: Optional[str] = Field(
        default=None,
        min_length=4,
        max_length=16,
        validation_alias=AliasChoices("joinCode", "join_code"),
    )

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("name", "organization_name")
    @classmethod
    def strip_names(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v

    @field_validator("join_code")
    @classmethod
    def uppercase_join_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v is not None else v

    @model_validator(mode="after")
    def check_registration_path(self) -> "RegisterRequest":
        if bool(self.organization_name) == bool(self.join_code):
            raise ValueError("Provide either organizationName or joinCode, not both")
        expected = Role.ADMIN if self.organization_name else Role.USER
        if self.role is not None and self.role != expected:
            raise ValueError(f"role '{self.role.value}' does not match the registration path")
        return self

    @property
    def is_admin_path(self) -> bool:
        return self.organization_name is not None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return _normalize_email(v)


class GoogleAuthRequest(BaseModel):
    token: str = Field(min_length=1)


class SwitchOrganizationRequest(BaseModel):
    organization_id: uuid.UUID = Field(
        validation_alias=AliasChoices("organizationId", "organization_id"),
    )


class EmailRequest(BaseModel):
    """Body for resend-verification and forgot-password."""
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return _normalize_email(v)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(
        min_length=PASSWORD_MIN_LENGTH,
        max_length=PASSWORD_MAX_LENGTH,
        validation_alias=AliasChoices("newPassword", "new_password"),
    )


class ProfileUpdateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    avatar_url: Optional[str] = Field(
        default=None,
        max_length=2048,
        validation_alias=AliasChoices("avatarUrl", "avatar_url"),
    )


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(
        min_length=1,
        max_length=PASSWORD_MAX_LENGTH,
        validation_alias=AliasChoices("currentPassword", "current_password"),
    )
    new_password: str = Field(
        min_length=PASSWORD_MIN_LENGTH,
        max_length=PASSWORD_MAX_LENGTH,
        validation_alias=AliasChoices("newPassword", "new_password"),
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class RegisteredUser(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    organization_id: uuid.UUID


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    user: RegisteredUser
    join_code: Optional[str] = Field(default=None, serialization_alias="joinCode")
    warnings: list[str] = Field(default_factory=list)


class SessionUser(BaseModel):
    """Public projection of the signed-in user in their current organization."""
    id: uuid.UUID
    name: str
    email: str
    avatar_url: Optional[str] = None
    is_verified: bool
    organization_id: uuid.UUID
    organization_name: str
    organization_logo_url: Optional[str] = None
    role: Role


class SessionResponse(BaseModel):
    success: bool = True
    user: SessionUser
    access_token: str = Field(serialization_alias="accessToken")


class CurrentUserResponse(BaseModel):
    success: bool = True
    user: SessionUser


class MembershipItem(BaseModel):
    organization_id: uuid.UUID
    name: str
    slug: str
    logo_url: Optional[str] = None
    role: Role


class MembershipListResponse(BaseModel):
    success: bool = True
    memberships: list[MembershipItem]


class ProfileResponse(BaseModel):
    success: bool = True
    message: str
    user: SessionUser
