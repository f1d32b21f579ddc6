"""
Membership resolver: which organizations a user belongs to, and as what.

Every authorization read is a single query so a concurrent membership
removal can never be observed half-way (existence from one read, role from
another).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Err, ErrorCode, Ok, Result
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.user import User
from meet_shared.schemas.common import Role

log = structlog.get_logger()


@dataclass(frozen=True)
class MembershipView:
    """One entry of the organization switcher."""
    organization_id: uuid.UUID
    name: str
    slug: str
    logo_url: Optional[str]
    role: Role


@dataclass(frozen=True)
class MembershipContext:
    """A user as seen from inside one organization, read in one query."""
    user_id: uuid.UUID
    name: str
    email: str
    avatar_url: Optional[str]
    is_verified: bool
    organization_id: uuid.UUID
    organization_name: str
    organization_logo_url: Optional[str]
    role: Role


@dataclass(frozen=True)
class MemberView:
    user_id: uuid.UUID
    name: str
    email: str
    avatar_url: Optional[str]
    is_verified: bool
    role: Role
    joined_at: datetime


class MembershipResolver:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_memberships(self, user_id: uuid.UUID) -> list[MembershipView]:
        """All organizations the user belongs to, ordered by name. May be empty."""
        result = await self._session.execute(
            select(Organization, Membership.role)
            .join(Membership, Membership.organization_id == Organization.id)
            .where(Membership.user_id == user_id)
            .order_by(Organization.name, Organization.id)
        )
        return [
            MembershipView(
                organization_id=org.id,
                name=org.name,
                slug=org.slug,
                logo_url=org.logo_url,
                role=Role(role),
            )
            for org, role in result.all()
        ]

    async def get_role(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> Result[Role]:
        result = await self._session.execute(
            select(Membership.role).where(
                Membership.user_id == user_id,
                Membership.organization_id == organization_id,
            )
        )
        role = result.scalar_one_or_none()
        if role is None:
            return Err(ErrorCode.NOT_A_MEMBER)
        return Ok(Role(role))

    async def get_membership_context(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Result[MembershipContext]:
        """Role, verification status and organization details for one (user, org) pair."""
        result = await self._session.execute(
            select(User, Organization, Membership.role)
            .join(Membership, Membership.user_id == User.id)
            .join(Organization, Organization.id == Membership.organization_id)
            .where(
                Membership.user_id == user_id,
                Membership.organization_id == organization_id,
            )
        )
        row = result.one_or_none()
        if row is None:
            return Err(ErrorCode.NOT_A_MEMBER)
        user, org, role = row
        return Ok(
            MembershipContext(
                user_id=user.id,
                name=user.name,
                email=user.email,
                avatar_url=user.avatar_url,
                is_verified=user.is_verified,
                organization_id=org.id,
                organization_name=org.name,
                organization_logo_url=org.logo_url,
                role=Role(role),
            )
        )

    async def create_membership(
        self, user_id: uuid.UUID, organization_id: uuid.UUID, role: Role
    ) -> Result[Membership]:
        existing = await self._get(user_id, organization_id)
        if existing is not None:
            return Err(ErrorCode.DUPLICATE_MEMBERSHIP)

        membership = Membership(user_id=user_id, organization_id=organization_id, role=role.value)
        self._session.add(membership)
        await self._session.flush()
        log.info(
            "membership.created",
            user_id=str(user_id),
            org_id=str(organization_id),
            role=role.value,
        )
        return Ok(membership)

    async def update_role(
        self, user_id: uuid.UUID, organization_id: uuid.UUID, role: Role
    ) -> Result[Membership]:
        membership = await self._get(user_id, organization_id)
        if membership is None:
            return Err(ErrorCode.NOT_A_MEMBER)
        membership.role = role.value
        self._session.add(membership)
        await self._session.flush()
        log.info("membership.role_changed", user_id=str(user_id), org_id=str(organization_id), role=role.value)
        return Ok(membership)

    async def remove_membership(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> Result[None]:
        """Delete a membership unless it is the user's only one."""
        membership = await self._get(user_id, organization_id)
        if membership is None:
            return Err(ErrorCode.NOT_A_MEMBER)
        if await self.count_memberships(user_id) <= 1:
            return Err(ErrorCode.LAST_MEMBERSHIP)

        await self._session.delete(membership)
        await self._session.flush()
        log.info("membership.removed", user_id=str(user_id), org_id=str(organization_id))
        return Ok(None)

    async def count_memberships(self, user_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(Membership).where(Membership.user_id == user_id)
        )
        return result.scalar_one()

    async def count_admins(self, organization_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(Membership)
            .where(
                Membership.organization_id == organization_id,
                Membership.role == Role.ADMIN.value,
            )
        )
        return result.scalar_one()

    async def list_members(self, organization_id: uuid.UUID) -> list[MemberView]:
        result = await self._session.execute(
            select(User, Membership)
            .join(Membership, Membership.user_id == User.id)
            .where(Membership.organization_id == organization_id)
            .order_by(Membership.created_at.desc(), User.name)
        )
        return [_member_view(user, membership) for user, membership in result.all()]

    async def get_member(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> Result[MemberView]:
        result = await self._session.execute(
            select(User, Membership)
            .join(Membership, Membership.user_id == User.id)
            .where(
                Membership.user_id == user_id,
                Membership.organization_id == organization_id,
            )
        )
        row = result.one_or_none()
        if row is None:
            return Err(ErrorCode.NOT_A_MEMBER)
        return Ok(_member_view(*row))

    async def _get(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> Optional[Membership]:
        result = await self._session.execute(
            select(Membership).where(
                Membership.user_id == user_id,
                Membership.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()


def _member_view(user: User, membership: Membership) -> MemberView:
    return MemberView(
        user_id=user.id,
        name=user.name,
        email=user.email,
        avatar_url=user.avatar_url,
        is_verified=user.is_verified,
        role=Role(membership.role),
        joined_at=membership.created_at,
    )
