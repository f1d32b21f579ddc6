"""
Organization member administration: list, link, re-role and remove members
of the caller's current organization.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import AuditAction, AuditLogger
from app.core.errors import Err, ErrorCode, Ok, Result
from app.services.credentials import CredentialStore
from app.services.memberships import MembershipResolver, MemberView
from meet_shared.schemas.common import Role

log = structlog.get_logger()

MAX_ADMINS_PER_ORG = 3


async def list_members(
    org_id: uuid.UUID, session: AsyncSession
) -> Result[tuple[list[MemberView], str]]:
    """Members of the org, newest first, and the org's join code."""
    org = await CredentialStore(session).get_organization(org_id)
    if org is None:
        return Err(ErrorCode.NOT_FOUND, "Organization not found")
    members = await MembershipResolver(session).list_members(org_id)
    return Ok((members, org.join_code))


async def add_member(
    org_id: uuid.UUID,
    email: str,
    role: Role,
    session: AsyncSession,
    audit: AuditLogger,
    *,
    actor_id: uuid.UUID,
    ip_address: Optional[str] = None,
) -> Result[MemberView]:
    """Link an existing account into the org."""
    credentials = CredentialStore(session)
    memberships = MembershipResolver(session)

    user = await credentials.find_user_by_email(email)
    if user is None:
        return Err(ErrorCode.USER_NOT_FOUND)
    if role == Role.ADMIN and await memberships.count_admins(org_id) >= MAX_ADMINS_PER_ORG:
        return Err(ErrorCode.ADMIN_LIMIT_REACHED)

    created = await memberships.create_membership(user.id, org_id, role)
    if isinstance(created, Err):
        return created
    # an existing pointer is left alone; the user switches explicitly
    if user.organization_id is None:
        user.organization_id = org_id
        await credentials.save(user)
    await session.commit()

    log.info("org.member_added", org_id=str(org_id), user_id=str(user.id), role=role.value)
    await audit.log_action(
        AuditAction.MEMBER_ADDED,
        organization_id=org_id,
        user_id=actor_id,
        details={"member_id": str(user.id), "role": role.value},
        ip_address=ip_address,
    )
    return await memberships.get_member(user.id, org_id)


async def change_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    role: Role,
    session: AsyncSession,
    audit: AuditLogger,
    *,
    actor_id: uuid.UUID,
    ip_address: Optional[str] = None,
) -> Result[MemberView]:
    memberships = MembershipResolver(session)

    current = await memberships.get_role(user_id, org_id)
    if isinstance(current, Err):
        return current
    if current.value == role:
        return await memberships.get_member(user_id, org_id)

    admins = await memberships.count_admins(org_id)
    if current.value == Role.ADMIN and admins <= 1:
        return Err(ErrorCode.LAST_ADMIN)
    if role == Role.ADMIN and admins >= MAX_ADMINS_PER_ORG:
        return Err(ErrorCode.ADMIN_LIMIT_REACHED)

    await memberships.update_role(user_id, org_id, role)
    await session.commit()

    await audit.log_action(
        AuditAction.MEMBER_ROLE_CHANGED,
        organization_id=org_id,
        user_id=actor_id,
        details={"member_id": str(user_id), "from": current.value.value, "to": role.value},
        ip_address=ip_address,
    )
    return await memberships.get_member(user_id, org_id)


async def remove_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    session: AsyncSession,
    audit: AuditLogger,
    *,
    actor_id: uuid.UUID,
    ip_address: Optional[str] = None,
) -> Result[None]:
    """Remove a membership.

    The member's current-organization pointer is not moved: their next gated
    request fails with ``UNAUTHORIZED_ORG`` and refresh with
    ``USER_ORG_UNLINKED``.
    """
    memberships = MembershipResolver(session)

    current = await memberships.get_role(user_id, org_id)
    if isinstance(current, Err):
        return current
    if current.value == Role.ADMIN and await memberships.count_admins(org_id) <= 1:
        return Err(ErrorCode.LAST_ADMIN)

    removed = await memberships.remove_membership(user_id, org_id)
    if isinstance(removed, Err):
        return removed
    await session.commit()

    await audit.log_action(
        AuditAction.MEMBER_REMOVED,
        organization_id=org_id,
        user_id=actor_id,
        details={"member_id": str(user_id)},
        ip_address=ip_address,
    )
    return Ok(None)
