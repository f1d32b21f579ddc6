"""
Organization member administration endpoints (admin role, current organization).
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import AuditLogger, get_audit_logger
from app.core.database import get_session
from app.core.errors import ErrorCode, unwrap
from app.core.gate import RequestContext, require_admin
from app.core.rate_limit import client_address
from app.services import organizations as org_service
from app.services.memberships import MemberView
from meet_shared.schemas.common import MessageResponse
from meet_shared.schemas.organizations import (
    MemberAddRequest,
    MemberEnvelope,
    MemberListResponse,
    MemberResponse,
    MemberRoleUpdateRequest,
)

router = APIRouter()

# the missing party is the target member, not the caller
_TARGET_NOT_FOUND = {ErrorCode.NOT_A_MEMBER: 404}


def _member_response(member: MemberView) -> MemberResponse:
    return MemberResponse(
        user_id=member.user_id,
        name=member.name,
        email=member.email,
        avatar_url=member.avatar_url,
        is_verified=member.is_verified,
        role=member.role,
        joined_at=member.joined_at,
    )


@router.get("/members", response_model=MemberListResponse)
async def list_members(
    auth: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """List members of the caller's current organization and its join code."""
    members, join_code = unwrap(await org_service.list_members(auth.organization_id, session))
    return MemberListResponse(
        members=[_member_response(m) for m in members],
        join_code=join_code,
    )


@router.post("/members", response_model=MemberEnvelope, status_code=201)
async def add_member(
    body: MemberAddRequest,
    request: Request,
    auth: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Link an already-registered user into the organization."""
    member = unwrap(
        await org_service.add_member(
            auth.organization_id,
            body.email,
            body.role,
            session,
            audit,
            actor_id=auth.user_id,
            ip_address=client_address(request),
        )
    )
    return MemberEnvelope(member=_member_response(member))


@router.put("/members/{userId}/role", response_model=MemberEnvelope)
async def change_member_role(
    userId: uuid.UUID,
    body: MemberRoleUpdateRequest,
    request: Request,
    auth: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    audit: AuditLogger = Depends(get_audit_logger),
):
    member = unwrap(
        await org_service.change_role(
            auth.organization_id,
            userId,
            body.role,
            session,
            audit,
            actor_id=auth.user_id,
            ip_address=client_address(request),
        ),
        status_overrides=_TARGET_NOT_FOUND,
    )
    return MemberEnvelope(member=_member_response(member))


@router.delete("/members/{userId}", response_model=MessageResponse)
async def remove_member(
    userId: uuid.UUID,
    request: Request,
    auth: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    audit: AuditLogger = Depends(get_audit_logger),
):
    unwrap(
        await org_service.remove_member(
            auth.organization_id,
            userId,
            session,
            audit,
            actor_id=auth.user_id,
            ip_address=client_address(request),
        ),
        status_overrides=_TARGET_NOT_FOUND,
    )
    return MessageResponse(message="Member removed")
