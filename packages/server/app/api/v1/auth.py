"""
Authentication endpoints.

- Email/password registration (new organization or join code) and login
- Google sign-in
- Refresh-token rotation, logout and organization switching
- Email verification, password reset and profile maintenance
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Cookie, Depends, Request, Response

from app.core.config import Settings, get_settings
from app.core.errors import ErrorCode, unwrap
from app.core.gate import RequestContext, authenticate_request
from app.core.rate_limit import (
    FORGOT_PASSWORD_LIMIT,
    LOGIN_LIMIT,
    REGISTER_LIMIT,
    RESEND_VERIFICATION_LIMIT,
    client_address,
    rate_limit,
)
from app.services.sessions import SessionGrant, SessionManager, get_session_manager
from meet_shared.schemas.auth import (
    ChangePasswordRequest,
    CurrentUserResponse,
    EmailRequest,
    GoogleAuthRequest,
    LoginRequest,
    MembershipItem,
    MembershipListResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    SessionResponse,
    SwitchOrganizationRequest,
)
from meet_shared.schemas.common import MessageResponse

log = structlog.get_logger()
router = APIRouter()

REFRESH_COOKIE = "refreshToken"


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------

def _cookie_flags(settings: Settings) -> dict:
    # cross-site in production (API and frontend on different origins)
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "none" if settings.is_production else "lax",
        "path": "/",
    }


def _set_refresh_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=token,
        max_age=int(settings.jwt_refresh_expiration.total_seconds()),
        **_cookie_flags(settings),
    )


def _session_response(response: Response, grant: SessionGrant, settings: Settings) -> SessionResponse:
    _set_refresh_cookie(response, grant.tokens.refresh_token, settings)
    return SessionResponse(user=grant.user, access_token=grant.tokens.access_token)


# ---------------------------------------------------------------------------
# Registration & sign-in
# ---------------------------------------------------------------------------

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=201,
    dependencies=[Depends(rate_limit(REGISTER_LIMIT))],
)
async def register(
    body: RegisterRequest,
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
):
    """Register on the admin path (organizationName) or the member path (joinCode)."""
    registration = unwrap(await manager.register(body, ip_address=client_address(request)))
    return RegisterResponse(
        message="Registration successful. Check your email to verify your account.",
        user=registration.user,
        join_code=registration.join_code,
        warnings=registration.warnings,
    )


@router.post(
    "/login",
    response_model=SessionResponse,
    dependencies=[Depends(rate_limit(LOGIN_LIMIT))],
)
async def login(
    body: LoginRequest,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    grant = unwrap(await manager.login(body.email, body.password))
    return _session_response(response, grant, settings)


@router.post("/google", response_model=SessionResponse)
async def google_login(
    body: GoogleAuthRequest,
    request: Request,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    grant = unwrap(await manager.google_auth(body.token, ip_address=client_address(request)))
    return _session_response(response, grant, settings)


# ---------------------------------------------------------------------------
# Session management
# ---------------------------------------------------------------------------

@router.post("/refresh", response_model=SessionResponse)
async def refresh_session(
    response: Response,
    refresh_token: Optional[str] = Cookie(default=None, alias=REFRESH_COOKIE),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    """Mint a new pair from the refresh cookie, re-reading the current organization."""
    grant = unwrap(await manager.refresh(refresh_token))
    return _session_response(response, grant, settings)


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    """Clear the refresh cookie. Issued access tokens stay valid until they expire."""
    response.delete_cookie(REFRESH_COOKIE, **_cookie_flags(settings))
    return MessageResponse(message="Logged out")


@router.get("/memberships", response_model=MembershipListResponse)
async def list_memberships(
    auth: RequestContext = Depends(authenticate_request),
    manager: SessionManager = Depends(get_session_manager),
):
    memberships = await manager.list_memberships(auth.user_id)
    return MembershipListResponse(
        memberships=[
            MembershipItem(
                organization_id=m.organization_id,
                name=m.name,
                slug=m.slug,
                logo_url=m.logo_url,
                role=m.role,
            )
            for m in memberships
        ]
    )


@router.post("/switch-org", response_model=SessionResponse)
async def switch_organization(
    body: SwitchOrganizationRequest,
    request: Request,
    response: Response,
    auth: RequestContext = Depends(authenticate_request),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    grant = unwrap(
        await manager.switch_organization(
            auth.user_id, body.organization_id, ip_address=client_address(request)
        )
    )
    return _session_response(response, grant, settings)


@router.get("/me", response_model=CurrentUserResponse)
async def current_user(
    auth: RequestContext = Depends(authenticate_request),
    manager: SessionManager = Depends(get_session_manager),
):
    user = unwrap(await manager.current_user(auth.user_id, auth.organization_id))
    return CurrentUserResponse(user=user)


# ---------------------------------------------------------------------------
# Email verification & password reset
# ---------------------------------------------------------------------------

@router.get("/verify-email/{token}", response_model=MessageResponse)
async def verify_email(token: str, manager: SessionManager = Depends(get_session_manager)):
    unwrap(await manager.verify_email(token))
    return MessageResponse(message="Email verified")


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit(RESEND_VERIFICATION_LIMIT))],
)
async def resend_verification(
    body: EmailRequest, manager: SessionManager = Depends(get_session_manager)
):
    unwrap(await manager.resend_verification(body.email))
    return MessageResponse(
        message="If the account exists and is not verified, a new verification email was sent"
    )


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit(FORGOT_PASSWORD_LIMIT))],
)
async def forgot_password(
    body: EmailRequest, manager: SessionManager = Depends(get_session_manager)
):
    unwrap(await manager.request_password_reset(body.email))
    return MessageResponse(
        message="If the email exists, you will receive instructions to reset your password"
    )


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
):
    unwrap(
        await manager.reset_password(
            body.token, body.new_password, ip_address=client_address(request)
        )
    )
    return MessageResponse(message="Password has been reset")


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    auth: RequestContext = Depends(authenticate_request),
    manager: SessionManager = Depends(get_session_manager),
):
    user = unwrap(await manager.update_profile(auth.user_id, auth.organization_id, body))
    return ProfileResponse(message="Profile updated", user=user)


@router.put(
    "/change-password",
    response_model=MessageResponse,
    responses={400: {"description": "Current password is incorrect"}},
)
async def change_password(
    body: ChangePasswordRequest,
    auth: RequestContext = Depends(authenticate_request),
    manager: SessionManager = Depends(get_session_manager),
):
    unwrap(
        await manager.change_password(auth.user_id, body.current_password, body.new_password),
        status_overrides={ErrorCode.INVALID_CREDENTIALS: 400},
    )
    return MessageResponse(message="Password changed")
