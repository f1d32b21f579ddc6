"""
Session manager: registration, sign-in, token refresh, organization
switching and the account flows around them (email verification, password
reset, profile).

Expected failures come back as ``Err`` values. Every mutating operation
commits before it sends mail, writes the audit trail or mints tokens, so a
token is never issued for state that could still roll back.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import AuditAction, AuditLogger, get_audit_logger
from app.core.config import Settings, get_settings
from app.core.database import get_session
from app.core.errors import Err, ErrorCode, Ok, Result
from app.core.google import GoogleTokenVerifier, get_google_verifier
from app.core.mailer import MailDeliveryError, Mailer, get_mailer
from app.core.security import (
    burn_password_check,
    generate_email_token,
    hash_password_async,
    verify_password_async,
)
from app.core.tokens import TokenCodec, get_token_codec
from app.models.user import User
from app.services.credentials import CredentialStore
from app.services.memberships import MembershipContext, MembershipResolver, MembershipView
from meet_shared.schemas.auth import (
    ProfileUpdateRequest,
    RegisteredUser,
    RegisterRequest,
    SessionUser,
)
from meet_shared.schemas.common import AuthProvider, Role

log = structlog.get_logger()

RESET_TOKEN_TTL = timedelta(hours=1)
VERIFICATION_EMAIL_FAILED = "verification_email_failed"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class SessionGrant:
    """A user projection plus the token pair scoped to its organization."""
    user: SessionUser
    tokens: TokenPair


@dataclass(frozen=True)
class Registration:
    user: RegisteredUser
    join_code: Optional[str] = None
    warnings: list[str] = field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def session_user(context: MembershipContext) -> SessionUser:
    return SessionUser(
        id=context.user_id,
        name=context.name,
        email=context.email,
        avatar_url=context.avatar_url,
        is_verified=context.is_verified,
        organization_id=context.organization_id,
        organization_name=context.organization_name,
        organization_logo_url=context.organization_logo_url,
        role=context.role,
    )


class SessionManager:
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        codec: TokenCodec,
        mailer: Mailer,
        google: GoogleTokenVerifier,
        audit: AuditLogger,
    ):
        self._session = session
        self._settings = settings
        self._codec = codec
        self._mailer = mailer
        self._google = google
        self._audit = audit
        self._credentials = CredentialStore(session)
        self._memberships = MembershipResolver(session)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(
        self, req: RegisterRequest, *, ip_address: Optional[str] = None
    ) -> Result[Registration]:
        """Create an account on the admin path (new organization) or the member path (join code)."""
        if await self._credentials.find_user_by_email(req.email) is not None:
            return Err(ErrorCode.EMAIL_ALREADY_REGISTERED)

        org = None
        if not req.is_admin_path:
            org = await self._credentials.find_organization_by_join_code(req.join_code)
            if org is None:
                log.info("auth.register_invalid_join_code")
                return Err(ErrorCode.INVALID_JOIN_CODE)

        password_hash = await hash_password_async(req.password, self._settings.bcrypt_rounds)
        verification_token = generate_email_token()

        try:
            if org is None:
                org = await self._credentials.create_organization(req.organization_name)
                role = Role.ADMIN
            else:
                role = Role.USER
            user = await self._credentials.create_user(
                name=req.name,
                email=req.email,
                organization_id=org.id,
                password_hash=password_hash,
                verification_token=verification_token,
            )
            if role == Role.ADMIN:
                org.owner_id = user.id
                await self._credentials.save(org)
            await self._memberships.create_membership(user.id, org.id, role)
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            if await self._credentials.find_user_by_email(req.email) is not None:
                log.info("auth.register_conflict")
                return Err(ErrorCode.EMAIL_ALREADY_REGISTERED)
            raise

        log.info("auth.registered", user_id=str(user.id), org_id=str(org.id), role=role.value)

        warnings: list[str] = []
        try:
            await self._mailer.send_verification_email(user.email, verification_token)
        except MailDeliveryError:
            warnings.append(VERIFICATION_EMAIL_FAILED)

        await self._audit.log_action(
            AuditAction.USER_REGISTERED,
            organization_id=org.id,
            user_id=user.id,
            details={"role": role.value},
            ip_address=ip_address,
        )
        return Ok(
            Registration(
                user=RegisteredUser(
                    id=user.id,
                    name=user.name,
                    email=user.email,
                    organization_id=org.id,
                ),
                join_code=org.join_code if role == Role.ADMIN else None,
                warnings=warnings,
            )
        )

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> Result[SessionGrant]:
        user = await self._credentials.find_user_by_email(email)
        if user is None or not user.password_hash:
            await burn_password_check(password, self._settings.bcrypt_rounds)
            log.warning("auth.login_failure", reason="unknown_account")
            return Err(ErrorCode.INVALID_CREDENTIALS)

        if not await verify_password_async(password, user.password_hash):
            log.warning("auth.login_failure", user_id=str(user.id), reason="bad_password")
            return Err(ErrorCode.INVALID_CREDENTIALS)

        # only after the password matched, so verification status is no oracle
        if not user.is_verified:
            return Err(ErrorCode.EMAIL_NOT_VERIFIED)

        context = await self._current_context(user, repoint=True)
        if isinstance(context, Err):
            return context

        log.info("auth.login_success", user_id=str(user.id), org_id=str(context.value.organization_id))
        return Ok(self._grant(context.value))

    async def google_auth(
        self, id_token: str, *, ip_address: Optional[str] = None
    ) -> Result[SessionGrant]:
        verified = await self._google.verify(id_token)
        if isinstance(verified, Err):
            return verified
        identity = verified.value

        # the subject is stable across Google email changes; the email is not
        user = await self._credentials.find_user_by_google_id(identity.subject)
        if user is None:
            user = await self._credentials.find_user_by_email(identity.email)
        if user is None:
            org = await self._credentials.create_organization(f"{identity.name}'s organization")
            user = await self._credentials.create_user(
                name=identity.name,
                email=identity.email,
                organization_id=org.id,
                is_verified=True,
                google_id=identity.subject,
                avatar_url=identity.picture,
                auth_provider=AuthProvider.GOOGLE.value,
            )
            org.owner_id = user.id
            await self._credentials.save(org)
            await self._memberships.create_membership(user.id, org.id, Role.ADMIN)
            await self._session.commit()

            log.info("auth.google_registered", user_id=str(user.id), org_id=str(org.id))
            await self._audit.log_action(
                AuditAction.USER_CREATED_GOOGLE,
                organization_id=org.id,
                user_id=user.id,
                details={"email": user.email},
                ip_address=ip_address,
            )
        elif user.google_id is None:
            user.google_id = identity.subject
            user.is_verified = True
            user.verification_token = None
            user.auth_provider = AuthProvider.GOOGLE_LINKED.value
            if not user.avatar_url:
                user.avatar_url = identity.picture
            await self._credentials.save(user)
            await self._session.commit()

            # linked on email match alone; the owner of the local account is not asked
            log.warning("auth.google_linked", user_id=str(user.id), email=user.email)
            await self._audit.log_action(
                AuditAction.USER_LINKED_GOOGLE,
                organization_id=user.organization_id,
                user_id=user.id,
                details={"email": user.email},
                ip_address=ip_address,
            )
        elif user.google_id != identity.subject:
            log.warning("auth.google_subject_mismatch", user_id=str(user.id))
            return Err(ErrorCode.INVALID_GOOGLE_TOKEN)

        context = await self._current_context(user, repoint=True)
        if isinstance(context, Err):
            return context
        log.info("auth.login_success", user_id=str(user.id), provider="google")
        return Ok(self._grant(context.value))

    async def refresh(self, refresh_token: Optional[str]) -> Result[SessionGrant]:
        """Re-read the current organization and role, then mint a fresh pair."""
        if not refresh_token:
            return Err(ErrorCode.INVALID_REFRESH_TOKEN)
        verified = self._codec.verify_refresh(refresh_token)
        if isinstance(verified, Err):
            log.info("auth.refresh_rejected", reason=verified.code.value)
            return Err(ErrorCode.INVALID_REFRESH_TOKEN)

        user = await self._credentials.get_user(verified.value.user_id)
        if user is None:
            return Err(ErrorCode.INVALID_REFRESH_TOKEN)

        context = await self._current_context(user, repoint=False)
        if isinstance(context, Err):
            log.warning("auth.refresh_unlinked", user_id=str(user.id))
            return context
        return Ok(self._grant(context.value))

    async def switch_organization(
        self,
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        ip_address: Optional[str] = None,
    ) -> Result[SessionGrant]:
        context = await self._memberships.get_membership_context(user_id, organization_id)
        if isinstance(context, Err):
            log.info("auth.switch_denied", user_id=str(user_id), org_id=str(organization_id))
            return context

        user = await self._credentials.get_user(user_id)
        if user is None:
            return Err(ErrorCode.USER_NOT_FOUND)
        previous = user.organization_id
        user.organization_id = organization_id
        await self._credentials.save(user)
        await self._session.commit()

        log.info("auth.org_switched", user_id=str(user_id), org_id=str(organization_id))
        await self._audit.log_action(
            AuditAction.ORG_SWITCHED,
            organization_id=organization_id,
            user_id=user_id,
            details={"from": str(previous) if previous else None},
            ip_address=ip_address,
        )
        return Ok(self._grant(context.value))

    async def list_memberships(self, user_id: uuid.UUID) -> list[MembershipView]:
        return await self._memberships.list_memberships(user_id)

    async def current_user(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Result[SessionUser]:
        context = await self._memberships.get_membership_context(user_id, organization_id)
        if isinstance(context, Err):
            return Err(ErrorCode.UNAUTHORIZED_ORG)
        return Ok(session_user(context.value))

    # ------------------------------------------------------------------
    # Email verification & password reset
    # ------------------------------------------------------------------

    async def verify_email(self, token: str) -> Result[None]:
        user = await self._credentials.find_user_by_verification_token(token)
        if user is None:
            return Err(ErrorCode.INVALID_VERIFICATION_TOKEN)
        user.is_verified = True
        user.verification_token = None
        await self._credentials.save(user)
        await self._session.commit()
        log.info("auth.email_verified", user_id=str(user.id))
        return Ok(None)

    async def resend_verification(self, email: str) -> Result[None]:
        """Issue a new verification link. Unknown or already-verified accounts are a silent no-op."""
        user = await self._credentials.find_user_by_email(email)
        if user is None or user.is_verified:
            log.info("auth.resend_verification_skipped")
            return Ok(None)

        token = generate_email_token()
        user.verification_token = token
        await self._credentials.save(user)
        await self._session.commit()
        try:
            await self._mailer.send_verification_email(user.email, token)
        except MailDeliveryError:
            log.warning("auth.resend_verification_undelivered", user_id=str(user.id))
        return Ok(None)

    async def request_password_reset(self, email: str) -> Result[None]:
        user = await self._credentials.find_user_by_email(email)
        if user is None:
            log.info("auth.password_reset_unknown_email")
            return Ok(None)

        token = generate_email_token()
        user.reset_token = token
        user.reset_token_expires_at = datetime.now(timezone.utc) + RESET_TOKEN_TTL
        await self._credentials.save(user)
        await self._session.commit()
        log.info("auth.password_reset_requested", user_id=str(user.id))
        try:
            await self._mailer.send_password_reset_email(user.email, token)
        except MailDeliveryError:
            log.warning("auth.password_reset_undelivered", user_id=str(user.id))
        return Ok(None)

    async def reset_password(
        self, token: str, new_password: str, *, ip_address: Optional[str] = None
    ) -> Result[None]:
        user = await self._credentials.find_user_by_reset_token(token)
        if user is None or user.reset_token_expires_at is None:
            return Err(ErrorCode.INVALID_RESET_TOKEN)
        if _as_utc(user.reset_token_expires_at) <= datetime.now(timezone.utc):
            log.info("auth.reset_token_expired", user_id=str(user.id))
            return Err(ErrorCode.INVALID_RESET_TOKEN)

        user.password_hash = await hash_password_async(new_password, self._settings.bcrypt_rounds)
        user.reset_token = None
        user.reset_token_expires_at = None
        await self._credentials.save(user)
        await self._session.commit()

        log.info("auth.password_reset", user_id=str(user.id))
        await self._audit.log_action(
            AuditAction.PASSWORD_RESET,
            organization_id=user.organization_id,
            user_id=user.id,
            ip_address=ip_address,
        )
        return Ok(None)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def update_profile(
        self,
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        req: ProfileUpdateRequest,
    ) -> Result[SessionUser]:
        user = await self._credentials.get_user(user_id)
        if user is None:
            return Err(ErrorCode.USER_NOT_FOUND)
        user.name = req.name.strip()
        if "avatar_url" in req.model_fields_set:
            user.avatar_url = req.avatar_url
        await self._credentials.save(user)
        await self._session.commit()
        log.info("auth.profile_updated", user_id=str(user_id))
        return await self.current_user(user_id, organization_id)

    async def change_password(
        self, user_id: uuid.UUID, current_password: str, new_password: str
    ) -> Result[None]:
        user = await self._credentials.get_user(user_id)
        if user is None:
            return Err(ErrorCode.USER_NOT_FOUND)
        if not user.password_hash or not await verify_password_async(
            current_password, user.password_hash
        ):
            log.warning("auth.change_password_failure", user_id=str(user_id))
            return Err(ErrorCode.INVALID_CREDENTIALS, "Current password is incorrect")

        user.password_hash = await hash_password_async(new_password, self._settings.bcrypt_rounds)
        await self._credentials.save(user)
        await self._session.commit()
        log.info("auth.password_changed", user_id=str(user_id))
        return Ok(None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _current_context(self, user: User, *, repoint: bool) -> Result[MembershipContext]:
        """Membership behind the user's current-organization pointer.

        With ``repoint`` a dangling pointer moves to the first remaining
        membership; without it a dangling pointer is ``USER_ORG_UNLINKED``.
        """
        if user.organization_id is not None:
            context = await self._memberships.get_membership_context(user.id, user.organization_id)
            if isinstance(context, Ok):
                return context
        if not repoint:
            return Err(ErrorCode.USER_ORG_UNLINKED)

        memberships = await self._memberships.list_memberships(user.id)
        if not memberships:
            log.warning("auth.user_org_unlinked", user_id=str(user.id))
            return Err(ErrorCode.USER_ORG_UNLINKED)

        target = memberships[0].organization_id
        user.organization_id = target
        await self._credentials.save(user)
        await self._session.commit()
        log.info("auth.current_org_repointed", user_id=str(user.id), org_id=str(target))

        context = await self._memberships.get_membership_context(user.id, target)
        if isinstance(context, Err):
            return Err(ErrorCode.USER_ORG_UNLINKED)
        return context

    def _grant(self, context: MembershipContext) -> SessionGrant:
        tokens = TokenPair(
            access_token=self._codec.mint_access(
                context.user_id,
                context.email,
                context.role.value,
                context.organization_id,
            ),
            refresh_token=self._codec.mint_refresh(context.user_id),
        )
        return SessionGrant(user=session_user(context), tokens=tokens)


def get_session_manager(
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    codec: TokenCodec = Depends(get_token_codec),
    mailer: Mailer = Depends(get_mailer),
    google: GoogleTokenVerifier = Depends(get_google_verifier),
    audit: AuditLogger = Depends(get_audit_logger),
) -> SessionManager:
    return SessionManager(session, settings, codec, mailer, google, audit)
