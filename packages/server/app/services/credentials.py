"""
Credential store: users, password hashes, email tokens and organizations.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.security import generate_join_code, slugify
from app.models.organization import Organization
from app.models.user import User

log = structlog.get_logger()

_MAX_UNIQUE_ATTEMPTS = 20


class CredentialStore:
    def __init__(self, session: AsyncSession):
        self._session = session

    # -- users --------------------------------------------------------------

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        return await self._session.get(User, user_id)

    async def find_user_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup."""
        result = await self._session.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalars().first()

    async def find_user_by_google_id(self, google_id: str) -> Optional[User]:
        result = await self._session.execute(select(User).where(User.google_id == google_id))
        return result.scalars().first()

    async def find_user_by_verification_token(self, token: str) -> Optional[User]:
        result = await self._session.execute(
            select(User).where(User.verification_token == token)
        )
        return result.scalars().first()

    async def find_user_by_reset_token(self, token: str) -> Optional[User]:
        result = await self._session.execute(select(User).where(User.reset_token == token))
        return result.scalars().first()

    async def create_user(
        self,
        *,
        name: str,
        email: str,
        organization_id: uuid.UUID,
        password_hash: Optional[str] = None,
        is_verified: bool = False,
        verification_token: Optional[str] = None,
        google_id: Optional[str] = None,
        avatar_url: Optional[str] = None,
        auth_provider: str = "local",
    ) -> User:
        user = User(
            name=name,
            email=email.strip().lower(),
            password_hash=password_hash,
            is_verified=is_verified,
            verification_token=verification_token,
            google_id=google_id,
            avatar_url=avatar_url,
            auth_provider=auth_provider,
            organization_id=organization_id,
        )
        self._session.add(user)
        await self._session.flush()
        return user

    async def save(self, *instances) -> None:
        for instance in instances:
            self._session.add(instance)
        await self._session.flush()

    # -- organizations ------------------------------------------------------

    async def get_organization(self, organization_id: uuid.UUID) -> Optional[Organization]:
        return await self._session.get(Organization, organization_id)

    async def find_organization_by_join_code(self, join_code: str) -> Optional[Organization]:
        result = await self._session.execute(
            select(Organization).where(Organization.join_code == join_code.strip().upper())
        )
        return result.scalars().first()

    async def create_organization(self, name: str) -> Organization:
        """Create an organization with a unique slug and a fresh join code."""
        org = Organization(
            name=name,
            slug=await self._unique_slug(name),
            join_code=await self._unique_join_code(),
        )
        self._session.add(org)
        await self._session.flush()
        log.info("org.created", org_id=str(org.id), slug=org.slug)
        return org

    async def _unique_slug(self, name: str) -> str:
        base = slugify(name)
        candidate = base
        suffix = 1
        while await self._slug_taken(candidate):
            suffix += 1
            candidate = f"{base}-{suffix}"
        return candidate

    async def _slug_taken(self, slug: str) -> bool:
        result = await self._session.execute(
            select(Organization.id).where(Organization.slug == slug)
        )
        return result.first() is not None

    async def _unique_join_code(self) -> str:
        for _ in range(_MAX_UNIQUE_ATTEMPTS):
            code = generate_join_code()
            result = await self._session.execute(
                select(Organization.id).where(Organization.join_code == code)
            )
            if result.first() is None:
                return code
        raise RuntimeError("could not allocate a unique join code")
