"""
Shared fixtures: a file-backed SQLite database per test, stub mail and
Google collaborators, and an HTTP client wired to them.
"""

from __future__ import annotations

import os

os.environ["NODE_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_ACCESS_SECRET"] = "test-access-secret-0123456789"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-9876543210"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "10"
os.environ["LOG_FORMAT"] = "console"
os.environ["LOG_LEVEL"] = "warning"

from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import app.models  # noqa: F401  (registers the tables)
from app.core.audit import AuditLogger, get_audit_logger
from app.core.config import Settings, get_settings
from app.core.database import build_engine, get_session
from app.core.errors import Err, ErrorCode, Ok
from app.core.google import GoogleIdentity, get_google_verifier
from app.core.mailer import MailDeliveryError, get_mailer
from app.core.tokens import TokenCodec
from app.services.sessions import SessionManager
from meet_shared.schemas.auth import RegisterRequest

DEFAULT_PASSWORD = "correct-horse-1"


# ---------------------------------------------------------------------------
# Stub collaborators
# ---------------------------------------------------------------------------

class RecordingMailer:
    """Keeps sent messages in memory; ``fail = True`` simulates an SMTP outage."""

    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def send_verification_email(self, to: str, token: str) -> None:
        self._record("verification", to, token)

    async def send_password_reset_email(self, to: str, token: str) -> None:
        self._record("reset", to, token)

    def _record(self, kind: str, to: str, token: str) -> None:
        if self.fail:
            raise MailDeliveryError("smtp unavailable")
        self.sent.append((kind, to, token))

    def token_for(self, to: str, kind: str = "verification") -> Optional[str]:
        for sent_kind, sent_to, token in reversed(self.sent):
            if sent_kind == kind and sent_to == to:
                return token
        return None


class StubGoogleVerifier:
    def __init__(self):
        self.identities: dict[str, GoogleIdentity] = {}

    async def verify(self, id_token: str):
        identity = self.identities.get(id_token)
        if identity is None:
            return Err(ErrorCode.INVALID_GOOGLE_TOKEN)
        return Ok(identity)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def codec(settings: Settings) -> TokenCodec:
    return TokenCodec(settings)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'meet.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def google() -> StubGoogleVerifier:
    return StubGoogleVerifier()


@pytest.fixture
def audit(session_factory) -> AuditLogger:
    return AuditLogger(session_factory)


@pytest.fixture
def manager(session, settings, codec, mailer, google, audit) -> SessionManager:
    return SessionManager(session, settings, codec, mailer, google, audit)


@pytest.fixture
def register_user(manager: SessionManager, mailer: RecordingMailer):
    """Register through the session manager, verifying the email unless told otherwise."""

    async def _register(
        email: str,
        *,
        name: str = "Test User",
        organization_name: Optional[str] = None,
        join_code: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
        verify: bool = True,
    ):
        payload = {"name": name, "email": email, "password": password}
        if join_code is not None:
            payload["joinCode"] = join_code
        else:
            payload["organizationName"] = organization_name or "Acme"
        result = await manager.register(RegisterRequest.model_validate(payload))
        assert isinstance(result, Ok), result
        if verify:
            verified = await manager.verify_email(mailer.token_for(email.lower()))
            assert isinstance(verified, Ok)
        return result.value

    return _register


@pytest.fixture
def api_app(session_factory, settings, mailer, google):
    """The application with its database, mail, Google and audit collaborators swapped out."""
    from app.main import create_app

    app = create_app(settings)

    async def _session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_google_verifier] = lambda: google
    app.dependency_overrides[get_audit_logger] = lambda: AuditLogger(session_factory)
    return app


@pytest.fixture
async def client(api_app):
    async with AsyncClient(transport=ASGITransport(app=api_app), base_url="http://test") as ac:
        yield ac


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
