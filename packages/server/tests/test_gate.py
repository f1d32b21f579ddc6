"""
Request gate: bearer parsing, token failures and the fresh membership check.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from app.core.gate import RequestContext, _bearer_token
from app.services.memberships import MembershipContext, MembershipResolver
from meet_shared.schemas.common import Role

from conftest import DEFAULT_PASSWORD, bearer


async def _login(client: AsyncClient, email: str) -> str:
    response = await client.post("/auth/login", json={"email": email, "password": DEFAULT_PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()["accessToken"]


@pytest.mark.parametrize(
    "header, token",
    [
        (None, None),
        ("", None),
        ("Bearer", None),
        ("Bearer   ", None),
        ("Basic abc", None),
        ("Bearer abc.def", "abc.def"),
        ("bearer abc", "abc"),
    ],
)
def test_bearer_token_parsing(header, token):
    assert _bearer_token(header) == token


def test_context_built_from_membership_row():
    membership = MembershipContext(
        user_id=uuid.uuid4(),
        name="Alice",
        email="alice@x.com",
        avatar_url=None,
        is_verified=True,
        organization_id=uuid.uuid4(),
        organization_name="Acme",
        organization_logo_url=None,
        role=Role.ADMIN,
    )
    context = RequestContext.from_membership(membership)
    assert context.role == Role.ADMIN
    assert context.is_admin
    assert context.organization_name == "Acme"


class TestGate:
    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "MISSING_TOKEN"

    @pytest.mark.asyncio
    async def test_non_bearer_scheme_is_missing(self, client: AsyncClient):
        response = await client.get("/auth/me", headers={"Authorization": "Basic dXNlcjpwdw=="})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "MISSING_TOKEN"

    @pytest.mark.asyncio
    async def test_invalid_token_is_403(self, client: AsyncClient):
        response = await client.get("/auth/me", headers=bearer("not.a.token"))
        assert response.status_code == 403
        assert response.json()["error"] == {
            "code": "TOKEN_INVALID",
            "message": "Invalid token",
            "status": 403,
        }

    @pytest.mark.asyncio
    async def test_expired_token_is_401(self, client: AsyncClient, register_user, codec):
        alice = await register_user("alice@x.com")
        token = codec.mint_access(
            alice.user.id,
            "alice@x.com",
            "admin",
            alice.user.organization_id,
            now=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        response = await client.get("/auth/me", headers=bearer(token))
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_EXPIRED"

    @pytest.mark.asyncio
    async def test_valid_token(self, client: AsyncClient, register_user):
        await register_user("alice@x.com", organization_name="Acme")
        token = await _login(client, "alice@x.com")

        response = await client.get("/auth/me", headers=bearer(token))

        assert response.status_code == 200
        user = response.json()["user"]
        assert user["email"] == "alice@x.com"
        assert user["organization_name"] == "Acme"
        assert user["role"] == "admin"

    @pytest.mark.asyncio
    async def test_token_for_org_without_membership(self, client: AsyncClient, register_user, codec):
        alice = await register_user("alice@x.com")
        token = codec.mint_access(alice.user.id, "alice@x.com", "admin", uuid.uuid4())
        response = await client.get("/auth/me", headers=bearer(token))
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED_ORG"

    @pytest.mark.asyncio
    async def test_removed_membership_rejects_old_token(
        self, client: AsyncClient, register_user, manager, session
    ):
        alice = await register_user("alice@x.com", organization_name="Acme")
        bob = await register_user("bob@x.com", organization_name="Bobco")
        resolver = MembershipResolver(session)
        await resolver.create_membership(bob.user.id, alice.user.organization_id, Role.USER)
        grant = (await manager.switch_organization(bob.user.id, alice.user.organization_id)).value

        ok = await client.get("/auth/me", headers=bearer(grant.tokens.access_token))
        assert ok.status_code == 200

        await resolver.remove_membership(bob.user.id, alice.user.organization_id)
        await session.commit()

        response = await client.get("/auth/me", headers=bearer(grant.tokens.access_token))
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED_ORG"

    @pytest.mark.asyncio
    async def test_role_comes_from_database_not_token(
        self, client: AsyncClient, register_user, session
    ):
        alice = await register_user("alice@x.com")
        bob = await register_user("bob@x.com", join_code=alice.join_code)
        resolver = MembershipResolver(session)
        await resolver.update_role(bob.user.id, bob.user.organization_id, Role.ADMIN)
        await session.commit()
        token = await _login(client, "bob@x.com")
        assert (await client.get("/admin/members", headers=bearer(token))).status_code == 200

        # demoted after the token was minted
        await resolver.update_role(bob.user.id, bob.user.organization_id, Role.USER)
        await session.commit()

        response = await client.get("/admin/members", headers=bearer(token))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"
