"""
Tests for the membership resolver and credential store.
"""

from __future__ import annotations

import uuid

import pytest

from app.core.errors import Err, ErrorCode, Ok
from app.services.credentials import CredentialStore
from app.services.memberships import MembershipResolver
from meet_shared.schemas.common import Role


@pytest.fixture
def store(session) -> CredentialStore:
    return CredentialStore(session)


@pytest.fixture
def resolver(session) -> MembershipResolver:
    return MembershipResolver(session)


async def _user_in(store: CredentialStore, org_name: str, email: str):
    org = await store.create_organization(org_name)
    user = await store.create_user(name=email.split("@")[0], email=email, organization_id=org.id)
    return org, user


class TestCredentialStore:
    @pytest.mark.asyncio
    async def test_email_lookup_is_case_insensitive(self, store):
        _, user = await _user_in(store, "Acme", "Alice@X.com")
        assert user.email == "alice@x.com"
        found = await store.find_user_by_email("ALICE@x.COM")
        assert found is not None and found.id == user.id

    @pytest.mark.asyncio
    async def test_google_subject_lookup(self, store):
        org = await store.create_organization("Acme")
        user = await store.create_user(
            name="gina", email="gina@x.com", organization_id=org.id, google_id="g-42"
        )
        found = await store.find_user_by_google_id("g-42")
        assert found is not None and found.id == user.id
        assert await store.find_user_by_google_id("g-missing") is None

    @pytest.mark.asyncio
    async def test_slug_collisions_get_suffixes(self, store):
        first = await store.create_organization("Acme")
        second = await store.create_organization("ACME")
        third = await store.create_organization("acme!")
        assert [first.slug, second.slug, third.slug] == ["acme", "acme-2", "acme-3"]

    @pytest.mark.asyncio
    async def test_join_codes_are_unique_and_lookup_ignores_case(self, store):
        a = await store.create_organization("A")
        b = await store.create_organization("B")
        assert a.join_code != b.join_code
        found = await store.find_organization_by_join_code(a.join_code.lower())
        assert found is not None and found.id == a.id

    @pytest.mark.asyncio
    async def test_unknown_join_code(self, store):
        assert await store.find_organization_by_join_code("NOPE1234") is None


class TestMembershipResolver:
    @pytest.mark.asyncio
    async def test_list_memberships_ordered_by_name(self, store, resolver):
        zeta, user = await _user_in(store, "Zeta", "u@x.com")
        alpha = await store.create_organization("Alpha")
        await resolver.create_membership(user.id, zeta.id, Role.USER)
        await resolver.create_membership(user.id, alpha.id, Role.ADMIN)

        memberships = await resolver.list_memberships(user.id)

        assert [m.name for m in memberships] == ["Alpha", "Zeta"]
        assert [m.role for m in memberships] == [Role.ADMIN, Role.USER]
        assert memberships[0].slug == "alpha"

    @pytest.mark.asyncio
    async def test_list_memberships_may_be_empty(self, resolver):
        assert await resolver.list_memberships(uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_get_role(self, store, resolver):
        org, user = await _user_in(store, "Acme", "u@x.com")
        await resolver.create_membership(user.id, org.id, Role.ADMIN)

        assert await resolver.get_role(user.id, org.id) == Ok(Role.ADMIN)
        missing = await resolver.get_role(user.id, uuid.uuid4())
        assert isinstance(missing, Err) and missing.code == ErrorCode.NOT_A_MEMBER

    @pytest.mark.asyncio
    async def test_membership_context_reads_fresh_state(self, store, resolver):
        org, user = await _user_in(store, "Acme", "u@x.com")
        org.logo_url = "https://cdn.example.com/acme.png"
        await store.save(org)
        await resolver.create_membership(user.id, org.id, Role.USER)

        context = await resolver.get_membership_context(user.id, org.id)

        assert isinstance(context, Ok)
        assert context.value.organization_name == "Acme"
        assert context.value.organization_logo_url == "https://cdn.example.com/acme.png"
        assert context.value.role == Role.USER
        assert context.value.is_verified is False

        await resolver.update_role(user.id, org.id, Role.ADMIN)
        user.is_verified = True
        await store.save(user)
        context = await resolver.get_membership_context(user.id, org.id)
        assert context.value.role == Role.ADMIN
        assert context.value.is_verified is True

    @pytest.mark.asyncio
    async def test_duplicate_membership(self, store, resolver):
        org, user = await _user_in(store, "Acme", "u@x.com")
        assert isinstance(await resolver.create_membership(user.id, org.id, Role.USER), Ok)
        duplicate = await resolver.create_membership(user.id, org.id, Role.ADMIN)
        assert isinstance(duplicate, Err)
        assert duplicate.code == ErrorCode.DUPLICATE_MEMBERSHIP

    @pytest.mark.asyncio
    async def test_cannot_remove_last_membership(self, store, resolver):
        org, user = await _user_in(store, "Acme", "u@x.com")
        await resolver.create_membership(user.id, org.id, Role.ADMIN)

        result = await resolver.remove_membership(user.id, org.id)

        assert isinstance(result, Err) and result.code == ErrorCode.LAST_MEMBERSHIP
        assert await resolver.count_memberships(user.id) == 1

    @pytest.mark.asyncio
    async def test_remove_membership(self, store, resolver):
        org, user = await _user_in(store, "Acme", "u@x.com")
        other = await store.create_organization("Other")
        await resolver.create_membership(user.id, org.id, Role.USER)
        await resolver.create_membership(user.id, other.id, Role.USER)

        assert isinstance(await resolver.remove_membership(user.id, org.id), Ok)
        assert await resolver.count_memberships(user.id) == 1
        missing = await resolver.remove_membership(user.id, org.id)
        assert isinstance(missing, Err) and missing.code == ErrorCode.NOT_A_MEMBER

    @pytest.mark.asyncio
    async def test_count_admins_and_list_members(self, store, resolver):
        org, alice = await _user_in(store, "Acme", "alice@x.com")
        bob = await store.create_user(name="bob", email="bob@x.com", organization_id=org.id)
        await resolver.create_membership(alice.id, org.id, Role.ADMIN)
        await resolver.create_membership(bob.id, org.id, Role.USER)

        assert await resolver.count_admins(org.id) == 1
        members = await resolver.list_members(org.id)
        assert {m.email: m.role for m in members} == {"alice@x.com": Role.ADMIN, "bob@x.com": Role.USER}
