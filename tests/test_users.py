"""Tests for the user store's upsert-on-login semantics."""

import asyncio
from datetime import datetime, timezone
import pytest
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.errors import EmailInUse, StoreError
from app.models.auth import ExternalProfile, Provider
from app.services.users import UserStore
from tests.conftest import github_profile


class TestUserStore:
    """Tests for UserStore."""

    async def test_upsert_then_find(self, user_store: UserStore):
        created = await user_store.upsert(github_profile())

        found = await user_store.find_by_provider_identity(Provider.GITHUB, "42")
        assert found is not None
        assert found.id == created.id
        assert found.email == "a@x.com"
        assert found.name == "A"
        assert found.avatar_url == "https://avatars.example.com/42"
        assert found.provider == Provider.GITHUB
        assert found.external_id == "42"

    async def test_second_upsert_keeps_id_and_refreshes_name(self, user_store: UserStore):
        first = await user_store.upsert(github_profile(name="A"))
        second = await user_store.upsert(
            github_profile(name="A. Renamed", avatar_url="https://avatars.example.com/new")
        )

        assert second.id == first.id
        assert second.name == "A. Renamed"
        assert second.avatar_url == "https://avatars.example.com/new"

        found = await user_store.find_by_id(first.id)
        assert found.name == "A. Renamed"

    async def test_timestamps(self, user_store: UserStore):
        t1 = datetime(2025, 1, 1, tzinfo=timezone.utc)
        t2 = datetime(2025, 2, 1, tzinfo=timezone.utc)

        first = await user_store.upsert(github_profile(), now=t1)
        second = await user_store.upsert(github_profile(name="B"), now=t2)

        assert first.created_at.replace(tzinfo=None) == t1.replace(tzinfo=None)
        assert second.created_at.replace(tzinfo=None) == t1.replace(tzinfo=None)
        assert second.updated_at.replace(tzinfo=None) == t2.replace(tzinfo=None)

    async def test_same_external_id_on_other_provider_is_other_user(self, user_store: UserStore):
        github_user = await user_store.upsert(github_profile(external_id="42", email="gh@x.com"))
        google_user = await user_store.upsert(ExternalProfile(
            provider=Provider.GOOGLE,
            external_id="42",
            email="google@x.com",
            name="G",
        ))

        assert github_user.id != google_user.id

    async def test_identity_is_not_matched_by_email(self, user_store: UserStore):
        await user_store.upsert(github_profile(external_id="42", email="shared@x.com"))

        with pytest.raises(EmailInUse):
            await user_store.upsert(ExternalProfile(
                provider=Provider.GOOGLE,
                external_id="g-999",
                email="shared@x.com",
                name="Someone Else",
            ))

        assert await user_store.find_by_provider_identity(Provider.GOOGLE, "g-999") is None

    async def test_concurrent_first_logins_create_one_user(
        self,
        user_store: UserStore,
        db: AsyncIOMotorDatabase,
    ):
        results = await asyncio.gather(*[
            user_store.upsert(github_profile()) for _ in range(5)
        ])

        assert len({user.id for user in results}) == 1
        assert await db.users.count_documents({"provider": "github", "external_id": "42"}) == 1

    async def test_find_missing(self, user_store: UserStore):
        assert await user_store.find_by_provider_identity(Provider.GITHUB, "nope") is None
        assert await user_store.find_by_id("5f0000000000000000000000") is None
        assert await user_store.find_by_id("not-an-object-id") is None

    async def test_race_loser_observes_winner_row(
        self,
        user_store: UserStore,
        db: AsyncIOMotorDatabase,
        monkeypatch,
    ):
        winner_store = UserStore(db)
        original = user_store._find_one_and_upsert
        calls = []

        async def lose_first_race(identity, update):
            calls.append(identity)
            if len(calls) == 1:
                await winner_store.upsert(github_profile(name="Winner"))
                raise DuplicateKeyError("E11000 duplicate key error", code=11000)
            return await original(identity, update)

        monkeypatch.setattr(user_store, "_find_one_and_upsert", lose_first_race)

        loser = await user_store.upsert(github_profile(name="Loser"))

        winner = await winner_store.find_by_provider_identity(Provider.GITHUB, "42")
        assert loser.id == winner.id
        assert loser.name == "Loser"
        assert len(calls) == 2
        assert await db.users.count_documents({}) == 1

    async def test_race_on_email_index_is_email_in_use(
        self,
        user_store: UserStore,
        monkeypatch,
    ):
        async def email_collides(identity, update):
            raise DuplicateKeyError("E11000 duplicate key error index: email_unique", code=11000)

        monkeypatch.setattr(user_store, "_find_one_and_upsert", email_collides)

        with pytest.raises(EmailInUse):
            await user_store.upsert(github_profile())

    async def test_conflict_persisting_after_retry_is_store_error(
        self,
        user_store: UserStore,
        db: AsyncIOMotorDatabase,
        monkeypatch,
    ):
        winner_store = UserStore(db)

        async def always_collides(identity, update):
            if await db.users.count_documents({}) == 0:
                await winner_store.upsert(github_profile(name="Winner"))
            raise DuplicateKeyError("E11000 duplicate key error", code=11000)

        monkeypatch.setattr(user_store, "_find_one_and_upsert", always_collides)

        with pytest.raises(StoreError) as exc_info:
            await user_store.upsert(github_profile(name="Loser"))
        assert not isinstance(exc_info.value, EmailInUse)
