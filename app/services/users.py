"""User store keyed by external provider identity."""

import logging
from datetime import datetime
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.errors import EmailInUse, StoreError
from app.models.auth import ExternalProfile, Provider, User
from app.utils.helpers import parse_object_id, utcnow

logger = logging.getLogger(__name__)


class UserStore:
    """Persists local users bound to exactly one (provider, external_id).

    Relies on the unique indexes created by ``Database``: one on
    ``(provider, external_id)`` and one on ``email``. Users are always matched
    by provider identity, never by email.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.users

    @staticmethod
    def _to_user(doc: dict) -> User:
        doc["_id"] = str(doc["_id"])
        return User(**doc)

    async def find_by_provider_identity(
        self,
        provider: Provider,
        external_id: str,
    ) -> User | None:
        """Get the user bound to a provider identity."""
        try:
            doc = await self.collection.find_one({
                "provider": provider.value,
                "external_id": external_id,
            })
        except PyMongoError as e:
            raise StoreError(f"Failed to find user by provider identity: {e}") from e
        return self._to_user(doc) if doc else None

    async def find_by_id(self, user_id: str) -> User | None:
        """Get a user by ID."""
        oid = parse_object_id(user_id)
        if oid is None:
            return None
        try:
            doc = await self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            raise StoreError(f"Failed to find user by id: {e}") from e
        return self._to_user(doc) if doc else None

    async def upsert(self, profile: ExternalProfile, now: datetime | None = None) -> User:
        """Create the user for a first-time identity or refresh its display fields.

        A single atomic upsert guarded by the unique identity index. When two
        first logins race, the loser hits ``DuplicateKeyError`` and retries
        the update, which then matches the winner's document.
        """
        now = now or utcnow()
        identity = {
            "provider": profile.provider.value,
            "external_id": profile.external_id,
        }
        update = {
            "$set": {
                "name": profile.name,
                "avatar_url": profile.avatar_url,
                "updated_at": now,
            },
            "$setOnInsert": {
                **identity,
                "email": profile.email,
                "created_at": now,
            },
        }

        try:
            doc = await self._find_one_and_upsert(identity, update)
        except DuplicateKeyError:
            existing = await self.find_by_provider_identity(
                profile.provider, profile.external_id
            )
            if existing is None:
                # The identity index did not collide, so the email index did.
                logger.warning(
                    f"Email already bound to another account, "
                    f"rejecting {profile.provider.value} identity {profile.external_id}"
                )
                raise EmailInUse("Email is already registered to another identity")
            try:
                doc = await self._find_one_and_upsert(identity, update)
            except DuplicateKeyError as e:
                raise StoreError(f"Upsert conflict persisted after retry: {e}") from e

        user = self._to_user(doc)
        logger.info(f"Upserted user {user.id} for {profile.provider.value} identity")
        return user

    async def _find_one_and_upsert(self, identity: dict, update: dict) -> dict:
        try:
            return await self.collection.find_one_and_update(
                identity,
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise
        except PyMongoError as e:
            raise StoreError(f"Failed to upsert user: {e}") from e
