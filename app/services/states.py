"""Server-side storage for OAuth state nonces."""

import logging
from datetime import datetime, timedelta
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.errors import StoreError
from app.models.auth import OAuthState, Provider
from app.utils.helpers import as_utc, generate_nonce

logger = logging.getLogger(__name__)


class OAuthStateStore:
    """Issues and consumes single-use OAuth state values.

    A state document lives until it is consumed or its ``expires_at`` passes;
    the TTL index on ``expires_at`` removes abandoned ones.
    """

    def __init__(self, db: AsyncIOMotorDatabase, ttl: timedelta):
        self.db = db
        self.collection = db.oauth_states
        self.ttl = ttl

    async def create(
        self,
        provider: Provider,
        now: datetime,
        return_to: str | None = None,
    ) -> OAuthState:
        """Create and persist a fresh state for ``provider``."""
        state = OAuthState(
            state=generate_nonce(),
            provider=provider,
            return_to=return_to,
            created_at=now,
            expires_at=now + self.ttl,
        )
        doc = state.model_dump()
        doc["provider"] = provider.value
        try:
            await self.collection.insert_one(doc)
        except PyMongoError as e:
            raise StoreError(f"Failed to store OAuth state: {e}") from e
        return state

    async def consume(
        self,
        state: str,
        provider: Provider,
        now: datetime,
    ) -> OAuthState | None:
        """Atomically remove and return a live state.

        Returns None when the state is unknown, already consumed, issued for a
        different provider, or expired. Only one of several concurrent callers
        presenting the same state can receive it.
        """
        if not state:
            return None
        try:
            doc = await self.collection.find_one_and_delete({
                "state": state,
                "provider": provider.value,
            })
        except PyMongoError as e:
            raise StoreError(f"Failed to consume OAuth state: {e}") from e

        if not doc:
            return None
        doc.pop("_id", None)
        doc["created_at"] = as_utc(doc["created_at"])
        doc["expires_at"] = as_utc(doc["expires_at"])
        consumed = OAuthState(**doc)
        if as_utc(now) >= consumed.expires_at:
            logger.info(f"Discarded expired OAuth state for {provider.value}")
            return None
        return consumed
