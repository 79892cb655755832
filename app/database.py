"""MongoDB database connection and setup."""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import IndexModel, ASCENDING
from typing import AsyncGenerator
import logging
import certifi

from app.config import Settings

logger = logging.getLogger(__name__)


class Database:
    """MongoDB database manager."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None

    @classmethod
    async def connect(
        cls,
        settings: Settings,
        client: AsyncIOMotorClient | None = None,
    ) -> None:
        """Connect to the database named in ``settings`` and set up indexes.

        An already constructed client may be passed in (used by tests).
        """
        if client is None:
            client_options: dict = {
                "serverSelectionTimeoutMS": 30000,
                "connectTimeoutMS": 20000,
                "socketTimeoutMS": 20000,
            }

            if settings.mongodb_url.startswith("mongodb+srv://"):
                client_options["tls"] = True
                client_options["tlsCAFile"] = certifi.where()

            client = AsyncIOMotorClient(settings.mongodb_url, **client_options)
            # Verify connectivity before proceeding to index creation.
            await client.admin.command("ping")

        cls.client = client
        cls.db = client[settings.mongodb_database]
        logger.info(f"Connected to MongoDB database: {settings.mongodb_database}")
        await cls._create_indexes()

    @classmethod
    async def disconnect(cls) -> None:
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            cls.client = None
            cls.db = None
            logger.info("Disconnected from MongoDB")

    @classmethod
    async def _create_indexes(cls) -> None:
        """Create the indexes the auth subsystem depends on for correctness."""
        if cls.db is None:
            raise RuntimeError("Database not connected")

        # One local user per provider identity; the upsert race relies on this.
        await cls.db.users.create_indexes([
            IndexModel(
                [("provider", ASCENDING), ("external_id", ASCENDING)],
                unique=True,
                name="provider_identity_unique",
            ),
            IndexModel([("email", ASCENDING)], unique=True, name="email_unique"),
        ])

        await cls.db.oauth_states.create_indexes([
            IndexModel([("state", ASCENDING)], unique=True, name="state_unique"),
            IndexModel([("expires_at", ASCENDING)], expireAfterSeconds=0, name="state_expiry"),
        ])

        logger.info("Database indexes created successfully")

    @classmethod
    def get_db(cls) -> AsyncIOMotorDatabase:
        """Get the database instance."""
        if cls.db is None:
            raise RuntimeError("Database not connected. Call Database.connect() first.")
        return cls.db


async def get_database() -> AsyncGenerator[AsyncIOMotorDatabase, None]:
    """Dependency for getting database instance."""
    yield Database.get_db()
