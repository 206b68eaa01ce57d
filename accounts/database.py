"""
User storage for the authentication core.

Defines the UserStore protocol the core depends on and a MongoDB
implementation backed by motor. Uniqueness of usernames and emails is
enforced by unique indexes, not by the callers' pre-checks.
"""

from typing import Any, Dict, Optional, Protocol, Sequence

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from accounts.errors import DuplicateKey
from accounts.models import UserAccount, utc_now

logger = structlog.get_logger(__name__)

UNIQUE_FIELDS = ("username", "email")


class UserStore(Protocol):
    """Storage capability consumed by AuthService."""

    async def find_by_username(self, username: str) -> Optional[UserAccount]:
        ...

    async def find_by_email(self, email: str) -> Optional[UserAccount]:
        ...

    async def find_by_reset_token(self, token: str) -> Optional[UserAccount]:
        """Return the holder of *token* only while it has not expired."""
        ...

    async def create(self, user: UserAccount) -> UserAccount:
        """Insert *user*; raise DuplicateKey if a unique field collides."""
        ...

    async def update(self, user: UserAccount, fields: Optional[Sequence[str]] = None) -> None:
        """Write *fields* of *user* (all fields when None)."""
        ...

    async def swap_password_hash(self, user_id: str, expected_hash: str, new_hash: str) -> bool:
        """Replace the password hash only if it still equals *expected_hash*."""
        ...

    async def complete_reset(self, user_id: str, token: str, password_hash: str) -> bool:
        """
        Store *password_hash* and clear the reset token, only if *token* is
        still the user's unexpired token. Returns False when it is not.
        """
        ...

    async def health_check(self) -> Dict[str, Any]:
        ...


def duplicate_field(error: DuplicateKeyError) -> str:
    """Work out which unique field a DuplicateKeyError refers to."""
    details = error.details or {}
    key_pattern = details.get("keyPattern") or details.get("keyValue") or {}
    for field in UNIQUE_FIELDS:
        if field in key_pattern:
            return field

    # Older servers only report the index name in the message
    message = str(error)
    for field in UNIQUE_FIELDS:
        if f"{field}_" in message or f"{field} " in message:
            return field
    return "unknown"


class MongoUserStore:
    """
    Async MongoDB user store.
    Handles connection, indexing, and CRUD operations for user accounts.
    """

    def __init__(self, connection_url: str, database_name: str, collection_name: str = "users"):
        """
        Initialize the store.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            collection_name: Name of the users collection
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.collection_name = collection_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.collection: Optional[AsyncIOMotorCollection] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB and ensure indexes exist."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url, tz_aware=True)
            self.database = self.client[self.database_name]
            self.collection = self.database[self.collection_name]

            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB",
                        database=self.database_name,
                        collection=self.collection_name)

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """Create the unique indexes that back registration uniqueness."""
        try:
            await self.collection.create_index("username", unique=True)
            await self.collection.create_index("email", unique=True)

            # Sparse: only accounts with a pending reset carry a token
            await self.collection.create_index("reset_token", sparse=True)

            logger.info("Successfully created user indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    @staticmethod
    def _to_account(document: Optional[Dict[str, Any]]) -> Optional[UserAccount]:
        if not document:
            return None
        document = dict(document)
        document["id"] = str(document.pop("_id"))
        return UserAccount(**document)

    async def find_by_username(self, username: str) -> Optional[UserAccount]:
        document = await self.collection.find_one({"username": username})
        return self._to_account(document)

    async def find_by_email(self, email: str) -> Optional[UserAccount]:
        document = await self.collection.find_one({"email": email})
        return self._to_account(document)

    async def find_by_reset_token(self, token: str) -> Optional[UserAccount]:
        document = await self.collection.find_one({
            "reset_token": token,
            "reset_token_expiry": {"$gt": utc_now()},
        })
        return self._to_account(document)

    async def create(self, user: UserAccount) -> UserAccount:
        """
        Insert a new user.

        Args:
            user: Account without an id

        Returns:
            The account with its assigned id

        Raises:
            DuplicateKey: username or email already taken
        """
        try:
            result = await self.collection.insert_one(user.to_document())
        except DuplicateKeyError as e:
            field = duplicate_field(e)
            logger.warning("User already exists", field=field)
            raise DuplicateKey(field)

        logger.debug("Successfully inserted user", username=user.username)
        return user.copy(update={"id": str(result.inserted_id)})

    @staticmethod
    def _object_id(user_id: Optional[str]) -> ObjectId:
        if user_id is None:
            raise ValueError("Cannot update a user without an id")
        try:
            return ObjectId(user_id)
        except InvalidId:
            raise ValueError(f"Invalid user id: {user_id}")

    async def update(self, user: UserAccount, fields: Optional[Sequence[str]] = None) -> None:
        """
        Write the stored fields of an existing user.

        Args:
            user: Account with an id
            fields: Names of the fields to write; all fields when None
        """
        object_id = self._object_id(user.id)
        document = user.to_document()
        if fields is not None:
            document = {field: document[field] for field in fields}

        try:
            await self.collection.update_one(
                {"_id": object_id},
                {"$set": document}
            )
        except DuplicateKeyError as e:
            raise DuplicateKey(duplicate_field(e))

    async def swap_password_hash(self, user_id: str, expected_hash: str, new_hash: str) -> bool:
        """Compare-and-set the password hash; False if it changed in the meantime."""
        result = await self.collection.update_one(
            {"_id": self._object_id(user_id), "password_hash": expected_hash},
            {"$set": {"password_hash": new_hash}}
        )
        return result.modified_count == 1

    async def complete_reset(self, user_id: str, token: str, password_hash: str) -> bool:
        """
        Consume a reset token and store the new password hash in one write.

        The filter matches only while the token is still pending and
        unexpired, so a token can be consumed once.
        """
        document = await self.collection.find_one_and_update(
            {
                "_id": self._object_id(user_id),
                "reset_token": token,
                "reset_token_expiry": {"$gt": utc_now()},
            },
            {"$set": {
                "password_hash": password_hash,
                "reset_token": None,
                "reset_token_expiry": None,
            }}
        )
        return document is not None

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            users_count = await self.collection.count_documents({})
            return {
                "status": "healthy",
                "users_collection": "accessible",
                "users_count": users_count
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
