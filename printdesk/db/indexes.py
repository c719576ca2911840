"""
printdesk/db/indexes.py

Purpose: Database index management

- Unique index on the external user id
- Index on the state label for state-based queries
"""

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorCollection

from printdesk.db.mongo import get_users_collection
from printdesk.core.logging import get_logger

logger = get_logger(__name__)


async def create_indexes(users: Optional[AsyncIOMotorCollection] = None):
    """
    Creates the users collection indexes.
    Idempotent - safe to run on every startup.
    """
    if users is None:
        users = get_users_collection()

    try:
        logger.info("Creating database indexes...")

        # One conversation record per Messenger user
        await users.create_index("external_id", unique=True, name="external_id_unique")
        logger.debug("Created unique index on users.external_id")

        await users.create_index("state_label", name="state_label_idx")
        logger.debug("Created index on users.state_label")

        await users.create_index("updated_at", name="updated_at_idx")
        logger.debug("Created index on users.updated_at")

        user_indexes = await users.index_information()
        logger.info(f"✅ Database indexes ready (users={len(user_indexes)})")

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise


if __name__ == "__main__":
    """
    Run this script directly to create indexes manually.
    """
    import asyncio
    from printdesk.db.mongo import connect_to_mongo, close_mongo_connection

    async def main():
        await connect_to_mongo()
        await create_indexes()
        await close_mongo_connection()

    asyncio.run(main())
