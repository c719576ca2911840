"""
Database initialization script

Creates the users collection indexes and prints how many users are in each
menu state:
    python scripts/init_db.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from printdesk.core.config import settings
from printdesk.core.logging import setup_logging, get_logger
from printdesk.db.indexes import create_indexes
from printdesk.db.mongo import close_mongo_connection, connect_to_mongo, get_users_collection
from printdesk.flow.menu import build_menu_grammar

setup_logging()
logger = get_logger("scripts.init_db")


async def main():
    grammar = build_menu_grammar()

    logger.info(f"🔌 Connecting to MongoDB: {settings.MONGODB_DB_NAME}")
    await connect_to_mongo()

    try:
        users = get_users_collection()
        await create_indexes(users)

        counts = {
            row["_id"]: row["count"]
            async for row in users.aggregate([
                {"$group": {"_id": "$state_label", "count": {"$sum": 1}}}
            ])
        }

        logger.info("📊 Users per state:")
        for state in grammar.states:
            logger.info(f"  {state:<16} {counts.pop(state, 0)}")

        for state, count in counts.items():
            logger.warning(f"  {state:<16} {count} (unknown to the current menu)")

    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main())
