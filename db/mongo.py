from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
import logging
import certifi
import sys

import config

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)

# Log basic info
logger.info(f"Environment: {config.ENVIRONMENT}")
logger.info(f"MongoDB URI exists: {config.MONGO_URI is not None}")

# Initialize MongoDB client
try:
    if not config.MONGO_URI:
        logger.error("MONGO_URI environment variable is not set")
        client = None
        db = None
    else:
        logger.info("Connecting to MongoDB...")
        tls_options = {"tls": True, "tlsCAFile": certifi.where()} if config.MONGO_TLS else {}
        client = AsyncIOMotorClient(
            config.MONGO_URI,
            connectTimeoutMS=30000,
            serverSelectionTimeoutMS=30000,
            retryWrites=True,
            retryReads=True,
            **tls_options
        )
        db = client.get_database(config.MONGO_DB_NAME)
        logger.info("MongoDB client created")
except Exception as e:
    logger.error(f"MongoDB connection error: {str(e)}")
    client = None
    db = None


async def verify_connection():
    """Verify MongoDB connection"""
    if not client:
        logger.error("MongoDB client not initialized")
        raise ValueError("MongoDB client not initialized")

    try:
        await client.admin.command('ping')
        logger.info("MongoDB connection verified")
        return True
    except Exception as e:
        logger.error(f"MongoDB connection verification failed: {str(e)}")
        raise


def get_db():
    """Get database instance"""
    if db is None:
        logger.error("Database not initialized")
        raise ValueError("Database not initialized")
    return db


async def create_indexes(database):
    """Create the indexes the sync engine relies on"""
    # One account per (user, provider, provider login)
    await database.accounts.create_index(
        [("owner_user_id", ASCENDING), ("provider_type", ASCENDING), ("owner_email", ASCENDING)],
        unique=True
    )
    # A remote event exists at most once per account; custom events have no external id
    await database.events.create_index(
        [("account_id", ASCENDING), ("external_event_id", ASCENDING)],
        unique=True,
        partialFilterExpression={"external_event_id": {"$type": "string"}}
    )
    await database.events.create_index(
        [("owner_user_id", ASCENDING), ("start_time", ASCENDING), ("end_time", ASCENDING)]
    )


async def init_db():
    """Initialize database collections and indexes"""
    if client is None or db is None:
        logger.error("Database not initialized")
        raise ValueError("Database not initialized")

    try:
        await verify_connection()
        logger.info("Creating database indexes...")
        await create_indexes(db)
        logger.info("Database initialization complete")
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise


# Initialize database if run directly
if __name__ == "__main__":
    import asyncio
    if client is not None and db is not None:
        asyncio.run(init_db())
    else:
        logger.error("Cannot initialize database - client or db not initialized")
