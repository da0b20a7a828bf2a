"""Database connection and initialization."""

import logging

from beanie import init_beanie
from fastapi_users.db import BeanieUserDatabase
from pymongo import AsyncMongoClient

from paywall.config import settings
from paywall.schemas.codes import CodeDocument
from paywall.schemas.users import User

logger = logging.getLogger(__name__)

document_models = [
    User,
    CodeDocument,
]


async def init_db() -> AsyncMongoClient:
    """Initialize the database connection and document models.

    Returns:
        AsyncMongoClient: The client, to be closed on shutdown
    """
    logger.info(f"Connecting to MongoDB database {settings.database.database_name}")

    client: AsyncMongoClient = AsyncMongoClient(settings.database.uri)

    try:
        await init_beanie(
            database=client[settings.database.database_name],
            document_models=document_models,
        )
        logger.info("Database initialization successful")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        await client.close()
        raise
    return client


async def get_user_db():
    yield BeanieUserDatabase(User)


async def check_connection() -> bool:
    """Check if the database connection is healthy.

    Returns:
        bool: True if connection is healthy, False otherwise
    """
    client: AsyncMongoClient = AsyncMongoClient(settings.database.uri, serverSelectionTimeoutMS=5000)
    try:
        await client.admin.command("ping")
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
    finally:
        await client.close()
