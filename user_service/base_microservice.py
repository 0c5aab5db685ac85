import os
import logging
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlalchemy.orm import declarative_base

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("user_service")

Base = declarative_base()


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for the configured database."""
    return create_async_engine(database_url, echo=False, future=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_models(engine: AsyncEngine):
    """Create any missing tables."""
    # Models register themselves on Base.metadata when imported
    from user_service.auth import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class BaseMicroservice:
    """
    Base class for the service components. Provides:
    - Event logging
    - Error logging

    Event details are logged as given, so callers must never pass
    passwords, hashes or token values.
    """
    def __init__(self, service_name: str = "user-service"):
        self.service_name = service_name
        self.logger = logger

    def log_event(self, event: str, details: Optional[Dict[str, Any]] = None):
        self.logger.info(f"EVENT: {event} | Service: {self.service_name} | Details: {details or {}}")

    def log_error(self, error: Exception, context: str = ""):
        self.logger.error(
            f"ERROR: {error.__class__.__name__}: {str(error)} | Service: {self.service_name} | Context: {context}"
        )
