"""Database-backed durable store."""
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from sqlalchemy import Column, DateTime, LargeBinary, String, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from autoinvest.core.config import app_config
from autoinvest.storage.base import DurableStore

logger = structlog.get_logger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StateBlobModel(Base):
    """SQLAlchemy model for one persisted state blob."""
    __tablename__ = 'state_blobs'

    key = Column(String, primary_key=True)
    blob = Column(LargeBinary, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Database(DurableStore):
    """Async database interface storing state blobs by key."""

    def __init__(self, database_url: Optional[str] = None):
        # Convert SQLite URL to async version if needed
        db_url = database_url or app_config.database.database_url
        if db_url.startswith('sqlite:///') and not db_url.startswith('sqlite+aiosqlite:///'):
            db_url = db_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.database_url = db_url
        self.engine: AsyncEngine = create_async_engine(db_url, echo=False)
        self.session_maker = async_sessionmaker(self.engine, class_=AsyncSession)

    async def initialize(self):
        """Create tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.initialized", url=self.database_url)

    async def close(self):
        """Close database connection."""
        await self.engine.dispose()

    async def save(self, key: str, blob: bytes) -> None:
        """Save or replace the blob stored under a key."""
        async with self.session_maker() as session:
            row = await session.get(StateBlobModel, key)

            if row is None:
                session.add(StateBlobModel(key=key, blob=bytes(blob), updated_at=_utcnow()))
            else:
                row.blob = bytes(blob)
                row.updated_at = _utcnow()

            await session.commit()

    async def load(self, key: str) -> Optional[bytes]:
        """Get the blob stored under a key."""
        async with self.session_maker() as session:
            row = await session.get(StateBlobModel, key)
            if row is None:
                return None
            return bytes(row.blob)

    async def delete(self, key: str) -> None:
        """Delete a stored blob."""
        async with self.session_maker() as session:
            row = await session.get(StateBlobModel, key)
            if row is not None:
                await session.delete(row)
                await session.commit()

    async def keys(self) -> List[str]:
        """List stored keys."""
        async with self.session_maker() as session:
            result = await session.execute(select(StateBlobModel.key).order_by(StateBlobModel.key))
            return list(result.scalars().all())
