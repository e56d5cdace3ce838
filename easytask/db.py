from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import logging

from . import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL


def make_engine(url: str) -> AsyncEngine:
    # NullPool keeps connections from being bound to a specific event loop,
    # which otherwise breaks when tests create a loop per test.
    return create_async_engine(url, echo=False, future=True, poolclass=NullPool)


def make_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(DATABASE_URL)
async_session = make_session_factory(engine)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create the task tables if they do not exist yet."""
    # make sure the table classes are registered on SQLModel.metadata
    from . import models  # noqa: F401

    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
        # composite index used by the per-day instance lookup
        try:
            await conn.execute(text(
                "CREATE INDEX IF NOT EXISTS ix_task_parent_scheduled ON task(parent_id, scheduled_date)"
            ))
        except Exception:
            logger.exception('failed to create ix_task_parent_scheduled during init_db')
