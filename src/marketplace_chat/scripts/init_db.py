"""Create the schema from SQLAlchemy metadata (dev / test databases)."""
from __future__ import annotations

import asyncio
import logging

from marketplace_chat.infrastructure.db.base import Base
from marketplace_chat.infrastructure.db import models  # noqa: F401
from marketplace_chat.infrastructure.db.session import engine
from marketplace_chat.logging_config import configure_logging

logger = logging.getLogger(__name__)


async def init_db(*, drop: bool = False) -> None:
    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Schema ready (%d tables)", len(Base.metadata.tables))


def main() -> None:
    configure_logging()
    asyncio.run(init_db())


if __name__ == "__main__":
    main()
