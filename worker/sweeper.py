import asyncio
import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from app.core.config import settings
from app.core.log_config import setup_logging
import app.models  # noqa: F401
from app.services.expiration import sweep_expired_listings


log = logging.getLogger(__name__)


async def _tick(Session) -> int:
    async with Session() as db:
        count = await sweep_expired_listings(db)
        await db.commit()
    return count


async def main() -> None:
    setup_logging()
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    log.info("sweeper: started, every %ds", settings.sweep_interval_seconds)
    try:
        while True:
            try:
                await _tick(Session)
            except Exception:
                log.exception("sweeper: tick crashed")
            await asyncio.sleep(settings.sweep_interval_seconds)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
