import argparse
import asyncio
import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from app.core.config import settings
from app.core.log_config import setup_logging
import app.models  # noqa: F401
from app.services.outbox_dispatcher import dispatch_outbox, drain_outbox
from app.services.push import PushClient


log = logging.getLogger(__name__)

BATCH_SIZE = 100


async def _tick(Session, *, inline: bool, push: PushClient | None) -> int:
    async with Session() as db:
        if inline:
            n = await drain_outbox(db, batch_size=BATCH_SIZE, push=push)
        else:
            n = await dispatch_outbox(db, batch_size=BATCH_SIZE)
    if n:
        log.info("tick: %s %d outbox event(s)", "processed" if inline else "enqueued", n)
    return n


async def main(inline: bool = False) -> None:
    setup_logging()

    if not inline:
        from worker.celery_app import celery

        celery.connection().ensure_connection(max_retries=3)

    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    push = PushClient() if inline else None

    log.info("dispatcher: started (inline=%s)", inline)
    try:
        while True:
            try:
                await _tick(Session, inline=inline, push=push)
            except Exception:
                log.exception("dispatcher: tick crashed")
            await asyncio.sleep(settings.outbox_poll_seconds)
    finally:
        if push is not None:
            await push.aclose()
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Outbox dispatcher")
    parser.add_argument("--inline", action="store_true", help="process events in this process instead of celery")
    args = parser.parse_args()
    asyncio.run(main(inline=args.inline))
