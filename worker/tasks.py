import asyncio
import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from worker.celery_app import celery
from app.core.config import settings
import app.models  # noqa: F401  # ensures Models are registered
from app.services import outbox_dispatcher
from app.services.push import PushClient


log = logging.getLogger(__name__)


async def _process_outbox_event(outbox_id: str, lease_id: str) -> bool:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    push = PushClient()

    try:
        async with Session() as db:
            return await outbox_dispatcher.process_outbox_event(db, outbox_id, lease_id, push=push)
    finally:
        await push.aclose()
        await engine.dispose()


@celery.task(name="worker.tasks.process_outbox_event")
def process_outbox_event(outbox_id: str, lease_id: str) -> bool:
    done = asyncio.run(_process_outbox_event(outbox_id, lease_id))
    if not done:
        # event went back to pending or the lease moved on; the dispatcher picks it up again
        log.info("outbox event %s not completed under lease %s", outbox_id, lease_id)
    return done
