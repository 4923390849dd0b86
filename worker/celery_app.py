from celery import Celery
from app.core.config import settings

celery = Celery(
    "market-worker",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=["worker.tasks"],
)

celery.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    # a redelivered outbox task is harmless: the lease check drops it
    task_reject_on_worker_lost=True,
    broker_connection_retry_on_startup=True,
    result_expires=3600,
    task_default_queue="default",
    task_routes={
        "worker.tasks.process_outbox_event": {"queue": "outbox"},
    },
)
