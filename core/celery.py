from celery import Celery
from core.config import settings

celery_app = Celery(
    "bepawa_cod",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tasks.notification_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    # Notifications are fire-and-forget, nobody reads the results
    task_ignore_result=True,
    task_always_eager=False,
    task_eager_propagates=False,
)
