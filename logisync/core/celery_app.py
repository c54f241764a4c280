from celery import Celery
from logisync.core.config import settings
import sys

# Create Celery app
celery_app = Celery(
    "logisync",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "logisync.workers.celery_tasks.tracking_tasks",
    ]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
)

# Windows-specific configuration
if sys.platform == 'win32':
    celery_app.conf.update(
        worker_pool='threads',
        worker_concurrency=4
    )

celery_app.conf.beat_schedule = {
    'expire-stale-tracking-sessions': {
        'task': 'logisync.workers.celery_tasks.tracking_tasks.expire_stale_tracking_sessions',
        'schedule': 60.0,  # Every minute
    },
}
