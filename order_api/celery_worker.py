"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.

Run a worker (and the beat scheduler for reconciliation sweeps):
    celery -A order_api.celery_worker worker -B --loglevel=info
"""

from celery import Celery

from order_api.core.config import get_settings

# Redis connection URL comes from REDIS_URL via settings
settings = get_settings()

# Create Celery app
celery_app = Celery(
    'order_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['order_api.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=4,  # Number of worker processes

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    # Fix for Celery 6.0 warning
    broker_connection_retry_on_startup=True,

    # Beat settings
    beat_schedule={
        # Lost callbacks and lost projections, every 5 minutes
        'reconcile-pending-payments': {
            'task': 'order_api.tasks.reconcile_pending_payments',
            'schedule': 300.0,
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
