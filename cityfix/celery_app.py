"""
Celery application initialization and configuration.
This module sets up Celery to use Redis as the message broker.
Only used when WORKFLOW_BACKEND=celery.
"""

from celery import Celery
from kombu import Exchange, Queue

from cityfix.config import Settings

settings = Settings.from_env()

# Initialize Celery app
app = Celery(
    "cityfix",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Configure task settings
app.conf.update(
    # Task serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution
    task_track_started=True,
    task_time_limit=5 * 60,  # A transition is one DB round trip plus one completion call
    task_soft_time_limit=4 * 60,

    task_acks_late=True,  # Task acknowledged after execution
    worker_prefetch_multiplier=1,  # Prefetch one task at a time

    # Fail fast when the broker is down; publish retries are bounded by the scheduler
    broker_connection_timeout=5,

    # Task routes and queues
    task_routes={
        "cityfix.advance_issue": {"queue": "workflows"},
    },
    task_queues=[
        Queue("default", Exchange("default"), routing_key="default"),
        Queue("workflows", Exchange("workflows"), routing_key="workflows"),
    ],
)

# Explicitly import task modules to ensure they're registered
from cityfix.tasks import celery_tasks  # noqa: E402, F401
