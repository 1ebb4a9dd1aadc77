"""Background execution of issue workflows.

Two schedulers are available:

- AsyncioWorkflowScheduler runs workflows as asyncio tasks inside the API
  process. It is the default and needs nothing besides the database.
- CeleryWorkflowScheduler hands each transition to a Celery worker as a task
  with a countdown, so workflows survive API restarts.

IMPORTANT: celery_tasks is not imported here to avoid circular imports with
the Celery app initialization.
Use: from cityfix.tasks.celery_tasks import advance_issue
"""

from cityfix.tasks.scheduler import (
    AsyncioWorkflowScheduler,
    CeleryWorkflowScheduler,
    WorkflowScheduler,
    build_scheduler,
)

__all__ = [
    "AsyncioWorkflowScheduler",
    "CeleryWorkflowScheduler",
    "WorkflowScheduler",
    "build_scheduler",
]
