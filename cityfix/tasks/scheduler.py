"""Schedulers that run an issue workflow detached from the request that started it."""

import asyncio
import logging
from typing import Optional, Protocol

from kombu.exceptions import OperationalError

from cityfix.config import Settings
from cityfix.errors import SchedulerUnavailable
from cityfix.workflow import IssueWorkflow, WorkflowState

logger = logging.getLogger(__name__)

# Bounded publish retries: roughly 1.5s before giving up on the broker
PUBLISH_RETRY_POLICY = {
    "max_retries": 2,
    "interval_start": 0,
    "interval_step": 0.5,
    "interval_max": 1,
}


class WorkflowScheduler(Protocol):
    async def schedule(self, issue_id: str) -> None:
        """Start the workflow for a confirmed issue and return immediately.

        Raises SchedulerUnavailable when the workflow cannot be started.
        """
        ...

    async def shutdown(self, grace: float) -> None:
        ...


class AsyncioWorkflowScheduler:
    """
    Runs each workflow as an asyncio task on the running event loop.

    Tasks are kept referenced until they finish. There is no way to cancel a
    single workflow; shutdown() waits up to `grace` seconds for in-flight
    workflows and then abandons the rest.
    """

    def __init__(self, workflow: IssueWorkflow):
        self.workflow = workflow
        self._tasks: dict[asyncio.Task, str] = {}

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def schedule(self, issue_id: str) -> None:
        task = asyncio.create_task(self._run(issue_id), name=f"workflow-{issue_id}")
        self._tasks[task] = issue_id
        task.add_done_callback(self._forget)
        logger.info("Workflow scheduled", extra={"issue_id": issue_id})

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.pop(task, None)

    async def _run(self, issue_id: str) -> None:
        try:
            await self.workflow.run(issue_id)
        except Exception:
            logger.exception(f"Workflow for issue {issue_id} failed", extra={"issue_id": issue_id})

    async def shutdown(self, grace: float) -> None:
        if not self._tasks:
            return

        logger.info(f"Waiting up to {grace}s for {len(self._tasks)} workflow(s)")
        _, pending = await asyncio.wait(set(self._tasks), timeout=grace)

        for task in pending:
            logger.warning(
                f"Abandoning workflow for issue {self._tasks.get(task)} at shutdown",
                extra={"issue_id": self._tasks.get(task)},
            )
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class CeleryWorkflowScheduler:
    """Enqueues the first delayed transition on the Celery "workflows" queue."""

    def __init__(self, delay: float, retry_policy: Optional[dict] = None):
        self.delay = delay
        self.retry_policy = retry_policy or PUBLISH_RETRY_POLICY

    async def schedule(self, issue_id: str) -> None:
        from cityfix.tasks.celery_tasks import advance_issue

        # Publishing blocks while kombu retries, keep it off the event loop
        try:
            await asyncio.to_thread(
                advance_issue.apply_async,
                (issue_id, WorkflowState.IN_PROGRESS.value),
                countdown=self.delay,
                retry=True,
                retry_policy=self.retry_policy,
            )
        except OperationalError as e:
            logger.error(f"Could not queue workflow on Celery: {e}", extra={"issue_id": issue_id})
            raise SchedulerUnavailable("Workflow broker is unavailable, try again later") from e
        logger.info("Workflow queued on Celery", extra={"issue_id": issue_id})

    async def shutdown(self, grace: float) -> None:
        # Queued transitions belong to the broker, not to this process.
        return None


def build_scheduler(settings: Settings, workflow: IssueWorkflow) -> WorkflowScheduler:
    backend = settings.workflow_backend
    if backend == "celery":
        logger.info("Running workflows on Celery")
        return CeleryWorkflowScheduler(settings.workflow_delay_seconds)
    if backend != "asyncio":
        logger.warning(f"Unknown WORKFLOW_BACKEND: {backend}, falling back to asyncio")
    return AsyncioWorkflowScheduler(workflow)
