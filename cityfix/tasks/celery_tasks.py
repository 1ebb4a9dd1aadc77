"""Celery tasks that apply one workflow transition each.

A transition task re-enqueues the next one with the configured countdown, so
a workflow is a chain of delayed tasks rather than a sleeping worker.
"""

import asyncio
import logging

import httpx

from cityfix.celery_app import app
from cityfix.config import Settings
from cityfix.database import Database
from cityfix.llm_service import build_completion_client
from cityfix.store import IssueStore
from cityfix.workflow import IssueWorkflow, WorkflowState

logger = logging.getLogger(__name__)


async def _advance(settings: Settings, issue_id: str, state: WorkflowState) -> bool:
    """Open per-task resources, apply the transition, release them."""
    database = Database(settings.database_url)
    await database.connect()
    try:
        async with httpx.AsyncClient() as http_client:
            workflow = IssueWorkflow(
                IssueStore(database),
                build_completion_client(settings, http_client),
                delay=settings.workflow_delay_seconds,
            )
            return await workflow.advance(issue_id, state)
    finally:
        await database.dispose()


@app.task(bind=True, name="cityfix.advance_issue")
def advance_issue(self, issue_id: str, state: str):
    """
    Move an issue into `state` and enqueue the following transition.

    Args:
        issue_id: The UUID of the issue
        state: Target WorkflowState value

    Logs:
        - INFO: transition applied and next one queued
        - ERROR: store failures (the task fails, no retry)
    """
    settings = Settings.from_env()
    target = WorkflowState(state)

    logger.info(
        f"Advancing issue {issue_id} to '{target.value}'",
        extra={"issue_id": issue_id, "task_id": self.request.id},
    )

    try:
        proceed = asyncio.run(_advance(settings, issue_id, target))
    except Exception as exc:
        logger.error(
            f"Error advancing issue {issue_id}: {exc}",
            extra={"issue_id": issue_id},
            exc_info=True,
        )
        raise

    following = target.next()
    if proceed and following is not None:
        advance_issue.apply_async(
            (issue_id, following.value),
            countdown=settings.workflow_delay_seconds,
        )
        logger.info(f"Queued '{following.value}' for issue {issue_id}", extra={"issue_id": issue_id})
