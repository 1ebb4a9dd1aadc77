"""Tests for the workflow schedulers and the Celery transition task."""

import asyncio
import threading
from unittest.mock import patch

import pytest
from kombu.exceptions import OperationalError

from cityfix.config import Settings
from cityfix.errors import SchedulerUnavailable
from cityfix.tasks import AsyncioWorkflowScheduler, CeleryWorkflowScheduler, build_scheduler
from cityfix.tasks.scheduler import PUBLISH_RETRY_POLICY
from cityfix.workflow import IssueWorkflow, WorkflowState


@pytest.mark.asyncio
async def test_asyncio_scheduler_runs_workflow_detached(store, fake_llm, stepped_sleep, pothole) -> None:
    issue_id = await store.insert(pothole.to_fields())
    scheduler = AsyncioWorkflowScheduler(IssueWorkflow(store, fake_llm, sleep=stepped_sleep))

    await scheduler.schedule(issue_id)
    assert scheduler.in_flight == 1
    await scheduler.shutdown(grace=5)

    assert scheduler.in_flight == 0
    issue = await store.find_by_id(issue_id)
    assert issue.status == "problema risolto"
    assert issue.solution_description


@pytest.mark.asyncio
async def test_asyncio_scheduler_runs_workflows_concurrently(store, fake_llm, stepped_sleep, pothole) -> None:
    ids = [await store.insert(pothole.to_fields()) for _ in range(3)]
    scheduler = AsyncioWorkflowScheduler(IssueWorkflow(store, fake_llm, sleep=stepped_sleep))

    for issue_id in ids:
        await scheduler.schedule(issue_id)
    await scheduler.shutdown(grace=5)

    for issue_id in ids:
        assert (await store.find_by_id(issue_id)).status == "problema risolto"


@pytest.mark.asyncio
async def test_asyncio_scheduler_abandons_slow_workflows_at_shutdown(store, fake_llm, pothole) -> None:
    issue_id = await store.insert(pothole.to_fields())
    scheduler = AsyncioWorkflowScheduler(IssueWorkflow(store, fake_llm, delay=60, sleep=asyncio.sleep))

    await scheduler.schedule(issue_id)
    await asyncio.sleep(0)
    await scheduler.shutdown(grace=0.01)

    assert scheduler.in_flight == 0
    assert (await store.find_by_id(issue_id)).status == "submitted"


@pytest.mark.asyncio
async def test_asyncio_scheduler_logs_workflow_errors(fake_llm, stepped_sleep) -> None:
    class BrokenWorkflow(IssueWorkflow):
        async def run(self, issue_id):
            raise RuntimeError("store exploded")

    scheduler = AsyncioWorkflowScheduler(BrokenWorkflow(None, fake_llm, sleep=stepped_sleep))

    await scheduler.schedule("any")
    await scheduler.shutdown(grace=1)

    assert scheduler.in_flight == 0


def test_build_scheduler_selects_backend(fake_llm) -> None:
    workflow = IssueWorkflow(None, fake_llm)

    assert isinstance(build_scheduler(Settings(), workflow), AsyncioWorkflowScheduler)
    assert isinstance(build_scheduler(Settings(workflow_backend="celery"), workflow), CeleryWorkflowScheduler)
    assert isinstance(build_scheduler(Settings(workflow_backend="bogus"), workflow), AsyncioWorkflowScheduler)


@pytest.mark.asyncio
async def test_celery_scheduler_enqueues_first_transition_with_countdown() -> None:
    with patch("cityfix.tasks.celery_tasks.advance_issue.apply_async") as mock_apply:
        await CeleryWorkflowScheduler(delay=30).schedule("issue-1")

    mock_apply.assert_called_once_with(
        ("issue-1", "in lavorazione"),
        countdown=30,
        retry=True,
        retry_policy=PUBLISH_RETRY_POLICY,
    )


@pytest.mark.asyncio
async def test_celery_scheduler_publishes_off_the_event_loop() -> None:
    loop_thread = threading.get_ident()
    publish_threads = []

    def publish(*args, **kwargs):
        publish_threads.append(threading.get_ident())

    with patch("cityfix.tasks.celery_tasks.advance_issue.apply_async", side_effect=publish):
        await CeleryWorkflowScheduler(delay=30).schedule("issue-1")

    assert publish_threads and publish_threads[0] != loop_thread


@pytest.mark.asyncio
async def test_celery_scheduler_reports_unreachable_broker() -> None:
    error = OperationalError("Error 111 connecting to 127.0.0.1:1. Connection refused.")

    with patch("cityfix.tasks.celery_tasks.advance_issue.apply_async", side_effect=error):
        with pytest.raises(SchedulerUnavailable) as excinfo:
            await CeleryWorkflowScheduler(delay=30).schedule("issue-1")

    assert excinfo.value.status_code == 503
    assert "broker" in excinfo.value.detail


def test_celery_task_chains_to_next_state(monkeypatch) -> None:
    from cityfix.tasks import celery_tasks

    calls = []

    async def fake_advance(settings, issue_id, state):
        calls.append((issue_id, state))
        return True

    monkeypatch.setenv("WORKFLOW_DELAY_SECONDS", "5")
    monkeypatch.setattr(celery_tasks, "_advance", fake_advance)
    with patch.object(celery_tasks.advance_issue, "apply_async") as mock_apply:
        celery_tasks.advance_issue("issue-1", "in lavorazione")

    assert calls == [("issue-1", WorkflowState.IN_PROGRESS)]
    mock_apply.assert_called_once_with(("issue-1", "problema risolto"), countdown=5.0)


@pytest.mark.parametrize(
    "state, proceed",
    [("problema risolto", True), ("problema risolto", False), ("in lavorazione", False)],
)
def test_celery_task_stops_at_end_or_missing_record(monkeypatch, state, proceed) -> None:
    from cityfix.tasks import celery_tasks

    async def fake_advance(settings, issue_id, target):
        return proceed

    monkeypatch.setattr(celery_tasks, "_advance", fake_advance)
    with patch.object(celery_tasks.advance_issue, "apply_async") as mock_apply:
        celery_tasks.advance_issue("issue-1", state)

    mock_apply.assert_not_called()
