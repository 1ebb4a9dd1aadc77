"""Shared test fixtures."""

import pytest
import pytest_asyncio
from sqlalchemy import delete

from cityfix.database import Database, models
from cityfix.schemas import IssueCreate
from cityfix.store import IssueStore


class FakeCompletionClient:
    """Stands in for CompletionClient; returns `text` or raises `error`."""

    def __init__(self, text: str = "  The pothole was filled with asphalt.  "):
        self.text = text
        self.error = None
        self.prompts = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


class SteppedSleep:
    """Workflow timer that returns at once, recording delays.

    A hook registered with after(n, ...) runs while the n-th delay is pending.
    """

    def __init__(self):
        self.delays = []
        self.hooks = {}

    def after(self, n: int, hook) -> None:
        self.hooks[n] = hook

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        hook = self.hooks.get(len(self.delays))
        if hook is not None:
            await hook()


class RecordingScheduler:
    """Records scheduled ids, or raises `error` instead."""

    def __init__(self):
        self.scheduled = []
        self.error = None

    async def schedule(self, issue_id: str) -> None:
        if self.error is not None:
            raise self.error
        self.scheduled.append(issue_id)

    async def shutdown(self, grace: float) -> None:
        return None


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cityfix.db'}"


@pytest_asyncio.fixture
async def database(database_url):
    db = Database(database_url)
    await db.connect()
    yield db
    await db.dispose()


@pytest.fixture
def store(database) -> IssueStore:
    return IssueStore(database)


@pytest.fixture
def fake_llm() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def stepped_sleep() -> SteppedSleep:
    return SteppedSleep()


@pytest.fixture
def recording_scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def pothole() -> IssueCreate:
    return IssueCreate(
        title="Pothole on Via Roma",
        description="A deep pothole near number 12 is damaging car tyres.",
        category="roads",
        photoUrl="https://example.org/photos/pothole.jpg",
    )


@pytest.fixture
def delete_issue(database):
    async def _delete(issue_id: str) -> None:
        async with database.session() as session:
            await session.execute(delete(models.Issue).where(models.Issue.id == issue_id))
            await session.commit()

    return _delete
