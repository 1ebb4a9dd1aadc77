import logging
import uuid

from cityfix.errors import BadInput, InternalError, NotFound, SchedulerUnavailable
from cityfix.llm_service import NO_CONTENT, CompletionClient, LLMServiceError, build_summary_prompt
from cityfix.schemas import Issue, IssueCreate
from cityfix.store import IssueStore
from cityfix.tasks.scheduler import WorkflowScheduler
from cityfix.workflow import IssueWorkflow

logger = logging.getLogger(__name__)


def parse_issue_id(value: str) -> str:
    """Validate an issue id and return it in canonical form."""
    try:
        return str(uuid.UUID(value))
    except (ValueError, TypeError, AttributeError):
        raise BadInput(f"Invalid issue id: {value!r}")


def fallback_summary(error: Exception) -> str:
    return f"Summary generation failed: {error}"


class IssueService:
    """Operations behind the HTTP API, composed from the store, the LLM client and the workflow."""

    def __init__(
        self,
        store: IssueStore,
        llm: CompletionClient,
        workflow: IssueWorkflow,
        scheduler: WorkflowScheduler,
    ):
        self.store = store
        self.llm = llm
        self.workflow = workflow
        self.scheduler = scheduler

    async def create(self, payload: IssueCreate) -> Issue:
        return await self._insert(payload.to_fields())

    async def create_with_summary(self, payload: IssueCreate) -> Issue:
        fields = payload.to_fields()
        try:
            summary = (await self.llm.generate(build_summary_prompt(payload.description))).strip()
        except Exception as e:
            logger.warning(f"Summary generation failed, using fallback: {e}")
            summary = fallback_summary(e)

        if not summary:
            logger.warning("Completion service returned a blank summary, using fallback")
            summary = fallback_summary(LLMServiceError(NO_CONTENT))

        fields["generated_summary"] = summary
        return await self._insert(fields)

    async def _insert(self, fields: dict) -> Issue:
        issue_id = await self.store.insert(fields)
        issue = await self.store.find_by_id(issue_id)
        if issue is None:
            logger.error(f"Issue {issue_id} was inserted but cannot be read back")
            raise InternalError("Issue was created but could not be retrieved")
        return issue

    async def list(self) -> list[Issue]:
        return await self.store.find_all()

    async def get(self, issue_id: str) -> Issue:
        issue = await self.store.find_by_id(parse_issue_id(issue_id))
        if issue is None:
            raise NotFound("Issue not found")
        return issue

    async def initiate_solution(self, issue_id: str) -> str:
        """
        Confirm the issue and start its resolution workflow in the background.

        Returns as soon as the workflow is scheduled. Callers should not
        initiate again while a workflow for the same issue is running.

        Raises:
            BadInput: malformed id, nothing touched
            NotFound: unknown id, nothing written
            SchedulerUnavailable: the workflow could not be started; the
                previous status is restored
        """
        issue_id = parse_issue_id(issue_id)
        issue = await self.store.find_by_id(issue_id)
        if issue is None:
            raise NotFound("Issue not found")

        await self.workflow.confirm(issue_id)
        try:
            await self.scheduler.schedule(issue_id)
        except SchedulerUnavailable:
            await self.store.update_fields(issue_id, {"status": issue.status})
            logger.warning(
                f"Workflow for issue {issue_id} not started, status restored to '{issue.status}'",
                extra={"issue_id": issue_id},
            )
            raise
        return issue_id

    async def generate(self, prompt: str) -> str:
        return await self.llm.generate(prompt)
