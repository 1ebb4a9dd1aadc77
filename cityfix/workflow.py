"""
Timer-driven resolution workflow for a single issue.

    report confermato --(delay)--> in lavorazione --(delay)--> problema risolto

The first state is written by whoever initiates the workflow; run() performs
the two delayed transitions. The second transition re-reads the issue, asks
the completion endpoint for a solution and stores it together with the final
status. Generation problems never stop the workflow: a fallback text is stored
instead. A record that disappeared before the second transition ends the
workflow without further writes.

Nothing prevents two workflows from running for the same issue; both write to
the same record and the last write wins.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from cityfix.llm_service import NO_CONTENT, CompletionClient, LLMServiceError, build_solution_prompt
from cityfix.schemas import Issue
from cityfix.store import IssueStore

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class WorkflowState(str, Enum):
    CONFIRMED = "report confermato"
    IN_PROGRESS = "in lavorazione"
    RESOLVED = "problema risolto"

    def next(self) -> Optional["WorkflowState"]:
        order = list(WorkflowState)
        index = order.index(self)
        return order[index + 1] if index + 1 < len(order) else None

    @property
    def terminal(self) -> bool:
        return self.next() is None


def fallback_solution(error: Exception) -> str:
    return f"Solution generation failed: {error}"


class IssueWorkflow:
    """Transition functions for the workflow states, plus a driver that runs them on a timer."""

    def __init__(
        self,
        store: IssueStore,
        llm: CompletionClient,
        delay: float = 30.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store
        self.llm = llm
        self.delay = delay
        self.sleep = sleep

    async def confirm(self, issue_id: str) -> None:
        await self.store.update_fields(issue_id, {"status": WorkflowState.CONFIRMED.value})
        logger.info("Issue confirmed", extra={"issue_id": issue_id})

    async def start_progress(self, issue_id: str) -> None:
        # A missing record is a no-op at the store; the workflow carries on regardless.
        await self.store.update_fields(issue_id, {"status": WorkflowState.IN_PROGRESS.value})
        logger.info("Issue in progress", extra={"issue_id": issue_id})

    async def resolve(self, issue_id: str) -> bool:
        """Attach a solution and close the issue. Returns False if the issue is gone."""
        issue = await self.store.find_by_id(issue_id)
        if issue is None:
            logger.warning(
                f"Issue {issue_id} no longer exists, stopping workflow",
                extra={"issue_id": issue_id},
            )
            return False

        solution = await self.compute_solution(issue)
        await self.store.update_fields(
            issue_id,
            {
                "status": WorkflowState.RESOLVED.value,
                "solution_description": solution,
            },
        )
        logger.info(
            f"Issue {issue_id} resolved",
            extra={"issue_id": issue_id, "solution_length": len(solution)},
        )
        return True

    async def compute_solution(self, issue: Issue) -> str:
        try:
            text = await self.llm.generate(build_solution_prompt(issue))
        except Exception as e:
            logger.warning(
                f"Solution generation failed, using fallback: {e}",
                extra={"issue_id": issue.id},
            )
            return fallback_solution(e)

        text = text.strip()
        if not text:
            logger.warning("Completion service returned a blank solution, using fallback", extra={"issue_id": issue.id})
            return fallback_solution(LLMServiceError(NO_CONTENT))
        return text

    async def advance(self, issue_id: str, state: WorkflowState) -> bool:
        """Apply the transition into `state`. Returns whether the workflow may continue."""
        if state is WorkflowState.CONFIRMED:
            await self.confirm(issue_id)
            return True
        if state is WorkflowState.IN_PROGRESS:
            await self.start_progress(issue_id)
            return True
        resolved = await self.resolve(issue_id)
        return resolved and not state.terminal

    async def run(self, issue_id: str) -> None:
        """Drive an already confirmed issue through the two delayed transitions."""
        state = WorkflowState.CONFIRMED
        while not state.terminal:
            state = state.next()
            await self.sleep(self.delay)
            if not await self.advance(issue_id, state):
                break
