from fastapi import APIRouter, Depends, HTTPException, status

from cityfix.dependencies import get_issue_service
from cityfix.errors import CityFixError
from cityfix.schemas import Issue, IssueCreate, SolutionAccepted
from cityfix.service import IssueService

router = APIRouter(tags=["issues"])


def _http_error(error: CityFixError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.detail)


@router.get("/issues/", response_model=list[Issue])
async def list_issues(service: IssueService = Depends(get_issue_service)):
    """List all issues."""
    try:
        return await service.list()
    except CityFixError as e:
        raise _http_error(e)


@router.get("/issues/{issue_id}", response_model=Issue, status_code=status.HTTP_200_OK)
async def get_issue(issue_id: str, service: IssueService = Depends(get_issue_service)):
    """Get issue by ID"""
    try:
        return await service.get(issue_id)
    except CityFixError as e:
        raise _http_error(e)


@router.post("/issues/", response_model=Issue, status_code=status.HTTP_201_CREATED)
async def create_issue(payload: IssueCreate, service: IssueService = Depends(get_issue_service)):
    """Create new issue"""
    try:
        return await service.create(payload)
    except CityFixError as e:
        raise _http_error(e)


@router.post("/issues_with_summary/", response_model=Issue, status_code=status.HTTP_201_CREATED)
async def create_issue_with_summary(
    payload: IssueCreate, service: IssueService = Depends(get_issue_service)
):
    """Create new issue with an LLM summary of its description.

    A failing completion endpoint does not fail the request; the summary then
    describes the failure.
    """
    try:
        return await service.create_with_summary(payload)
    except CityFixError as e:
        raise _http_error(e)


@router.post(
    "/issues/{issue_id}/initiate_solution",
    response_model=SolutionAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def initiate_solution(issue_id: str, service: IssueService = Depends(get_issue_service)):
    """Confirm the issue and start the background resolution workflow."""
    try:
        issue_id = await service.initiate_solution(issue_id)
    except CityFixError as e:
        raise _http_error(e)

    return SolutionAccepted(
        message="Solution workflow started; the issue will be updated in the background",
        issue_id=issue_id,
    )
