from fastapi import HTTPException, Request, status

from cityfix.service import IssueService


def get_issue_service(request: Request) -> IssueService:
    """Dependency returning the service built at startup."""
    service = getattr(request.app.state, "issue_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Service is not initialized",
        )
    return service
