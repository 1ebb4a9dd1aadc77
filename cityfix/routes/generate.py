import logging

from fastapi import APIRouter, Depends, HTTPException, status

from cityfix.dependencies import get_issue_service
from cityfix.llm_service import LLMServiceError, ServiceUnavailable, UpstreamError
from cityfix.schemas import GenerateRequest, GenerateResponse
from cityfix.service import IssueService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"])


@router.post("/generate", response_model=GenerateResponse)
async def generate(payload: GenerateRequest, service: IssueService = Depends(get_issue_service)):
    """Forward a prompt to the completion endpoint."""
    try:
        text = await service.generate(payload.prompt)
    except ServiceUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except UpstreamError as e:
        code = e.status_code if e.status_code >= 400 else status.HTTP_502_BAD_GATEWAY
        raise HTTPException(status_code=code, detail=str(e))
    except LLMServiceError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return GenerateResponse(generated_text=text)
