"""
API Endpoint for Visibility Checks

Handles:
1. Trigger a check for one keyword across all engines (POST /checks/run)

Responses:
- 200 {success: true, checks: [...]} - one observation per engine
- 400 missing keywordId, 401 not authenticated, 403 not the keyword owner,
  404 keyword not found, 409 run already in progress, 500 persistence failure
"""

import json
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, StrictStr

from src.auth.dependencies import get_requester_id
from src.checks import CheckOrchestrator
from src.errors import ValidationError, VisibilityError
from src.services.visibility import get_visibility_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/checks",
    tags=["Checks"],
)


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class RunCheckRequest(BaseModel):
    """Request to run a check. Parsed by hand so bad bodies return 400, not 422."""
    keywordId: Optional[StrictStr] = None


class ObservationResponse(BaseModel):
    """One committed observation."""
    id: str
    keyword_id: str
    project_id: str
    owner_user_id: str
    engine: str
    presence: bool
    position: Optional[int] = None
    answer_snippet: str
    citations_count: int
    observed_urls: List[str]
    is_degraded: bool
    timestamp: str


class RunCheckResponse(BaseModel):
    """Committed run."""
    success: bool
    checks: List[ObservationResponse]


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_orchestrator() -> CheckOrchestrator:
    """Process-wide orchestrator."""
    return get_visibility_service().orchestrator


async def read_run_request(request: Request) -> RunCheckRequest:
    """Parse the body; an empty body is treated as {}."""
    raw = await request.body()
    if not raw.strip():
        return RunCheckRequest()

    # pydantic.ValidationError is a ValueError too
    try:
        return RunCheckRequest.model_validate(json.loads(raw))
    except ValueError:
        raise ValidationError("Request body must be a JSON object with a string keywordId")


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/run", response_model=RunCheckResponse)
async def run_check(
    request: Request,
    requester_id: UUID = Depends(get_requester_id),
    orchestrator: CheckOrchestrator = Depends(get_orchestrator),
) -> RunCheckResponse:
    """Run a visibility check for a keyword the caller owns."""
    keyword_id = None

    try:
        body = await read_run_request(request)
        keyword_id = body.keywordId
        if not keyword_id or not keyword_id.strip():
            raise ValidationError("Missing keywordId")
        observations = await orchestrator.run_check(keyword_id, requester_id)

    except VisibilityError as e:
        if e.status_code >= 500:
            logger.error(f"Check for keyword {keyword_id} failed: {e}")
        else:
            logger.info(f"Check for keyword {keyword_id} rejected ({e.status_code}): {e}")
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return RunCheckResponse(
        success=True,
        checks=[ObservationResponse(**obs.to_dict()) for obs in observations],
    )
