"""Accept/decline feedback endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends

from correlator.api.deps import get_ledger, get_owner_id
from correlator.api.schemas import CamelModel, FeedbackView
from correlator.correlate.feedback_ledger import FeedbackLedger
from correlator.correlate.identifiers import normalize_asin
from correlator.errors import InvalidFeedback

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/correlations", tags=["feedback"])

FEEDBACK_ACTIONS = ("decide", "undo", "mark_published")


class FeedbackRequest(CamelModel):
    action: str
    search_asin: str
    candidate_asin: str
    decision: Optional[str] = None
    reason: Optional[str] = None
    marketplace: Optional[str] = None


class FeedbackListResponse(CamelModel):
    success: bool = True
    search_asin: str
    feedback: List[FeedbackView]


class FeedbackResponse(CamelModel):
    success: bool = True
    action: str
    changed: bool = True
    feedback: Optional[FeedbackView] = None


@router.get("/{search_asin}/feedback", response_model=FeedbackListResponse)
async def list_feedback(
    search_asin: str,
    owner_id: str = Depends(get_owner_id),
    ledger: FeedbackLedger = Depends(get_ledger),
):
    """Decisions, availability and published flags for a search ASIN."""
    records = await ledger.get_feedback(owner_id, search_asin)
    return FeedbackListResponse(
        search_asin=normalize_asin(search_asin),
        feedback=[FeedbackView.from_record(r) for r in records],
    )


@router.post("/feedback", response_model=FeedbackResponse)
async def post_feedback(
    request: FeedbackRequest,
    owner_id: str = Depends(get_owner_id),
    ledger: FeedbackLedger = Depends(get_ledger),
):
    """Record a decision, undo one, or mark a candidate as published."""
    action = request.action.strip().lower()
    if action == "markpublished":
        action = "mark_published"

    if action == "decide":
        if not request.decision:
            raise InvalidFeedback("decision is required for decide")
        record = await ledger.set_decision(
            owner_id,
            request.search_asin,
            request.candidate_asin,
            request.decision.strip().lower(),
            reason=request.reason,
        )
        return FeedbackResponse(action=action, feedback=FeedbackView.from_record(record))

    if action == "undo":
        changed = await ledger.undo(owner_id, request.search_asin, request.candidate_asin)
        return FeedbackResponse(action=action, changed=changed)

    if action == "mark_published":
        if not request.marketplace:
            raise InvalidFeedback("marketplace is required for mark_published")
        record = await ledger.mark_published(
            owner_id,
            request.search_asin,
            request.candidate_asin,
            request.marketplace,
        )
        if record is None:
            return FeedbackResponse(action=action, changed=False)
        return FeedbackResponse(action=action, feedback=FeedbackView.from_record(record))

    raise InvalidFeedback(f"Invalid action '{request.action}'", details={"allowed": list(FEEDBACK_ACTIONS)})
