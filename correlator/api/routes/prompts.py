"""Matching criteria personalization endpoints."""

import logging
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from correlator.ai.prompt_personalizer import PromptPersonalizer, get_profile
from correlator.ai.prompts import DEFAULT_MATCHING_CRITERIA
from correlator.api.deps import get_database, get_owner_id, get_personalizer
from correlator.api.schemas import CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/prompts", tags=["prompts"])


class RegenerateResponse(CamelModel):
    success: bool
    based_on_count: int
    criteria_text: Optional[str] = None
    message: Optional[str] = None
    stats: Optional[Dict[str, int]] = None


class CriteriaResponse(CamelModel):
    criteria_text: str
    enabled: bool
    is_default: bool
    based_on_count: int = 0
    generated_at: Optional[datetime] = None


class EnabledRequest(CamelModel):
    enabled: bool


@router.post("/regenerate", response_model=RegenerateResponse)
async def regenerate(
    owner_id: str = Depends(get_owner_id),
    personalizer: PromptPersonalizer = Depends(get_personalizer),
):
    """Rebuild the owner's matching criteria from their feedback."""
    result = await personalizer.regenerate(owner_id)
    return RegenerateResponse(
        success=result.success,
        based_on_count=result.based_on_count,
        criteria_text=result.criteria_text,
        message=result.message,
        stats={"accepted": result.accepted, "declined": result.declined},
    )


@router.get("/criteria", response_model=CriteriaResponse)
async def get_criteria(
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_database),
):
    """The owner's criteria profile, or the default criteria when none exists."""
    profile = await get_profile(db, owner_id)
    if profile is None:
        return CriteriaResponse(criteria_text=DEFAULT_MATCHING_CRITERIA, enabled=False, is_default=True)
    return CriteriaResponse(
        criteria_text=profile.criteria_text,
        enabled=profile.enabled,
        is_default=False,
        based_on_count=profile.based_on_count,
        generated_at=profile.generated_at,
    )


@router.put("/criteria/enabled", response_model=CriteriaResponse)
async def set_criteria_enabled(
    request: EnabledRequest,
    owner_id: str = Depends(get_owner_id),
    personalizer: PromptPersonalizer = Depends(get_personalizer),
):
    """Turn the custom criteria on or off."""
    profile = await personalizer.set_enabled(owner_id, request.enabled)
    return CriteriaResponse(
        criteria_text=profile.criteria_text,
        enabled=profile.enabled,
        is_default=False,
        based_on_count=profile.based_on_count,
        generated_at=profile.generated_at,
    )
