"""Personalize matching criteria from an owner's accept/decline history."""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from correlator import metrics
from correlator.ai.llm_service import LLMService
from correlator.ai.prompts import DEFAULT_MATCHING_CRITERIA, PersonalizationPrompt, has_criteria_sections
from correlator.config import settings
from correlator.db.models import CorrelationRecord, FeedbackCriteriaProfile, utcnow
from correlator.db.usage import track_usage
from correlator.errors import NotFound

logger = logging.getLogger(__name__)


async def get_profile(db: AsyncSession, owner_id: str) -> Optional[FeedbackCriteriaProfile]:
    result = await db.execute(
        select(FeedbackCriteriaProfile)
        .where(FeedbackCriteriaProfile.owner_id == owner_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_criteria(db: AsyncSession, owner_id: str) -> Optional[str]:
    """Criteria text of the owner's enabled profile, or None for the default policy."""
    profile = await get_profile(db, owner_id)
    if profile is None or not profile.enabled or not profile.criteria_text:
        return None
    return profile.criteria_text


@dataclass
class PersonalizationResult:
    success: bool
    based_on_count: int
    criteria_text: Optional[str] = None
    message: Optional[str] = None
    accepted: int = 0
    declined: int = 0


class PromptPersonalizer:
    """
    Rewrite the default matching criteria for one owner.

    Reads the owner's most recent decided correlations, asks the model to
    adapt the YES/NO criteria block to them, and stores the reply as the
    owner's enabled FeedbackCriteriaProfile. Replies missing either section
    header are rejected and nothing is stored.
    """

    def __init__(
        self,
        db: AsyncSession,
        llm: LLMService,
        min_feedback: Optional[int] = None,
        sample_size: Optional[int] = None,
        history_limit: Optional[int] = None,
    ):
        self.db = db
        self.llm = llm
        self.min_feedback = min_feedback or settings.personalization_min_feedback
        self.sample_size = sample_size or settings.personalization_sample_size
        self.history_limit = history_limit or settings.personalization_history_limit

    async def _decided(self, owner_id: str) -> List[CorrelationRecord]:
        result = await self.db.execute(
            select(CorrelationRecord)
            .where(
                CorrelationRecord.owner_id == owner_id,
                CorrelationRecord.decision.is_not(None),
            )
            .order_by(CorrelationRecord.decision_at.desc(), CorrelationRecord.id.desc())
            .limit(self.history_limit)
        )
        return list(result.scalars().all())

    @staticmethod
    def _example(record: CorrelationRecord) -> str:
        line = f'- "{record.correlated_title or "Unknown"}" ({record.suggested_type})'
        if record.decline_reason:
            line += f" - reason: {record.decline_reason}"
        return line

    async def regenerate(self, owner_id: str) -> PersonalizationResult:
        """
        Build and store a personalized criteria block.

        Raises:
            UpstreamUnavailable: If the AI call fails
        """
        history = await self._decided(owner_id)
        total = len(history)

        if total < self.min_feedback:
            metrics.record_prompt_regeneration("not_enough_data")
            return PersonalizationResult(
                success=False,
                based_on_count=total,
                message=f"Need at least {self.min_feedback} feedback decisions. You have {total}.",
            )

        accepted = [r for r in history if r.decision == "accepted"]
        declined = [r for r in history if r.decision == "declined"]
        reasons = Counter(r.decline_reason for r in declined if r.decline_reason)

        prompt = PersonalizationPrompt(
            default_criteria=DEFAULT_MATCHING_CRITERIA,
            total=total,
            accepted_count=len(accepted),
            declined_count=len(declined),
            decline_reasons=dict(reasons),
            accepted_examples=[self._example(r) for r in accepted[:self.sample_size]],
            declined_examples=[self._example(r) for r in declined[:self.sample_size]],
        ).to_prompt()

        try:
            reply = await self.llm.complete(prompt, use_cache=False)
        except Exception:
            metrics.record_prompt_regeneration("error")
            raise

        await track_usage(self.db, owner_id, "openai", "prompt_regeneration", 1)
        criteria = (reply or "").strip()

        if not has_criteria_sections(criteria):
            logger.warning(f"Discarding malformed criteria for owner {owner_id}: {criteria[:80]!r}")
            metrics.record_prompt_regeneration("malformed")
            return PersonalizationResult(
                success=False,
                based_on_count=total,
                message="Generated criteria were missing the YES/NO sections",
                accepted=len(accepted),
                declined=len(declined),
            )

        profile = await get_profile(self.db, owner_id)
        if profile is None:
            profile = FeedbackCriteriaProfile(owner_id=owner_id)
            self.db.add(profile)
        profile.criteria_text = criteria
        profile.enabled = True
        profile.based_on_count = total
        profile.generated_at = utcnow()
        await self.db.commit()

        metrics.record_prompt_regeneration("success")
        logger.info(f"Regenerated matching criteria for owner {owner_id} from {total} decisions")
        return PersonalizationResult(
            success=True,
            based_on_count=total,
            criteria_text=criteria,
            message=f"Custom prompt generated from {total} feedback decisions",
            accepted=len(accepted),
            declined=len(declined),
        )

    async def set_enabled(self, owner_id: str, enabled: bool) -> FeedbackCriteriaProfile:
        """Toggle the owner's profile. Raises NotFound if none was generated."""
        profile = await get_profile(self.db, owner_id)
        if profile is None:
            raise NotFound("No custom criteria generated yet", details={"owner": owner_id})
        profile.enabled = enabled
        await self.db.commit()
        logger.info(f"Custom criteria {'enabled' if enabled else 'disabled'} for owner {owner_id}")
        return profile
