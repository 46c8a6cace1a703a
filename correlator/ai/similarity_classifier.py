"""Yes/no AI judgment of whether a candidate is the same product as the primary."""

import logging
from typing import List, Optional

from correlator import metrics
from correlator.ai.llm_service import LLMService
from correlator.ai.prompts import CLASSIFIER_SYSTEM_PROMPT, SimilarityPrompt
from correlator.config import settings
from correlator.correlate.types import CandidateProduct, ClassificationResult, PrimaryProduct
from correlator.errors import ClassificationError
from correlator.logging_config import get_logger
from correlator.utils.concurrency import WindowedPool

logger = logging.getLogger(__name__)

_STRIP_CHARS = " \t\r\n.!\"'`*"


def parse_answer(reply: Optional[str]) -> bool:
    """
    Parse a classifier reply.

    Only a bare YES or NO (case-insensitive, surrounding punctuation ignored)
    is accepted.

    Raises:
        ClassificationError: For anything else
    """
    answer = (reply or "").strip(_STRIP_CHARS).upper()
    if answer == "YES":
        return True
    if answer == "NO":
        return False
    raise ClassificationError(
        f"Unexpected classifier reply: {(reply or '')[:40]!r}",
        details={"reply": (reply or "")[:200]},
    )


def is_answer(reply: Optional[str]) -> bool:
    """True if ``reply`` parses as YES or NO."""
    try:
        parse_answer(reply)
    except ClassificationError:
        return False
    return True


class SimilarityClassifier:
    """
    Classify similar candidates against a primary product.

    A custom criteria block (from the owner's feedback profile) replaces the
    default YES/NO policy in the prompt. Any failure for a candidate counts
    as a decline.
    """

    def __init__(self, llm: LLMService, concurrency: Optional[int] = None):
        self.llm = llm
        self.concurrency = concurrency or settings.classifier_concurrency

    def build_prompt(
        self,
        primary: PrimaryProduct,
        candidate: CandidateProduct,
        criteria: Optional[str] = None,
    ) -> str:
        return SimilarityPrompt(
            primary_title=primary.title,
            primary_brand=primary.brand,
            candidate_asin=candidate.asin,
            candidate_title=candidate.title,
            candidate_brand=candidate.brand,
            criteria=criteria,
        ).to_prompt()

    async def classify(
        self,
        primary: PrimaryProduct,
        candidate: CandidateProduct,
        criteria: Optional[str] = None,
    ) -> bool:
        """
        Ask the model whether ``candidate`` matches ``primary``.

        Raises:
            UpstreamUnavailable: If the AI call fails
            ClassificationError: If the reply is not YES or NO
        """
        reply = await self.llm.complete(
            self.build_prompt(primary, candidate, criteria),
            system_prompt=CLASSIFIER_SYSTEM_PROMPT,
            max_tokens=settings.classifier_max_tokens,
            cacheable=is_answer,
        )
        return parse_answer(reply)

    async def classify_batch(
        self,
        primary: PrimaryProduct,
        candidates: List[CandidateProduct],
        criteria: Optional[str] = None,
        concurrency: Optional[int] = None,
    ) -> List[ClassificationResult]:
        """
        Classify candidates in windows of ``concurrency`` parallel calls.

        Returns one result per candidate, in input order. Errors become
        ``approved=False`` with the error message attached.
        """
        if not candidates:
            return []

        pool = WindowedPool(concurrency or self.concurrency)

        async def judge(candidate: CandidateProduct) -> bool:
            return await self.classify(primary, candidate, criteria)

        outcomes = await pool.map(judge, candidates)

        results: List[ClassificationResult] = []
        for candidate, outcome in zip(candidates, outcomes):
            if isinstance(outcome, BaseException):
                get_logger(__name__, search_asin=primary.asin, candidate=candidate.asin).warning(
                    f"Classification failed for {candidate.asin}, treating as decline: {outcome}"
                )
                metrics.record_classification("error")
                results.append(
                    ClassificationResult(candidate=candidate, approved=False, error=str(outcome))
                )
                continue

            metrics.record_classification("approved" if outcome else "declined")
            results.append(ClassificationResult(candidate=candidate, approved=bool(outcome)))

        approved = sum(1 for r in results if r.approved)
        logger.info(
            f"Classified {len(results)} candidates for {primary.asin}: "
            f"{approved} approved (peak concurrency {pool.peak_in_flight})"
        )
        return results
