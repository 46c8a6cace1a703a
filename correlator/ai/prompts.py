"""Centralized prompt templates for LLM interactions."""

import json
from typing import Dict, List, Optional

from pydantic import BaseModel

YES_HEADER = "Answer YES if:"
NO_HEADER = "Answer NO if:"

DEFAULT_MATCHING_CRITERIA = f"""{YES_HEADER}
- Both are the same product (e.g., both speakers, both headphones)
- Candidate is a variant of the primary (different color, size, model)
- Same clothing item besides color and size

{NO_HEADER}
- Candidate is a different kind of product (e.g., primary is speaker, candidate is cable)
- Candidate is an accessory (charger, cable, case, adapter)
- Candidate serves a completely different purpose
- The candidate is a different year's model of a product"""

CLASSIFIER_SYSTEM_PROMPT = (
    "You compare Amazon products for a reseller. "
    "Reply with exactly one word: YES or NO."
)


def has_criteria_sections(text: Optional[str]) -> bool:
    """Check that a criteria block carries both the YES and NO headers, in order."""
    if not text:
        return False
    lowered = text.lower()
    yes_at = lowered.find(YES_HEADER.lower())
    no_at = lowered.find(NO_HEADER.lower())
    return yes_at != -1 and no_at > yes_at


class SimilarityPrompt(BaseModel):
    """Prompt schema for the yes/no similarity judgment."""

    primary_title: str
    primary_brand: Optional[str] = None
    candidate_asin: str
    candidate_title: str
    candidate_brand: Optional[str] = None
    criteria: Optional[str] = None

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        criteria = (self.criteria or "").strip() or DEFAULT_MATCHING_CRITERIA
        return f"""PRIMARY PRODUCT:
Title: {self.primary_title}
Brand: {self.primary_brand or 'Unknown'}

CANDIDATE PRODUCT:
ASIN: {self.candidate_asin}
Title: {self.candidate_title}
Brand: {self.candidate_brand or 'Unknown'}

Question: Is the CANDIDATE the same product as the primary product?

{criteria}

Answer with ONLY: YES or NO"""


class PersonalizationPrompt(BaseModel):
    """Prompt schema for rewriting the matching criteria from feedback."""

    default_criteria: str = DEFAULT_MATCHING_CRITERIA
    total: int
    accepted_count: int
    declined_count: int
    decline_reasons: Dict[str, int] = {}
    accepted_examples: List[str] = []
    declined_examples: List[str] = []

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        accepted = "\n".join(self.accepted_examples) or "No examples yet"
        declined = "\n".join(self.declined_examples) or "No examples yet"

        return f"""You are analyzing a user's product matching preferences to customize their matching criteria.

CURRENT DEFAULT CRITERIA:
{self.default_criteria}

USER'S FEEDBACK DATA:
- Total decisions: {self.total}
- Accepted: {self.accepted_count}
- Declined: {self.declined_count}
- Decline reasons breakdown: {json.dumps(self.decline_reasons, sort_keys=True)}

ACCEPTED MATCHES (user wants these types):
{accepted}

DECLINED MATCHES (user doesn't want these):
{declined}

Based on this user's feedback, create a CUSTOMIZED version of the matching criteria. Keep the same format but ADD, REMOVE, or MODIFY bullet points based on what you learned from their decisions.

Rules:
1. Keep the exact format: "{YES_HEADER}" followed by bullet points, then "{NO_HEADER}" followed by bullet points
2. Start with the default criteria as a base
3. ADD specific criteria based on patterns you see in their accepts/declines
4. REMOVE any default criteria that conflicts with their behavior
5. Be specific - if they decline "accessories", say that explicitly
6. If they accept same-brand variations, note that pattern

Output ONLY the criteria section, nothing else:

{YES_HEADER}
- [criteria]

{NO_HEADER}
- [criteria]"""
