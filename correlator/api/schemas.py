"""Response models shared by the API routes."""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from correlator.db.models import CorrelationRecord


class CamelModel(BaseModel):
    """Serializes snake_case fields as camelCase; accepts either on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class CorrelationView(CamelModel):
    asin: str
    title: Optional[str]
    image_url: Optional[str]
    search_image_url: Optional[str]
    correlation_score: Optional[float]  # 0..1
    suggested_type: str
    source: Optional[str]
    url: Optional[str]
    decision: Optional[str]

    @classmethod
    def from_record(cls, record: CorrelationRecord) -> "CorrelationView":
        score = record.correlation_score
        return cls(
            asin=record.similar_asin,
            title=record.correlated_title,
            image_url=record.image_url,
            search_image_url=record.search_image_url,
            correlation_score=float(score) / 100 if score is not None else None,
            suggested_type=record.suggested_type,
            source=record.source,
            url=record.correlated_amazon_url,
            decision=record.decision,
        )


class FeedbackView(CamelModel):
    candidate_asin: str
    title: Optional[str]
    suggested_type: str
    decision: Optional[str]
    decline_reason: Optional[str]
    decision_at: Optional[datetime]
    availability: Dict[str, Optional[bool]]
    availability_checked_at: Optional[datetime]
    uploads: Dict[str, bool]

    @classmethod
    def from_record(cls, record: CorrelationRecord) -> "FeedbackView":
        return cls(
            candidate_asin=record.similar_asin,
            title=record.correlated_title,
            suggested_type=record.suggested_type,
            decision=record.decision,
            decline_reason=record.decline_reason,
            decision_at=record.decision_at,
            availability=record.availability(),
            availability_checked_at=record.availability_checked_at,
            uploads=record.uploads(),
        )
