"""Typed records passed between discovery stages."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from correlator.correlate.identifiers import normalize_asin
from correlator.ingest.base import ProductRecord

UNKNOWN = "Unknown"


class CandidateKind(str, Enum):
    VARIANT = "variant"
    SIMILAR = "similar"


class Decision(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"


@dataclass
class PrimaryProduct:
    """Seed product of a discovery run."""

    asin: str
    title: str
    brand: Optional[str]
    root_category: Optional[int]
    image_url: str
    url: str
    variation_asins: List[str] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: ProductRecord) -> "PrimaryProduct":
        return cls(
            asin=record.asin,
            title=record.title or UNKNOWN,
            brand=record.brand or None,
            root_category=record.root_category or None,
            image_url=record.image_url,
            url=record.url,
            variation_asins=[a for a in record.variation_asins if a != record.asin],
        )


@dataclass
class CandidateProduct:
    """A product that may correlate with the primary."""

    asin: str
    title: str
    brand: Optional[str]
    image_url: str
    url: str
    kind: CandidateKind

    def __post_init__(self):
        self.asin = normalize_asin(self.asin)
        self.kind = CandidateKind(self.kind)

    @classmethod
    def from_record(cls, record: ProductRecord, kind: CandidateKind) -> "CandidateProduct":
        return cls(
            asin=record.asin,
            title=record.title or UNKNOWN,
            brand=record.brand or None,
            image_url=record.image_url,
            url=record.url,
            kind=kind,
        )


@dataclass
class CandidateSet:
    """Output of the candidate generator."""

    variants: List[CandidateProduct] = field(default_factory=list)
    similar_candidates: List[CandidateProduct] = field(default_factory=list)


@dataclass
class ClassificationResult:
    """Classifier verdict for one candidate."""

    candidate: CandidateProduct
    approved: bool
    error: Optional[str] = None


@dataclass
class DiscoveryStats:
    variants: int = 0
    similar: int = 0
    similar_evaluated: int = 0
    similar_rejected: int = 0

    def to_dict(self) -> dict:
        return {"variants": self.variants, "similar": self.similar}
