"""SQLAlchemy database models."""

from datetime import datetime, timezone
from typing import ClassVar, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from correlator.db.encryption import EncryptedString

# Marketplaces tracked per correlation (availability + published flags)
MARKETPLACES = ("US", "UK", "DE", "CA")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class CorrelationRecord(Base):
    """A primary -> candidate relationship discovered for one owner.

    Columns are split into two groups. Discovery fields are written by sync
    runs and refreshed on every upsert; feedback fields belong to the
    feedback ledger and are never touched by discovery.
    """

    __tablename__ = "asin_correlations"

    DISCOVERY_FIELDS: ClassVar[tuple[str, ...]] = (
        "correlated_title",
        "image_url",
        "search_image_url",
        "suggested_type",
        "source",
        "correlated_amazon_url",
        "correlation_score",
    )
    FEEDBACK_FIELDS: ClassVar[tuple[str, ...]] = (
        "decision",
        "decline_reason",
        "decision_at",
        "available_us",
        "available_uk",
        "available_de",
        "available_ca",
        "availability_checked_at",
        "uploaded_us",
        "uploaded_us_at",
        "uploaded_uk",
        "uploaded_uk_at",
        "uploaded_de",
        "uploaded_de_at",
        "uploaded_ca",
        "uploaded_ca_at",
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    search_asin: Mapped[str] = mapped_column(String(10), nullable=False)
    similar_asin: Mapped[str] = mapped_column(String(10), nullable=False)

    # Discovery fields
    correlated_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    search_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    suggested_type: Mapped[str] = mapped_column(String(16), nullable=False)  # variant, similar
    source: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # pipeline tag
    correlated_amazon_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    correlation_score: Mapped[Optional[float]] = mapped_column(Numeric(5, 2), nullable=True)  # 0-100

    # Feedback fields
    decision: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    decline_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    decision_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # None = unknown (probe failed or never ran)
    available_us: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    available_uk: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    available_de: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    available_ca: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    availability_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    uploaded_us: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    uploaded_us_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    uploaded_uk: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    uploaded_uk_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    uploaded_de: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    uploaded_de_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    uploaded_ca: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    uploaded_ca_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "owner_id", "search_asin", "similar_asin", name="uq_correlation_owner_search_similar"
        ),
        CheckConstraint(
            "decision IS NULL OR decision IN ('accepted', 'declined')",
            name="ck_correlation_decision",
        ),
        CheckConstraint(
            "suggested_type IN ('variant', 'similar')", name="ck_correlation_suggested_type"
        ),
        CheckConstraint("search_asin <> similar_asin", name="ck_correlation_not_self"),
        Index("idx_correlations_owner_search", "owner_id", "search_asin"),
        Index("idx_correlations_decision", "owner_id", "decision"),
    )

    def availability(self) -> dict[str, Optional[bool]]:
        """Per-marketplace availability (None = unknown)."""
        return {code: getattr(self, f"available_{code.lower()}") for code in MARKETPLACES}

    def uploads(self) -> dict[str, bool]:
        """Per-marketplace published flags."""
        return {code: bool(getattr(self, f"uploaded_{code.lower()}")) for code in MARKETPLACES}


class FeedbackCriteriaProfile(Base):
    """Per-owner matching criteria learned from accept/decline history."""

    __tablename__ = "feedback_criteria_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    criteria_text: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    based_on_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class UserApiKey(Base):
    """Third-party API credential stored for an owner."""

    __tablename__ = "user_api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    service: Mapped[str] = mapped_column(String(32), nullable=False)  # keepa, openai
    api_key: Mapped[Optional[str]] = mapped_column(EncryptedString(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("owner_id", "service", name="uq_api_key_owner_service"),)


class CorrelationJob(Base):
    """Tracks a background sync run."""

    __tablename__ = "correlation_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    search_asin: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)  # pending, processing, complete, error

    # Progress tracking
    total_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    approved_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rejected_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    @property
    def progress_percent(self) -> float:
        """Calculate progress percentage."""
        if self.total_count == 0:
            return 0.0
        return (self.processed_count / self.total_count) * 100


class ApiUsage(Base):
    """Provider usage attributed to an owner."""

    __tablename__ = "api_usage"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    service: Mapped[str] = mapped_column(String(32), nullable=False)  # keepa, openai
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    units: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # ASINs or AI calls
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
