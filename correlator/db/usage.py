"""Per-owner API usage tracking."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from correlator.db.models import ApiUsage

logger = logging.getLogger(__name__)


async def track_usage(
    db: AsyncSession,
    owner_id: str,
    service: str,
    action: str,
    units: int = 1,
) -> None:
    """Record provider usage; failures are logged and never raised."""
    if units <= 0:
        return
    try:
        db.add(ApiUsage(owner_id=owner_id, service=service, action=action, units=units))
        await db.commit()
    except SQLAlchemyError as e:
        logger.warning(f"Failed to track usage ({service}/{action}) for {owner_id}: {e}")
        await db.rollback()
