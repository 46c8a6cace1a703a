"""Resolve provider credentials for an owner."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from correlator.config import settings
from correlator.db.models import UserApiKey

logger = logging.getLogger(__name__)

KEEPA = "keepa"


class CredentialResolver:
    """
    Look up API keys stored per owner.

    Resolution order for ``resolve``: explicit override, the owner's stored
    key, then the system fallback key from settings.
    """

    def __init__(self, db: AsyncSession, fallback_key: Optional[str] = None):
        self.db = db
        self.fallback_key = settings.keepa_api_key if fallback_key is None else fallback_key

    async def get_credential(self, owner_id: str, service: str = KEEPA) -> Optional[str]:
        """Return the owner's decrypted key for a service, or None."""
        result = await self.db.execute(
            select(UserApiKey.api_key).where(
                UserApiKey.owner_id == owner_id,
                UserApiKey.service == service,
            )
        )
        key = result.scalar_one_or_none()
        if key is None:
            return None
        key = key.strip()
        return key or None

    async def resolve(
        self,
        owner_id: str,
        override: Optional[str] = None,
        service: str = KEEPA,
        allow_fallback: bool = True,
    ) -> Optional[str]:
        """Return the first usable key, or None when nothing is configured."""
        if override and override.strip():
            return override.strip()

        stored = await self.get_credential(owner_id, service)
        if stored:
            return stored

        if allow_fallback and self.fallback_key:
            logger.debug(f"Using system {service} key for owner {owner_id}")
            return self.fallback_key

        return None
