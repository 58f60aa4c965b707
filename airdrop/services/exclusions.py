"""Policy exclusion and restriction lists."""
from typing import Optional, Set

import structlog
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop.config import get_settings
from airdrop.models.exclusion import ExcludedAddress, RestrictedAddress
from airdrop.services.snapshots import normalize_address

logger = structlog.get_logger()
settings = get_settings()


class ExclusionService:
    """Reads and maintains the address lists that never receive rewards."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def policy_addresses(self) -> Set[str]:
        """Configured defaults plus stored policy exclusions"""
        result = await self.db.execute(select(ExcludedAddress.address))
        return set(settings.default_excluded_addresses) | set(result.scalars().all())

    async def restricted_addresses(self) -> Set[str]:
        result = await self.db.execute(select(RestrictedAddress.address))
        return set(result.scalars().all())

    async def add_policy_address(self, address: str, label: Optional[str] = None) -> ExcludedAddress:
        address = normalize_address(address)
        result = await self.db.execute(select(ExcludedAddress).where(ExcludedAddress.address == address))
        entry = result.scalar_one_or_none()
        if entry is None:
            entry = ExcludedAddress(address=address, label=label)
            self.db.add(entry)
        else:
            entry.label = label or entry.label
        await self.db.commit()
        logger.info("Policy exclusion added", address=address, label=label)
        return entry

    async def add_restricted_address(self, address: str, source: Optional[str] = None) -> RestrictedAddress:
        address = normalize_address(address)
        result = await self.db.execute(select(RestrictedAddress).where(RestrictedAddress.address == address))
        entry = result.scalar_one_or_none()
        if entry is None:
            entry = RestrictedAddress(address=address, source=source)
            self.db.add(entry)
        await self.db.commit()
        logger.info("Restricted address added", address=address, source=source)
        return entry

    async def remove_policy_address(self, address: str) -> bool:
        result = await self.db.execute(
            delete(ExcludedAddress).where(ExcludedAddress.address == normalize_address(address))
        )
        await self.db.commit()
        return result.rowcount > 0

    async def remove_restricted_address(self, address: str) -> bool:
        result = await self.db.execute(
            delete(RestrictedAddress).where(RestrictedAddress.address == normalize_address(address))
        )
        await self.db.commit()
        return result.rowcount > 0
