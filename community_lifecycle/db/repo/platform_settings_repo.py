from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from community_lifecycle.community.commission import CommissionConfig
from community_lifecycle.core.config import get_settings
from community_lifecycle.db.models.platform_settings import PlatformSetting

MONETIZATION_SETTINGS_KEY = "monetization"


class PlatformSettingsRepo:
    @staticmethod
    async def get_commission_config(session: AsyncSession) -> CommissionConfig:
        defaults = CommissionConfig.from_settings(get_settings())
        setting = await session.get(PlatformSetting, MONETIZATION_SETTINGS_KEY)
        return CommissionConfig.from_monetization_value(
            setting.value if setting is not None else None,
            defaults=defaults,
        )
