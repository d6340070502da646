# waitlist/services/tier_service.py
from typing import Optional
from uuid import UUID
from waitlist.database.connection import get_db_connection, release_db_connection
from waitlist.database.tier_repository import TierRepository
from waitlist.errors import AccountNotFoundError, PriceNotFoundError
from waitlist.models.tier import TierInfo
import logging

logger = logging.getLogger(__name__)

# Features that carry a numeric limit instead of an on/off flag
RESOURCE_FEATURES = frozenset({"campaigns", "leads", "team_members"})

# Subscription statuses that grant the subscribed price
ENTITLED_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})

def default_free_tier() -> TierInfo:
    """Free tier used when no price described 'free' exists in the database"""
    return TierInfo(
        price_description="free",
        features={
            "email_verification": False,
            "referral_system": False,
            "visual_form_builder": True,
            "visual_email_builder": False,
            "all_widget_types": False,
            "remove_branding": False,
            "anti_spam_protection": False,
            "enhanced_lead_data": False,
            "tracking_pixels": False,
            "webhooks_zapier": False,
            "email_blasts": False,
            "json_export": False,
        },
        limits={
            "campaigns": 1,
            "leads": 200,
            "team_members": 1,
        },
    )

class TierService:
    """Resolves the features and limits a price (or a user's subscription) grants.

    Nothing is cached: every lookup reads plan_feature_limits again.
    """

    async def get_tier_info_by_price_id(self, price_id: UUID) -> TierInfo:
        connection = None
        try:
            connection = await get_db_connection()
            return await self._tier_for_price(TierRepository(connection), price_id)
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_tier_info_by_user_id(self, user_id: UUID) -> TierInfo:
        """Tier of the user's latest subscription, or the free tier if it is not active"""
        connection = None
        try:
            connection = await get_db_connection()
            return await self._tier_for_user(TierRepository(connection), user_id)
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_tier_info_by_account_id(self, account_id: UUID) -> TierInfo:
        """Account -> owner -> subscription -> price"""
        connection = None
        try:
            connection = await get_db_connection()
            tier_repo = TierRepository(connection)

            owner_id = await tier_repo.get_account_owner_id(account_id)
            if not owner_id:
                raise AccountNotFoundError(account_id)

            return await self._tier_for_user(tier_repo, owner_id)
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_free_tier_info(self) -> TierInfo:
        connection = None
        try:
            connection = await get_db_connection()
            return await self._free_tier(TierRepository(connection))
        finally:
            if connection:
                await release_db_connection(connection)

    async def has_feature(self, price_id: UUID, feature_name: str) -> bool:
        tier_info = await self.get_tier_info_by_price_id(price_id)
        return tier_info.features.get(feature_name, False)

    async def get_limit(self, price_id: UUID, limit_name: str) -> Optional[int]:
        """Limit value for a price; None means unlimited or not defined"""
        tier_info = await self.get_tier_info_by_price_id(price_id)
        return tier_info.limits.get(limit_name)

    async def _tier_for_price(self, tier_repo: TierRepository, price_id: UUID) -> TierInfo:
        description = await tier_repo.get_price_description(price_id)
        if description is None:
            raise PriceNotFoundError(price_id)

        tier_info = TierInfo(price_id=price_id, price_description=description)
        for row in await tier_repo.get_plan_features_with_limits(price_id):
            if row.feature_name in RESOURCE_FEATURES:
                tier_info.limits[row.feature_name] = row.limit_value
            else:
                tier_info.features[row.feature_name] = row.enabled

        return tier_info

    async def _tier_for_user(self, tier_repo: TierRepository, user_id: UUID) -> TierInfo:
        subscription = await tier_repo.get_latest_subscription(user_id)
        if not subscription:
            logger.info(f"No subscription for user {user_id}, using free tier")
            return await self._free_tier(tier_repo)

        if subscription.status not in ENTITLED_SUBSCRIPTION_STATUSES:
            logger.info(f"Subscription {subscription.id} is {subscription.status}, using free tier")
            return await self._free_tier(tier_repo)

        return await self._tier_for_price(tier_repo, subscription.price_id)

    async def _free_tier(self, tier_repo: TierRepository) -> TierInfo:
        free_price_id = await tier_repo.get_free_price_id()
        if not free_price_id:
            return default_free_tier()
        return await self._tier_for_price(tier_repo, free_price_id)

tier_service = TierService()
