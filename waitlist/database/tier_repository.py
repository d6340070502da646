# waitlist/database/tier_repository.py
import asyncpg
from typing import Optional, List
from uuid import UUID
from waitlist.errors import wrap_store_error
from waitlist.models.tier import PlanFeatureWithLimit, Subscription
import logging

logger = logging.getLogger(__name__)

class TierRepository:
    """Read-only access to prices, plan features and the subscriptions that point at them"""

    def __init__(self, connection: asyncpg.Connection):
        self.conn = connection

    async def get_plan_features_with_limits(self, price_id: UUID) -> List[PlanFeatureWithLimit]:
        try:
            rows = await self.conn.fetch("""
                SELECT
                    f.name AS feature_name,
                    pfl.enabled,
                    l.limit_value
                FROM plan_feature_limits pfl
                JOIN features f ON f.id = pfl.feature_id
                LEFT JOIN limits l ON l.id = pfl.limit_id
                WHERE pfl.plan_id = $1
                    AND pfl.deleted_at IS NULL
                    AND f.deleted_at IS NULL
                    AND (l.deleted_at IS NULL OR l.id IS NULL)
            """, price_id)

            return [PlanFeatureWithLimit(**dict(row)) for row in rows]

        except Exception as e:
            logger.error(f"Failed to get plan features for price {price_id}: {e}")
            raise wrap_store_error("get plan features with limits", e) from e

    async def get_price_description(self, price_id: UUID) -> Optional[str]:
        try:
            row = await self.conn.fetchrow("""
                SELECT description
                FROM prices
                WHERE id = $1 AND deleted_at IS NULL
            """, price_id)
            return row["description"] if row else None

        except Exception as e:
            logger.error(f"Failed to get description of price {price_id}: {e}")
            raise wrap_store_error("get price description", e) from e

    async def get_free_price_id(self) -> Optional[UUID]:
        try:
            return await self.conn.fetchval("""
                SELECT id
                FROM prices
                WHERE description = 'free' AND deleted_at IS NULL
                LIMIT 1
            """)

        except Exception as e:
            logger.error(f"Failed to get free price: {e}")
            raise wrap_store_error("get free price", e) from e

    async def get_latest_subscription(self, user_id: UUID) -> Optional[Subscription]:
        try:
            row = await self.conn.fetchrow("""
                SELECT id, user_id, price_id, status, start_date, end_date, next_billing_date
                FROM subscriptions
                WHERE user_id = $1
                ORDER BY created_at DESC
                LIMIT 1
            """, user_id)
            return Subscription(**dict(row)) if row else None

        except Exception as e:
            logger.error(f"Failed to get subscription for user {user_id}: {e}")
            raise wrap_store_error("get subscription", e) from e

    async def get_account_owner_id(self, account_id: UUID) -> Optional[UUID]:
        try:
            return await self.conn.fetchval("""
                SELECT owner_user_id
                FROM accounts
                WHERE id = $1 AND deleted_at IS NULL
            """, account_id)

        except Exception as e:
            logger.error(f"Failed to get owner of account {account_id}: {e}")
            raise wrap_store_error("get account", e) from e
