# waitlist/models/tier.py
from pydantic import BaseModel
from typing import Optional, Dict
from datetime import datetime
from uuid import UUID

class PlanFeatureWithLimit(BaseModel):
    """One row of plan_feature_limits joined with its feature and limit"""
    feature_name: str
    enabled: bool
    limit_value: Optional[int] = None  # None means unlimited

class Subscription(BaseModel):
    id: UUID
    user_id: UUID
    price_id: UUID
    status: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None

class TierInfo(BaseModel):
    price_id: Optional[UUID] = None
    price_description: str
    features: Dict[str, bool] = {}
    limits: Dict[str, Optional[int]] = {}  # None means unlimited
