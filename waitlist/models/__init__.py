from .email_blast import (
    BlastStatus,
    RecipientStatus,
    EmailBlast,
    BlastRecipient,
    WaitlistUser,
    CreateEmailBlastParams,
    UpdateEmailBlastParams,
    BlastRecipientStats,
    BlastAnalytics,
    EmailBlastPage,
    BlastRecipientPage,
)
from .tier import PlanFeatureWithLimit, Subscription, TierInfo

__all__ = [
    "BlastStatus",
    "RecipientStatus",
    "EmailBlast",
    "BlastRecipient",
    "WaitlistUser",
    "CreateEmailBlastParams",
    "UpdateEmailBlastParams",
    "BlastRecipientStats",
    "BlastAnalytics",
    "EmailBlastPage",
    "BlastRecipientPage",
    "PlanFeatureWithLimit",
    "Subscription",
    "TierInfo",
]
