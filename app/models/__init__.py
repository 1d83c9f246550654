# Database models package
from app.models.video import Video
from app.models.credit import CreditTransaction, UserCredits, Subscription, TransactionType

__all__ = [
    "Video",
    "CreditTransaction",
    "UserCredits",
    "Subscription",
    "TransactionType",
]
