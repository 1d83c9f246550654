"""
Credit Schemas
Pydantic models for balance, subscription and ledger responses.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class CreditTransactionResponse(BaseModel):
    id: str
    amount: int
    description: str
    transaction_type: str
    process_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SubscriptionResponse(BaseModel):
    id: str
    plan_type: str
    monthly_credits: int
    active: bool
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None

    class Config:
        from_attributes = True


class CreditSummaryResponse(BaseModel):
    """Schema for the credit query."""
    balance: int
    credits_used: int = 0
    subscription: Optional[SubscriptionResponse] = None
    transactions: List[CreditTransactionResponse] = []


class MonthlyResetResponse(BaseModel):
    users_credited: int
    amount: int
