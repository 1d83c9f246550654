"""
Credit Models
Append-only credit ledger, cached balances and subscriptions.

The ledger (credit_transactions) is the source of truth: a user's
credits_remaining in user_credits always equals the sum of their
transaction amounts.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Boolean, UniqueConstraint

from app.core.database import Base


class TransactionType:
    """Credit transaction type constants."""
    INITIAL = "INITIAL"                    # Sign-up grant
    MONTHLY_RESET = "MONTHLY_RESET"        # Monthly free credits
    SUBSCRIPTION = "SUBSCRIPTION"          # New subscription allotment
    RENEWAL = "RENEWAL"                    # Subscription renewal allotment
    VIDEO_GENERATION = "VIDEO_GENERATION"  # Debit for a finished video
    PURCHASE = "PURCHASE"
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"

    ALL = (
        INITIAL, MONTHLY_RESET, SUBSCRIPTION, RENEWAL,
        VIDEO_GENERATION, PURCHASE, REFUND, ADJUSTMENT,
    )


class CreditTransaction(Base):
    """
    Ledger entry. Positive amounts grant credits, negative amounts debit them.

    process_id ties usage entries to a generation; the unique constraint on
    (process_id, transaction_type) makes a retried finalization unable to
    charge the same process twice.
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        UniqueConstraint("process_id", "transaction_type", name="uq_credit_tx_process_type"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)

    amount = Column(Integer, nullable=False)
    description = Column(String, nullable=False)
    transaction_type = Column(String, nullable=False, index=True)

    process_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class UserCredits(Base):
    """Cached balance derived from the ledger."""

    __tablename__ = "user_credits"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, unique=True, index=True)

    credits_remaining = Column(Integer, default=0, nullable=False)
    credits_used = Column(Integer, default=0, nullable=False)
    last_reset_date = Column(DateTime, default=datetime.utcnow)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Subscription(Base):
    """Subscription record managed by the billing provider. Read-only here."""

    __tablename__ = "subscriptions"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)

    plan_type = Column(String, nullable=False)
    monthly_credits = Column(Integer, nullable=False)
    active = Column(Boolean, default=True, index=True)

    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)

    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
