"""
Credit Ledger Service
Append-only credit transactions with a cached balance per user.

Every append is followed by a recompute of the user's cached balance from the
ledger, so concurrent appends for the same user commute. Usage debits are
keyed by generation process id and cannot be written twice.
"""

import logging
import math
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.credit import CreditTransaction, UserCredits, Subscription, TransactionType

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS_LIMIT = 10


class LedgerError(Exception):
    """Raised when the ledger cannot be written."""


def compute_video_cost(duration_seconds: Optional[float]) -> int:
    """
    Credits for a finished video: ceil(duration / 60 * CREDITS_PER_MINUTE).

    Missing, zero, negative or non-finite durations are billed at
    DEFAULT_VIDEO_CREDITS and logged as anomalies.
    """
    cost = 0
    if duration_seconds is not None:
        try:
            duration = float(duration_seconds)
        except (TypeError, ValueError):
            duration = float("nan")
        if math.isfinite(duration) and duration > 0:
            cost = math.ceil((duration / 60) * settings.CREDITS_PER_MINUTE)

    if cost <= 0:
        logger.warning(
            f"[Credits] Invalid video duration {duration_seconds!r}, "
            f"billing default {settings.DEFAULT_VIDEO_CREDITS} credits"
        )
        return settings.DEFAULT_VIDEO_CREDITS
    return cost


class CreditLedger:
    """Ledger operations for one database session."""

    def __init__(self, db: Session):
        self.db = db

    def get_account(self, user_id: str) -> Optional[UserCredits]:
        return self.db.query(UserCredits).filter(UserCredits.user_id == user_id).first()

    def ensure_account(self, user_id: str) -> UserCredits:
        """Get the user's balance row, creating it with the sign-up grant."""
        account = self.get_account(user_id)
        if account:
            return account

        account = UserCredits(id=str(uuid.uuid4()), user_id=user_id, credits_remaining=0, credits_used=0)
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError:
            # Created concurrently
            self.db.rollback()
            return self.get_account(user_id)

        if settings.INITIAL_FREE_CREDITS > 0:
            self.append(
                user_id,
                settings.INITIAL_FREE_CREDITS,
                "Welcome credits",
                TransactionType.INITIAL,
            )
        return self.get_account(user_id)

    def append(
        self,
        user_id: str,
        amount: int,
        description: str,
        transaction_type: str,
        process_id: Optional[str] = None,
    ) -> Optional[CreditTransaction]:
        """
        Append a ledger entry and refresh the cached balance.

        Returns None when an entry for (process_id, transaction_type) already
        exists.

        Raises:
            LedgerError: the database rejected the write
        """
        if transaction_type not in TransactionType.ALL:
            raise ValueError(f"Unknown transaction type: {transaction_type}")

        entry = CreditTransaction(
            id=str(uuid.uuid4()),
            user_id=user_id,
            amount=int(amount),
            description=description,
            transaction_type=transaction_type,
            process_id=process_id,
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if process_id is not None:
                logger.info(f"[Credits] {transaction_type} for {process_id} already recorded, skipping")
                return None
            raise LedgerError(f"Could not record {transaction_type} for user {user_id}")
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(str(e)) from e

        self.recompute_balance(user_id)
        logger.info(f"[Credits] {transaction_type} {amount:+d} for user {user_id}")
        return entry

    def recompute_balance(self, user_id: str) -> UserCredits:
        """Set the cached balance to the ledger sum."""
        balance, used = self.db.query(
            func.coalesce(func.sum(CreditTransaction.amount), 0),
            func.coalesce(
                func.sum(case((CreditTransaction.amount < 0, CreditTransaction.amount), else_=0)), 0
            ),
        ).filter(CreditTransaction.user_id == user_id).one()

        account = self.get_account(user_id)
        if account is None:
            account = UserCredits(id=str(uuid.uuid4()), user_id=user_id)
            self.db.add(account)

        account.credits_remaining = int(balance)
        account.credits_used = -int(used)
        account.updated_at = datetime.utcnow()
        self.db.commit()
        return account

    def get_balance(self, user_id: str) -> int:
        account = self.get_account(user_id)
        return account.credits_remaining if account else 0

    def has_sufficient_credits(self, user_id: str, required: int) -> bool:
        """Advisory check; not a reservation."""
        return self.get_balance(user_id) >= required

    def debit_for_video(self, user_id: str, process_id: str, credits: int) -> bool:
        """
        Charge a finished generation.

        Returns True when a new debit was written, False when this process
        was already charged.
        """
        entry = self.append(
            user_id,
            -abs(int(credits)),
            f"Video generation ({credits} credits)",
            TransactionType.VIDEO_GENERATION,
            process_id=process_id,
        )
        return entry is not None

    def get_active_subscription(self, user_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.user_id == user_id, Subscription.active.is_(True))
            .order_by(Subscription.created_at.desc())
            .first()
        )

    def summary(self, user_id: str) -> Dict[str, Any]:
        """Balance, active subscription and the most recent transactions."""
        account = self.ensure_account(user_id)
        transactions = (
            self.db.query(CreditTransaction)
            .filter(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc())
            .limit(RECENT_TRANSACTIONS_LIMIT)
            .all()
        )
        return {
            "balance": account.credits_remaining,
            "credits_used": account.credits_used,
            "subscription": self.get_active_subscription(user_id),
            "transactions": transactions,
        }

    def grant_monthly_credits(self, amount: Optional[int] = None, now: Optional[datetime] = None) -> int:
        """
        Give every account its monthly free credits once per calendar month.

        Returns the number of accounts credited.
        """
        amount = settings.MONTHLY_FREE_CREDITS if amount is None else amount
        now = now or datetime.utcnow()
        credited = 0

        for account in self.db.query(UserCredits).all():
            if self._has_monthly_grant(account.user_id, now):
                continue
            try:
                self.append(account.user_id, amount, "Monthly free credits", TransactionType.MONTHLY_RESET)
            except LedgerError as e:
                logger.error(f"[Credits] Monthly grant failed for {account.user_id}: {e}")
                continue
            account = self.get_account(account.user_id)
            account.last_reset_date = now
            self.db.commit()
            credited += 1

        logger.info(f"[Credits] Monthly grant of {amount} applied to {credited} accounts")
        return credited

    def _has_monthly_grant(self, user_id: str, now: datetime) -> bool:
        month_start = datetime(now.year, now.month, 1)
        return self.db.query(CreditTransaction).filter(
            CreditTransaction.user_id == user_id,
            CreditTransaction.transaction_type == TransactionType.MONTHLY_RESET,
            CreditTransaction.created_at >= month_start,
        ).first() is not None
