"""
Credits API Routes
Balance queries and the monthly free-credit grant.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, get_db, require_admin
from app.core.config import settings
from app.schemas.credits import (
    CreditSummaryResponse,
    CreditTransactionResponse,
    MonthlyResetResponse,
    SubscriptionResponse,
)
from app.services.credits import CreditLedger, LedgerError

logger = logging.getLogger(__name__)

router = APIRouter()


def _ledger_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Credit ledger unavailable"
    )


@router.get("", response_model=CreditSummaryResponse)
async def get_credits(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Balance, active subscription and the most recent transactions."""
    try:
        summary = CreditLedger(db).summary(user_id)
    except (LedgerError, SQLAlchemyError) as e:
        logger.error(f"[Credits] Could not load credits for {user_id}: {e}")
        raise _ledger_unavailable()

    subscription = summary["subscription"]
    return CreditSummaryResponse(
        balance=summary["balance"],
        credits_used=summary["credits_used"],
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
        transactions=[CreditTransactionResponse.model_validate(tx) for tx in summary["transactions"]],
    )


@router.post(
    "/monthly-reset",
    response_model=MonthlyResetResponse,
    dependencies=[Depends(require_admin)],
)
async def monthly_reset(db: Session = Depends(get_db)):
    """Grant this month's free credits to every account (run by cron). Safe to repeat."""
    logger.info("[Credits] Monthly reset triggered")
    try:
        credited = CreditLedger(db).grant_monthly_credits()
    except SQLAlchemyError as e:
        logger.error(f"[Credits] Monthly reset failed: {e}")
        raise _ledger_unavailable()
    return MonthlyResetResponse(users_credited=credited, amount=settings.MONTHLY_FREE_CREDITS)
