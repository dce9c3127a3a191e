"""
Weekly budget API endpoints
"""
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from capling.api.deps import get_current_user, get_db
from capling.application.budget import BudgetReconciler
from capling.config import get_settings
from capling.infrastructure.db.models import User
from capling.utils.dates import logical_day, utc_now, week_start


router = APIRouter(prefix="/api/v1/budget", tags=["budget"])


class UpdateBudgetRequest(BaseModel):
    weekly_budget: Decimal


class BudgetResponse(BaseModel):
    weekly_budget: str
    weekly_spending: str
    remaining: str
    week_start: date


def _budget_response(reconciler: BudgetReconciler, user_id: int, weekly_budget: Decimal) -> BudgetResponse:
    start = week_start(logical_day(utc_now(), get_settings().TIMEZONE))
    spending = reconciler.weekly_spending(user_id, start)
    return BudgetResponse(
        weekly_budget=f"{weekly_budget:.2f}",
        weekly_spending=f"{spending:.2f}",
        remaining=f"{weekly_budget - spending:.2f}",
        week_start=start,
    )


@router.get("", response_model=BudgetResponse)
def get_budget(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Weekly budget and this week's spending"""
    reconciler = BudgetReconciler(db)
    return _budget_response(reconciler, user.id, reconciler.get_weekly_budget(user.id))


@router.put("", response_model=BudgetResponse)
def update_budget(
    req: UpdateBudgetRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    reconciler = BudgetReconciler(db)
    new_budget = reconciler.set_weekly_budget(user.id, req.weekly_budget)
    return _budget_response(reconciler, user.id, new_budget)
