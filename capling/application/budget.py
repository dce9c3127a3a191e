"""
BudgetReconciler - weekly budget maintenance.

After a justified over-budget purchase the weekly budget is raised to 10%
above the week's non-income spending. Automatic reconciliation never lowers
the budget.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from capling.application.errors import PersistenceError, ValidationError
from capling.config import get_settings
from capling.domain.classification import Classification
from capling.infrastructure.db.models import TransactionRecord, UserBudgetProfile
from capling.infrastructure.db.upsert import insert_ignore
from capling.utils.dates import week_start
from capling.utils.money import parse_positive_amount

logger = logging.getLogger(__name__)

BUDGET_BUFFER = Decimal("1.1")
RECONCILE_ATTEMPTS = 3


@dataclass(frozen=True)
class BudgetAdjustment:
    adjusted: bool
    previous_budget: Optional[Decimal] = None
    new_budget: Optional[Decimal] = None
    weekly_spending: Optional[Decimal] = None
    reason: str = ""


def buffered_budget(weekly_spending: Decimal) -> Decimal:
    """ceil(spending * 1.1) as a whole-unit Decimal."""
    return Decimal(math.ceil(weekly_spending * BUDGET_BUFFER))


class BudgetReconciler:
    def __init__(self, db: Session, default_weekly_budget: Decimal | None = None):
        self.db = db
        self.default_weekly_budget = (
            default_weekly_budget if default_weekly_budget is not None
            else get_settings().DEFAULT_WEEKLY_BUDGET
        )

    def ensure_profile(self, user_id: int) -> None:
        insert_ignore(
            self.db,
            UserBudgetProfile,
            {"user_id": user_id, "weekly_budget": self.default_weekly_budget},
            ["user_id"],
        )

    def get_weekly_budget(self, user_id: int) -> Decimal:
        try:
            self.ensure_profile(user_id)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to create budget profile") from exc
        profile = self.db.get(UserBudgetProfile, user_id, populate_existing=True)
        return Decimal(str(profile.weekly_budget))

    def set_weekly_budget(self, user_id: int, amount: Decimal) -> Decimal:
        """Explicit user edit (may lower the budget)."""
        amount, error = parse_positive_amount(amount)
        if error:
            raise ValidationError(f"Invalid weekly budget: {error}")

        try:
            self.ensure_profile(user_id)
            self.db.execute(
                update(UserBudgetProfile)
                .where(UserBudgetProfile.user_id == user_id)
                .values(weekly_budget=amount)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to update weekly budget") from exc

        logger.info("Weekly budget for user %s set to %s", user_id, amount)
        return amount

    def weekly_spending(self, user_id: int, start: date) -> Decimal:
        """Sum of non-income transaction amounts on or after start."""
        effective = func.coalesce(TransactionRecord.final_classification, TransactionRecord.classification)
        total = (
            self.db.query(func.coalesce(func.sum(TransactionRecord.amount), 0))
            .filter(
                TransactionRecord.user_id == user_id,
                TransactionRecord.occurred_on >= start,
                effective != Classification.INCOME.value,
            )
            .scalar()
        )
        return Decimal(str(total or 0)).quantize(Decimal("0.01"))

    def reconcile(self, user_id: int, transaction: TransactionRecord, today: date) -> BudgetAdjustment:
        """
        Raise the weekly budget after a justified irresponsible purchase.

        Read-sum-compare-write runs as one unit per user: the profile row is
        locked (SELECT ... FOR UPDATE) and the write is conditional on the
        budget that was read; a lost race is retried from a fresh read.

        Raises:
            PersistenceError: store failure or too many concurrent conflicts
        """
        if transaction.original_classification != Classification.IRRESPONSIBLE.value:
            return BudgetAdjustment(adjusted=False, reason="Only irresponsible purchases adjust the budget")

        start = week_start(today)

        try:
            for attempt in range(1, RECONCILE_ATTEMPTS + 1):
                self.ensure_profile(user_id)
                profile = (
                    self.db.query(UserBudgetProfile)
                    .filter(UserBudgetProfile.user_id == user_id)
                    .populate_existing()
                    .with_for_update()
                    .one()
                )
                current = Decimal(str(profile.weekly_budget))
                spending = self.weekly_spending(user_id, start)

                if spending <= current:
                    self.db.commit()
                    return BudgetAdjustment(
                        adjusted=False,
                        previous_budget=current,
                        weekly_spending=spending,
                        reason="Weekly spending is within budget",
                    )

                new_budget = buffered_budget(spending)
                updated = self.db.execute(
                    update(UserBudgetProfile)
                    .where(UserBudgetProfile.user_id == user_id, UserBudgetProfile.weekly_budget == current)
                    .values(weekly_budget=new_budget)
                    .execution_options(synchronize_session=False)
                ).rowcount

                if updated == 1:
                    self.db.commit()
                    logger.info(
                        "Budget for user %s adjusted %s -> %s (weekly spending %s)",
                        user_id, current, new_budget, spending,
                    )
                    return BudgetAdjustment(
                        adjusted=True,
                        previous_budget=current,
                        new_budget=new_budget,
                        weekly_spending=spending,
                        reason="Budget automatically adjusted due to justified over-budget spending",
                    )

                self.db.rollback()
                logger.warning("Budget for user %s changed concurrently, retry %s", user_id, attempt)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Budget reconciliation failed for user_id=%s", user_id)
            raise PersistenceError("Failed to reconcile weekly budget") from exc

        raise PersistenceError("Weekly budget kept changing during reconciliation")
