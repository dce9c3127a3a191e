"""
BadgeEngine - evaluates the badge catalogue and persists first unlocks.

Read-only with respect to the ledgers: the only rows it writes are
badge_unlocks, one per (user, badge), inserted with ON CONFLICT DO NOTHING.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from capling.application.budget import BudgetReconciler
from capling.application.errors import PersistenceError
from capling.application.progression import ProgressionLedger
from capling.config import get_settings
from capling.domain.badges import BADGES, BadgeContext, BadgeTransaction, satisfied_badges
from capling.infrastructure.db.models import Account, BadgeUnlockRecord, TransactionRecord
from capling.infrastructure.db.upsert import insert_ignore
from capling.utils.dates import logical_day, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BadgeStatus:
    badge_id: str
    title: str
    description: str
    emoji: str
    category: str
    earned: bool
    newly_earned: bool
    unlocked_at: Optional[datetime] = None


class BadgeEngine:
    def __init__(self, db: Session, tz_name: str | None = None):
        self.db = db
        self.tz_name = tz_name or get_settings().TIMEZONE

    def build_context(self, user_id: int, today: date) -> BadgeContext:
        rows = (
            self.db.query(TransactionRecord)
            .filter(TransactionRecord.user_id == user_id)
            .all()
        )
        transactions = [
            BadgeTransaction(
                merchant=r.merchant,
                description=r.description,
                amount=Decimal(str(r.amount)),
                classification=r.classification,
                final_classification=r.final_classification,
                occurred_on=r.occurred_on,
                category=r.category,
            )
            for r in rows
        ]

        account = self.db.query(Account).filter(Account.user_id == user_id).first()
        balance = Decimal(str(account.balance)) if account else get_settings().STARTING_BALANCE

        snapshot = ProgressionLedger(self.db).get_progression(user_id)
        weekly_budget = BudgetReconciler(self.db).get_weekly_budget(user_id)

        return BadgeContext(
            transactions=transactions,
            balance=balance,
            weekly_budget=weekly_budget,
            lessons_read=snapshot.lessons_read,
            consecutive_happy_days=snapshot.consecutive_happy_days,
            today=today,
        )

    def evaluate_badges(self, user_id: int, today: date | None = None) -> list[BadgeStatus]:
        """
        Evaluate every badge for the user.

        earned stays true once an unlock record exists, even if the metric
        later regresses; newly_earned is true only for the call that created
        the unlock record.
        """
        today = today or logical_day(utc_now(), self.tz_name)
        ctx = self.build_context(user_id, today)
        satisfied = set(satisfied_badges(ctx))

        newly_earned: set[str] = set()
        try:
            for badge_id in sorted(satisfied):
                inserted = insert_ignore(
                    self.db,
                    BadgeUnlockRecord,
                    {"user_id": user_id, "badge_id": badge_id, "unlocked_at": utc_now()},
                    ["user_id", "badge_id"],
                )
                if inserted:
                    newly_earned.add(badge_id)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Badge unlock failed for user_id=%s", user_id)
            raise PersistenceError("Failed to record badge unlocks") from exc

        for badge_id in sorted(newly_earned):
            logger.info("User %s unlocked badge %s", user_id, badge_id)

        unlocked = {
            r.badge_id: r.unlocked_at
            for r in self.db.query(BadgeUnlockRecord).filter(BadgeUnlockRecord.user_id == user_id).all()
        }

        return [
            BadgeStatus(
                badge_id=b.badge_id,
                title=b.title,
                description=b.description,
                emoji=b.emoji,
                category=b.category,
                earned=b.badge_id in unlocked,
                newly_earned=b.badge_id in newly_earned,
                unlocked_at=unlocked.get(b.badge_id),
            )
            for b in BADGES
        ]
