"""
ProgressionLedger - XP accounting, level projection, lesson-read rewards.

XP rules:
  lesson_read            → +25 XP  (once per user + lesson)
  responsible_purchase   → +15 XP  (once per transaction)
  goal_achieved          → +50 XP
  daily_bonus            → +5  XP  (once per logical day)
  happiness_streak       → milestone schedule, see capling.domain.streak

Counters on progression_accounts are only changed with store-level
increments (UPDATE ... SET total_xp = total_xp + :delta RETURNING ...),
never with read-modify-write in Python.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from capling.application.errors import NotFoundError, PersistenceError, ValidationError
from capling.domain.level_curve import MAX_LEVEL, compute_level, level_for_xp
from capling.infrastructure.db.models import Lesson, LessonReadRecord, ProgressionAccount
from capling.infrastructure.db.upsert import insert_ignore
from capling.infrastructure.eventlog.repository import ExperienceEventRepository
from capling.utils.dates import utc_now

logger = logging.getLogger(__name__)

XP_EVENT_TYPES = (
    "happiness_streak",
    "lesson_read",
    "responsible_purchase",
    "goal_achieved",
    "daily_bonus",
)

LESSON_READ_XP = 25
RESPONSIBLE_PURCHASE_XP = 15
GOAL_ACHIEVED_XP = 50
DAILY_BONUS_XP = 5


@dataclass(frozen=True)
class ProgressionSnapshot:
    user_id: int
    level: int
    current_xp: int
    total_xp: int
    consecutive_happy_days: int
    lessons_read: int
    xp_for_next_level: int
    progress_percent: float
    last_happiness_check: Optional[datetime]


@dataclass(frozen=True)
class XpAward:
    awarded: bool
    xp_amount: int
    previous_level: int
    new_level: int
    total_xp: int
    event_id: Optional[int] = None

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.previous_level


@dataclass(frozen=True)
class LessonXpResult:
    lesson_id: int
    xp_awarded: bool
    award: Optional[XpAward] = None
    error: Optional[str] = None


def snapshot_from_account(account: ProgressionAccount) -> ProgressionSnapshot:
    _, xp_next, percent = compute_level(account.total_xp)
    return ProgressionSnapshot(
        user_id=account.user_id,
        level=account.current_level,
        current_xp=account.current_xp,
        total_xp=account.total_xp,
        consecutive_happy_days=account.consecutive_happy_days,
        lessons_read=account.lessons_read,
        xp_for_next_level=xp_next,
        progress_percent=round(percent, 1),
        last_happiness_check=account.last_happiness_check,
    )


class ProgressionLedger:
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = ExperienceEventRepository(db)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def ensure_account(self, user_id: int) -> None:
        """Create the zeroed ProgressionAccount if missing (no commit)."""
        insert_ignore(
            self.db,
            ProgressionAccount,
            {
                "user_id": user_id,
                "current_level": 1,
                "total_xp": 0,
                "current_xp": 0,
                "consecutive_happy_days": 0,
                "lessons_read": 0,
            },
            ["user_id"],
        )

    def load_account(self, user_id: int) -> ProgressionAccount:
        account = self.db.get(ProgressionAccount, user_id, populate_existing=True)
        if account is None:
            raise NotFoundError(f"No progression account for user #{user_id}")
        return account

    def get_progression(self, user_id: int) -> ProgressionSnapshot:
        """Return the progression snapshot, creating a zeroed account on first access."""
        try:
            self.ensure_account(user_id)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to create progression account") from exc
        return snapshot_from_account(self.load_account(user_id))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def award_xp(
        self,
        user_id: int,
        event_type: str,
        amount: int,
        description: str,
        metadata: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> XpAward:
        """
        Append an experience event and add amount to the user's counters.

        Not idempotent unless idempotency_key is given: callers that need
        at-most-once issuance guard it themselves.

        Raises:
            ValidationError: negative amount / unknown event type
            PersistenceError: store failure (nothing is written)
        """
        try:
            award = self.stage_award(user_id, event_type, amount, description, metadata, idempotency_key)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("XP award failed for user_id=%s event_type=%s", user_id, event_type)
            raise PersistenceError("Failed to award XP") from exc
        return award

    def stage_award(
        self,
        user_id: int,
        event_type: str,
        amount: int,
        description: str,
        metadata: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        lessons_read_delta: int = 0,
    ) -> XpAward:
        """award_xp inside the caller's transaction (no commit)."""
        if event_type not in XP_EVENT_TYPES:
            raise ValidationError(f"Unknown XP event type: {event_type!r}")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("XP amount must be an integer")
        if amount < 0:
            raise ValidationError("XP amount must be >= 0")

        self.ensure_account(user_id)

        event_id = self.event_repo.append_event(
            user_id=user_id,
            event_type=event_type,
            xp_amount=amount,
            description=description,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        if event_id is None:
            # idempotency_key already issued
            account = self.load_account(user_id)
            return XpAward(
                awarded=False,
                xp_amount=0,
                previous_level=account.current_level,
                new_level=account.current_level,
                total_xp=account.total_xp,
            )

        total_xp, previous_level = self._increment(user_id, amount, lessons_read_delta)
        new_level = level_for_xp(total_xp)

        # A concurrent award that already moved total_xp sets the level itself
        self.db.execute(
            update(ProgressionAccount)
            .where(ProgressionAccount.user_id == user_id, ProgressionAccount.total_xp == total_xp)
            .values(current_level=new_level)
            .execution_options(synchronize_session=False)
        )

        if new_level > previous_level:
            logger.info("User %s leveled up: %s -> %s", user_id, previous_level, new_level)

        return XpAward(
            awarded=True,
            xp_amount=amount,
            previous_level=previous_level,
            new_level=new_level,
            total_xp=total_xp,
            event_id=event_id,
        )

    def _increment(self, user_id: int, xp_delta: int, lessons_read_delta: int = 0) -> tuple[int, int]:
        """Atomic counter increment. Returns (new total_xp, level before the award)."""
        values = {
            "total_xp": ProgressionAccount.total_xp + xp_delta,
            "current_xp": ProgressionAccount.current_xp + xp_delta,
        }
        if lessons_read_delta:
            values["lessons_read"] = ProgressionAccount.lessons_read + lessons_read_delta

        row = self.db.execute(
            update(ProgressionAccount)
            .where(ProgressionAccount.user_id == user_id)
            .values(**values)
            .returning(ProgressionAccount.total_xp, ProgressionAccount.current_level)
            .execution_options(synchronize_session=False)
        ).one()
        return row.total_xp, row.current_level

    # ------------------------------------------------------------------
    # Lessons
    # ------------------------------------------------------------------

    def award_lesson_xp(self, user_id: int, lesson_id: int, lesson_title: str) -> LessonXpResult:
        """
        Mark lesson as read and grant LESSON_READ_XP at most once per (user, lesson).

        The read record is committed first, so an XP failure never un-reads
        the lesson; it is reported as xp_awarded=False with error set and a
        retry can still claim the reward.
        """
        try:
            self.ensure_account(user_id)
            insert_ignore(
                self.db,
                LessonReadRecord,
                {"user_id": user_id, "lesson_id": lesson_id, "xp_awarded": False, "read_at": utc_now()},
                ["user_id", "lesson_id"],
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to mark lesson as read") from exc

        try:
            claimed = self.db.execute(
                update(LessonReadRecord)
                .where(
                    LessonReadRecord.user_id == user_id,
                    LessonReadRecord.lesson_id == lesson_id,
                    LessonReadRecord.xp_awarded.is_(False),
                )
                .values(xp_awarded=True)
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                self.db.rollback()
                return LessonXpResult(lesson_id=lesson_id, xp_awarded=False)

            award = self.stage_award(
                user_id,
                "lesson_read",
                LESSON_READ_XP,
                f'Read lesson: "{lesson_title}"',
                metadata={"lesson_id": lesson_id, "lesson_title": lesson_title},
                lessons_read_delta=1,
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Lesson XP failed for user_id=%s lesson_id=%s", user_id, lesson_id)
            return LessonXpResult(lesson_id=lesson_id, xp_awarded=False, error=str(exc))

        return LessonXpResult(lesson_id=lesson_id, xp_awarded=True, award=award)

    def mark_lesson_read(self, user_id: int, lesson_id: int) -> LessonXpResult:
        lesson = self.db.query(Lesson).filter(
            Lesson.lesson_id == lesson_id,
            Lesson.user_id == user_id,
        ).first()
        if not lesson:
            raise NotFoundError(f"Lesson #{lesson_id} not found")
        return self.award_lesson_xp(user_id, lesson.lesson_id, lesson.title)

    # ------------------------------------------------------------------
    # Named awards
    # ------------------------------------------------------------------

    def award_responsible_purchase(self, user_id: int, transaction_id: int, merchant: str,
                                   amount: Decimal) -> XpAward:
        """No commit; at most once per transaction."""
        return self.stage_award(
            user_id,
            "responsible_purchase",
            RESPONSIBLE_PURCHASE_XP,
            f"Made responsible purchase at {merchant}",
            metadata={"transaction_id": transaction_id, "merchant": merchant, "amount": str(amount)},
            idempotency_key=f"responsible-purchase-{transaction_id}",
        )

    def award_goal_achieved(self, user_id: int, goal_title: str) -> XpAward:
        goal_title = (goal_title or "").strip()
        if not goal_title:
            raise ValidationError("Goal title is required")
        return self.award_xp(
            user_id, "goal_achieved", GOAL_ACHIEVED_XP,
            f'Achieved goal: "{goal_title}"', metadata={"goal_title": goal_title},
        )

    def award_daily_bonus(self, user_id: int, today: date) -> XpAward:
        return self.award_xp(
            user_id, "daily_bonus", DAILY_BONUS_XP, "Daily login bonus",
            metadata={"day": today.isoformat()},
            idempotency_key=f"daily-bonus-{today.isoformat()}",
        )

    # ------------------------------------------------------------------
    # Operator tooling
    # ------------------------------------------------------------------

    def set_level(self, user_id: int, level: int, total_xp: int, current_xp: int) -> ProgressionSnapshot:
        """
        Administrative override: write level/xp verbatim.

        Bypasses the level curve on purpose (support / testing); streak and
        lessons_read are preserved.
        """
        if not 1 <= level <= MAX_LEVEL:
            raise ValidationError(f"Level must be between 1 and {MAX_LEVEL}")
        if total_xp < 0 or current_xp < 0:
            raise ValidationError("XP values must be >= 0")

        try:
            self.ensure_account(user_id)
            self.db.execute(
                update(ProgressionAccount)
                .where(ProgressionAccount.user_id == user_id)
                .values(current_level=level, total_xp=total_xp, current_xp=current_xp)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to set level") from exc

        logger.info("Level override for user %s: level=%s total_xp=%s", user_id, level, total_xp)
        return snapshot_from_account(self.load_account(user_id))
