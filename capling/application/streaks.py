"""
StreakTracker - daily mood check feeding the happiness streak.

One evaluation per logical day: the day gate and the streak change are a
single conditional UPDATE, so retries and concurrent requests on the same
day cannot award twice.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from capling.application.errors import PersistenceError, ValidationError
from capling.application.progression import ProgressionLedger, ProgressionSnapshot, XpAward
from capling.config import get_settings
from capling.domain.streak import MOOD_HAPPY, MOODS, days_since, is_milestone, streak_bonus
from capling.infrastructure.db.models import ProgressionAccount
from capling.utils.dates import logical_day, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakResult:
    updated: bool
    consecutive_happy_days: int
    xp_awarded: int
    snapshot: ProgressionSnapshot
    award: Optional[XpAward] = None

    @property
    def leveled_up(self) -> bool:
        return bool(self.award and self.award.leveled_up)


class StreakTracker:
    def __init__(self, db: Session, tz_name: str | None = None):
        self.db = db
        self.progression = ProgressionLedger(db)
        self.tz_name = tz_name or get_settings().TIMEZONE

    def update_happiness_streak(self, user_id: int, mood: str, now: datetime | None = None) -> StreakResult:
        """
        Apply today's mood to the streak.

        happy  → streak + 1 and milestone bonus XP
        other  → streak reset to 0, no XP
        Already checked today → no-op, current state returned.
        """
        if mood not in MOODS:
            raise ValidationError(f"Unknown mood: {mood!r}. Expected one of {', '.join(MOODS)}")

        now = now or utc_now()
        today = logical_day(now, self.tz_name)
        happy = mood == MOOD_HAPPY

        try:
            self.progression.ensure_account(user_id)
            account = self.progression.load_account(user_id)
            elapsed = days_since(account.last_happiness_day, today)
            if elapsed is not None and elapsed < 1:
                self.db.commit()
                return self._unchanged(user_id)

            new_streak = ProgressionAccount.consecutive_happy_days + 1 if happy else 0
            row = self.db.execute(
                update(ProgressionAccount)
                .where(
                    ProgressionAccount.user_id == user_id,
                    or_(
                        ProgressionAccount.last_happiness_day.is_(None),
                        ProgressionAccount.last_happiness_day < today,
                    ),
                )
                .values(
                    consecutive_happy_days=new_streak,
                    last_happiness_check=now,
                    last_happiness_day=today,
                )
                .returning(ProgressionAccount.consecutive_happy_days)
                .execution_options(synchronize_session=False)
            ).first()

            if row is None:
                # another request checked in first today
                self.db.commit()
                return self._unchanged(user_id)

            streak = row.consecutive_happy_days
            award = None
            if happy:
                award = self.progression.stage_award(
                    user_id,
                    "happiness_streak",
                    streak_bonus(streak),
                    f"Kept Capling happy for {streak} days",
                    metadata={
                        "mood": mood,
                        "consecutive_days": streak,
                        "streak_milestone": is_milestone(streak),
                        "day": today.isoformat(),
                    },
                )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Happiness streak update failed for user_id=%s", user_id)
            raise PersistenceError("Failed to update happiness streak") from exc

        logger.info("Happiness streak for user %s: mood=%s streak=%s", user_id, mood, streak)
        return StreakResult(
            updated=True,
            consecutive_happy_days=streak,
            xp_awarded=award.xp_amount if award else 0,
            snapshot=self.progression.get_progression(user_id),
            award=award,
        )

    def _unchanged(self, user_id: int) -> StreakResult:
        snapshot = self.progression.get_progression(user_id)
        return StreakResult(
            updated=False,
            consecutive_happy_days=snapshot.consecutive_happy_days,
            xp_awarded=0,
            snapshot=snapshot,
        )
