"""
Tests for ProgressionLedger: XP awards, level projection, lesson idempotency,
administrative override.
"""
from datetime import date
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from capling.application.errors import NotFoundError, PersistenceError, ValidationError
from capling.application.progression import LESSON_READ_XP, ProgressionLedger
from capling.infrastructure.db.models import ExperienceEvent, Lesson, LessonReadRecord
from capling.infrastructure.eventlog.repository import ExperienceEventRepository


@pytest.fixture
def ledger(db_session):
    return ProgressionLedger(db_session)


def _lesson(db, user_id, title="Budgeting 101") -> Lesson:
    lesson = Lesson(user_id=user_id, title=title, lesson_type="tip", content="Spend less than you earn.")
    db.add(lesson)
    db.commit()
    return lesson


class TestGetProgression:
    def test_fresh_account_is_zeroed(self, ledger, user_id):
        snap = ledger.get_progression(user_id)
        assert snap.level == 1
        assert snap.total_xp == 0
        assert snap.current_xp == 0
        assert snap.consecutive_happy_days == 0
        assert snap.lessons_read == 0
        assert snap.xp_for_next_level == 50
        assert snap.progress_percent == 0

    def test_repeated_access_keeps_single_account(self, ledger, user_id):
        ledger.get_progression(user_id)
        ledger.award_xp(user_id, "goal_achieved", 50, "Goal")
        assert ledger.get_progression(user_id).total_xp == 50


class TestAwardXp:
    def test_award_updates_counters_and_log(self, ledger, db_session, user_id):
        award = ledger.award_xp(user_id, "goal_achieved", 30, "Half way", metadata={"goal": "Trip"})

        assert award.awarded
        assert award.previous_level == 1
        assert award.new_level == 1
        assert not award.leveled_up

        events = db_session.query(ExperienceEvent).filter_by(user_id=user_id).all()
        assert len(events) == 1
        assert events[0].xp_amount == 30
        assert events[0].metadata_json == {"goal": "Trip"}

    def test_level_up_reported(self, ledger, user_id):
        ledger.award_xp(user_id, "goal_achieved", 40, "a")
        award = ledger.award_xp(user_id, "goal_achieved", 170, "b")

        assert award.previous_level == 1
        assert award.new_level == 5
        assert award.leveled_up
        assert ledger.get_progression(user_id).level == 5

    def test_zero_amount_allowed(self, ledger, user_id):
        award = ledger.award_xp(user_id, "daily_bonus", 0, "nothing")
        assert award.awarded
        assert award.total_xp == 0

    def test_negative_amount_rejected(self, ledger, db_session, user_id):
        with pytest.raises(ValidationError):
            ledger.award_xp(user_id, "goal_achieved", -5, "bad")
        assert db_session.query(ExperienceEvent).count() == 0

    def test_unknown_event_type_rejected(self, ledger, user_id):
        with pytest.raises(ValidationError):
            ledger.award_xp(user_id, "cheating", 5, "bad")

    def test_idempotency_key(self, ledger, user_id):
        first = ledger.award_daily_bonus(user_id, date(2026, 3, 4))
        second = ledger.award_daily_bonus(user_id, date(2026, 3, 4))
        third = ledger.award_daily_bonus(user_id, date(2026, 3, 5))

        assert first.awarded and third.awarded
        assert not second.awarded
        assert ledger.get_progression(user_id).total_xp == 10

    def test_idempotency_key_is_scoped_per_user(self, ledger, db_session, user_id):
        other_id = user_id + 1
        ledger.award_xp(other_id, "responsible_purchase", 0, "x", idempotency_key="responsible-purchase-7")

        award = ledger.award_xp(user_id, "responsible_purchase", 15, "y", idempotency_key="responsible-purchase-7")

        assert award.awarded
        assert ledger.get_progression(user_id).total_xp == 15
        assert db_session.query(ExperienceEvent).filter_by(idempotency_key="responsible-purchase-7").count() == 2

    def test_goal_achieved_is_fixed_amount(self, ledger, user_id):
        award = ledger.award_goal_achieved(user_id, "  Emergency fund ")
        assert award.xp_amount == 50
        assert award.new_level == 2

    def test_goal_achieved_needs_title(self, ledger, user_id):
        with pytest.raises(ValidationError):
            ledger.award_goal_achieved(user_id, "   ")

    def test_level_capped_at_50(self, ledger, user_id):
        award = ledger.award_xp(user_id, "goal_achieved", 10000, "a lot")
        assert award.new_level == 50
        snap = ledger.get_progression(user_id)
        assert snap.xp_for_next_level == 0
        assert snap.progress_percent == 100

    def test_total_matches_event_log(self, ledger, db_session, user_id):
        for amount in (5, 15, 25, 50):
            ledger.award_xp(user_id, "goal_achieved", amount, "x")
        assert ExperienceEventRepository(db_session).sum_xp(user_id) == ledger.get_progression(user_id).total_xp

    def test_store_failure_is_persistence_error(self, ledger, db_session, user_id):
        ledger.get_progression(user_id)
        with patch.object(ledger, "_increment", side_effect=OperationalError("UPDATE", {}, Exception("locked"))):
            with pytest.raises(PersistenceError):
                ledger.award_xp(user_id, "goal_achieved", 10, "x")

        # nothing half-written
        assert db_session.query(ExperienceEvent).count() == 0
        assert ledger.get_progression(user_id).total_xp == 0


class TestLessonXp:
    def test_second_read_awards_nothing(self, ledger, user_id):
        first = ledger.award_lesson_xp(user_id, 7, "Budgeting 101")
        second = ledger.award_lesson_xp(user_id, 7, "Budgeting 101")

        assert first.xp_awarded
        assert not second.xp_awarded
        assert second.error is None

        snap = ledger.get_progression(user_id)
        assert snap.total_xp == LESSON_READ_XP
        assert snap.lessons_read == 1

    def test_different_lessons_both_award(self, ledger, user_id):
        ledger.award_lesson_xp(user_id, 1, "One")
        ledger.award_lesson_xp(user_id, 2, "Two")
        snap = ledger.get_progression(user_id)
        assert snap.total_xp == 50
        assert snap.level == 2
        assert snap.lessons_read == 2

    def test_xp_failure_keeps_lesson_read(self, ledger, db_session, user_id):
        with patch.object(ledger, "_increment", side_effect=OperationalError("UPDATE", {}, Exception("boom"))):
            result = ledger.award_lesson_xp(user_id, 3, "Three")

        assert not result.xp_awarded
        assert result.error

        record = db_session.query(LessonReadRecord).filter_by(user_id=user_id, lesson_id=3).one()
        assert record.xp_awarded is False
        assert ledger.get_progression(user_id).total_xp == 0

        # retry can still claim the reward
        retry = ledger.award_lesson_xp(user_id, 3, "Three")
        assert retry.xp_awarded
        assert ledger.get_progression(user_id).total_xp == LESSON_READ_XP

    def test_mark_lesson_read_uses_stored_title(self, ledger, db_session, user_id):
        lesson = _lesson(db_session, user_id)
        result = ledger.mark_lesson_read(user_id, lesson.lesson_id)

        assert result.xp_awarded
        event = db_session.query(ExperienceEvent).filter_by(event_type="lesson_read").one()
        assert "Budgeting 101" in event.description

    def test_mark_unknown_lesson(self, ledger, user_id):
        with pytest.raises(NotFoundError):
            ledger.mark_lesson_read(user_id, 999)

    def test_other_users_lesson_not_found(self, ledger, db_session, user_id):
        lesson = _lesson(db_session, user_id + 100)
        with pytest.raises(NotFoundError):
            ledger.mark_lesson_read(user_id, lesson.lesson_id)


class TestSetLevel:
    def test_override_is_verbatim(self, ledger, user_id):
        ledger.award_lesson_xp(user_id, 1, "One")
        snap = ledger.set_level(user_id, 10, 0, 0)

        assert snap.level == 10
        assert snap.total_xp == 0
        assert snap.lessons_read == 1

    @pytest.mark.parametrize("level,total,current", [(0, 0, 0), (51, 0, 0), (5, -1, 0), (5, 0, -1)])
    def test_invalid_override(self, ledger, user_id, level, total, current):
        with pytest.raises(ValidationError):
            ledger.set_level(user_id, level, total, current)

    def test_next_award_reprojects_level(self, ledger, user_id):
        ledger.set_level(user_id, 10, 0, 0)
        award = ledger.award_xp(user_id, "goal_achieved", 5, "x")
        assert award.previous_level == 10
        assert award.new_level == 1
