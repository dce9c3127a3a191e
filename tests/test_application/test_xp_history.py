"""
Tests for XP history: describe_xp_event and paginated listing
"""
import pytest

from capling.application.errors import ValidationError
from capling.application.progression import ProgressionLedger
from capling.application.xp_history import XpHistoryService, describe_xp_event


class TestDescribeXpEvent:
    def test_lesson(self):
        assert describe_xp_event("lesson_read", {"lesson_title": "Budgeting 101"}) == 'Read a lesson: "Budgeting 101"'

    def test_purchase(self):
        assert describe_xp_event("responsible_purchase", {"merchant": "Whole Foods"}) == \
            "Responsible purchase at Whole Foods"

    def test_streak(self):
        assert describe_xp_event("happiness_streak", {"consecutive_days": 3}) == "Happiness streak: day 3"

    def test_no_metadata_falls_back_to_label(self):
        assert describe_xp_event("goal_achieved") == "Goal achieved"
        assert describe_xp_event("daily_bonus", {}) == "Daily bonus"

    def test_unknown_type(self):
        assert describe_xp_event("mystery") == "XP awarded"


class TestXpHistoryService:
    def test_paginated_newest_first(self, db_session, user_id):
        ledger = ProgressionLedger(db_session)
        for i in range(5):
            ledger.award_xp(user_id, "goal_achieved", i + 1, f"Goal {i}", metadata={"goal_title": f"G{i}"})

        items, total, pages = XpHistoryService(db_session).list_paginated(user_id, page=1, page_size=2)

        assert total == 5
        assert pages == 3
        assert [item["xp_amount"] for item in items] == [5, 4]
        assert items[0]["label"] == 'Goal achieved: "G4"'

    def test_filter_by_type(self, db_session, user_id):
        ledger = ProgressionLedger(db_session)
        ledger.award_xp(user_id, "goal_achieved", 50, "Goal")
        ledger.award_lesson_xp(user_id, 1, "Budgeting 101")

        items, total, _ = XpHistoryService(db_session).list_paginated(user_id, event_type="lesson_read")

        assert total == 1
        assert items[0]["event_type"] == "lesson_read"
        assert items[0]["metadata"]["lesson_id"] == 1

    def test_page_clamped(self, db_session, user_id):
        items, total, pages = XpHistoryService(db_session).list_paginated(user_id, page=9)
        assert (items, total, pages) == ([], 0, 1)

    def test_unknown_type_rejected(self, db_session, user_id):
        with pytest.raises(ValidationError):
            XpHistoryService(db_session).list_paginated(user_id, event_type="cheating")
