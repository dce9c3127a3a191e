"""
Tests for BadgeEngine (persisted unlocks, once-only notification)
"""
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from capling.application.badges import BadgeEngine
from capling.application.transactions import TransactionLedger
from capling.infrastructure.db.models import BadgeUnlockRecord, TransactionRecord

TODAY = date(2026, 3, 4)
NOON = datetime(2026, 3, 4, 12, tzinfo=timezone.utc)


@pytest.fixture
def engine(db_session):
    return BadgeEngine(db_session, tz_name="UTC")


@pytest.fixture
def ledger(db_session, classifier, evaluator):
    return TransactionLedger(db_session, classifier=classifier, evaluator=evaluator, tz_name="UTC")


def _by_id(statuses):
    return {s.badge_id: s for s in statuses}


def test_new_user_only_has_starting_balance_badge(engine, user_id):
    statuses = engine.evaluate_badges(user_id, today=TODAY)
    assert len(statuses) == 10
    # starting balance is 1000
    assert {s.badge_id for s in statuses if s.earned} == {"account-builder"}


def test_first_transaction_notified_once(engine, ledger, user_id):
    ledger.create_transaction(user_id, "Cafe", Decimal("4"), occurred_at=NOON)

    first = _by_id(engine.evaluate_badges(user_id, today=TODAY))
    second = _by_id(engine.evaluate_badges(user_id, today=TODAY))

    assert first["first-transaction"].earned
    assert first["first-transaction"].newly_earned
    assert first["first-transaction"].unlocked_at is not None
    assert second["first-transaction"].earned
    assert not second["first-transaction"].newly_earned


def test_earned_survives_metric_regression(engine, ledger, db_session, user_id):
    ledger.create_transaction(user_id, "Cafe", Decimal("4"), occurred_at=NOON)
    engine.evaluate_badges(user_id, today=TODAY)
    assert _by_id(engine.evaluate_badges(user_id, today=TODAY))["smart-spender"].earned

    # blow the budget: predicate false now, unlock record still authoritative
    ledger.create_transaction(user_id, "Whole Foods", Decimal("2000"), occurred_at=NOON)
    statuses = _by_id(engine.evaluate_badges(user_id, today=TODAY))

    assert statuses["smart-spender"].earned
    assert not statuses["smart-spender"].newly_earned


def test_one_unlock_record_per_badge(engine, ledger, db_session, user_id):
    ledger.create_transaction(user_id, "Cafe", Decimal("4"), occurred_at=NOON)
    for _ in range(3):
        engine.evaluate_badges(user_id, today=TODAY)

    badge_ids = [r.badge_id for r in db_session.query(BadgeUnlockRecord).filter_by(user_id=user_id)]
    assert len(badge_ids) == len(set(badge_ids))


def test_engine_does_not_mutate_ledger(engine, ledger, db_session, user_id):
    ledger.create_transaction(user_id, "Amazon", Decimal("300"), occurred_at=NOON)
    before = [(t.transaction_id, t.justification_status, t.final_classification)
              for t in db_session.query(TransactionRecord).all()]

    engine.evaluate_badges(user_id, today=TODAY)
    db_session.expire_all()

    after = [(t.transaction_id, t.justification_status, t.final_classification)
             for t in db_session.query(TransactionRecord).all()]
    assert before == after


def test_account_builder_needs_balance_at_threshold(engine, ledger, user_id):
    other_user = user_id + 1
    ledger.create_transaction(other_user, "Rent", Decimal("100"), occurred_at=NOON)
    assert not _by_id(engine.evaluate_badges(other_user, today=TODAY))["account-builder"].earned
