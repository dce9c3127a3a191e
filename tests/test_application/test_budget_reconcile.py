"""
Tests for BudgetReconciler (weekly budget)
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from capling.application.budget import BudgetReconciler, buffered_budget
from capling.application.errors import ValidationError
from capling.infrastructure.db.models import TransactionRecord

WEDNESDAY = date(2026, 3, 4)


@pytest.fixture
def reconciler(db_session):
    return BudgetReconciler(db_session, default_weekly_budget=Decimal("850"))


def _add_tx(db, user_id, amount, classification="responsible", final=None, occurred_on=WEDNESDAY):
    tx = TransactionRecord(
        user_id=user_id,
        account_id=1,
        kind="credit" if classification == "income" else "debit",
        amount=Decimal(amount),
        merchant="Shop",
        category="shopping",
        description="",
        classification=final or classification,
        original_classification=classification,
        final_classification=final or classification,
        justification_status="none",
        reflection="",
        occurred_at=datetime(occurred_on.year, occurred_on.month, occurred_on.day, 12, tzinfo=timezone.utc),
        occurred_on=occurred_on,
    )
    db.add(tx)
    db.commit()
    return tx


def test_default_budget(reconciler, user_id):
    assert reconciler.get_weekly_budget(user_id) == Decimal("850")


def test_buffered_budget_rounds_up():
    assert buffered_budget(Decimal("900")) == Decimal("990")
    assert buffered_budget(Decimal("900.01")) == Decimal("991")


def test_weekly_spending_window_and_income(reconciler, db_session, user_id):
    _add_tx(db_session, user_id, "100")
    _add_tx(db_session, user_id, "50", classification="irresponsible", final="responsible")
    _add_tx(db_session, user_id, "2000", classification="income")
    _add_tx(db_session, user_id, "400", occurred_on=date(2026, 2, 28))  # previous Saturday
    _add_tx(db_session, user_id + 1, "999")

    assert reconciler.weekly_spending(user_id, date(2026, 3, 1)) == Decimal("150.00")


def test_reconcile_raises_budget(reconciler, db_session, user_id):
    _add_tx(db_session, user_id, "600")
    justified = _add_tx(db_session, user_id, "300", classification="irresponsible", final="responsible")

    adj = reconciler.reconcile(user_id, justified, WEDNESDAY)

    assert adj.adjusted
    assert adj.previous_budget == Decimal("850")
    assert adj.new_budget == Decimal("990")
    assert adj.weekly_spending == Decimal("900.00")
    assert reconciler.get_weekly_budget(user_id) == Decimal("990")


def test_reconcile_within_budget_keeps_budget(reconciler, db_session, user_id):
    justified = _add_tx(db_session, user_id, "300", classification="irresponsible", final="responsible")
    adj = reconciler.reconcile(user_id, justified, WEDNESDAY)

    assert not adj.adjusted
    assert reconciler.get_weekly_budget(user_id) == Decimal("850")


def test_reconcile_never_lowers_budget(reconciler, db_session, user_id):
    reconciler.set_weekly_budget(user_id, Decimal("2000"))
    _add_tx(db_session, user_id, "1200")
    justified = _add_tx(db_session, user_id, "300", classification="irresponsible", final="responsible")

    adj = reconciler.reconcile(user_id, justified, WEDNESDAY)

    assert not adj.adjusted
    assert reconciler.get_weekly_budget(user_id) == Decimal("2000")


def test_only_irresponsible_reconciles(reconciler, db_session, user_id):
    _add_tx(db_session, user_id, "900")
    neutral = SimpleNamespace(original_classification="neutral")

    adj = reconciler.reconcile(user_id, neutral, WEDNESDAY)

    assert not adj.adjusted
    assert reconciler.get_weekly_budget(user_id) == Decimal("850")


def test_back_to_back_reconciles_do_not_compound(reconciler, db_session, user_id):
    _add_tx(db_session, user_id, "600")
    first = _add_tx(db_session, user_id, "300", classification="irresponsible", final="responsible")
    reconciler.reconcile(user_id, first, WEDNESDAY)

    # same spending, budget already covers it
    adj = reconciler.reconcile(user_id, first, WEDNESDAY)
    assert not adj.adjusted
    assert reconciler.get_weekly_budget(user_id) == Decimal("990")


@pytest.mark.parametrize("amount", ["0", "-10", "0.001", "0.004", "NaN", "Infinity"])
def test_set_budget_must_be_positive(reconciler, user_id, amount):
    with pytest.raises(ValidationError):
        reconciler.set_weekly_budget(user_id, Decimal(amount))


def test_user_may_lower_budget(reconciler, user_id):
    reconciler.set_weekly_budget(user_id, Decimal("400"))
    assert reconciler.get_weekly_budget(user_id) == Decimal("400")


def test_set_budget_rounds_to_cents(reconciler, user_id):
    assert reconciler.set_weekly_budget(user_id, Decimal("12.345")) == Decimal("12.34")
    assert reconciler.get_weekly_budget(user_id) == Decimal("12.34")
