"""
Tests for badge predicates (pure, no database)
"""
from datetime import date, timedelta
from decimal import Decimal

from capling.domain.badges import BADGES, BADGES_BY_ID, BadgeContext, BadgeTransaction, satisfied_badges

TODAY = date(2026, 3, 4)  # Wednesday, week starts Sunday 2026-03-01


def _tx(merchant="Shop", amount="10", classification="responsible", final=None,
        occurred_on=TODAY, description="", category="shopping") -> BadgeTransaction:
    return BadgeTransaction(
        merchant=merchant,
        description=description,
        amount=Decimal(amount),
        classification=classification,
        final_classification=final if final is not None else classification,
        occurred_on=occurred_on,
        category=category,
    )


def _ctx(transactions=(), balance="500", weekly_budget="850", lessons_read=0, happy_days=0) -> BadgeContext:
    return BadgeContext(
        transactions=list(transactions),
        balance=Decimal(balance),
        weekly_budget=Decimal(weekly_budget),
        lessons_read=lessons_read,
        consecutive_happy_days=happy_days,
        today=TODAY,
    )


def test_catalogue_ids_are_unique():
    assert len(BADGES_BY_ID) == len(BADGES) == 10


def test_empty_context_earns_nothing():
    assert satisfied_badges(_ctx()) == []


def test_first_transaction():
    assert "first-transaction" in satisfied_badges(_ctx([_tx()]))


def test_smart_spender_needs_activity_this_week():
    last_week = _tx(occurred_on=TODAY - timedelta(days=7))
    assert "smart-spender" not in satisfied_badges(_ctx([last_week]))
    assert "smart-spender" in satisfied_badges(_ctx([_tx()]))


def test_smart_spender_lost_over_budget():
    ctx = _ctx([_tx(amount="900")], weekly_budget="850")
    assert not ctx.under_budget
    assert "smart-spender" not in satisfied_badges(ctx)


def test_income_excluded_from_weekly_spending():
    ctx = _ctx([
        _tx(amount="100"),
        _tx(amount="5000", classification="income"),
    ])
    assert ctx.weekly_spending == Decimal("100")


def test_coffee_lover_matches_merchant_or_description():
    txs = [_tx(merchant="Starbucks") for _ in range(3)]
    txs += [_tx(merchant="Cafe", description="Morning coffee") for _ in range(2)]
    assert "coffee-lover" in satisfied_badges(_ctx(txs))
    assert "coffee-lover" not in satisfied_badges(_ctx(txs[:4]))


def test_coffee_lover_counts_coffee_category():
    txs = [_tx(merchant="Blue Bottle", category="coffee") for _ in range(5)]
    assert "coffee-lover" in satisfied_badges(_ctx(txs))
    assert "coffee-lover" not in satisfied_badges(_ctx(txs[:4]))


def test_responsible_shopper_uses_effective_classification():
    justified = [_tx(classification="irresponsible", final="responsible") for _ in range(10)]
    assert "responsible-shopper" in satisfied_badges(_ctx(justified))

    rejected = [_tx(classification="irresponsible") for _ in range(10)]
    assert "responsible-shopper" not in satisfied_badges(_ctx(rejected))


def test_account_builder_threshold():
    assert "account-builder" in satisfied_badges(_ctx(balance="1000"))
    assert "account-builder" not in satisfied_badges(_ctx(balance="999.99"))


def test_transaction_count_badges():
    txs = [_tx(amount="1") for _ in range(25)]
    earned = satisfied_badges(_ctx(txs))
    assert {"transaction-tracker", "budget-master", "goal-crusher"} <= set(earned)

    earned = satisfied_badges(_ctx(txs[:15]))
    assert "goal-crusher" in earned
    assert "budget-master" not in earned


def test_progression_badges():
    earned = satisfied_badges(_ctx(lessons_read=5, happy_days=7))
    assert earned == ["bookworm", "sunshine-streak"]


def test_deterministic():
    ctx = _ctx([_tx(merchant="Starbucks") for _ in range(6)], balance="1200")
    assert satisfied_badges(ctx) == satisfied_badges(ctx)
