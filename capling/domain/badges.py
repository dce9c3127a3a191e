"""
Badge catalogue - pure predicates over a snapshot of user aggregates.

Predicates never look at the clock or the database: the same BadgeContext
always yields the same set of satisfied badges.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Sequence

from capling.domain.classification import Classification, effective_classification
from capling.utils.dates import week_start

COFFEE_WORDS = ("starbucks", "coffee")
ACCOUNT_BUILDER_BALANCE = Decimal("1000")


@dataclass(frozen=True)
class BadgeTransaction:
    """The slice of a transaction the badge predicates read."""
    merchant: str
    description: str
    amount: Decimal
    classification: str
    final_classification: str | None
    occurred_on: date
    category: str = ""

    @property
    def effective_classification(self) -> str:
        return effective_classification(self.final_classification, self.classification)


@dataclass(frozen=True)
class BadgeContext:
    transactions: Sequence[BadgeTransaction]
    balance: Decimal
    weekly_budget: Decimal
    lessons_read: int
    consecutive_happy_days: int
    today: date

    @property
    def week_transactions(self) -> list[BadgeTransaction]:
        start = week_start(self.today)
        return [tx for tx in self.transactions if tx.occurred_on >= start]

    @property
    def weekly_spending(self) -> Decimal:
        return sum(
            (tx.amount for tx in self.week_transactions
             if tx.effective_classification != Classification.INCOME.value),
            Decimal("0"),
        )

    @property
    def under_budget(self) -> bool:
        return self.weekly_spending <= self.weekly_budget


def _is_coffee(tx: BadgeTransaction) -> bool:
    if tx.category == "coffee":
        return True
    merchant = tx.merchant.lower()
    return any(w in merchant for w in COFFEE_WORDS) or "coffee" in (tx.description or "").lower()


@dataclass(frozen=True)
class BadgeDefinition:
    badge_id: str
    title: str
    description: str
    emoji: str
    category: str  # spending / saving / streak / milestone
    predicate: Callable[[BadgeContext], bool]


BADGES: tuple[BadgeDefinition, ...] = (
    BadgeDefinition(
        "first-transaction", "Getting Started", "Made your first transaction", "🎯", "milestone",
        lambda ctx: len(ctx.transactions) >= 1,
    ),
    BadgeDefinition(
        "smart-spender", "Smart Spender", "Stayed under budget for a week", "💰", "spending",
        lambda ctx: len(ctx.week_transactions) > 0 and ctx.under_budget,
    ),
    BadgeDefinition(
        "coffee-lover", "Coffee Lover", "Made 5+ coffee purchases", "☕", "spending",
        lambda ctx: sum(1 for tx in ctx.transactions if _is_coffee(tx)) >= 5,
    ),
    BadgeDefinition(
        "responsible-shopper", "Responsible Shopper", "Made 10+ responsible purchases", "🛡️", "spending",
        lambda ctx: sum(
            1 for tx in ctx.transactions
            if tx.effective_classification == Classification.RESPONSIBLE.value
        ) >= 10,
    ),
    BadgeDefinition(
        "account-builder", "Account Builder", "Built your account balance to $1000+", "🏦", "saving",
        lambda ctx: ctx.balance >= ACCOUNT_BUILDER_BALANCE,
    ),
    BadgeDefinition(
        "transaction-tracker", "Transaction Tracker", "Tracked 25+ transactions", "📊", "milestone",
        lambda ctx: len(ctx.transactions) >= 25,
    ),
    BadgeDefinition(
        "budget-master", "Budget Master", "Mastered your budget management", "👑", "spending",
        lambda ctx: len(ctx.transactions) >= 20 and ctx.under_budget,
    ),
    BadgeDefinition(
        "goal-crusher", "Goal Crusher", "Making progress toward your goals", "🎯", "saving",
        lambda ctx: len(ctx.transactions) >= 15,
    ),
    BadgeDefinition(
        "bookworm", "Bookworm", "Read 5+ lessons", "📚", "milestone",
        lambda ctx: ctx.lessons_read >= 5,
    ),
    BadgeDefinition(
        "sunshine-streak", "Sunshine Streak", "Kept Capling happy for 7 days in a row", "🌞", "streak",
        lambda ctx: ctx.consecutive_happy_days >= 7,
    ),
)

BADGES_BY_ID: dict[str, BadgeDefinition] = {b.badge_id: b for b in BADGES}


def satisfied_badges(ctx: BadgeContext) -> list[str]:
    """Ids of badges whose predicate holds for ctx, in catalogue order."""
    return [b.badge_id for b in BADGES if b.predicate(ctx)]
