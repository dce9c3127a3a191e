"""
SQLAlchemy ORM models (ledger tables + progression projection)
"""
from decimal import Decimal
from datetime import date as date_type
from sqlalchemy import (
    String, DateTime, Integer, Text, TIMESTAMP, Date, Float, func, Boolean, Numeric,
    UniqueConstraint, Index, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from capling.infrastructure.db.session import Base


class User(Base):
    """
    Application user (authentication lives outside this service)
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )


class UserBudgetProfile(Base):
    """
    Weekly budget per user.

    Written by BudgetReconciler (only ever raises it) or an explicit user edit.
    """
    __tablename__ = "user_profiles"
    __table_args__ = (
        CheckConstraint("weekly_budget > 0", name="ck_user_profiles_weekly_budget_positive"),
    )

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    weekly_budget: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=2), nullable=False)
    updated_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class Account(Base):
    """Spending account, one per user. Balance is signed."""
    __tablename__ = "accounts"

    account_id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, server_default="Main Checking")
    balance: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=2), nullable=False)
    updated_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class TransactionRecord(Base):
    """
    Classified transaction.

    Mutated only by the justification transition; never deleted.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        Index("ix_transactions_user_occurred_on", "user_id", "occurred_on"),
    )

    transaction_id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False)

    kind: Mapped[str] = mapped_column(String(10), nullable=False)  # debit / credit
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=2), nullable=False)
    merchant: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False, server_default="shopping")
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")

    classification: Mapped[str] = mapped_column(String(20), nullable=False)
    original_classification: Mapped[str] = mapped_column(String(20), nullable=False)
    final_classification: Mapped[str | None] = mapped_column(String(20), nullable=True)

    justification_status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)

    reflection: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)

    occurred_at: Mapped[DateTime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    # Logical day (configured time zone) used for weekly windows
    occurred_on: Mapped[date_type] = mapped_column(Date, nullable=False)

    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )


# ============================================================================
# Progression
# ============================================================================


class ProgressionAccount(Base):
    """
    Projection over experience_events: level, xp, streak, lessons read.

    Counters are only changed with store-level increments.
    """
    __tablename__ = "progression_accounts"
    __table_args__ = (
        CheckConstraint("current_level BETWEEN 1 AND 50", name="ck_progression_level_range"),
        CheckConstraint("total_xp >= 0", name="ck_progression_total_xp"),
    )

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    consecutive_happy_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    lessons_read: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    last_happiness_check: Mapped[DateTime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_happiness_day: Mapped[date_type | None] = mapped_column(Date, nullable=True)

    updated_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ExperienceEvent(Base):
    """
    Append-only experience log - source of truth for XP audit.
    """
    __tablename__ = "experience_events"
    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_experience_events_user_key"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    xp_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    metadata_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class Lesson(Base):
    """Daily lesson shown in the learn tab (generated outside this service)."""
    __tablename__ = "lessons"

    lesson_id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    lesson_type: Mapped[str] = mapped_column(String(32), nullable=False, server_default="tip")
    content: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class LessonReadRecord(Base):
    """Idempotency guard for lesson_read XP: one row per (user, lesson)."""
    __tablename__ = "lesson_reads"
    __table_args__ = (
        UniqueConstraint("user_id", "lesson_id", name="uq_lesson_reads_user_lesson"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    lesson_id: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    read_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class BadgeUnlockRecord(Base):
    """First time a badge became earned; drives at-most-once notification."""
    __tablename__ = "badge_unlocks"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_badge_unlocks_user_badge"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    badge_id: Mapped[str] = mapped_column(String(64), nullable=False)
    unlocked_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
