"""
Transaction use cases - classification, posting and the justification flow.

create_transaction:
    classify (fallback to rules on UpstreamError) → insert → post to balance
    → responsible_purchase XP
submit_justification:
    evaluate → conditional pending→justified|rejected → budget reconcile → XP

Every step after the transaction insert is committed on its own; a failing
later step is reported on the result instead of undoing earlier ones.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from capling.application.budget import BudgetAdjustment, BudgetReconciler
from capling.application.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    UpstreamError,
    ValidationError,
)
from capling.application.progression import ProgressionLedger
from capling.config import get_settings
from capling.domain.classification import (
    Classification,
    ClassificationResult,
    JustificationStatus,
    TransactionKind,
    can_transition,
    classify_by_rules,
    initial_status,
)
from capling.infrastructure.db.models import Account, TransactionRecord
from capling.infrastructure.db.upsert import insert_ignore
from capling.infrastructure.llm.client import build_classifier, build_evaluator
from capling.infrastructure.llm.contracts import JustificationEvaluator, TransactionClassifier
from capling.utils.dates import logical_day, utc_now
from capling.utils.money import parse_positive_amount

logger = logging.getLogger(__name__)

CLASSIFIER_PRIMARY = "primary"
CLASSIFIER_FALLBACK = "fallback"
CLASSIFIER_NONE = "none"  # credits are never classified

INCOME_RESULT = ClassificationResult(
    classification=Classification.INCOME,
    reflection="Money in! Capling is thrilled.",
    confidence=1.0,
    reasoning="Credit transaction",
)


@dataclass(frozen=True)
class TransactionOutcome:
    transaction: TransactionRecord
    classifier: str
    balance_updated: bool
    new_balance: Optional[Decimal]
    xp_awarded: bool
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class JustificationResult:
    transaction: TransactionRecord
    is_valid: bool
    reasoning: str
    budget_adjustment: Optional[BudgetAdjustment]
    xp_awarded: bool
    warnings: tuple[str, ...] = ()


def _parse_amount(amount) -> Decimal:
    value, error = parse_positive_amount(amount)
    if error:
        raise ValidationError(error)
    return value


class TransactionLedger:
    def __init__(
        self,
        db: Session,
        classifier: TransactionClassifier | None = None,
        evaluator: JustificationEvaluator | None = None,
        tz_name: str | None = None,
    ):
        settings = get_settings()
        self.db = db
        self._classifier = classifier
        self._evaluator = evaluator
        self.tz_name = tz_name or settings.TIMEZONE
        self.starting_balance = settings.STARTING_BALANCE
        self.progression = ProgressionLedger(db)
        self.budget = BudgetReconciler(db)

    # Collaborators are built on first use

    @property
    def classifier(self) -> TransactionClassifier:
        if self._classifier is None:
            self._classifier = build_classifier()
        return self._classifier

    @property
    def evaluator(self) -> JustificationEvaluator:
        if self._evaluator is None:
            self._evaluator = build_evaluator()
        return self._evaluator

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_account(self, user_id: int) -> Account:
        """The user's spending account, created with the starting balance on first use."""
        try:
            insert_ignore(
                self.db,
                Account,
                {"user_id": user_id, "title": "Main Checking", "balance": self.starting_balance},
                ["user_id"],
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to create account") from exc

        return (
            self.db.query(Account)
            .filter(Account.user_id == user_id)
            .populate_existing()
            .one()
        )

    def _post_to_balance(self, account_id: int, delta: Decimal) -> Decimal:
        row = self.db.execute(
            update(Account)
            .where(Account.account_id == account_id)
            .values(balance=Account.balance + delta)
            .returning(Account.balance)
            .execution_options(synchronize_session=False)
        ).one()
        return Decimal(str(row.balance))

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_transaction(
        self,
        user_id: int,
        merchant: str,
        amount,
        category: str = "shopping",
        description: str = "",
        kind: str = TransactionKind.DEBIT.value,
        occurred_at: datetime | None = None,
    ) -> TransactionOutcome:
        """
        Record a transaction, classify it and post it to the account balance.

        Raises:
            ValidationError: amount <= 0, blank merchant, unknown kind
            PersistenceError: the transaction row could not be written
        """
        amount = _parse_amount(amount)
        merchant = (merchant or "").strip()
        if not merchant:
            raise ValidationError("Merchant is required")
        try:
            kind = TransactionKind(kind)
        except ValueError as exc:
            raise ValidationError(f"Unknown transaction kind: {kind!r}") from exc
        description = (description or "").strip()
        category = (category or "shopping").strip()

        occurred_at = occurred_at or utc_now()
        account = self.get_account(user_id)

        if kind == TransactionKind.CREDIT:
            result, classifier_used = INCOME_RESULT, CLASSIFIER_NONE
        else:
            result, classifier_used = self._classify(merchant, amount, description, Decimal(str(account.balance)))

        status = JustificationStatus.NONE if kind == TransactionKind.CREDIT else initial_status(result.classification)
        record = TransactionRecord(
            user_id=user_id,
            account_id=account.account_id,
            kind=kind.value,
            amount=amount,
            merchant=merchant,
            category=category,
            description=description,
            classification=result.classification.value,
            original_classification=result.classification.value,
            final_classification=result.classification.value,
            justification_status=status.value,
            reflection=result.reflection,
            confidence=result.confidence,
            reasoning=result.reasoning,
            occurred_at=occurred_at,
            occurred_on=logical_day(occurred_at, self.tz_name),
        )
        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to insert transaction for user_id=%s", user_id)
            raise PersistenceError("Failed to save transaction") from exc

        transaction_id = record.transaction_id
        warnings: list[str] = []

        # Balance
        delta = amount if kind == TransactionKind.CREDIT else -amount
        new_balance: Optional[Decimal] = None
        try:
            new_balance = self._post_to_balance(account.account_id, delta)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Balance update failed for transaction #%s", transaction_id)
            warnings.append("Transaction saved but the account balance was not updated")

        # XP
        xp_awarded = False
        if kind == TransactionKind.DEBIT and result.classification == Classification.RESPONSIBLE:
            xp_awarded = self._award_responsible_purchase(user_id, transaction_id, merchant, amount, warnings)

        logger.info(
            "Transaction #%s for user %s: %s %s at %s classified %s (%s)",
            transaction_id, user_id, kind.value, amount, merchant, result.classification.value, classifier_used,
        )
        return TransactionOutcome(
            transaction=record,
            classifier=classifier_used,
            balance_updated=new_balance is not None,
            new_balance=new_balance,
            xp_awarded=xp_awarded,
            warnings=tuple(warnings),
        )

    def _classify(self, merchant: str, amount: Decimal, description: str,
                  balance: Decimal) -> tuple[ClassificationResult, str]:
        try:
            result = self.classifier.classify(merchant, amount, description, account_balance=balance)
        except UpstreamError as exc:
            logger.warning("Classifier unavailable, using rule-based fallback: %s", exc)
            return classify_by_rules(merchant, amount, description), CLASSIFIER_FALLBACK
        if result.classification == Classification.INCOME:
            logger.warning("Classifier returned income for a debit, using rule-based fallback")
            return classify_by_rules(merchant, amount, description), CLASSIFIER_FALLBACK
        return result, CLASSIFIER_PRIMARY

    def _award_responsible_purchase(self, user_id: int, transaction_id: int, merchant: str,
                                    amount: Decimal, warnings: list[str]) -> bool:
        try:
            award = self.progression.award_responsible_purchase(user_id, transaction_id, merchant, amount)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Responsible purchase XP failed for transaction #%s", transaction_id)
            warnings.append("XP could not be awarded")
            return False
        return award.awarded

    # ------------------------------------------------------------------
    # Justification
    # ------------------------------------------------------------------

    def submit_justification(
        self,
        user_id: int,
        transaction_id: int,
        justification_text: str,
        now: datetime | None = None,
    ) -> JustificationResult:
        """
        Resolve a pending transaction with the user's justification.

        Raises:
            ValidationError: blank justification
            NotFoundError: unknown transaction or owned by another user
            ConflictError: transaction is not pending (or was resolved concurrently)
            UpstreamError: evaluator failed; nothing is written
            PersistenceError: the status transition could not be written
        """
        text = (justification_text or "").strip()
        if not text:
            raise ValidationError("Justification text is required")

        record = self.get_transaction(user_id, transaction_id)
        # justified and rejected are reachable from pending only
        if not can_transition(JustificationStatus(record.justification_status), JustificationStatus.JUSTIFIED):
            raise ConflictError(
                f"Transaction #{transaction_id} is {record.justification_status}, not pending"
            )

        verdict = self.evaluator.evaluate(
            record.merchant,
            Decimal(str(record.amount)),
            record.description,
            text,
            record.original_classification,
        )

        if verdict.is_valid:
            values = {
                "justification_status": JustificationStatus.JUSTIFIED.value,
                "classification": Classification.RESPONSIBLE.value,
                "final_classification": Classification.RESPONSIBLE.value,
                "justification": text,
            }
            if verdict.new_reflection:
                values["reflection"] = verdict.new_reflection
        else:
            values = {
                "justification_status": JustificationStatus.REJECTED.value,
                "classification": record.original_classification,
                "final_classification": record.original_classification,
                "justification": text,
            }

        try:
            updated = self.db.execute(
                update(TransactionRecord)
                .where(
                    TransactionRecord.transaction_id == transaction_id,
                    TransactionRecord.user_id == user_id,
                    TransactionRecord.justification_status == JustificationStatus.PENDING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            ).rowcount
            if updated != 1:
                self.db.rollback()
                raise ConflictError(f"Transaction #{transaction_id} was already resolved")
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Justification write failed for transaction #%s", transaction_id)
            raise PersistenceError("Failed to save justification") from exc

        self.db.refresh(record)
        logger.info(
            "Justification for transaction #%s: %s",
            transaction_id, values["justification_status"],
        )

        if not verdict.is_valid:
            return JustificationResult(
                transaction=record,
                is_valid=False,
                reasoning=verdict.reasoning,
                budget_adjustment=None,
                xp_awarded=False,
            )

        warnings: list[str] = []
        today = logical_day(now or utc_now(), self.tz_name)
        adjustment: Optional[BudgetAdjustment] = None
        try:
            adjustment = self.budget.reconcile(user_id, record, today)
        except PersistenceError as exc:
            logger.warning("Budget reconciliation skipped for transaction #%s: %s", transaction_id, exc)
            warnings.append("Justification saved but the weekly budget was not reconciled")

        xp_awarded = self._award_responsible_purchase(
            user_id, transaction_id, record.merchant, Decimal(str(record.amount)), warnings
        )

        return JustificationResult(
            transaction=record,
            is_valid=True,
            reasoning=verdict.reasoning,
            budget_adjustment=adjustment,
            xp_awarded=xp_awarded,
            warnings=tuple(warnings),
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_transaction(self, user_id: int, transaction_id: int) -> TransactionRecord:
        record = (
            self.db.query(TransactionRecord)
            .filter(
                TransactionRecord.transaction_id == transaction_id,
                TransactionRecord.user_id == user_id,
            )
            .populate_existing()
            .first()
        )
        if not record:
            raise NotFoundError(f"Transaction #{transaction_id} not found")
        return record

    def list_transactions(self, user_id: int, limit: int = 50, offset: int = 0) -> list[TransactionRecord]:
        """Newest first."""
        if limit < 1:
            raise ValidationError("limit must be >= 1")
        return (
            self.db.query(TransactionRecord)
            .filter(TransactionRecord.user_id == user_id)
            .order_by(TransactionRecord.occurred_at.desc(), TransactionRecord.transaction_id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
