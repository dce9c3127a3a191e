"""
Transaction API endpoints
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from capling.api.deps import get_classifier, get_current_user, get_db, get_evaluator
from capling.application.budget import BudgetAdjustment
from capling.application.transactions import TransactionLedger
from capling.infrastructure.db.models import TransactionRecord, User
from capling.infrastructure.llm.contracts import JustificationEvaluator, TransactionClassifier


router = APIRouter(prefix="/api/v1/transactions", tags=["transactions"])


# === Request/Response models ===

class CreateTransactionRequest(BaseModel):
    merchant: str
    amount: Decimal
    category: str = "shopping"
    description: str = ""
    kind: str = "debit"  # debit / credit
    occurred_at: Optional[datetime] = None

    @field_validator("merchant")
    @classmethod
    def validate_merchant(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Merchant is required")
        return v


class JustificationRequest(BaseModel):
    justification: str = Field(min_length=1)


class TransactionResponse(BaseModel):
    transaction_id: int
    kind: str
    amount: str  # Decimal as string
    merchant: str
    category: str
    description: str
    classification: str
    original_classification: str
    final_classification: Optional[str]
    justification_status: str
    justification: Optional[str]
    reflection: str
    confidence: Optional[float]
    reasoning: Optional[str]
    occurred_at: datetime
    occurred_on: date


class CreateTransactionResponse(BaseModel):
    transaction: TransactionResponse
    classifier: str
    balance_updated: bool
    new_balance: Optional[str]
    xp_awarded: bool
    warnings: list[str]


class BudgetAdjustmentResponse(BaseModel):
    adjusted: bool
    previous_budget: Optional[str]
    new_budget: Optional[str]
    weekly_spending: Optional[str]
    reason: str


class JustificationResponse(BaseModel):
    transaction: TransactionResponse
    is_valid: bool
    reasoning: str
    budget_adjustment: Optional[BudgetAdjustmentResponse]
    xp_awarded: bool
    warnings: list[str]


# === Helpers ===

def _money(value) -> Optional[str]:
    if value is None:
        return None
    return f"{Decimal(str(value)):.2f}"


def _to_response(tx: TransactionRecord) -> TransactionResponse:
    return TransactionResponse(
        transaction_id=tx.transaction_id,
        kind=tx.kind,
        amount=_money(tx.amount),
        merchant=tx.merchant,
        category=tx.category,
        description=tx.description,
        classification=tx.classification,
        original_classification=tx.original_classification,
        final_classification=tx.final_classification,
        justification_status=tx.justification_status,
        justification=tx.justification,
        reflection=tx.reflection,
        confidence=tx.confidence,
        reasoning=tx.reasoning,
        occurred_at=tx.occurred_at,
        occurred_on=tx.occurred_on,
    )


def _adjustment_response(adj: Optional[BudgetAdjustment]) -> Optional[BudgetAdjustmentResponse]:
    if adj is None:
        return None
    return BudgetAdjustmentResponse(
        adjusted=adj.adjusted,
        previous_budget=_money(adj.previous_budget),
        new_budget=_money(adj.new_budget),
        weekly_spending=_money(adj.weekly_spending),
        reason=adj.reason,
    )


# === Endpoints ===

@router.post("", response_model=CreateTransactionResponse, status_code=201)
def create_transaction(
    req: CreateTransactionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    classifier: TransactionClassifier = Depends(get_classifier),
):
    """Record and classify a transaction"""
    ledger = TransactionLedger(db, classifier=classifier)
    outcome = ledger.create_transaction(
        user_id=user.id,
        merchant=req.merchant,
        amount=req.amount,
        category=req.category,
        description=req.description,
        kind=req.kind,
        occurred_at=req.occurred_at,
    )
    return CreateTransactionResponse(
        transaction=_to_response(outcome.transaction),
        classifier=outcome.classifier,
        balance_updated=outcome.balance_updated,
        new_balance=_money(outcome.new_balance),
        xp_awarded=outcome.xp_awarded,
        warnings=list(outcome.warnings),
    )


@router.get("", response_model=list[TransactionResponse])
def list_transactions(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ledger = TransactionLedger(db)
    return [_to_response(tx) for tx in ledger.list_transactions(user.id, limit=limit, offset=offset)]


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ledger = TransactionLedger(db)
    return _to_response(ledger.get_transaction(user.id, transaction_id))


@router.post("/{transaction_id}/justification", response_model=JustificationResponse)
def submit_justification(
    transaction_id: int,
    req: JustificationRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    evaluator: JustificationEvaluator = Depends(get_evaluator),
):
    """Justify a pending (neutral / irresponsible) transaction"""
    ledger = TransactionLedger(db, evaluator=evaluator)
    result = ledger.submit_justification(user.id, transaction_id, req.justification)
    return JustificationResponse(
        transaction=_to_response(result.transaction),
        is_valid=result.is_valid,
        reasoning=result.reasoning,
        budget_adjustment=_adjustment_response(result.budget_adjustment),
        xp_awarded=result.xp_awarded,
        warnings=list(result.warnings),
    )
