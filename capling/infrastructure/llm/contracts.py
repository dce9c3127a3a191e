"""
Collaborator contracts for transaction classification and justification review.

TransactionLedger depends only on these ABCs; the LLM-backed implementations
live in capling.infrastructure.llm.client.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from capling.domain.classification import (
    ClassificationResult,
    JustificationVerdict,
    classify_by_rules,
    evaluate_justification_by_rules,
)


class TransactionClassifier(ABC):
    """
    merchant/amount/description -> classification + narrative

    Implementations raise UpstreamError on timeout, transport failure or a
    malformed reply; the caller falls back to RuleBasedClassifier.
    """

    @abstractmethod
    def classify(
        self,
        merchant: str,
        amount: Decimal,
        description: str,
        account_balance: Optional[Decimal] = None,
    ) -> ClassificationResult:
        pass


class JustificationEvaluator(ABC):
    """
    justification text + original classification -> validity verdict

    Implementations raise UpstreamError on failure; nothing may be written
    by the caller in that case.
    """

    @abstractmethod
    def evaluate(
        self,
        merchant: str,
        amount: Decimal,
        description: str,
        justification_text: str,
        original_classification: str,
    ) -> JustificationVerdict:
        pass


class RuleBasedClassifier(TransactionClassifier):
    """Deterministic amount/keyword heuristics; never fails."""

    def classify(self, merchant, amount, description, account_balance=None) -> ClassificationResult:
        return classify_by_rules(merchant, amount, description)


class RuleBasedEvaluator(JustificationEvaluator):
    """Deterministic keyword evaluator; never fails."""

    def evaluate(self, merchant, amount, description, justification_text,
                 original_classification) -> JustificationVerdict:
        return evaluate_justification_by_rules(justification_text)
