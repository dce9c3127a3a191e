"""
Classification vocabulary, justification state machine and the deterministic
rule-based fallbacks used when the LLM collaborator is unavailable.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional


class Classification(str, Enum):
    RESPONSIBLE = "responsible"
    NEUTRAL = "neutral"
    IRRESPONSIBLE = "irresponsible"
    INCOME = "income"  # credits only, never produced by the classifier


class JustificationStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    JUSTIFIED = "justified"
    REJECTED = "rejected"


class TransactionKind(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


# Demo/mock vocabulary (responsible/borderline/impulsive) -> production labels.
# "borderline" means "questionable but understandable", which is what the
# production "neutral" label asks the user to justify; "impulsive" is the
# negative label.
LEGACY_VOCABULARY: dict[str, Classification] = {
    "responsible": Classification.RESPONSIBLE,
    "borderline": Classification.NEUTRAL,
    "impulsive": Classification.IRRESPONSIBLE,
}

CLASSIFIER_LABELS = (Classification.RESPONSIBLE, Classification.NEUTRAL, Classification.IRRESPONSIBLE)

REFLECTION_MAX_LENGTH = 120


def parse_classification(label: str) -> Classification:
    """
    Map a classifier label from either vocabulary onto Classification.

    Raises:
        ValueError: unknown label, or "income" (never a classifier output)
    """
    normalized = (label or "").strip().lower()
    for c in CLASSIFIER_LABELS:
        if c.value == normalized:
            return c
    if normalized in LEGACY_VOCABULARY:
        return LEGACY_VOCABULARY[normalized]
    raise ValueError(f"Unknown classification label: {label!r}")


def needs_justification(classification: Classification) -> bool:
    """Neutral and irresponsible debits can be contested by the user."""
    return classification in (Classification.NEUTRAL, Classification.IRRESPONSIBLE)


def initial_status(classification: Classification) -> JustificationStatus:
    if needs_justification(classification):
        return JustificationStatus.PENDING
    return JustificationStatus.NONE


# pending -> justified | rejected; everything else is terminal
_TRANSITIONS: dict[JustificationStatus, frozenset[JustificationStatus]] = {
    JustificationStatus.NONE: frozenset(),
    JustificationStatus.PENDING: frozenset({JustificationStatus.JUSTIFIED, JustificationStatus.REJECTED}),
    JustificationStatus.JUSTIFIED: frozenset(),
    JustificationStatus.REJECTED: frozenset(),
}


def can_transition(current: JustificationStatus, target: JustificationStatus) -> bool:
    return target in _TRANSITIONS[current]


def effective_classification(final_classification: Optional[str], classification: str) -> str:
    """final_classification when set, otherwise the working classification."""
    return final_classification or classification


@dataclass(frozen=True)
class ClassificationResult:
    classification: Classification
    reflection: str
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class JustificationVerdict:
    is_valid: bool
    reasoning: str
    new_reflection: Optional[str] = None


# ---------------------------------------------------------------------------
# Rule-based fallbacks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _KeywordRule:
    description_words: tuple[str, ...]
    merchant_words: tuple[str, ...]
    result: ClassificationResult


_HIGH_AMOUNT = Decimal("200")
_MODERATE_AMOUNT = Decimal("100")

# Later rules override earlier ones
_KEYWORD_RULES: tuple[_KeywordRule, ...] = (
    _KeywordRule(
        ("entertainment",), ("steam", "netflix"),
        ClassificationResult(Classification.NEUTRAL, "Entertainment expense - are you getting value?",
                             0.8, "Entertainment"),
    ),
    _KeywordRule(
        ("grocery", "food"), ("whole foods",),
        ClassificationResult(Classification.RESPONSIBLE, "Healthy groceries - great planning!",
                             0.9, "Essential food"),
    ),
    _KeywordRule(
        ("gas", "transport"), ("uber",),
        ClassificationResult(Classification.NEUTRAL, "Transportation - could you save here?",
                             0.7, "Transport"),
    ),
    _KeywordRule(
        ("bill", "utility", "rent"), (),
        ClassificationResult(Classification.RESPONSIBLE, "Essential bill - necessary expense!",
                             0.95, "Essential bill"),
    ),
)


def classify_by_rules(merchant: str, amount: Decimal, description: str = "") -> ClassificationResult:
    """
    Deterministic amount/keyword classifier.

    Same input always yields the same result; used whenever the LLM
    classifier is unconfigured, times out or answers with garbage.
    """
    desc = (description or "").lower()
    merchant_lower = (merchant or "").lower()
    amount = Decimal(amount)

    result = ClassificationResult(
        Classification.RESPONSIBLE, "Great choice! This purchase aligns with your goals.", 0.8, "Essential expense"
    )
    if amount > _HIGH_AMOUNT:
        result = ClassificationResult(
            Classification.IRRESPONSIBLE, "Big purchase! Did you really need this now?", 0.9, "High amount"
        )
    elif amount > _MODERATE_AMOUNT:
        result = ClassificationResult(
            Classification.NEUTRAL, "Large amount - was this planned?", 0.7, "Moderate amount"
        )

    for rule in _KEYWORD_RULES:
        if any(w in desc for w in rule.description_words) or any(w in merchant_lower for w in rule.merchant_words):
            result = rule.result

    return result


_NEED_WORDS = (
    "need", "necessary", "essential", "emergency", "planned", "budgeted", "saved up",
    "work", "school", "medical", "doctor", "health", "gift", "replace", "broken", "repair",
)
_IMPULSE_WORDS = ("bored", "just wanted", "impulse", "couldn't resist", "treat myself", "on a whim")
_MIN_JUSTIFICATION_LENGTH = 15


def evaluate_justification_by_rules(justification_text: str) -> JustificationVerdict:
    """Deterministic evaluator used when no LLM is configured."""
    text = (justification_text or "").strip().lower()

    if len(text) < _MIN_JUSTIFICATION_LENGTH:
        return JustificationVerdict(False, "Justification is too short to explain the purchase")
    if any(w in text for w in _IMPULSE_WORDS):
        return JustificationVerdict(False, "Sounds like an impulse purchase")
    if any(w in text for w in _NEED_WORDS):
        return JustificationVerdict(
            True, "Purchase served a real need", "Justified - thanks for explaining!"
        )
    return JustificationVerdict(False, "No clear need behind the purchase")
