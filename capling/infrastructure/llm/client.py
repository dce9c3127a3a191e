"""
LLM-backed classifier and justification evaluator (OpenAI-compatible chat API).

Every call is bounded by LLM_TIMEOUT_SECONDS. Any transport error, non-2xx
status, non-JSON content or schema violation is raised as UpstreamError.
"""
from __future__ import annotations

import json
import logging
import time
from functools import lru_cache
from decimal import Decimal
from typing import Any, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from capling.application.errors import UpstreamError
from capling.config import Settings, get_settings
from capling.domain.classification import (
    REFLECTION_MAX_LENGTH,
    ClassificationResult,
    JustificationVerdict,
    parse_classification,
)
from capling.infrastructure.llm.contracts import (
    JustificationEvaluator,
    RuleBasedClassifier,
    RuleBasedEvaluator,
    TransactionClassifier,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reply schemas
# ---------------------------------------------------------------------------

class ClassifierReply(BaseModel):
    classification: str
    reflection: str = Field(max_length=REFLECTION_MAX_LENGTH)
    confidence: float = Field(ge=0, le=1)
    reasoning: str


class EvaluatorReply(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(alias="isValid")
    reasoning: str
    new_reflection: Optional[str] = Field(default=None, alias="newReflection", max_length=REFLECTION_MAX_LENGTH)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

def build_classification_prompt(merchant: str, amount: Decimal, description: str,
                                account_balance: Optional[Decimal]) -> str:
    balance_line = f"\n- Account balance: ${account_balance:.2f}" if account_balance is not None else ""
    return f"""You are Capling, a friendly financial advisor dinosaur. Analyze this transaction and provide helpful, encouraging feedback.

Transaction Details:
- Merchant: {merchant}
- Amount: ${amount:.2f}
- Description: {description}{balance_line}

Classify this transaction as one of:
- "responsible": Essential purchases, planned expenses, good value
- "neutral": Questionable but understandable, could be optimized
- "irresponsible": Unplanned, expensive, or potentially wasteful

Reply with JSON only, in this exact format:
{{
  "classification": "responsible|neutral|irresponsible",
  "reflection": "A friendly, encouraging one-line message (max 100 characters)",
  "confidence": 0.85,
  "reasoning": "Brief explanation of your decision (max 50 characters)"
}}"""


def build_justification_prompt(merchant: str, amount: Decimal, description: str,
                               justification_text: str, original_classification: str) -> str:
    return f"""You are Capling, a friendly financial advisor dinosaur. The user contests how a purchase was classified.

Transaction Details:
- Merchant: {merchant}
- Amount: ${amount:.2f}
- Description: {description}
- Original classification: {original_classification}

User justification: "{justification_text}"

Decide whether the justification shows the purchase was necessary or planned.

Reply with JSON only, in this exact format:
{{
  "isValid": true,
  "reasoning": "Brief explanation (max 80 characters)",
  "newReflection": "Updated one-line message for the user (max 100 characters)"
}}"""


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

@lru_cache
def shared_http_session() -> requests.Session:
    """One pooled HTTP session per process"""
    return requests.Session()


class LLMClient:
    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout_seconds: float,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.session = session or shared_http_session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        return cls(
            api_key=settings.LLM_API_KEY,
            base_url=settings.LLM_BASE_URL,
            model=settings.LLM_MODEL,
            timeout_seconds=settings.LLM_TIMEOUT_SECONDS,
        )

    def complete_json(self, prompt: str) -> dict[str, Any]:
        """Send prompt, return the reply content parsed as a JSON object."""
        started = time.perf_counter()
        try:
            resp = self.session.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": 0.7,
                    "max_tokens": 200,
                },
                timeout=self.timeout_seconds,
            )
            resp.raise_for_status()
            content = resp.json()["choices"][0]["message"]["content"]
        except requests.Timeout as exc:
            elapsed = time.perf_counter() - started
            logger.warning("LLM request timed out after %.2fs", elapsed)
            raise UpstreamError(f"LLM request timed out after {self.timeout_seconds}s") from exc
        except (requests.RequestException, KeyError, IndexError, TypeError, ValueError) as exc:
            logger.warning("LLM request failed: %s", exc)
            raise UpstreamError(f"LLM request failed: {exc}") from exc

        try:
            parsed = json.loads(_strip_code_fence(content))
        except (AttributeError, TypeError, json.JSONDecodeError) as exc:
            raise UpstreamError("LLM reply is not valid JSON") from exc
        if not isinstance(parsed, dict):
            raise UpstreamError("LLM reply is not a JSON object")

        logger.info("LLM request complete in %.2fs", time.perf_counter() - started)
        return parsed


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[4:]
    return text.strip()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class LLMTransactionClassifier(TransactionClassifier):
    def __init__(self, client: LLMClient):
        self.client = client

    def classify(self, merchant, amount, description, account_balance=None) -> ClassificationResult:
        prompt = build_classification_prompt(merchant, Decimal(amount), description, account_balance)
        raw = self.client.complete_json(prompt)
        try:
            reply = ClassifierReply.model_validate(raw)
            classification = parse_classification(reply.classification)
        except (PydanticValidationError, ValueError) as exc:
            raise UpstreamError(f"Malformed classifier reply: {exc}") from exc
        return ClassificationResult(
            classification=classification,
            reflection=reply.reflection,
            confidence=reply.confidence,
            reasoning=reply.reasoning,
        )


class LLMJustificationEvaluator(JustificationEvaluator):
    def __init__(self, client: LLMClient):
        self.client = client

    def evaluate(self, merchant, amount, description, justification_text,
                 original_classification) -> JustificationVerdict:
        prompt = build_justification_prompt(
            merchant, Decimal(amount), description, justification_text, original_classification
        )
        raw = self.client.complete_json(prompt)
        try:
            reply = EvaluatorReply.model_validate(raw)
        except PydanticValidationError as exc:
            raise UpstreamError(f"Malformed evaluator reply: {exc}") from exc
        return JustificationVerdict(
            is_valid=reply.is_valid,
            reasoning=reply.reasoning,
            new_reflection=reply.new_reflection,
        )


def build_classifier(settings: Settings | None = None) -> TransactionClassifier:
    """LLM classifier when an API key is configured, rule-based otherwise."""
    settings = settings or get_settings()
    if not settings.llm_enabled:
        logger.info("LLM_API_KEY not set, using rule-based classifier")
        return RuleBasedClassifier()
    return LLMTransactionClassifier(LLMClient.from_settings(settings))


def build_evaluator(settings: Settings | None = None) -> JustificationEvaluator:
    """LLM evaluator when an API key is configured, rule-based otherwise."""
    settings = settings or get_settings()
    if not settings.llm_enabled:
        logger.info("LLM_API_KEY not set, using rule-based justification evaluator")
        return RuleBasedEvaluator()
    return LLMJustificationEvaluator(LLMClient.from_settings(settings))
