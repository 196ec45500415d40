"""Summary: Intent parsing, category sets and amount normalization.

Importance: Turns loosely shaped classifier or user-edited payloads into validated intents.
Alternatives: Pass raw dictionaries through to the router and validate per handler.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from voicepilot.errors import ValidationError
from voicepilot.models import IntentType


RECOGNIZED_CATEGORIES: dict[IntentType, frozenset[str]] = {
    IntentType.LOG: frozenset({"expense", "income", "contact", "event"}),
    IntentType.QUERY: frozenset({"calendar", "finance", "contact", "task", "general"}),
    IntentType.ACT: frozenset(
        {"email", "event", "todo", "workspace", "contact", "transaction", "draft"}
    ),
}

INCOME = "Income"
PERSONAL_EXPENSES = "Personal Expenses"
BUSINESS_EXPENSES = "Business Expenses"


@dataclass(frozen=True)
class Intent:
    """Summary: Structured interpretation of an utterance.

    Importance: The only shape the controller, router and session store exchange.
    Alternatives: Model each type/category pair as its own class.
    """

    type: IntentType
    category: str
    title: str = ""
    detail: str = ""
    confidence: float | None = None
    entities: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_payload(payload: dict[str, Any]) -> "Intent":
        """Summary: Build and validate an Intent from a wire payload.

        Importance: Accepts both `type` and `intentType` keys as sent by clients and the classifier.
        Alternatives: Require a single canonical key and reject the other.
        """

        if not isinstance(payload, dict):
            raise ValidationError("Intent payload must be an object")
        raw_type = str(payload.get("type") or payload.get("intentType") or "").strip().lower()
        try:
            intent_type = IntentType(raw_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown intent type: {raw_type or '<missing>'}") from exc
        category = str(payload.get("category") or "").strip().lower()
        if intent_type is IntentType.QUERY and not category:
            category = "general"
        if category not in RECOGNIZED_CATEGORIES[intent_type]:
            raise ValidationError(
                f"Unknown {intent_type.value.upper()} category: {category or '<missing>'}"
            )
        entities = payload.get("entities") or {}
        if not isinstance(entities, dict):
            raise ValidationError("Intent entities must be an object")
        return Intent(
            type=intent_type,
            category=category,
            title=str(payload.get("title") or ""),
            detail=str(payload.get("detail") or ""),
            confidence=_parse_confidence(payload.get("confidence")),
            entities=dict(entities),
        )

    def to_payload(self) -> dict[str, Any]:
        """Summary: Serialize the intent for the execution request and session record."""

        return {
            "type": self.type.value,
            "category": self.category,
            "title": self.title,
            "detail": self.detail,
            "confidence": self.confidence,
            "entities": dict(self.entities),
        }


def parse_amount(value: Any) -> float:
    """Summary: Coerce a classifier or user-edited amount into a float.

    Importance: Classifiers return numbers, strings like "$1,200" or nothing at all.
    Alternatives: Default unparseable amounts to zero.
    """

    if isinstance(value, bool) or value is None:
        raise ValidationError("Transaction amount is required")
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[,$\s]", "", str(value))
    try:
        return float(cleaned)
    except ValueError as exc:
        raise ValidationError(f"Transaction amount is not a number: {value}") from exc


def normalize_amount(amount: float, transaction_category: str) -> float:
    """Summary: Force the sign of an amount from its transaction category.

    Importance: Income is always positive and every other category negative, whatever the input sign.
    Alternatives: Trust the sign supplied by the classifier.
    """

    magnitude = abs(amount)
    if transaction_category == INCOME:
        return magnitude
    return -magnitude


def _parse_confidence(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return None
    return min(1.0, max(0.0, confidence))
