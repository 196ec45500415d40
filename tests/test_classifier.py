"""Summary: Tests for intent classification and email labelling.

Importance: Validates prompt handling, reply parsing and keyword fallbacks.
Alternatives: Only test against a live LLM.
"""

from __future__ import annotations

import pytest

from voicepilot.ai import AiProvider, MockAiProvider
from voicepilot.classifier import (
    EmailLabeler,
    IntentClassifier,
    build_classification_prompt,
    parse_intent_reply,
)
from voicepilot.errors import ClassificationParseError, TransientGatewayError


class StaticAiProvider(AiProvider):
    def __init__(self, reply: str | Exception) -> None:
        self._reply = reply

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        if isinstance(self._reply, Exception):
            raise self._reply
        return self._reply, 1


@pytest.mark.parametrize(
    ("transcript", "intent_type", "category"),
    [
        ("I spent $12 on coffee", "log", "expense"),
        ("I earned $500 from consulting", "log", "income"),
        ("Met Sarah at the conference", "log", "contact"),
        ("What meetings do I have tomorrow?", "query", "calendar"),
        ("How much did I spend this month?", "query", "finance"),
        ("Send an email to John about the meeting", "act", "email"),
        ("Schedule a meeting tomorrow at 2pm", "act", "event"),
        ("Create a task to review the contract", "act", "todo"),
        ("Record $50 for office supplies", "act", "transaction"),
        ("Draft a message to investors", "act", "draft"),
    ],
)
def test_mock_classifier_follows_intent_rules(transcript, intent_type, category) -> None:
    """Summary: The offline classifier mirrors the LOG, QUERY and ACT split.

    Importance: Keeps CLI and tests meaningful without an LLM key.
    Alternatives: Return a fixed intent for every transcript.
    """

    intent = IntentClassifier(MockAiProvider()).classify(transcript)
    assert intent["intentType"] == intent_type
    assert intent["category"] == category


def test_mock_classifier_extracts_expense_entities() -> None:
    intent = IntentClassifier(MockAiProvider()).classify("I spent $12 on coffee")
    assert intent["entities"]["amount"] == 12.0
    assert intent["entities"]["store"] == "coffee"


def test_prompt_embeds_transcript_safely() -> None:
    prompt = build_classification_prompt('Say "hi" to Bob')
    assert prompt.endswith("Voice transcript: \"Say 'hi' to Bob\"")


def test_parse_intent_reply_strips_code_fences() -> None:
    reply = '```json\n{"intentType": "log", "category": "event"}\n```'
    assert parse_intent_reply(reply)["category"] == "event"


@pytest.mark.parametrize("reply", ["not json", "[1, 2]", '{"category": "event"}'])
def test_parse_intent_reply_rejects_malformed_output(reply) -> None:
    with pytest.raises(ClassificationParseError):
        parse_intent_reply(reply)


def test_email_labeler_uses_keywords_without_llm() -> None:
    labels = EmailLabeler().label(
        [
            {"subject": "Weekly digest", "preview": "unsubscribe any time"},
            {"subject": "Birthday dinner", "preview": "with family"},
            {"subject": "Hello", "preview": "just saying hi"},
        ]
    )
    assert labels == ["Newsletters", "Personal", "Uncategorized"]


def test_email_labeler_reads_llm_labels() -> None:
    labeler = EmailLabeler(StaticAiProvider('Sure: ["Work", "Spam"]'))
    labels = labeler.label([{"subject": "a"}, {"subject": "b"}])
    assert labels == ["Work", "Uncategorized"]


def test_email_labeler_falls_back_when_llm_fails() -> None:
    labeler = EmailLabeler(StaticAiProvider(TransientGatewayError("503")))
    assert labeler.label([{"subject": "Invoice due", "preview": ""}]) == ["Invoices"]


def test_unrecognized_category_is_a_classification_error() -> None:
    """Summary: A category outside the recognized sets fails at classification time.

    Importance: Such intents must never reach review as a pending session.
    Alternatives: Let confirmation reject the intent later.
    """

    classifier = IntentClassifier(
        StaticAiProvider('{"intentType": "log", "category": "horoscope"}')
    )
    with pytest.raises(ClassificationParseError, match="horoscope"):
        classifier.classify("Read my horoscope")
    with pytest.raises(ClassificationParseError):
        parse_intent_reply('{"intentType": "dance", "category": "event"}')


def test_overlapping_categories_are_accepted_for_either_type() -> None:
    assert parse_intent_reply('{"intentType": "act", "category": "contact"}')["category"] == "contact"
    assert parse_intent_reply('{"intentType": "log", "category": "event"}')["intentType"] == "log"
