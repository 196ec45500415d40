"""Summary: Intent and email classification helpers.

Importance: Turns transcripts into intent payloads and labels synced email.
Alternatives: Use a supervised ML classifier trained on labelled commands.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from voicepilot.ai import AiProvider, MockAiProvider
from voicepilot.errors import ClassificationParseError, ValidationError, VoicePilotError
from voicepilot.intents import Intent


logger = logging.getLogger(__name__)

EMAIL_LABELS = ("Work", "Personal", "School", "Business", "Invoices", "Newsletters", "Uncategorized")

LABEL_KEYWORDS = {
    "Invoices": ("invoice", "receipt", "payment due", "billing", "statement"),
    "Newsletters": ("newsletter", "unsubscribe", "digest", "weekly update"),
    "School": ("course", "assignment", "semester", "professor", "campus"),
    "Business": ("proposal", "contract", "client", "partnership", "quote"),
    "Work": ("meeting", "standup", "project", "deadline", "review"),
    "Personal": ("family", "birthday", "dinner", "weekend", "friend"),
}

CLASSIFICATION_PROMPT = """You are VoicePilot, an assistant that classifies voice commands into structured intents.

Analyze the voice transcript below and classify it as one of three intent types.

## Intent Types

### LOG: recording something that already happened
Categories: expense, income, contact, event
- "Log a $50 dinner expense" -> LOG/expense
- "I earned $500 from consulting" -> LOG/income
- "Met Sarah at the conference" -> LOG/contact
- "Note that I have a dentist appointment Thursday" -> LOG/event

### QUERY: asking about existing data
Categories: calendar, finance, contact, task, general
- "What meetings do I have tomorrow?" -> QUERY/calendar
- "How much did I spend this month?" -> QUERY/finance
- "Do I have Sarah's phone number?" -> QUERY/contact
- "What tasks are due this week?" -> QUERY/task
- "What's on my plate today?" -> QUERY/general

### ACT: performing an action or creating something new
Categories: email, event, todo, workspace, contact, transaction, draft
- "Send an email to John about the meeting" -> ACT/email
- "Schedule a meeting tomorrow at 2pm with the team" -> ACT/event
- "Create a task to review the contract by Friday" -> ACT/todo
- "Set up a new project called Marketing Q2" -> ACT/workspace
- "Add Sarah as a new contact with phone 555-1234" -> ACT/contact
- "Record $50 for office supplies" -> ACT/transaction
- "Draft a message to investors about Q2 results" -> ACT/draft

## Rules
1. LOG records past events; ACT creates or performs something new.
   "I spent $50 on lunch" is LOG/expense; "Record a $50 expense for lunch" is ACT/transaction.
2. ACT/email and ACT/draft: extract to, subject, body.
3. Events: extract title, date, time, duration, location, attendees.
4. ACT/todo: extract title, due_date, priority (high, medium, low).
5. ACT/workspace: extract title and type (Business, Personal, Admin, Creative).
6. Contacts: extract name or person, phone, email, company, role, whereMet.
7. Money: extract amount as a number, description, store, date, businessExpense (boolean)
   and for ACT/transaction a category of Income, Personal Expenses or Business Expenses.

## Response Format
Return only a JSON object:
{{"intentType": "log|query|act", "category": "<category>", "title": "<short summary>",
  "detail": "<full command context>", "confidence": <0.0 to 1.0>, "entities": {{...}}}}
Only include entity fields that were mentioned.

Voice transcript: "{transcript}\""""


def build_classification_prompt(transcript: str) -> str:
    return CLASSIFICATION_PROMPT.format(transcript=transcript.replace('"', "'"))


@dataclass(frozen=True)
class IntentClassifier:
    """Summary: LLM-backed transcript classifier.

    Importance: Produces the intent payload the client reviews before execution.
    Alternatives: Hand-written grammar rules per command.
    """

    ai: AiProvider

    def classify(self, transcript: str) -> dict[str, Any]:
        """Summary: Classify a transcript into an intent payload.

        Importance: Malformed model output raises ClassificationParseError and is never guessed at.
        Alternatives: Fall back to a generic QUERY intent.
        """

        text, latency_ms = self.ai.generate_text(
            build_classification_prompt(transcript), purpose="classify_intent"
        )
        logger.info("Classified transcript in %sms.", latency_ms)
        return parse_intent_reply(text)


def parse_intent_reply(text: str) -> dict[str, Any]:
    """Summary: Parse a model reply into an intent dictionary.

    Importance: Tolerates code fences around the JSON body; an unknown type or category is a parse failure.
    Alternatives: Require the provider to return bare JSON.
    """

    cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", text.strip())
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ClassificationParseError("Failed to parse classifier response as JSON") from exc
    if not isinstance(payload, dict):
        raise ClassificationParseError("Classifier response is not an object")
    check_intent(payload)
    return payload


def check_intent(payload: dict[str, Any]) -> None:
    """Summary: Reject classifier output whose type or category is outside the recognized sets."""

    try:
        Intent.from_payload(payload)
    except ValidationError as exc:
        raise ClassificationParseError(f"Classifier returned an unrecognized intent: {exc}") from exc


@dataclass(frozen=True)
class EmailLabeler:
    """Summary: Labels synced email into a fixed set of inbox categories.

    Importance: Gives synced mail a label without blocking sync on the LLM.
    Alternatives: Leave every synced message Uncategorized.
    """

    ai: AiProvider | None = None

    def label(self, emails: list[dict[str, str]]) -> list[str]:
        """Summary: Return one label per email, in order.

        Importance: LLM failures fall back to keyword labels instead of failing the sync.
        Alternatives: Skip labelling when the LLM is unavailable.
        """

        if not emails:
            return []
        if self.ai is None or isinstance(self.ai, MockAiProvider):
            return [_keyword_label(email) for email in emails]
        try:
            text, _ = self.ai.generate_text(_label_prompt(emails), purpose="label_emails")
        except VoicePilotError as exc:
            logger.warning("Email labelling failed: %s", exc)
            return [_keyword_label(email) for email in emails]
        match = re.search(r"\[[\s\S]*\]", text)
        try:
            labels = json.loads(match.group(0)) if match else []
        except json.JSONDecodeError:
            labels = []
        if not isinstance(labels, list) or len(labels) != len(emails):
            return [_keyword_label(email) for email in emails]
        return [label if label in EMAIL_LABELS else "Uncategorized" for label in labels]


def _label_prompt(emails: list[dict[str, str]]) -> str:
    lines = [
        f"{index}. From: {email.get('sender', '')[:60]} | "
        f"Subject: {email.get('subject', '')[:80]} | Preview: {email.get('preview', '')[:100]}"
        for index, email in enumerate(emails, start=1)
    ]
    return (
        f"Classify each email into exactly one category: {', '.join(EMAIL_LABELS)}.\n\n"
        "Emails:\n" + "\n".join(lines) + "\n\n"
        'Respond with ONLY a JSON array of labels in order, e.g. ["Work","Personal"].'
    )


def _keyword_label(email: dict[str, str]) -> str:
    """Summary: Pick a label from keyword matches.

    Importance: Deterministic labelling when no LLM is configured.
    Alternatives: Store explicit keyword lists per user.
    """

    text = f"{email.get('subject', '')} {email.get('preview', '')}".lower()
    for label, keywords in LABEL_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return label
    return "Uncategorized"
