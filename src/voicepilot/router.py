"""Summary: Intent execution router.

Importance: Dispatches a confirmed intent to a local write, a query workflow or an action workflow.
Alternatives: Let each client call storage and workflows on its own.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Callable

from voicepilot.credentials import CredentialManager
from voicepilot.errors import ProviderAuthError, ValidationError
from voicepilot.intents import (
    BUSINESS_EXPENSES,
    INCOME,
    PERSONAL_EXPENSES,
    Intent,
    normalize_amount,
    parse_amount,
)
from voicepilot.models import (
    CalendarEvent,
    Contact,
    Draft,
    IntentType,
    Todo,
    Transaction,
    Workspace,
)
from voicepilot.storage.sqlite_store import SqliteStore
from voicepilot.workflows import WorkflowClient


logger = logging.getLogger(__name__)

QUERY_WORKFLOWS = {
    "calendar": "calendar-query",
    "finance": "finance-query",
    "contact": "contacts-query",
    "task": "tasks-query",
    "general": "generic-query",
}
DEFAULT_QUERY_WORKFLOW = "generic-query"

ACT_WORKFLOWS = {
    "email": "send-email",
    "event": "create-event",
}
ACT_WORKFLOW_PROVIDER = "google"

WORKSPACE_COLORS = {
    "Business": "#D4AF37",
    "Personal": "#6B8E4E",
    "Admin": "#584738",
    "Creative": "#5B7B9A",
}
WORK_EVENT_COLOR = "#4285F4"
DEFAULT_EVENT_COLOR = "#34A853"
NO_QUERY_RESPONSE = "No response from workflow"


@dataclass(frozen=True)
class ExecutionResult:
    """Summary: Outcome of executing one intent.

    Importance: Query answers travel as `response` text, writes and actions as a `result` record.
    Alternatives: Return untyped dictionaries from every handler.
    """

    intent_type: IntentType
    result: dict[str, Any] | None = None
    response: str | None = None

    def to_payload(self) -> dict[str, Any]:
        if self.response is not None:
            return {"success": True, "response": self.response}
        return {"success": True, "result": self.result}


@dataclass
class IntentRouter:
    """Summary: Routes intents for a single user and request.

    Importance: Holds no state between requests beyond the injected collaborators.
    Alternatives: Keep a module-level router bound to a global store.
    """

    store: SqliteStore
    credentials: CredentialManager
    workflows: WorkflowClient
    user_id: int
    user_token: str | None = None
    llm_secret: str | None = None

    def __post_init__(self) -> None:
        self._handlers: dict[IntentType, dict[str, Callable[[Intent], ExecutionResult]]] = {
            IntentType.LOG: {
                "expense": self._log_transaction,
                "income": self._log_transaction,
                "contact": self._write_contact,
                "event": self._write_event,
            },
            IntentType.QUERY: {category: self._query for category in QUERY_WORKFLOWS},
            IntentType.ACT: {
                "email": self._act_external,
                "event": self._act_external,
                "todo": self._write_todo,
                "workspace": self._write_workspace,
                "contact": self._write_contact,
                "transaction": self._act_transaction,
                "draft": self._write_draft,
            },
        }

    def execute(self, intent: Intent | dict[str, Any]) -> ExecutionResult:
        """Summary: Execute an intent and return its result.

        Importance: Unknown categories raise ValidationError; nothing is retried here.
        Alternatives: Fall back to a generic handler for unrecognized categories.
        """

        if not isinstance(intent, Intent):
            intent = Intent.from_payload(intent)
        handler = self._handlers[intent.type].get(intent.category)
        if handler is None:
            raise ValidationError(
                f"Unknown {intent.type.value.upper()} category: {intent.category}"
            )
        logger.info("Executing %s/%s for user %s.", intent.type.value, intent.category, self.user_id)
        return handler(intent)

    def _log_transaction(self, intent: Intent) -> ExecutionResult:
        if intent.category == "income":
            category = INCOME
        elif intent.entities.get("businessExpense"):
            category = BUSINESS_EXPENSES
        else:
            category = PERSONAL_EXPENSES
        return self._write_transaction(intent, category)

    def _act_transaction(self, intent: Intent) -> ExecutionResult:
        requested = intent.entities.get("category")
        if requested in (INCOME, BUSINESS_EXPENSES):
            category = requested
        else:
            category = PERSONAL_EXPENSES
        return self._write_transaction(intent, category)

    def _write_transaction(self, intent: Intent, category: str) -> ExecutionResult:
        entities = intent.entities
        amount = normalize_amount(parse_amount(entities.get("amount")), category)
        transaction = Transaction(
            date=entities.get("date") or date.today().isoformat(),
            store=entities.get("store") or entities.get("description") or intent.title,
            amount=amount,
            category=category,
            summary=intent.detail or None,
        )
        row_id = self.store.add_transaction(self.user_id, transaction)
        return self._written(intent, row_id, transaction)

    def _write_contact(self, intent: Intent) -> ExecutionResult:
        entities = intent.entities
        if intent.type is IntentType.LOG:
            name = entities.get("person") or entities.get("name") or intent.title
        else:
            name = entities.get("name") or entities.get("person") or intent.title
        contact = Contact(
            name=_required(name, "Contact name"),
            role=entities.get("role"),
            company=entities.get("company"),
            phone=entities.get("phone"),
            email=entities.get("email"),
            where_met=entities.get("whereMet"),
            why=entities.get("why") or intent.detail or None,
            when_met=entities.get("whenMet") or date.today().isoformat(),
        )
        row_id = self.store.add_contact(self.user_id, contact)
        return self._written(intent, row_id, contact)

    def _write_event(self, intent: Intent) -> ExecutionResult:
        entities = intent.entities
        category = entities.get("category") or "Personal"
        event = CalendarEvent(
            title=_required(entities.get("title") or intent.title, "Event title"),
            date=entities.get("date") or date.today().isoformat(),
            time=entities.get("time"),
            duration=entities.get("duration"),
            location=entities.get("location"),
            category=category,
            color=WORK_EVENT_COLOR if category == "Work" else DEFAULT_EVENT_COLOR,
        )
        row_id = self.store.add_event(self.user_id, event)
        return self._written(intent, row_id, event)

    def _write_todo(self, intent: Intent) -> ExecutionResult:
        entities = intent.entities
        todo = Todo(
            text=_required(entities.get("title") or intent.title, "Todo title"),
            workspace_id=self.store.first_workspace_id(self.user_id),
            due_date=entities.get("due_date"),
            priority=entities.get("priority") or "medium",
        )
        row_id = self.store.add_todo(self.user_id, todo)
        return self._written(intent, row_id, todo)

    def _write_workspace(self, intent: Intent) -> ExecutionResult:
        entities = intent.entities
        workspace_type = entities.get("type")
        if workspace_type not in WORKSPACE_COLORS:
            workspace_type = "Personal"
        workspace = Workspace(
            title=_required(entities.get("title") or intent.title, "Workspace title"),
            type=workspace_type,
            color=WORKSPACE_COLORS[workspace_type],
        )
        row_id = self.store.add_workspace(self.user_id, workspace)
        return self._written(intent, row_id, workspace)

    def _write_draft(self, intent: Intent) -> ExecutionResult:
        entities = intent.entities
        draft = Draft(
            title=entities.get("subject") or intent.title,
            detail=entities.get("body") or intent.detail,
            target_account=entities.get("to"),
        )
        row_id = self.store.add_draft(self.user_id, draft)
        return self._written(intent, row_id, draft)

    def _query(self, intent: Intent) -> ExecutionResult:
        """Summary: Forward a question to its query workflow and relay the answer verbatim."""

        workflow = QUERY_WORKFLOWS.get(intent.category, DEFAULT_QUERY_WORKFLOW)
        data = self.workflows.call(
            workflow,
            {
                "user_id": self.user_id,
                "user_token": self.user_token,
                "query": intent.detail or intent.title,
                "category": intent.category,
                "llm_key": self.llm_secret,
            },
        )
        response = data.get("response")
        return ExecutionResult(
            intent_type=intent.type,
            response=response if isinstance(response, str) and response else NO_QUERY_RESPONSE,
        )

    def _act_external(self, intent: Intent) -> ExecutionResult:
        """Summary: Run an external action with a live provider token.

        Importance: Without a token the workflow is never called.
        Alternatives: Let the workflow fail on a missing token.
        """

        token = self.credentials.get_access_token(self.user_id, ACT_WORKFLOW_PROVIDER)
        if not token:
            raise ProviderAuthError(
                f"{ACT_WORKFLOW_PROVIDER.title()} is not connected. "
                f"Connect {ACT_WORKFLOW_PROVIDER} first to use {intent.category} actions."
            )
        data = self.workflows.call(
            ACT_WORKFLOWS[intent.category],
            {
                "user_id": self.user_id,
                "access_token": token,
                "category": intent.category,
                "entities": intent.entities,
                "title": intent.title,
                "detail": intent.detail,
            },
        )
        result = data.get("result", data)
        return ExecutionResult(
            intent_type=intent.type,
            result=result if isinstance(result, dict) else {"value": result},
        )

    def _written(self, intent: Intent, row_id: int, record: Any) -> ExecutionResult:
        logger.info("Stored %s %s for user %s.", type(record).__name__, row_id, self.user_id)
        result = {"id": row_id, "user_id": self.user_id}
        result.update(asdict(record))
        return ExecutionResult(intent_type=intent.type, result=result)


def _required(value: Any, label: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{label} is required")
    return text
