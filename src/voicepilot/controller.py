"""Summary: Recording session controller.

Importance: Drives one voice command from recording through review to execution with timeout,
cancellation and retry rules.
Alternatives: Chain callbacks in the client and rely on scheduler ordering.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from voicepilot.errors import (
    GatewayError,
    InvalidTransition,
    NoAudioCaptured,
    PermissionDenied,
    TransientGatewayError,
    VoicePilotError,
)
from voicepilot.executor import IntentExecutor
from voicepilot.gateway import ClassificationGateway, ClassificationResult
from voicepilot.intents import Intent
from voicepilot.models import ExecutionStatus, IntentType, SessionState
from voicepilot.recorder import AudioRecorder
from voicepilot.services import SessionService


logger = logging.getLogger(__name__)

PROCESSING_TIMEOUT_MESSAGE = "Processing timed out. Please try again."
EXECUTION_TIMEOUT_MESSAGE = "Execution timed out. Please try again."
RESULT_STATES = (SessionState.QUERY_RESULT, SessionState.ACT_RESULT, SessionState.ERROR)


class CancellationToken:
    """Summary: Abort flag shared by one recording attempt.

    Importance: Checked after every await so late results are discarded, never applied.
    Alternatives: Cancel in-flight tasks and handle CancelledError everywhere.
    """

    def __init__(self) -> None:
        self.aborted = False
        self._event = asyncio.Event()

    def abort(self) -> None:
        self.aborted = True
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class RecordingSessionController:
    """Summary: Finite-state machine for a single user's voice commands.

    Importance: Serializes transitions so each session reaches a terminal status exactly once.
    Alternatives: Track independent boolean flags per step.
    """

    def __init__(
        self,
        recorder: AudioRecorder,
        gateway: ClassificationGateway,
        executor: IntentExecutor,
        sessions: SessionService,
        timeout: float = 30.0,
        max_retries: int = 2,
        execute_timeout: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._recorder = recorder
        self._gateway = gateway
        self._executor = executor
        self._sessions = sessions
        self._timeout = timeout
        self._max_retries = max_retries
        self._execute_timeout = execute_timeout
        self._sleep = sleep
        self._token = CancellationToken()
        self.state = SessionState.IDLE
        self._clear()

    async def start_recording(self) -> None:
        """Summary: Begin a new recording.

        Importance: Rejects a second session while one is active and asks for permission once.
        Alternatives: Queue new recordings behind the active one.
        """

        if self.state is not SessionState.IDLE:
            raise InvalidTransition(f"Cannot start recording while {self.state.value}")
        granted = await asyncio.to_thread(self._recorder.has_permission)
        if not granted:
            granted = await asyncio.to_thread(self._recorder.request_permission)
        if not granted:
            raise PermissionDenied("Microphone permission is required to record")
        if self.state is not SessionState.IDLE:
            raise InvalidTransition(f"Cannot start recording while {self.state.value}")
        self._clear()
        token = self._token = CancellationToken()
        self._transition(SessionState.RECORDING)
        try:
            await asyncio.to_thread(self._recorder.start)
        except Exception as exc:
            if not token.aborted:
                self._fail(exc)

    async def stop_recording(self) -> None:
        """Summary: Stop recording, classify the audio and move to review.

        Importance: The classification round-trip is raced against the timeout and abandoned, not cancelled.
        Alternatives: Block until the gateway answers however long it takes.
        """

        if self.state is not SessionState.RECORDING:
            raise InvalidTransition(f"Cannot stop recording while {self.state.value}")
        token = self._token
        try:
            audio = await asyncio.to_thread(self._recorder.stop)
        except Exception as exc:
            if not token.aborted:
                self._fail(exc)
            return
        if token.aborted:
            return
        if audio is None or not audio.data:
            self._fail(NoAudioCaptured("No audio recorded"))
            return
        self._transition(SessionState.PROCESSING)

        task = asyncio.ensure_future(self._classify_with_retry(audio.data, token))
        waiter = asyncio.ensure_future(token.wait())
        await asyncio.wait({task, waiter}, timeout=self._timeout, return_when=asyncio.FIRST_COMPLETED)
        waiter.cancel()
        if not task.done():
            task.add_done_callback(_log_abandoned)
            if token.aborted:
                return
            self._fail(GatewayError(PROCESSING_TIMEOUT_MESSAGE))
            token.abort()
            return
        if token.aborted:
            return
        failure = task.exception()
        if failure is not None:
            self._fail(failure)
            return
        result: ClassificationResult = task.result()

        try:
            session_id = await asyncio.to_thread(
                self._sessions.create, result.transcript, result.intent, audio.uri
            )
        except Exception as exc:
            if not token.aborted:
                self._fail(exc)
            return
        if token.aborted:
            await self._finish(session_id, ExecutionStatus.CANCELLED)
            return
        self.session_id = session_id
        self.transcript = result.transcript
        self.intent = result.intent
        self._transition(SessionState.REVIEW)

    async def cancel(self) -> None:
        """Summary: Abort the current attempt and return to IDLE.

        Importance: Any completion that arrives afterwards is discarded.
        Alternatives: Let in-flight work finish and then reset.
        """

        if self.state is SessionState.IDLE:
            return
        self._token.abort()
        previous = self.state
        session_id = self.session_id
        self._clear()
        self._transition(SessionState.IDLE)
        if previous is SessionState.RECORDING:
            await asyncio.to_thread(self._recorder.cancel)
        if session_id is not None:
            await self._finish(session_id, ExecutionStatus.CANCELLED)

    async def confirm_intent(self, edited: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """Summary: Execute the reviewed, possibly edited, intent.

        Importance: Only valid in REVIEW, so a second confirm never executes twice.
        Alternatives: Track an executed flag on the session row only.
        """

        if self.state is not SessionState.REVIEW:
            return None
        token = self._token
        session_id = self.session_id
        self._transition(SessionState.PROCESSING)
        try:
            intent = Intent.from_payload(edited if edited is not None else self.intent)
            payload = intent.to_payload()
            await asyncio.to_thread(self._sessions.record_edit, session_id, payload)
            response = await self._execute(payload)
        except Exception as exc:
            if token.aborted:
                return None
            await self._finish(session_id, ExecutionStatus.ERROR, {"error": str(exc)})
            if not token.aborted:
                self._fail(exc)
            return None
        if token.aborted:
            return None
        # The result is shown even when the status write fails.
        await self._finish(session_id, ExecutionStatus.SUCCESS, response)
        if token.aborted:
            return None
        self.intent = payload
        if intent.type is IntentType.QUERY:
            self.query_response = str(response.get("response") or "")
            self._transition(SessionState.QUERY_RESULT)
        elif intent.type is IntentType.ACT:
            self.act_result = _summarize(intent, response)
            self._transition(SessionState.ACT_RESULT)
        else:
            self._clear()
            self._transition(SessionState.IDLE)
        return response

    def dismiss(self) -> None:
        """Summary: Leave a result or error state and return to IDLE."""

        if self.state not in RESULT_STATES:
            return
        self._clear()
        self._transition(SessionState.IDLE)

    async def _classify_with_retry(
        self, audio: bytes, token: CancellationToken
    ) -> ClassificationResult:
        """Summary: Call the gateway, retrying transient failures with linear backoff.

        Importance: Waits 1s then 2s between attempts and stops early once the attempt is aborted.
        Alternatives: Retry every failure with a fixed delay.
        """

        attempt = 0
        while True:
            try:
                return await asyncio.to_thread(self._gateway.classify, audio)
            except TransientGatewayError as exc:
                if attempt >= self._max_retries or token.aborted:
                    raise
                delay = float(attempt + 1)
                logger.warning(
                    "Transient gateway failure (attempt %s), retrying in %ss: %s",
                    attempt + 1,
                    delay,
                    exc,
                )
                await self._sleep(delay)
                if token.aborted:
                    raise
                attempt += 1

    async def _execute(self, payload: dict[str, Any]) -> dict[str, Any]:
        call = asyncio.to_thread(self._executor.execute, payload)
        if self._execute_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self._execute_timeout)
        except asyncio.TimeoutError as exc:
            raise VoicePilotError(EXECUTION_TIMEOUT_MESSAGE) from exc

    async def _finish(
        self,
        session_id: int | None,
        status: ExecutionStatus,
        result: dict[str, Any] | None = None,
    ) -> bool:
        """Summary: Write the terminal status without letting a storage failure escape.

        Importance: The state machine must still reach its next state when the session row cannot be updated.
        Alternatives: Propagate the storage error and leave the controller in PROCESSING.
        """

        if session_id is None:
            return False
        try:
            return await asyncio.to_thread(self._sessions.finish, session_id, status, result)
        except Exception:
            logger.exception("Could not mark voice session %s as %s.", session_id, status.value)
            return False

    def _fail(self, exc: BaseException) -> None:
        if not isinstance(exc, VoicePilotError):
            logger.error("Voice command failed unexpectedly.", exc_info=exc)
        self.failure = exc
        self.error = str(exc) or exc.__class__.__name__
        self._transition(SessionState.ERROR)

    def _transition(self, state: SessionState) -> None:
        logger.info("Voice session state %s -> %s.", self.state.value, state.value)
        self.state = state

    def _clear(self) -> None:
        self.transcript: str | None = None
        self.intent: dict[str, Any] | None = None
        self.query_response: str | None = None
        self.act_result: str | None = None
        self.error: str | None = None
        self.failure: BaseException | None = None
        self.session_id: int | None = None


def _summarize(intent: Intent, response: dict[str, Any]) -> str:
    result = response.get("result")
    if not isinstance(result, dict):
        result = {}
    label = result.get("title") or result.get("name") or result.get("text") or intent.title
    if label:
        return f"{intent.category.title()} done: {label}"
    return f"{intent.category.title()} done"


def _log_abandoned(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    failure = task.exception()
    if failure is not None:
        logger.warning("Abandoned classification failed after the timeout: %s", failure)
    else:
        logger.warning("Discarded classification result that arrived after the timeout.")
