"""Send orchestrator: drives one utterance from optimistic insert to reconciliation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Optional

from insights_chat.charts.intent import ChartIntent, classify_chart_intent
from insights_chat.config import ChatConfig
from insights_chat.core.session import SessionStore
from insights_chat.core.types import MessageStatus, Role
from insights_chat.log import get_logger
from insights_chat.services.timers import CallbackTimers
from insights_chat.transport.client import ChatTransport, TransportError

logger = get_logger(__name__)

SEND_FAILED_MESSAGE = "Failed to send message. Please try again."
RETRY_FAILED_MESSAGE = "Failed to retry message. Please try again."

ERROR_DISMISS_TIMER = "error-auto-dismiss"
THINKING_HINT_TIMER = "thinking-hint"

SUGGESTED_PROMPTS = (
    "Show me revenue trend for last 6 months",
    "What's our user growth rate?",
    "Analyze transaction success rates",
    "Suggest ways to increase revenue",
    "Show peak transaction hours",
    "What are the common transaction failures?",
)


class SendState(StrEnum):
    IDLE = "idle"
    VALIDATING = "validating"
    OPTIMISTIC_INSERT = "optimistic_insert"
    AWAITING_REMOTE = "awaiting_remote"
    RECONCILED_SUCCESS = "reconciled_success"
    RECONCILED_ERROR = "reconciled_error"


class SendOutcome(StrEnum):
    REJECTED = "rejected"  # invalid utterance, or nothing to retry
    BUSY = "busy"  # another exchange is in flight
    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True)
class SendResult:
    outcome: SendOutcome
    message_id: Optional[str] = None
    reply_id: Optional[str] = None
    intent: Optional[ChartIntent] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class _PendingRetry:
    text: str
    message_id: str


class SendOrchestrator:
    """Owns the request lifecycle for user utterances.

    Only one exchange may be outstanding at a time. Failures never escape
    :meth:`send` or :meth:`retry`; they become an ``error`` status on the
    user message plus the store's current error, which dismisses itself
    after a delay.
    """

    def __init__(
        self,
        store: SessionStore,
        transport: ChatTransport,
        timers: CallbackTimers,
        settings: ChatConfig | None = None,
        on_thinking_hint: Callable[[bool], None] | None = None,
    ):
        self._store = store
        self._transport = transport
        self._timers = timers
        self._settings = settings or ChatConfig()
        self._on_thinking_hint = on_thinking_hint
        self._state = SendState.IDLE
        self._sending = False
        self._retry: Optional[_PendingRetry] = None
        self._thinking_hint_visible = False

    @property
    def state(self) -> SendState:
        return self._state

    @property
    def is_sending(self) -> bool:
        return self._sending

    @property
    def can_retry(self) -> bool:
        return self._retry is not None and not self._sending

    @property
    def pending_retry_text(self) -> Optional[str]:
        return self._retry.text if self._retry else None

    @property
    def thinking_hint_visible(self) -> bool:
        return self._thinking_hint_visible

    def is_valid_utterance(self, text: str) -> bool:
        trimmed = (text or "").strip()
        return self._settings.min_input_length <= len(trimmed) <= self._settings.max_input_length

    # -- public actions ----------------------------------------------------

    async def send(self, text: str) -> SendResult:
        """Send a new utterance. Invalid or concurrent sends change nothing."""
        if self._busy():
            logger.info("send_rejected_busy")
            return SendResult(SendOutcome.BUSY)

        self._state = SendState.VALIDATING
        trimmed = (text or "").strip()
        if not self.is_valid_utterance(trimmed):
            logger.info("send_rejected_invalid", length=len(trimmed))
            self._state = SendState.IDLE
            return SendResult(SendOutcome.REJECTED)

        self._sending = True
        try:
            self._state = SendState.OPTIMISTIC_INSERT
            intent = classify_chart_intent(trimmed)
            message = self._store.add_message(Role.USER, trimmed, MessageStatus.SENDING)
            self._retry = None
            self._dismiss_error()
            self._set_loading(True)
            logger.info(
                "send_started",
                message_id=message.id,
                include_charts=intent.detected,
                suggested_chart=intent.suggested_type,
            )
            return await self._exchange(trimmed, message.id, intent, SEND_FAILED_MESSAGE)
        finally:
            self._sending = False
            self._set_loading(False)

    async def send_suggested(self, prompt: str) -> SendResult:
        """Send one of the canned prompts through the normal path."""
        return await self.send(prompt)

    async def retry(self) -> SendResult:
        """Re-send the last failed utterance without adding a new user message."""
        if self._busy():
            return SendResult(SendOutcome.BUSY)
        pending = self._retry
        if pending is None:
            return SendResult(SendOutcome.REJECTED)

        self._sending = True
        try:
            self._dismiss_error()
            self._set_loading(True)
            self._store.update_message_status(pending.message_id, MessageStatus.SENDING)
            intent = classify_chart_intent(pending.text)
            logger.info("retry_started", message_id=pending.message_id)
            result = await self._exchange(pending.text, pending.message_id, intent, RETRY_FAILED_MESSAGE)
            if result.outcome is SendOutcome.SENT:
                self._retry = None
            return result
        finally:
            self._sending = False
            self._set_loading(False)

    def dismiss_error(self) -> None:
        self._dismiss_error()

    def restart(self) -> None:
        """Start a fresh conversation. An exchange in flight is not aborted."""
        self._retry = None
        self._timers.cancel(ERROR_DISMISS_TIMER)
        self._store.clear()
        logger.info("conversation_restarted", in_flight=self._sending)

    clear = restart

    def close(self) -> None:
        self._timers.cancel(ERROR_DISMISS_TIMER)
        self._timers.cancel(THINKING_HINT_TIMER)

    # -- internals ---------------------------------------------------------

    def _busy(self) -> bool:
        return self._sending or self._store.is_loading

    async def _exchange(
        self, text: str, message_id: str, intent: ChartIntent, fallback_error: str
    ) -> SendResult:
        self._state = SendState.AWAITING_REMOTE
        # Only the id held when the exchange began decides binding.
        bound_id = self._store.conversation_id
        try:
            reply = await self._transport.send(
                text,
                conversation_id=bound_id,
                include_charts=intent.detected,
            )
        except TransportError as e:
            return self._reconcile_error(text, message_id, intent, e.message or fallback_error)
        except Exception as e:
            logger.error("send_unexpected_error", error=str(e), exc_info=True)
            return self._reconcile_error(text, message_id, intent, str(e) or fallback_error)

        # The first reply binds the conversation; later ids are ignored, and a
        # reply landing after a restart never re-binds the old conversation.
        if not bound_id and not self._store.conversation_id and reply.conversation_id:
            self._store.set_conversation_id(reply.conversation_id)

        self._store.update_message_status(message_id, MessageStatus.SENT)
        assistant = self._store.add_message(
            Role.ASSISTANT,
            reply.message,
            metadata={"charts": reply.charts, "processingTime": reply.processing_time_ms},
        )
        self._state = SendState.RECONCILED_SUCCESS
        logger.info(
            "send_succeeded",
            message_id=message_id,
            reply_id=assistant.id,
            charts=len(assistant.charts),
            processing_time_ms=reply.processing_time_ms,
        )
        return SendResult(SendOutcome.SENT, message_id=message_id, reply_id=assistant.id, intent=intent)

    def _reconcile_error(
        self, text: str, message_id: str, intent: ChartIntent, error: str
    ) -> SendResult:
        self._store.update_message_status(message_id, MessageStatus.ERROR)
        self._retry = _PendingRetry(text=text, message_id=message_id)
        self._raise_error(error)
        self._state = SendState.RECONCILED_ERROR
        logger.warning("send_failed", message_id=message_id, error=error)
        return SendResult(SendOutcome.FAILED, message_id=message_id, intent=intent, error=error)

    def _raise_error(self, error: str) -> None:
        self._store.set_error(error)
        self._timers.schedule(
            ERROR_DISMISS_TIMER,
            self._settings.error_dismiss_seconds,
            self._auto_dismiss_error,
        )

    def _auto_dismiss_error(self) -> None:
        logger.debug("error_auto_dismissed")
        self._store.set_error(None)

    def _dismiss_error(self) -> None:
        self._timers.cancel(ERROR_DISMISS_TIMER)
        if self._store.error is not None:
            self._store.set_error(None)

    def _set_loading(self, loading: bool) -> None:
        self._store.set_loading(loading)
        if loading:
            self._timers.schedule(
                THINKING_HINT_TIMER,
                self._settings.thinking_hint_seconds,
                self._show_thinking_hint,
            )
        else:
            self._timers.cancel(THINKING_HINT_TIMER)
            self._set_thinking_hint(False)

    def _show_thinking_hint(self) -> None:
        if self._store.is_loading:
            self._set_thinking_hint(True)

    def _set_thinking_hint(self, visible: bool) -> None:
        if visible == self._thinking_hint_visible:
            return
        self._thinking_hint_visible = visible
        if self._on_thinking_hint is not None:
            self._on_thinking_hint(visible)
