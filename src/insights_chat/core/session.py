"""Session store: the single owned container for conversation state."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Iterable, Optional

from insights_chat.charts.validator import sanitize_charts
from insights_chat.core.models import ChartPayload, Message, MessageMetadata
from insights_chat.core.types import MessageStatus, Role
from insights_chat.log import bind_conversation, get_logger
from insights_chat.storage.history import HistoryGateway, metadata_from_dict
from insights_chat.storage.preferences import PreferencesRepository

logger = get_logger(__name__)

Listener = Callable[["SessionStore"], None]
MetadataInput = MessageMetadata | Mapping[str, Any] | None


def sanitize_metadata(metadata: MetadataInput) -> Optional[MessageMetadata]:
    """Drop invalid charts and return None when nothing useful remains.

    Accepts either a :class:`MessageMetadata` or its wire form
    (``charts``, ``insightType``, ``processingTime``).
    """
    if metadata is None:
        return None
    if isinstance(metadata, MessageMetadata):
        charts = sanitize_charts(metadata.charts) if metadata.charts else []
        cleaned = MessageMetadata(
            charts=charts or None,
            insight_type=metadata.insight_type or None,
            processing_time_ms=metadata.processing_time_ms,
        )
        return None if cleaned.is_empty() else cleaned
    return metadata_from_dict(metadata)


class SessionStore:
    """Ordered message log plus loading/error flags and the conversation id.

    All operations are synchronous and never raise. When the save-history
    flag is on, every change to messages or conversation id is written
    through the :class:`HistoryGateway`.
    """

    def __init__(
        self,
        gateway: HistoryGateway,
        preferences: PreferencesRepository | None = None,
        save_history: bool = True,
    ):
        self._gateway = gateway
        self._preferences = preferences
        self._messages: list[Message] = []
        self._conversation_id: Optional[str] = None
        self._is_loading = False
        self._error: Optional[str] = None
        self._save_history = save_history
        self._listeners: list[Listener] = []

    # -- read side ---------------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def conversation_id(self) -> Optional[str]:
        return self._conversation_id

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def save_history(self) -> bool:
        return self._save_history

    def get_message(self, message_id: str) -> Optional[Message]:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def has_charts(self, message_id: str) -> bool:
        message = self.get_message(message_id)
        return bool(message and message.charts)

    def get_charts(self, message_id: str) -> list[ChartPayload]:
        message = self.get_message(message_id)
        return message.charts if message else []

    # -- subscriptions -----------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* after every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error("store_listener_failed", error=str(e))

    def _persist(self) -> None:
        if self._save_history:
            self._gateway.save(self._messages, self._conversation_id)

    # -- mutations ---------------------------------------------------------

    def add_message(
        self,
        role: Role,
        content: str,
        status: Optional[MessageStatus] = None,
        metadata: MetadataInput = None,
    ) -> Message:
        role = Role(role)
        if role is Role.ASSISTANT and status is not None:
            logger.debug("assistant_status_ignored", status=str(status))
            status = None

        message = Message(
            role=role,
            content=content,
            status=status,
            metadata=sanitize_metadata(metadata),
        )
        self._messages.append(message)
        logger.debug("message_added", message_id=message.id, role=role.value, charts=len(message.charts))
        self._persist()
        self._notify()
        return message

    def _replace(self, message_id: str, update: Callable[[Message], Message]) -> bool:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                self._messages[index] = update(message)
                return True
        return False

    def update_message_status(self, message_id: str, status: MessageStatus) -> None:
        status = MessageStatus(status)

        def _apply(message: Message) -> Message:
            if message.role is not Role.USER:
                return message
            return message.with_status(status)

        if not self._replace(message_id, _apply):
            logger.debug("status_update_unknown_message", message_id=message_id)
            return
        self._persist()
        self._notify()

    def update_message_metadata(self, message_id: str, metadata: MetadataInput) -> None:
        incoming = sanitize_metadata(metadata)

        def _apply(message: Message) -> Message:
            if incoming is None:
                return message
            if message.metadata is None:
                return message.with_metadata(incoming)
            return message.with_metadata(message.metadata.merged(incoming))

        if not self._replace(message_id, _apply):
            logger.debug("metadata_update_unknown_message", message_id=message_id)
            return
        self._persist()
        self._notify()

    def clear(self) -> None:
        """Forget the conversation and purge the saved record, flag or not."""
        self._messages = []
        self._conversation_id = None
        self._error = None
        self._gateway.clear()
        bind_conversation(None)
        logger.info("session_cleared")
        self._notify()

    def set_conversation_id(self, conversation_id: Optional[str]) -> None:
        self._conversation_id = conversation_id
        bind_conversation(conversation_id)
        self._persist()
        self._notify()

    def set_loading(self, loading: bool) -> None:
        self._is_loading = loading
        self._notify()

    def set_error(self, error: Optional[str]) -> None:
        self._error = error
        self._notify()

    def set_save_history(self, enabled: bool) -> None:
        self._save_history = enabled
        if self._preferences is not None:
            self._preferences.set_save_history(enabled)

        if not enabled:
            self._gateway.clear()
        elif self._messages:
            self._gateway.save(self._messages, self._conversation_id)
        logger.info("save_history_changed", enabled=enabled)
        self._notify()

    def load_history(self) -> bool:
        """Replace the in-memory session with the saved one. Returns True if loaded."""
        if not self._save_history:
            return False

        snapshot = self._gateway.load()
        if snapshot is None or not snapshot.messages:
            return False

        self._messages = list(snapshot.messages)
        self._conversation_id = snapshot.conversation_id
        bind_conversation(self._conversation_id)
        logger.info("history_restored", messages=len(self._messages))
        self._notify()
        return True

    def restore_messages(self, messages: Iterable[Message], conversation_id: Optional[str]) -> None:
        """Install an externally supplied message list wholesale."""
        self._messages = list(messages)
        self._conversation_id = conversation_id
        bind_conversation(conversation_id)
        self._persist()
        self._notify()
