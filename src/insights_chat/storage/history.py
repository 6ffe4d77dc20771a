"""Persistence gateway: the saved conversation as a single expiring record.

The record lives under one key and looks like::

    {"messages": [...], "conversationId": "abc" | null, "savedAt": <epoch ms>}

It is a best-effort cache. Missing, expired and corrupt records all read as
"no history", and storage failures are logged instead of raised.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from insights_chat.charts.validator import sanitize_charts
from insights_chat.core.models import Message, MessageMetadata, SessionSnapshot, utc_now
from insights_chat.core.types import MessageStatus, Role
from insights_chat.log import get_logger
from insights_chat.storage.database import KeyValueStore

logger = get_logger(__name__)

DEFAULT_HISTORY_KEY = "insights_chat_history"
DEFAULT_TTL = timedelta(hours=24)

_STORAGE_ERRORS = (sqlite3.Error, OSError, RuntimeError)


def _to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _from_epoch_ms(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def metadata_from_dict(raw: Any) -> Optional[MessageMetadata]:
    if not isinstance(raw, Mapping):
        return None
    charts = sanitize_charts(raw.get("charts"))
    insight_type = raw.get("insightType")
    processing = raw.get("processingTime")
    metadata = MessageMetadata(
        charts=charts or None,
        insight_type=insight_type if isinstance(insight_type, str) and insight_type else None,
        processing_time_ms=(
            processing
            if isinstance(processing, (int, float)) and not isinstance(processing, bool)
            else None
        ),
    )
    return None if metadata.is_empty() else metadata


def message_from_dict(raw: Any) -> Optional[Message]:
    """Rebuild a message from its stored form, or None if it is unusable."""
    if not isinstance(raw, Mapping):
        return None

    message_id = raw.get("id")
    content = raw.get("content")
    timestamp = _parse_timestamp(raw.get("timestamp"))
    try:
        role = Role(raw.get("role"))
    except ValueError:
        return None
    if not isinstance(message_id, str) or not message_id:
        return None
    if not isinstance(content, str) or timestamp is None:
        return None

    status: Optional[MessageStatus] = None
    if role is Role.USER and raw.get("status") is not None:
        try:
            status = MessageStatus(raw["status"])
        except ValueError:
            status = None

    return Message(
        id=message_id,
        role=role,
        content=content,
        timestamp=timestamp,
        status=status,
        metadata=metadata_from_dict(raw.get("metadata")),
    )


class HistoryGateway:
    """Reads and writes the saved session under a single key, with a TTL."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str = DEFAULT_HISTORY_KEY,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._key = key
        self._ttl = ttl
        self._clock = clock

    @property
    def key(self) -> str:
        return self._key

    def save(self, messages: Iterable[Message], conversation_id: Optional[str]) -> None:
        """Overwrite the record with a snapshot of *messages*."""
        try:
            payload = json.dumps(
                {
                    "messages": [m.to_dict() for m in messages],
                    "conversationId": conversation_id,
                    "savedAt": _to_epoch_ms(self._clock()),
                }
            )
            self._store.set(self._key, payload)
        except (TypeError, ValueError) as e:
            logger.error("history_encode_failed", error=str(e))
        except _STORAGE_ERRORS as e:
            logger.error("history_save_failed", error=str(e))

    def load(self) -> Optional[SessionSnapshot]:
        """Return the saved snapshot, or None if absent, expired or corrupt."""
        try:
            stored = self._store.get(self._key)
        except _STORAGE_ERRORS as e:
            logger.error("history_load_failed", error=str(e))
            return None
        if not stored:
            return None

        try:
            record = json.loads(stored)
        except (ValueError, RecursionError) as e:
            logger.warning("history_corrupt", error=str(e))
            self.clear()
            return None

        saved_at = _from_epoch_ms(record.get("savedAt")) if isinstance(record, dict) else None
        raw_messages = record.get("messages") if isinstance(record, dict) else None
        if saved_at is None or not isinstance(raw_messages, list):
            logger.warning("history_corrupt", error="unexpected record shape")
            self.clear()
            return None

        if self._clock() - saved_at > self._ttl:
            logger.info("history_expired", saved_at=saved_at.isoformat())
            self.clear()
            return None

        messages = [m for m in (message_from_dict(raw) for raw in raw_messages) if m is not None]
        if len(messages) != len(raw_messages):
            logger.warning("history_messages_dropped", dropped=len(raw_messages) - len(messages))

        conversation_id = record.get("conversationId")
        if not isinstance(conversation_id, str) or not conversation_id:
            conversation_id = None

        return SessionSnapshot(messages=messages, conversation_id=conversation_id, saved_at=saved_at)

    def clear(self) -> None:
        """Delete the record, whatever its state."""
        try:
            self._store.delete(self._key)
        except _STORAGE_ERRORS as e:
            logger.error("history_clear_failed", error=str(e))
