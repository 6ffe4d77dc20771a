"""Typed models for the conversation: messages, chart payloads, snapshots."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional

from insights_chat.core.types import ChartType, MessageStatus, Role


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class ChartLabels:
    x: Optional[str] = None
    y: Optional[str] = None

    def to_dict(self) -> dict[str, str]:
        out: dict[str, str] = {}
        if self.x is not None:
            out["x"] = self.x
        if self.y is not None:
            out["y"] = self.y
        return out


@dataclass(frozen=True, slots=True)
class ChartPayload:
    """A validated chart description. Build via ``charts.validator.parse_chart``."""

    type: ChartType
    title: str
    data: list[dict[str, Any]]
    labels: Optional[ChartLabels] = None
    data_keys: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire/storage shape (camelCase keys)."""
        out: dict[str, Any] = {
            "type": self.type.value,
            "title": self.title,
            "data": [dict(row) for row in self.data],
        }
        if self.labels is not None:
            out["labels"] = self.labels.to_dict()
        if self.data_keys is not None:
            out["dataKeys"] = list(self.data_keys)
        return out


@dataclass(frozen=True, slots=True)
class MessageMetadata:
    charts: Optional[list[ChartPayload]] = None
    insight_type: Optional[str] = None
    processing_time_ms: Optional[float] = None

    def is_empty(self) -> bool:
        return not self.charts and not self.insight_type and self.processing_time_ms is None

    def merged(self, other: MessageMetadata) -> MessageMetadata:
        """Shallow merge: fields set on *other* replace ours."""
        return MessageMetadata(
            charts=other.charts if other.charts is not None else self.charts,
            insight_type=other.insight_type if other.insight_type is not None else self.insight_type,
            processing_time_ms=(
                other.processing_time_ms
                if other.processing_time_ms is not None
                else self.processing_time_ms
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.charts:
            out["charts"] = [c.to_dict() for c in self.charts]
        if self.insight_type:
            out["insightType"] = self.insight_type
        if self.processing_time_ms is not None:
            out["processingTime"] = self.processing_time_ms
        return out


@dataclass(frozen=True, slots=True)
class Message:
    """One entry of the conversation log.

    Only ``status`` and ``metadata`` ever change, and only by replacing the
    instance (see :meth:`with_status` and :meth:`with_metadata`).
    """

    role: Role
    content: str
    id: str = field(default_factory=new_message_id)
    timestamp: datetime = field(default_factory=utc_now)
    status: Optional[MessageStatus] = None
    metadata: Optional[MessageMetadata] = None

    def with_status(self, status: MessageStatus) -> Message:
        return replace(self, status=status)

    def with_metadata(self, metadata: Optional[MessageMetadata]) -> Message:
        return replace(self, metadata=metadata)

    @property
    def charts(self) -> list[ChartPayload]:
        if self.metadata and self.metadata.charts:
            return list(self.metadata.charts)
        return []

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.status is not None:
            out["status"] = self.status.value
        if self.metadata is not None and not self.metadata.is_empty():
            out["metadata"] = self.metadata.to_dict()
        return out


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    messages: list[Message]
    conversation_id: Optional[str]
    saved_at: datetime
