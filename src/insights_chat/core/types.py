"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageStatus(StrEnum):
    """Delivery state of a user message. Assistant messages carry none."""

    SENDING = "sending"
    SENT = "sent"
    ERROR = "error"


class ChartType(StrEnum):
    LINE = "line"
    BAR = "bar"
    PIE = "pie"
    DONUT = "donut"
    AREA = "area"


CHART_TYPES = frozenset(t.value for t in ChartType)
