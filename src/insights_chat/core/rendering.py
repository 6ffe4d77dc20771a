"""Render-time view of a message: display text plus every chart to draw."""

from __future__ import annotations

from dataclasses import dataclass, field

from insights_chat.charts.extraction import combine_charts, extract_charts
from insights_chat.core.models import ChartPayload, Message
from insights_chat.core.types import Role


@dataclass(frozen=True)
class RenderedMessage:
    message: Message
    text: str
    charts: list[ChartPayload] = field(default_factory=list)


def render_message(message: Message) -> RenderedMessage:
    """Extract charts from assistant text and append the transport-supplied ones.

    Chart order is decided here, not when the message is stored: charts found
    in the text come first, metadata charts after them.
    """
    if message.role is Role.USER:
        return RenderedMessage(message=message, text=message.content, charts=message.charts)

    extracted = extract_charts(message.content)
    return RenderedMessage(
        message=message,
        text=extracted.cleaned_text,
        charts=combine_charts(extracted.charts, message.charts),
    )
