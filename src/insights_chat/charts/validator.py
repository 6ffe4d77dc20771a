"""Validation of untrusted chart payloads.

Chart descriptions reach the engine from three untrusted places: the chat
transport's ``charts`` list, fenced blocks inside assistant text, and the
persisted history record. Everything goes through :func:`parse_chart` before
it becomes a :class:`ChartPayload`. None of these functions raise.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from insights_chat.core.models import ChartLabels, ChartPayload
from insights_chat.core.types import CHART_TYPES, ChartType
from insights_chat.log import get_logger

logger = get_logger(__name__)


def is_valid_chart(candidate: Any) -> bool:
    """Return True if *candidate* is a well-formed chart description.

    Requires a mapping with a known ``type``, a non-empty ``title`` and a
    list-shaped ``data`` (an empty list is fine).
    """
    if not isinstance(candidate, Mapping):
        return False

    chart_type = candidate.get("type")
    title = candidate.get("title")
    data = candidate.get("data")

    if not isinstance(chart_type, str) or chart_type not in CHART_TYPES:
        return False
    if not title or not isinstance(title, str):
        return False
    if not isinstance(data, list):
        return False
    return True


def looks_like_chart(candidate: Any) -> bool:
    """Looser check used to recognise chart data inside generic json blocks."""
    return (
        isinstance(candidate, Mapping)
        and isinstance(candidate.get("type"), str)
        and candidate.get("type") in CHART_TYPES
        and bool(candidate.get("title"))
        and candidate.get("data") is not None
    )


def _parse_labels(raw: Any) -> Optional[ChartLabels]:
    if not isinstance(raw, Mapping):
        return None
    x = raw.get("x")
    y = raw.get("y")
    return ChartLabels(
        x=x if isinstance(x, str) else None,
        y=y if isinstance(y, str) else None,
    )


def _parse_data_keys(raw: Any) -> Optional[list[str]]:
    if not isinstance(raw, list):
        return None
    return [k for k in raw if isinstance(k, str)]


def parse_chart(candidate: Any) -> Optional[ChartPayload]:
    """Validate *candidate* and build a typed payload, or return None."""
    if not is_valid_chart(candidate):
        logger.debug("chart_rejected", candidate_type=type(candidate).__name__)
        return None

    rows = [dict(row) for row in candidate["data"] if isinstance(row, Mapping)]
    if len(rows) != len(candidate["data"]):
        logger.debug(
            "chart_rows_dropped",
            title=candidate["title"],
            dropped=len(candidate["data"]) - len(rows),
        )

    return ChartPayload(
        type=ChartType(candidate["type"]),
        title=candidate["title"],
        data=rows,
        labels=_parse_labels(candidate.get("labels")),
        data_keys=_parse_data_keys(candidate.get("dataKeys")),
    )


def sanitize_charts(candidates: Any) -> list[ChartPayload]:
    """Keep the valid charts of *candidates*, in order. Non-lists yield []."""
    if not isinstance(candidates, (list, tuple)):
        return []

    charts: list[ChartPayload] = []
    for item in candidates:
        if isinstance(item, ChartPayload):
            charts.append(item)
            continue
        chart = parse_chart(item)
        if chart is not None:
            charts.append(chart)
    return charts
