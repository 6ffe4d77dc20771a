"""Pull chart payloads out of free-form assistant text.

Two fenced encodings are recognised::

    ```chart
    {"type": "bar", "title": "Q1", "data": [...]}
    ```

and generic ``json`` fences whose body happens to be chart-shaped. Chart
fences are always stripped from the text, json fences only when they carry
a chart. Malformed bodies are skipped, never raised.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from insights_chat.charts.validator import looks_like_chart, parse_chart
from insights_chat.core.models import ChartPayload
from insights_chat.log import get_logger

logger = get_logger(__name__)

CHART_BLOCK_PATTERN = re.compile(r"```chart\s+(.*?)```", re.DOTALL)
JSON_BLOCK_PATTERN = re.compile(r"```json\s+(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class ExtractedContent:
    cleaned_text: str
    charts: list[ChartPayload] = field(default_factory=list)


def decode_block(body: str) -> Optional[Any]:
    """Decode a fenced block body as JSON, returning None if it is not JSON."""
    try:
        return json.loads(body.strip())
    except (ValueError, RecursionError) as e:
        logger.warning("chart_block_decode_failed", error=str(e), preview=body[:80])
        return None


def extract_charts(raw_text: str) -> ExtractedContent:
    """Split *raw_text* into display text and the charts embedded in it."""
    if not raw_text:
        return ExtractedContent(cleaned_text="")

    charts: list[ChartPayload] = []

    for match in CHART_BLOCK_PATTERN.finditer(raw_text):
        decoded = decode_block(match.group(1))
        if decoded is None:
            continue
        chart = parse_chart(decoded)
        if chart is not None:
            charts.append(chart)
        else:
            logger.warning("chart_block_invalid")

    text = CHART_BLOCK_PATTERN.sub("", raw_text)

    def _take_json_chart(match: re.Match) -> str:
        decoded = decode_block(match.group(1))
        if decoded is None or not looks_like_chart(decoded):
            return match.group(0)
        chart = parse_chart(decoded)
        if chart is not None:
            charts.append(chart)
        else:
            logger.warning("json_chart_block_invalid")
        return ""

    text = JSON_BLOCK_PATTERN.sub(_take_json_chart, text)

    return ExtractedContent(cleaned_text=text.strip(), charts=charts)


def combine_charts(
    extracted: Iterable[ChartPayload], metadata_charts: Iterable[ChartPayload] | None
) -> list[ChartPayload]:
    """Text-extracted charts first, transport-supplied metadata charts after."""
    combined = list(extracted)
    if metadata_charts:
        combined.extend(metadata_charts)
    return combined
