"""Keyword heuristics deciding whether an utterance should ask for charts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

CHART_KEYWORDS: dict[str, tuple[str, ...]] = {
    "explicit": (
        "show chart", "show graph", "show plot", "create chart", "create graph",
        "visualize", "visualization", "draw chart", "draw graph", "display chart",
        "as a chart", "as a graph", "in a chart", "in a graph", "chart this",
        "graph this", "plot this",
    ),
    "trend": (
        "trend", "over time", "timeline", "history", "historical",
        "progression", "growth over", "change over", "monthly", "weekly",
        "daily", "yearly", "last 6 months", "last 12 months", "past year",
    ),
    "comparison": (
        "compare", "comparison", "versus", "vs", "against", "difference between",
        "how does", "relative to",
    ),
    "distribution": (
        "breakdown", "distribution", "split", "composition", "proportion",
        "percentage", "share of", "by category", "by type", "per",
    ),
    "metrics": (
        "revenue trend", "transaction volume", "user growth", "success rate",
        "failure rate", "peak hours", "top performing",
    ),
}

CHART_TYPE_SUGGESTIONS: dict[str, str] = {
    "explicit": "auto",
    "trend": "line",
    "distribution": "pie",
    "comparison": "bar",
    "metrics": "auto",
}

# First matching category decides the suggested chart kind.
CATEGORY_PRIORITY = ("explicit", "trend", "distribution", "comparison", "metrics")


@dataclass(frozen=True)
class ChartIntent:
    detected: bool
    categories: frozenset[str]
    suggested_type: Optional[str]


def classify_chart_intent(utterance: str) -> ChartIntent:
    """Scan *utterance* for chart-request keywords. Advisory only."""
    lowered = (utterance or "").lower()
    categories = frozenset(
        category
        for category, keywords in CHART_KEYWORDS.items()
        if any(keyword in lowered for keyword in keywords)
    )

    suggested: Optional[str] = None
    for category in CATEGORY_PRIORITY:
        if category in categories:
            suggested = CHART_TYPE_SUGGESTIONS[category]
            break

    return ChartIntent(detected=bool(categories), categories=categories, suggested_type=suggested)
