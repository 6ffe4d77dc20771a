from __future__ import annotations

import json

from insights_chat.charts.extraction import combine_charts, decode_block, extract_charts
from insights_chat.charts.validator import parse_chart


def _fence(tag: str, body: str) -> str:
    return f"```{tag}\n{body}\n```"


def test_chart_block_is_extracted_and_removed():
    raw = 'Revenue:\n```chart\n{"type":"bar","title":"Q1","data":[{"m":1,"rev":10}]}\n```\nDone'

    result = extract_charts(raw)

    assert result.cleaned_text == "Revenue:\n\nDone"
    assert len(result.charts) == 1
    assert result.charts[0].type.value == "bar"
    assert result.charts[0].title == "Q1"
    assert result.charts[0].data == [{"m": 1, "rev": 10}]


def test_good_and_malformed_chart_blocks():
    good = [
        _fence("chart", json.dumps({"type": "line", "title": f"G{i}", "data": []}))
        for i in range(3)
    ]
    bad = [
        _fence("chart", "{not json"),
        _fence("chart", json.dumps({"type": "radar", "title": "R", "data": []})),
        _fence("chart", json.dumps({"type": "bar", "title": "NoData"})),
    ]
    raw = "intro\n" + "\ntext\n".join(good[:2] + bad + good[2:]) + "\noutro"

    result = extract_charts(raw)

    assert [c.title for c in result.charts] == ["G0", "G1", "G2"]
    for block in good + bad:
        assert block not in result.cleaned_text
    assert "```" not in result.cleaned_text
    assert result.cleaned_text.startswith("intro")
    assert result.cleaned_text.endswith("outro")


def test_json_block_with_chart_shape_is_extracted():
    chart = {"type": "area", "title": "Volume", "data": [{"d": "Mon", "v": 4}]}
    raw = "See below\n" + _fence("json", json.dumps(chart))

    result = extract_charts(raw)

    assert result.cleaned_text == "See below"
    assert [c.title for c in result.charts] == ["Volume"]


def test_non_chart_json_blocks_stay_in_text():
    plain = _fence("json", json.dumps({"status": "ok"}))
    broken = _fence("json", "{oops")
    raw = f"Config:\n{plain}\nBroken:\n{broken}"

    result = extract_charts(raw)

    assert result.charts == []
    assert plain in result.cleaned_text
    assert broken in result.cleaned_text


def test_chart_blocks_come_before_json_blocks():
    json_chart = _fence("json", json.dumps({"type": "pie", "title": "First in text", "data": []}))
    chart_block = _fence("chart", json.dumps({"type": "bar", "title": "Second in text", "data": []}))

    result = extract_charts(f"{json_chart}\n{chart_block}")

    assert [c.title for c in result.charts] == ["Second in text", "First in text"]
    assert result.cleaned_text == ""


def test_chart_shaped_json_with_bad_data_is_removed_but_dropped():
    raw = "a\n" + _fence("json", json.dumps({"type": "bar", "title": "T", "data": {"x": 1}})) + "\nb"

    result = extract_charts(raw)

    assert result.charts == []
    assert "```" not in result.cleaned_text


def test_plain_text_untouched():
    assert extract_charts("  just words  ").cleaned_text == "just words"
    assert extract_charts("").charts == []


def test_decode_block_returns_none_on_garbage():
    assert decode_block("{broken") is None
    assert decode_block(' {"a": 1} ') == {"a": 1}


def test_combine_puts_metadata_charts_last():
    text_chart = parse_chart({"type": "bar", "title": "text", "data": []})
    meta_chart = parse_chart({"type": "line", "title": "meta", "data": []})

    combined = combine_charts([text_chart], [meta_chart])

    assert [c.title for c in combined] == ["text", "meta"]
    assert combine_charts([text_chart], None) == [text_chart]


def test_deeply_nested_chart_block_is_skipped():
    nested = "[" * 200_000 + "]" * 200_000
    raw = f"Before\n{_fence('chart', nested)}\nAfter"

    result = extract_charts(raw)

    assert result.charts == []
    assert result.cleaned_text == "Before\n\nAfter"
    assert decode_block(nested) is None


def test_similar_fence_tags_are_left_alone():
    body = json.dumps({"type": "bar", "title": "Q1", "data": []})
    raw = f"{_fence('chartjs', body)}\n{_fence('charts', body)}"

    result = extract_charts(raw)

    assert result.charts == []
    assert result.cleaned_text == raw
