"""Tests for the context analyzer's structural facts."""

from kaiwa.intelligence.analyzer import analyze, complexity_level, complexity_score
from kaiwa.models import Complexity, FormatLabel


def test_empty_context():
    facts = analyze({})
    assert facts.complexity is Complexity.LOW
    assert facts.complexity_score == 0
    assert facts.categories == []
    assert facts.visualization == "text_display"
    assert facts.suggested_format is FormatLabel.TEXT


def test_none_context_is_empty():
    assert analyze(None) == analyze({})


def test_non_mapping_context_is_empty():
    assert analyze(["a", "b"]) == analyze({})


def test_user_and_table_data(users_context):
    facts = analyze(users_context)
    assert facts.has_user_data
    assert facts.has_list_data
    assert facts.has_table_data
    assert not facts.has_system_metrics
    assert facts.categories == ["user_management", "list_data", "table_data"]
    assert facts.visualization == "data_table"
    assert facts.suggested_format is FormatLabel.TABLE


def test_metrics_dashboard():
    facts = analyze({"cpu": 40, "memory": {"percent": 60}})
    assert facts.has_system_metrics
    assert facts.visualization == "metrics_dashboard"
    assert facts.suggested_format is FormatLabel.CARD
    assert facts.metrics_summary == {"cpu": 40}


def test_list_without_table():
    facts = analyze({"tags": ["a", "b"]})
    assert facts.has_list_data
    assert not facts.has_table_data
    assert facts.suggested_format is FormatLabel.LIST
    assert facts.visualization == "list_view"


def test_empty_sequence_is_not_table():
    assert not analyze({"rows": []}).has_table_data


def test_complexity_mixed_values():
    # mapping 2 + sequence 1 + scalar 0
    ctx = {"a": {"x": 1}, "b": [1, 2], "c": "text"}
    assert complexity_score(ctx) == 3
    assert analyze(ctx).complexity is Complexity.LOW


def test_complexity_five_mappings_is_medium():
    ctx = {f"k{i}": {"v": i} for i in range(5)}
    assert complexity_score(ctx) == 10
    assert analyze(ctx).complexity is Complexity.MEDIUM


def test_complexity_thresholds():
    assert complexity_level(5) is Complexity.LOW
    assert complexity_level(6) is Complexity.MEDIUM
    assert complexity_level(10) is Complexity.MEDIUM
    assert complexity_level(11) is Complexity.HIGH


def test_booleans_are_not_metrics():
    assert analyze({"enabled": True, "count": 3}).metrics_summary == {"count": 3}


def test_key_entities_first_five_visible():
    ctx = {"_internal": 1, **{f"k{i}": i for i in range(7)}}
    assert analyze(ctx).key_entities == ["k0", "k1", "k2", "k3", "k4"]


def test_order_independent_facts():
    a = analyze({"users": [{"id": 1}], "cpu": 5})
    b = analyze({"cpu": 5, "users": [{"id": 1}]})
    assert a.categories == b.categories
    assert a.complexity_score == b.complexity_score
    assert a.suggested_format is b.suggested_format


def test_reserved_keys_are_not_data():
    facts = analyze({"_trace_id": 7, "_rows": [{"a": 1}, {"a": 2}], "count": 3})
    assert facts.metrics_summary == {"count": 3}
    assert facts.has_list_data is False
    assert facts.has_table_data is False
    assert facts.complexity_score == 0
    assert facts.suggested_format is FormatLabel.TEXT
