"""Tests for the intent-specific data reducer."""

from unittest.mock import patch

import pytest

from kaiwa.intelligence import reducer
from kaiwa.intelligence.reducer import NO_SESSION_DATA, NO_TREND_DATA, reduce
from kaiwa.models import ReductionIntent

NOW = 1_700_000_000.0
NOW_MS = 1_700_000_000_000


def test_empty_context_reduces_to_empty():
    assert reduce({}, ReductionIntent.GENERAL_QUERY) == {}
    assert reduce(None, "user_management") == {}


def test_metadata_on_every_result(users_context):
    result = reduce(users_context, ReductionIntent.USER_MANAGEMENT, now=NOW)
    meta = result["_metadata"]
    assert meta["intent"] == "user_management"
    assert meta["processed_at"] == NOW_MS
    assert "_metadata" not in meta["data_keys"]
    assert meta["data_keys"] == ["user_list", "user_stats", "roles", "response_format"]


def test_input_not_mutated(users_context):
    import copy
    before = copy.deepcopy(users_context)
    for intent in ReductionIntent:
        reduce(users_context, intent, now=NOW)
    assert users_context == before


# --- user_management ---

def test_user_management_caps_users(users_context):
    result = reduce(users_context, "user_management", now=NOW)
    assert len(result["user_list"]) == 10
    assert result["user_list"][0]["name"] == "user1"
    assert result["user_stats"] == {"total_users": 15, "displayed_users": 10}
    assert result["roles"] == ["admin", "viewer"]
    assert result["response_format"] == "table"


def test_user_management_non_sequence_users():
    result = reduce({"users": {"count": 3}}, "user_management", now=NOW)
    assert result["user_list"] == {"count": 3}
    assert result["user_stats"] == {}


# --- system_status ---

def test_system_status_defaults():
    result = reduce({"cpu": 10}, ReductionIntent.SYSTEM_STATUS, now=NOW)
    assert result["status"] == "Unknown"
    assert result["uptime"] == "Unknown"
    assert result["alerts"] == []
    assert result["health_check"] == {"status": "OK", "timestamp": NOW_MS}
    assert result["response_format"] == "card"


def test_system_status_merges_health(status_context):
    ctx = {**status_context, "health": {"status": "DEGRADED", "db": "slow"}}
    result = reduce(ctx, ReductionIntent.SYSTEM_STATUS, now=NOW)
    assert result["status"] == "Healthy"
    assert result["health_check"] == {"status": "DEGRADED", "timestamp": NOW_MS, "db": "slow"}
    assert len(result["alerts"]) == 1


# --- system_data_query ---

def test_system_data_query():
    ctx = {"system": {"hostname": "box"}, "cpu": {"percent": 5}, "disk": 70, "other": 1}
    result = reduce(ctx, ReductionIntent.SYSTEM_DATA_QUERY, now=NOW)
    assert result["system_info"] == {"hostname": "box"}
    assert result["performance_metrics"] == {"cpu": {"percent": 5}, "disk": 70}
    assert result["resource_usage"] == {}
    assert result["active_sessions"] == NO_SESSION_DATA
    assert "response_format" not in result


# --- list_query / table_query ---

def test_list_query_caps_each_sequence():
    ctx = {"items": list(range(30)), "tags": ["a"], "name": "x", "_hidden": [1, 2]}
    result = reduce(ctx, ReductionIntent.LIST_QUERY, now=NOW)
    assert result["items"] == list(range(20))
    assert result["tags"] == ["a"]
    assert "name" not in result
    assert "_hidden" not in result
    assert result["response_format"] == "list"


def test_table_query_keeps_only_table_shaped():
    rows = [{"id": i} for i in range(80)]
    ctx = {"rows": rows, "tags": ["a", "b"], "empty": []}
    result = reduce(ctx, ReductionIntent.TABLE_QUERY, now=NOW)
    assert len(result["rows"]) == 50
    assert "tags" not in result
    assert "empty" not in result
    assert result["response_format"] == "table"


# --- report_generation ---

def test_report_generation(users_context):
    ctx = {**users_context, "cpu": 12, "region": "eu", "_trace": "abc"}
    result = reduce(ctx, ReductionIntent.REPORT_GENERATION, now=NOW)
    assert result["summary"]["total_data_points"] == 4
    assert result["summary"]["data_types"] == ["list", "int", "str"]
    assert result["trends"] == {"status": NO_TREND_DATA}
    assert result["insights"] == [
        "User management data is available for analysis",
        "System performance metrics can be monitored",
    ]
    assert result["response_format"] == "card"


# --- general_query ---

def test_general_query_simplifies():
    ctx = {
        "big_map": {f"k{i}": i for i in range(8)},
        "big_list": list(range(25)),
        "small": [1, 2],
        "nothing": None,
        "_internal": {"x": 1},
    }
    result = reduce(ctx, ReductionIntent.GENERAL_QUERY, now=NOW)
    assert list(result["big_map"]) == ["k0", "k1", "k2", "k3", "k4"]
    assert result["big_list"] == list(range(10))
    assert result["small"] == [1, 2]
    assert "nothing" not in result
    assert "_internal" not in result
    assert "response_format" not in result


@pytest.mark.parametrize("label", ["unknown_intent", "", None, 42])
def test_unknown_intent_uses_general(label):
    result = reduce({"a": 1}, label, now=NOW)
    assert result["a"] == 1
    assert result["_metadata"]["data_keys"] == ["a"]


def test_intent_string_is_case_insensitive():
    result = reduce({"users": []}, "USER_MANAGEMENT", now=NOW)
    assert result["response_format"] == "table"


# --- failure path ---

def test_strategy_failure_becomes_error_entry():
    def boom(ctx, now_ms):
        raise RuntimeError("disk on fire")

    with patch.dict(reducer._STRATEGIES, {ReductionIntent.LIST_QUERY: boom}):
        result = reduce({"a": [1]}, ReductionIntent.LIST_QUERY, now=NOW)

    assert result["error"] == "Failed to process system data: disk on fire"
    assert result["_metadata"]["data_keys"] == ["error"]


def test_every_intent_has_a_strategy():
    assert set(reducer._STRATEGIES) == set(ReductionIntent)
