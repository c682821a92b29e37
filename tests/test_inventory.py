"""Tests for intellirack.inventory presentation helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from intellirack.inventory import (
    count_online,
    health_label,
    is_online,
    least_stocked,
    parse_timestamp,
    relative_time,
    sanitize_item_name,
    soon_empty,
    top_stocked,
    weight_status,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestWeightStatus:
    @pytest.mark.parametrize(
        "weight,expected",
        [(None, "EMPTY"), (0, "EMPTY"), (49, "EMPTY"), (50, "LOW"), (199, "LOW"), (200, "GOOD")],
    )
    def test_default_thresholds(self, weight, expected):
        assert weight_status(weight) == expected

    def test_custom_thresholds(self):
        assert weight_status(300, {"low": 500}) == "LOW"
        assert weight_status(80, {"critical": 100}) == "EMPTY"


class TestSanitizeItemName:
    def test_keeps_clean_names(self):
        assert sanitize_item_name("Brown sugar") == "Brown sugar"

    def test_strips_symbols_and_control_characters(self):
        assert sanitize_item_name("  Flour\x00\x07 (500g)! ") == "Flour 500g"

    def test_empty_or_unreadable(self):
        assert sanitize_item_name("") is None
        assert sanitize_item_name(None) is None
        assert sanitize_item_name("\x01\x02") is None
        assert sanitize_item_name(42) is None

    def test_falls_back_to_readable_runs(self):
        assert sanitize_item_name("é\x00a") == "a"


class TestOnline:
    def test_explicit_flag_wins(self):
        old = (NOW - timedelta(hours=2)).isoformat()
        assert is_online({"isOnline": True, "lastSeen": old}, now=NOW)
        assert not is_online({"isOnline": False}, now=NOW)

    def test_explicit_null_flag_is_offline(self):
        recent = NOW.isoformat()
        assert not is_online({"isOnline": None, "lastSeen": recent}, now=NOW)
        assert count_online([{"isOnline": None}, {"lastSeen": recent}], now=NOW) == {
            "online": 1,
            "offline": 1,
        }

    def test_last_seen_window(self):
        recent = (NOW - timedelta(minutes=4)).isoformat().replace("+00:00", "Z")
        stale = (NOW - timedelta(minutes=6)).isoformat()
        assert is_online({"lastSeen": recent}, now=NOW)
        assert not is_online({"lastSeen": stale}, now=NOW)
        assert not is_online({}, now=NOW)

    def test_count_online(self):
        devices = [
            {"isOnline": True},
            {"lastSeen": NOW.isoformat()},
            {"lastSeen": "garbage"},
            {},
        ]
        assert count_online(devices, now=NOW) == {"online": 2, "offline": 2}
        assert count_online([]) == {"online": 0, "offline": 0}


class TestHealthLabel:
    @pytest.mark.parametrize(
        "score,label",
        [(95, "Excellent"), (80, "Excellent"), (65, "Good"), (40, "Moderate"), (20, "Low"), (5, "Critical")],
    )
    def test_bands(self, score, label):
        assert health_label(score) == label


class TestStockRankings:
    ITEMS = [
        {"name": "rice", "weight": 900},
        {"name": "salt", "weight": 40},
        {"name": "flour", "weight": 0},
        {"name": "oats", "weight": 300},
        {"name": "sugar", "weight": 120},
    ]

    def test_top_stocked(self):
        assert [i["name"] for i in top_stocked(self.ITEMS)] == ["rice", "oats", "sugar"]

    def test_least_stocked_skips_empty(self):
        assert [i["name"] for i in least_stocked(self.ITEMS)] == ["salt", "sugar", "oats"]

    def test_soon_empty(self):
        assert [i["name"] for i in soon_empty(self.ITEMS)] == ["salt", "flour"]


class TestRelativeTime:
    def test_buckets(self):
        assert relative_time(NOW - timedelta(seconds=30), now=NOW) == "Just now"
        assert relative_time(NOW - timedelta(minutes=12), now=NOW) == "12m ago"
        assert relative_time(NOW - timedelta(hours=3, minutes=5), now=NOW) == "3h ago"
        assert relative_time(NOW - timedelta(days=3), now=NOW) == "2024-04-28"

    def test_unknown(self):
        assert relative_time(None) == "Unknown time"
        assert relative_time("not a date") == "Unknown time"

    def test_naive_timestamps_are_utc(self):
        assert parse_timestamp("2024-05-01T12:00:00") == NOW
