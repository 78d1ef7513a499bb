"""
Unit tests for payload collection and token normalization.

Tests flattening of the nested usage payload, skipped-branch reporting,
timestamp parsing and canonical token records.
"""

import math
from datetime import datetime, timedelta, timezone

from usage_telemetry.core.collector import (
    collect_usage_events,
    get_model_names,
    latest_events,
    normalize_auth_index,
    parse_timestamp,
    parse_usage_payload,
    sort_events,
)
from usage_telemetry.core.fingerprint import FingerprintCache
from usage_telemetry.core.identity import SourceIdentityNormalizer
from usage_telemetry.core.token_counter import TokenUsage, coerce_token_count


def _payload(details, endpoint="/v1/chat", model="gpt-x"):
    return {"apis": {endpoint: {"total_requests": len(details), "models": {model: {"details": details}}}}}


class TestTokenUsage:
    """Test canonical token records."""

    def test_total_is_sum_of_parts(self):
        usage = TokenUsage.from_raw({"input_tokens": 100, "output_tokens": 50, "reasoning_tokens": 5, "cached_tokens": 10})
        assert usage.total_tokens == 165

    def test_explicit_total_wins(self):
        usage = TokenUsage.from_raw({"input_tokens": 100, "output_tokens": 50, "total_tokens": 120})
        assert usage.total_tokens == 120

    def test_legacy_cache_alias_takes_max(self):
        """cached_tokens and cache_tokens merge into one field."""
        usage = TokenUsage.from_raw({"cached_tokens": 10, "cache_tokens": 30})
        assert usage.cached_tokens == 30
        usage = TokenUsage.from_raw({"cache_tokens": 7})
        assert usage.cached_tokens == 7

    def test_prompt_tokens_exclude_cached(self):
        usage = TokenUsage(input_tokens=100, cached_tokens=40)
        assert usage.prompt_tokens == 60
        assert TokenUsage(input_tokens=10, cached_tokens=40).prompt_tokens == 0

    def test_invalid_values_become_zero(self):
        usage = TokenUsage.from_raw({
            "input_tokens": -5,
            "output_tokens": "abc",
            "reasoning_tokens": math.nan,
            "cached_tokens": True,
            "total_tokens": "100",
        })
        assert usage == TokenUsage()
        assert usage.total_tokens == 0

    def test_missing_tokens(self):
        assert TokenUsage.from_raw(None) == TokenUsage()

    def test_coerce_token_count(self):
        assert coerce_token_count("42") == 42
        assert coerce_token_count(3.9) == 3
        assert coerce_token_count(math.inf) == 0
        assert coerce_token_count(False) == 0
        assert coerce_token_count([1]) == 0


class TestParseTimestamp:
    """Test timestamp parsing."""

    def test_zulu_suffix(self):
        assert parse_timestamp("2026-01-01T12:00:00Z") == datetime(2026, 1, 1, 12, tzinfo=timezone.utc)

    def test_offset_is_converted_to_utc(self):
        assert parse_timestamp("2026-01-01T14:00:00+02:00") == datetime(2026, 1, 1, 12, tzinfo=timezone.utc)

    def test_nanosecond_fraction(self):
        parsed = parse_timestamp("2026-01-01T12:00:00.123456789Z")
        assert parsed == datetime(2026, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)

    def test_short_fraction(self):
        parsed = parse_timestamp("2026-01-01T12:00:00.5Z")
        assert parsed.microsecond == 500000

    def test_invalid_values(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(12345) is None
        assert parse_timestamp(None) is None

    def test_value_without_local_equivalent_is_rejected(self, local_tz_behind_utc):
        """Half past midnight on 0001-01-01 UTC falls before year 1 locally."""
        assert parse_timestamp("0001-01-01T00:30:00Z") is None
        assert parse_timestamp("0001-01-02T00:30:00Z") == datetime(1, 1, 2, 0, 30, tzinfo=timezone.utc)


class TestNormalizeAuthIndex:
    """Test auth index normalization."""

    def test_numbers(self):
        assert normalize_auth_index(3) == "3"
        assert normalize_auth_index(3.0) == "3"
        assert normalize_auth_index(1.5) == "1.5"
        assert normalize_auth_index(math.nan) is None

    def test_strings(self):
        assert normalize_auth_index("  abc ") == "abc"
        assert normalize_auth_index("   ") is None

    def test_unsupported(self):
        assert normalize_auth_index(None) is None
        assert normalize_auth_index(True) is None
        assert normalize_auth_index({"a": 1}) is None


class TestParseUsagePayload:
    """Test flattening of the nested payload."""

    def test_collects_events(self):
        payload = _payload([
            {
                "timestamp": "2026-01-01T12:00:00Z",
                "source": "my-channel",
                "auth_index": 2,
                "failed": True,
                "tokens": {"input_tokens": 10, "output_tokens": 5},
            },
        ])
        parsed = parse_usage_payload(payload)

        assert len(parsed.events) == 1
        event = parsed.events[0]
        assert event.source == "t:my-channel"
        assert event.auth_index == "2"
        assert event.failed is True
        assert event.model_name == "gpt-x"
        assert event.endpoint == "/v1/chat"
        assert event.total_tokens == 15
        assert parsed.skipped == []
        assert parsed.endpoints[0].total_requests == 1

    def test_unwraps_usage_wrapper(self):
        payload = {"usage": _payload([{"timestamp": "2026-01-01T12:00:00Z"}])}
        assert len(collect_usage_events(payload)) == 1

    def test_only_literal_true_is_failure(self):
        """Truthy non-boolean failure flags count as success."""
        payload = _payload([
            {"timestamp": "2026-01-01T12:00:00Z", "failed": "true"},
            {"timestamp": "2026-01-01T12:01:00Z", "failed": 1},
        ])
        assert [event.failed for event in collect_usage_events(payload)] == [False, False]

    def test_skips_details_without_valid_timestamp(self):
        payload = _payload([
            {"source": "a"},
            {"timestamp": "garbage"},
            "not-a-mapping",
            {"timestamp": "2026-01-01T12:00:00Z"},
        ])
        parsed = parse_usage_payload(payload)

        assert len(parsed.events) == 1
        assert [entry.reason for entry in parsed.skipped] == [
            "missing timestamp",
            "unparseable timestamp",
            "detail is not a mapping",
        ]

    def test_untimestamped_details_kept_for_billing(self):
        """Mapping details stay in the billing view even without a timestamp."""
        payload = _payload([
            {"failed": True, "tokens": {"input_tokens": 5}},
            "not-a-mapping",
            {"timestamp": "2026-01-01T12:00:00Z"},
        ])
        parsed = parse_usage_payload(payload)

        assert len(parsed.events) == 1
        assert [(d.endpoint, d.model_name, d.failed) for d in parsed.details] == [
            ("/v1/chat", "gpt-x", True),
            ("/v1/chat", "gpt-x", False),
        ]
        assert parsed.details[0].tokens.input_tokens == 5

    def test_skips_malformed_branches(self):
        payload = {
            "apis": {
                "/bad-endpoint": "oops",
                "/bad-models": {"models": "oops"},
                "/ok": {"models": {"bad-model": None, "bad-details": {"details": {}}}},
            }
        }
        parsed = parse_usage_payload(payload)

        assert parsed.events == []
        reasons = {(entry.endpoint, entry.model_name, entry.reason) for entry in parsed.skipped}
        assert reasons == {
            ("/bad-endpoint", "", "endpoint entry is not a mapping"),
            ("/bad-models", "", "models is not a mapping"),
            ("/ok", "bad-model", "model entry is not a mapping"),
            ("/ok", "bad-details", "details is not a list"),
        }

    def test_non_mapping_payload(self):
        assert parse_usage_payload(None).events == []
        assert parse_usage_payload([1, 2]).events == []
        assert parse_usage_payload({"apis": "oops"}).skipped[0].reason == "apis is not a mapping"

    def test_model_counters(self):
        payload = {"apis": {"/v1": {"models": {"gpt-x": {"total_requests": 4, "total_tokens": 40, "success_count": 3, "failure_count": 1}}}}}
        summary = parse_usage_payload(payload).models[0]
        assert summary.total_requests == 4
        assert summary.success_count == 3
        assert summary.has_explicit_counts

    def test_uses_injected_normalizer(self):
        cache = FingerprintCache()
        normalizer = SourceIdentityNormalizer(cache=cache)
        payload = _payload([{"timestamp": "2026-01-01T12:00:00Z", "source": "sk-aaaaaaaaaaaaaaaaaaaaaaaa"}])
        parse_usage_payload(payload, normalizer)
        assert "sk-aaaaaaaaaaaaaaaaaaaaaaaa" in cache


class TestEventHelpers:
    """Test model name listing and ordering helpers."""

    def test_get_model_names(self):
        payload = {"apis": {
            "/a": {"models": {"zeta": {}, "alpha": {}}},
            "/b": {"models": {"alpha": {}}},
        }}
        assert get_model_names(payload) == ["alpha", "zeta"]

    def test_sort_and_latest(self):
        base = datetime(2026, 1, 1, 12, tzinfo=timezone.utc)
        payload = _payload([
            {"timestamp": (base + timedelta(minutes=i)).isoformat(), "source": f"label-{i}"}
            for i in (3, 1, 2, 0)
        ])
        events = collect_usage_events(payload)

        assert [e.source for e in sort_events(events)] == ["t:label-0", "t:label-1", "t:label-2", "t:label-3"]
        assert [e.source for e in sort_events(events, newest_first=True)][0] == "t:label-3"
        assert [e.source for e in latest_events(events, limit=2)] == ["t:label-2", "t:label-3"]
        assert latest_events(events, limit=0) == []
