"""Tests for the node state normalizer."""

from datetime import datetime, timedelta, timezone

import pytest

from pnode_analytics.config import NormalizerSettings
from pnode_analytics.core.models import NodeMetric, NodeStatus, PerformanceMetrics, StorageMetrics
from pnode_analytics.core.normalizer import (
    NodeStateNormalizer,
    parse_timestamp,
    parse_version,
    reference_version,
)

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class TestClassifyStatus:
    """Status thresholds: < 5 min online, < 30 min delinquent, else offline."""

    @pytest.mark.parametrize(
        "minutes, expected",
        [
            (0, NodeStatus.ONLINE),
            (4.99, NodeStatus.ONLINE),
            (5, NodeStatus.DELINQUENT),
            (29.99, NodeStatus.DELINQUENT),
            (30, NodeStatus.OFFLINE),
            (600, NodeStatus.OFFLINE),
        ],
    )
    def test_boundaries(self, normalizer, minutes, expected):
        last_seen = NOW - timedelta(minutes=minutes)
        assert normalizer.classify_status(last_seen, NOW) == expected

    def test_future_last_seen_is_online(self, normalizer):
        assert normalizer.classify_status(NOW + timedelta(minutes=3), NOW) == NodeStatus.ONLINE

    def test_naive_datetimes_are_utc(self, normalizer):
        naive_now = NOW.replace(tzinfo=None)
        assert normalizer.classify_status(naive_now - timedelta(minutes=10), NOW) == NodeStatus.DELINQUENT

    def test_custom_thresholds(self):
        normalizer = NodeStateNormalizer(
            NormalizerSettings(online_threshold_minutes=1, offline_threshold_minutes=2)
        )
        assert normalizer.classify_status(NOW - timedelta(seconds=90), NOW) == NodeStatus.DELINQUENT


class TestPerformanceScore:
    """Weighted composite, always within [0, 100]."""

    def test_perfect_node_scores_100(self, normalizer):
        score = normalizer.performance_score(
            NodeStatus.ONLINE,
            PerformanceMetrics(uptime_seconds=86_400, average_latency_ms=0, uptime_ratio=1.0),
            StorageMetrics(capacity_bytes=100, used_bytes=50, reported=True),
            "0.7.3",
            (0, 7, 3),
        )
        assert score == 100.0

    def test_worst_node_scores_0(self, normalizer):
        score = normalizer.performance_score(
            NodeStatus.OFFLINE,
            PerformanceMetrics(average_latency_ms=5_000),
            StorageMetrics(capacity_bytes=100, used_bytes=100, reported=True),
            "unknown",
            (0, 7, 3),
        )
        assert score == 0.0

    def test_missing_stats_use_neutral_components(self, normalizer):
        # uptime from status (1.0), latency 0.5, version 1.0, storage 0.5
        score = normalizer.performance_score(
            NodeStatus.ONLINE, PerformanceMetrics(), StorageMetrics(), "0.7.3", None
        )
        assert score == pytest.approx(100 * (0.35 + 0.25 * 0.5 + 0.20 + 0.20 * 0.5))

    @pytest.mark.parametrize(
        "raw_extra",
        [
            {"uptime": 10**12, "latency": 10**9, "capacityBytes": 1, "usedBytes": 10**15},
            {"uptime": 0, "latency": 0, "capacityBytes": 0, "usedBytes": 0},
            {"version": "garbage"},
            {"uptime": 1e-9, "latency": 999.999},
        ],
    )
    def test_extremes_stay_in_range(self, normalizer, make_raw, raw_extra):
        record = normalizer.normalize(make_raw("node-x", **raw_extra), now=NOW, reference=(0, 7, 3))
        assert 0.0 <= record.performance_score <= 100.0

    def test_weights_are_normalized(self):
        doubled = NodeStateNormalizer(NormalizerSettings(
            uptime_weight=0.7, latency_weight=0.5, version_weight=0.4, storage_weight=0.4,
        ))
        default = NodeStateNormalizer(NormalizerSettings())
        args = (NodeStatus.DELINQUENT, PerformanceMetrics(), StorageMetrics(), "0.7.1", (0, 7, 3))
        assert doubled.performance_score(*args) == default.performance_score(*args)


class TestVersionComponent:
    @pytest.mark.parametrize(
        "version, expected",
        [
            ("0.7.3", 1.0),
            ("0.8.0", 1.0),
            ("0.7.1", 0.75),
            ("0.6.9", 0.5),
            ("v0.7.3-trynet", 1.0),
            ("unknown", 0.0),
            (None, 0.0),
        ],
    )
    def test_against_reference(self, normalizer, version, expected):
        assert normalizer.version_component(version, (0, 7, 3)) == expected

    def test_older_major(self, normalizer):
        assert normalizer.version_component("1.2.0", (2, 0, 0)) == 0.25

    def test_no_reference(self, normalizer):
        assert normalizer.version_component("0.1.0", None) == 1.0

    def test_reference_version_picks_newest(self):
        records = [{"version": "0.6.0"}, {"version": "0.7.10"}, {"version": "0.7.9"}, {"version": None}]
        assert reference_version(records) == (0, 7, 10)

    def test_parse_version(self):
        assert parse_version("1.2") == (1, 2, 0)
        assert parse_version("") is None


class TestNormalize:
    def test_field_variants(self, normalizer):
        record = normalizer.normalize(
            {
                "id": "abc",
                "gossip": "1.2.3.4:9001",
                "lastSeenAt": (NOW - timedelta(minutes=1)).isoformat(),
                "rpcEndpoint": "1.2.3.4:8899",
                "transportEndpoints": ["1.2.3.4:8000"],
                "uptimeSeconds": 3600,
                "averageLatencyMs": 120,
                "storage_committed": 1000,
                "storage_used": 250,
                "version": "0.7.3",
            },
            now=NOW,
        )
        assert record.id == "abc"
        assert record.address == "1.2.3.4:9001"
        assert record.status == NodeStatus.ONLINE
        assert record.rpc_endpoint == "1.2.3.4:8899"
        assert record.transport_endpoints == ["1.2.3.4:8000"]
        assert record.performance.uptime_seconds == 3600
        assert record.performance.uptime_ratio == pytest.approx(3600 / 86_400)
        assert record.storage.utilization == pytest.approx(25.0)

    def test_id_falls_back_to_address(self, normalizer):
        record = normalizer.normalize({"address": "9.9.9.9:9001", "last_seen": NOW}, now=NOW)
        assert record.id == "9.9.9.9:9001"

    def test_missing_id_is_discarded(self, normalizer):
        assert normalizer.normalize({"last_seen_timestamp": NOW.timestamp()}, now=NOW) is None

    def test_missing_last_seen_is_discarded(self, normalizer):
        assert normalizer.normalize({"pubkey": "abc"}, now=NOW) is None

    def test_malformed_timestamp_raises(self, normalizer):
        with pytest.raises(ValueError):
            normalizer.normalize({"pubkey": "abc", "last_seen": "yesterday-ish"}, now=NOW)

    def test_non_numeric_stat_raises(self, normalizer, make_raw):
        with pytest.raises(ValueError):
            normalizer.normalize(make_raw("abc", latency="fast"), now=NOW)

    def test_used_is_clamped_to_capacity(self, normalizer, make_raw):
        record = normalizer.normalize(make_raw("abc", capacityBytes=100, usedBytes=500), now=NOW)
        assert record.storage.used_bytes == 100
        assert record.storage.utilization == 100.0

    def test_same_input_same_record(self, normalizer, make_raw):
        raw = make_raw("abc", uptime=5000, latency=80)
        assert normalizer.normalize(raw, now=NOW) == normalizer.normalize(raw, now=NOW)

    def test_unreported_stats_are_not_persisted(self, normalizer, make_raw):
        metrics = normalizer.normalize(make_raw("abc"), now=NOW).metrics()
        assert NodeMetric.LATENCY.value not in metrics
        assert NodeMetric.CAPACITY_BYTES.value not in metrics
        assert metrics[NodeMetric.STATUS_CODE.value] == 2.0


class TestNormalizeMany:
    def test_bad_records_are_isolated(self, normalizer, make_raw):
        raw = [
            make_raw("good-1"),
            {"pubkey": "bad", "last_seen": "not a date"},
            "not even a dict",
            {"version": "0.7.3"},
            make_raw("good-2", seen_minutes_ago=45),
        ]
        records, skipped = normalizer.normalize_many(raw, now=NOW)

        assert [r.id for r in records] == ["good-1", "good-2"]
        assert skipped == 3
        assert records[1].status == NodeStatus.OFFLINE

    @pytest.mark.parametrize("endpoints", [5, 4.2, {"host": "x"}, True])
    def test_malformed_endpoints_skip_only_that_record(self, normalizer, make_raw, endpoints):
        raw = [make_raw("good-1"), make_raw("bad-2", tpu=endpoints), make_raw("good-3")]

        records, skipped = normalizer.normalize_many(raw, now=NOW)

        assert [r.id for r in records] == ["good-1", "good-3"]
        assert skipped == 1

    def test_endpoint_variants(self, normalizer, make_raw):
        single = normalizer.normalize(make_raw("a", tpu="1.2.3.4:8000"), now=NOW)
        listed = normalizer.normalize(make_raw("b", transportEndpoints=("1.2.3.4:8000", 9)), now=NOW)
        assert single.transport_endpoints == ["1.2.3.4:8000"]
        assert listed.transport_endpoints == ["1.2.3.4:8000", "9"]

    def test_duplicate_ids_keep_last(self, normalizer, make_raw):
        raw = [make_raw("dup", seen_minutes_ago=1), make_raw("dup", seen_minutes_ago=40)]
        records, skipped = normalizer.normalize_many(raw, now=NOW)
        assert len(records) == 1
        assert records[0].status == NodeStatus.OFFLINE
        assert skipped == 0


class TestParseTimestamp:
    def test_epoch_seconds_and_millis(self):
        assert parse_timestamp(NOW.timestamp()) == NOW
        assert parse_timestamp(NOW.timestamp() * 1000) == NOW

    def test_iso_with_z(self):
        assert parse_timestamp("2026-01-15T12:00:00Z") == NOW

    def test_numeric_string(self):
        assert parse_timestamp(str(int(NOW.timestamp()))) == NOW

    def test_unsupported_type(self):
        with pytest.raises(ValueError):
            parse_timestamp(["2026"])
