"""Tests for the indexing cycle."""

import threading
from datetime import timedelta

import pytest

from pnode_analytics.core.collector import Collector, CycleState, aggregate_network, build_cycle
from pnode_analytics.core.errors import DiscoveryError
from pnode_analytics.core.models import CycleStatus, EventType, NetworkMetric, NodeMetric
from pnode_analytics.db.sqlite import SQLiteDatabase, TimeSeriesStore


class TestRunCycle:
    def test_completed_cycle_persists_nodes_and_network(self, collector, source, store, make_raw, now):
        source.records = [make_raw("node-a", uptime=3600, latency=50), make_raw("node-b")]

        result = collector.run_cycle(now=now)

        assert result.status == CycleStatus.COMPLETED
        assert result.fetched == 2
        assert result.normalized == 2
        assert result.snapshots_written == store.stats()["snapshot_count"]
        assert store.node_ids() == ["node-a", "node-b"]
        assert store.latest("network", NetworkMetric.TOTAL_NODES.value) == 2.0
        assert store.latest("node-a", NodeMetric.LATENCY.value) == 50.0
        assert store.latest("node-b", NodeMetric.LATENCY.value) is None
        assert collector.state == CycleState.IDLE

    def test_rerunning_same_cycle_writes_nothing(self, collector, source, make_raw, now):
        source.records = [make_raw("node-a")]
        collector.run_cycle(now=now)

        again = collector.run_cycle(now=now)

        assert again.status == CycleStatus.COMPLETED
        assert again.snapshots_written == 0
        assert again.events_written == 0

    def test_same_input_gives_same_snapshots(self, source, make_raw, now):
        source.records = [make_raw("node-a", uptime=100), make_raw("node-b", seen_minutes_ago=12)]
        cycles = []
        for _ in range(2):
            db = SQLiteDatabase(":memory:")
            store = TimeSeriesStore(db)
            Collector(source, store).run_cycle(now=now)
            cycles.append(store.latest_cycle())
            db.close()

        assert cycles[0] == cycles[1]

    def test_events_detected_between_cycles(self, collector, source, store, make_raw, now):
        source.records = [make_raw("node-a"), make_raw("node-b")]
        collector.run_cycle(now=now)

        later = now + timedelta(minutes=1)
        source.records = [make_raw("node-a", now=later), make_raw("node-c", now=later)]
        result = collector.run_cycle(now=later)

        types = {(e.type, e.pnode_id) for e in store.list_events()}
        assert (EventType.NODE_JOINED, "node-c") in types
        assert (EventType.NODE_LEFT, "node-b") in types
        assert result.events_written == 2

    def test_request_during_cycle_is_skipped(self, store, make_raw, now):
        nested = []

        class ReentrantSource:
            def fetch_latest(self):
                nested.append(collector.run_cycle(now=now))
                return [make_raw("node-a")]

        collector = Collector(ReentrantSource(), store)
        result = collector.run_cycle(now=now)

        assert result.status == CycleStatus.COMPLETED
        assert nested[0].status == CycleStatus.SKIPPED
        assert collector.stats()["cycles"] == {
            "completed": 1, "skipped": 1, "aborted": 0, "failed": 0,
        }

    def test_concurrent_requests_are_all_counted(self, store, make_raw, now):
        entered = threading.Event()
        release = threading.Event()

        class BlockingSource:
            def fetch_latest(self):
                entered.set()
                release.wait(5)
                return [make_raw("node-a")]

        collector = Collector(BlockingSource(), store)
        runner = threading.Thread(target=collector.run_cycle, kwargs={"now": now})
        runner.start()
        assert entered.wait(5)

        callers = [threading.Thread(target=collector.run_cycle, kwargs={"now": now}) for _ in range(8)]
        for t in callers:
            t.start()
        for t in callers:
            t.join()
        release.set()
        runner.join()

        assert collector.stats()["cycles"] == {
            "completed": 1, "skipped": 8, "aborted": 0, "failed": 0,
        }

    def test_malformed_record_does_not_abort_cycle(self, collector, source, store, make_raw, now):
        source.records = [make_raw("good-node-1"), make_raw("bad-node-2", tpu=5)]

        result = collector.run_cycle(now=now)

        assert result.status == CycleStatus.COMPLETED
        assert result.normalized == 1
        assert result.skipped == 1
        assert store.node_ids() == ["good-node-1"]

    def test_nothing_valid_aborts_without_writes(self, collector, source, store):
        source.records = [{"version": "0.7.3"}, {"pubkey": "x", "last_seen": "garbage"}]

        result = collector.run_cycle()

        assert result.status == CycleStatus.ABORTED
        assert result.skipped == 2
        assert store.stats()["snapshot_count"] == 0

    def test_discovery_failure_raises_without_writes(self, collector, source, store):
        source.fail("all endpoints down")

        with pytest.raises(DiscoveryError):
            collector.run_cycle()

        assert store.stats()["snapshot_count"] == 0
        assert collector.last_result.status == CycleStatus.FAILED
        assert collector.stats()["cycles"]["failed"] == 1
        assert collector.state == CycleState.IDLE

    def test_empty_discovery_is_a_failure(self, collector, source):
        source.records = []
        with pytest.raises(DiscoveryError):
            collector.run_cycle()


class TestCycleAlerts:
    """Rules are evaluated after every persisted cycle."""

    def test_health_rule_triggers_then_resolves(self, collector, source, alert_engine, make_raw, now):
        rule = alert_engine.create_rule({
            "name": "Low network health",
            "metric": "healthScore",
            "operator": "<",
            "threshold": 50,
        })

        # 2 of 5 online -> health 40
        source.records = [make_raw(f"on-{i}") for i in range(2)] + [
            make_raw(f"off-{i}", seen_minutes_ago=60) for i in range(3)
        ]
        first = collector.run_cycle(now=now)

        assert first.alerts_triggered == 1
        active = alert_engine.get_alerts(unresolved_only=True)
        assert len(active) == 1
        assert active[0].rule_id == rule.id
        assert active[0].trigger_value == 40.0
        assert active[0].created_at == now

        # 4 of 5 online -> health 80
        later = now + timedelta(minutes=1)
        source.records = [make_raw(f"on-{i}", now=later) for i in range(4)] + [
            make_raw("off-0", seen_minutes_ago=60, now=later)
        ]
        second = collector.run_cycle(now=later)

        assert second.alerts_resolved == 1
        assert alert_engine.get_alerts(unresolved_only=True) == []
        assert alert_engine.get_alerts()[0].resolved_at == later


class TestAggregateNetwork:
    def test_counts_and_health(self, normalizer, make_raw, now):
        records, _ = normalizer.normalize_many(
            [make_raw("a"), make_raw("b", seen_minutes_ago=10), make_raw("c", seen_minutes_ago=40),
             make_raw("d")],
            now=now,
        )
        metrics = aggregate_network(records)

        assert metrics[NetworkMetric.TOTAL_NODES.value] == 4.0
        assert metrics[NetworkMetric.ONLINE_NODES.value] == 2.0
        assert metrics[NetworkMetric.DELINQUENT_NODES.value] == 1.0
        assert metrics[NetworkMetric.OFFLINE_PERCENT.value] == 25.0
        assert metrics[NetworkMetric.HEALTH_SCORE.value] == 50.0

    def test_unreported_stats_are_left_out(self, normalizer, make_raw, now):
        records, _ = normalizer.normalize_many([make_raw("a"), make_raw("b")], now=now)
        metrics = aggregate_network(records)

        assert NetworkMetric.AVERAGE_LATENCY.value not in metrics
        assert NetworkMetric.NETWORK_UTILIZATION.value not in metrics

    def test_storage_totals(self, normalizer, make_raw, now):
        records, _ = normalizer.normalize_many(
            [make_raw("a", capacityBytes=100, usedBytes=25), make_raw("b", capacityBytes=300, usedBytes=75),
             make_raw("c")],
            now=now,
        )
        metrics = aggregate_network(records)

        assert metrics[NetworkMetric.TOTAL_CAPACITY_BYTES.value] == 400.0
        assert metrics[NetworkMetric.NETWORK_UTILIZATION.value] == 25.0
        assert metrics[NetworkMetric.AVERAGE_UTILIZATION.value] == 25.0

    def test_empty(self):
        assert aggregate_network([]) == {}

    def test_build_cycle_flattens_to_snapshots(self, normalizer, make_raw, now):
        records, _ = normalizer.normalize_many([make_raw("a"), make_raw("b")], now=now)
        cycle = build_cycle(records, now)
        snapshots = cycle.snapshots()

        expected = len(cycle.network) + sum(len(m) for m in cycle.nodes.values())
        assert len(snapshots) == expected
        assert {s.timestamp for s in snapshots} == {now}
