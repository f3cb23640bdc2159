"""Tests for the report comparator."""

import pytest

from goal_sync.comparator import (
    ReportComparator,
    differences_by_metric,
    export_comparison_csv,
    filter_changes_only,
    percent_change,
    significant_changes,
    validate_comparison,
)
from goal_sync.models import ReportRecord
from goal_sync.store import REGISTERED


def snapshot_doc(player_id, cycle, time, status=REGISTERED, seq=1, **metrics):
    return {
        "player_id": player_id,
        "cycle_number": cycle,
        "status": status,
        "time": time,
        "upload_sequence": seq,
        **metrics,
    }


class TestTolerance:
    def test_within_tolerance_is_not_a_difference(self, store):
        store.docs.append(snapshot_doc("P1", 3, 1000, atividade=85.0))
        report = ReportComparator(store).compare([ReportRecord("P1", {"atividade": 85.005})], 3)
        assert report.total_differences == 0
        assert not report.results[0].has_changes
        assert report.results[0].stored_found

    def test_above_tolerance_is_a_difference(self, store):
        store.docs.append(snapshot_doc("P1", 3, 1000, atividade=85.0))
        report = ReportComparator(store).compare([ReportRecord("P1", {"atividade": 85.02})], 3)
        diff = report.results[0].differences[0]
        assert diff.old_value == 85.0
        assert diff.new_value == 85.02
        assert diff.delta == pytest.approx(0.02)
        assert diff.requires_update

    def test_negative_delta(self, store):
        store.docs.append(snapshot_doc("P1", 3, 1000, faturamento=80.0))
        report = ReportComparator(store).compare([ReportRecord("P1", {"faturamento": 60.0})], 3)
        diff = report.results[0].differences[0]
        assert diff.delta == -20.0
        assert diff.percent_change == -25.0


class TestSnapshotSelection:
    def test_latest_registered_snapshot_wins(self, store):
        store.docs.extend(
            [
                snapshot_doc("P1", 3, 1000, atividade=40.0),
                snapshot_doc("P1", 3, 3000, atividade=60.0),
                snapshot_doc("P1", 3, 4000, status="PENDING", atividade=90.0),
                snapshot_doc("P1", 2, 5000, atividade=99.0),
                snapshot_doc("P2", 3, 6000, atividade=10.0),
            ]
        )
        report = ReportComparator(store).compare([ReportRecord("P1", {"atividade": 70.0})], 3)
        diff = report.results[0].differences[0]
        assert diff.old_value == 60.0
        assert diff.delta == 10.0

    def test_lookup_uses_allowed_stages(self, store):
        ReportComparator(store).compare([ReportRecord("P1", {"atividade": 1.0})], 3)
        ops = [next(iter(stage)) for stage in store.pipelines[0]]
        assert ops == ["$match", "$sort", "$limit"]
        assert store.pipelines[0][0]["$match"]["time"] == {"$exists": True}


class TestBaseline:
    def test_new_cycle_ignores_stored_data(self, store):
        store.docs.append(snapshot_doc("P1", 3, 1000, atividade=85.5))
        comparator = ReportComparator(store)
        report = comparator.compare([ReportRecord("P1", {"atividade": 85.5, "upa": 0.0})], 3, is_new_cycle=True)

        assert store.pipelines == []
        diffs = {d.metric: d for d in report.results[0].differences}
        assert diffs["atividade"].old_value == 0
        assert diffs["atividade"].delta == 85.5
        assert diffs["atividade"].percent_change == 100.0
        assert diffs["upa"].percent_change == 0.0
        assert "(new cycle)" in report.summary

    def test_missing_snapshot_behaves_as_new_for_that_player(self, store):
        store.docs.append(snapshot_doc("P2", 3, 1000, atividade=50.0))
        report = ReportComparator(store).compare(
            [ReportRecord("P1", {"atividade": 85.5}), ReportRecord("P2", {"atividade": 50.0})], 3
        )
        p1, p2 = report.results
        assert p1.has_changes and p1.differences[0].delta == 85.5
        assert not p1.stored_found
        assert not p2.has_changes
        assert report.players_with_changes == 1

    def test_lookup_failure_is_isolated(self, store):
        store.docs.append(snapshot_doc("P2", 3, 1000, atividade=50.0))
        store.failing_players.add("P1")
        report = ReportComparator(store).compare(
            [ReportRecord("P1", {"atividade": 30.0}), ReportRecord("P2", {"atividade": 55.0})], 3
        )
        p1, p2 = report.results
        assert p1.differences[0].old_value == 0
        assert p2.differences[0].delta == 5.0


class TestNewCycleDetection:
    def test_empty_cycle_is_new(self, store):
        store.docs.append(snapshot_doc("P1", 2, 1000, atividade=1.0))
        comparator = ReportComparator(store)
        assert comparator.detect_new_cycle(3)
        assert not comparator.detect_new_cycle(2)

    def test_failure_counts_as_new(self, store):
        store.fail_all = True
        assert ReportComparator(store).detect_new_cycle(2)


class TestPercentChange:
    @pytest.mark.parametrize(
        "old, new, expected", [(50, 75, 50.0), (0, 10, 100.0), (0, 0, 0.0), (80, 40, -50.0)]
    )
    def test_rules(self, old, new, expected):
        assert percent_change(old, new) == expected


class TestHelpers:
    def _report(self, store):
        store.docs.append(snapshot_doc("P1", 3, 1000, atividade=50.0, faturamento=100.0))
        return ReportComparator(store).compare(
            [
                ReportRecord("P1", {"atividade": 52.0, "faturamento": 100.0}, player_name="Ana", team="CARTEIRA_I"),
                ReportRecord("P2", {"atividade": 10.0}),
            ],
            3,
        )

    def test_filters_and_groups(self, store):
        report = self._report(store)
        assert len(filter_changes_only(report.results)) == 2
        grouped = differences_by_metric(report.results)
        assert set(grouped) == {"atividade"}
        assert len(grouped["atividade"]) == 2
        significant = significant_changes(report.results, threshold=10)
        assert [d.player_id for d in significant] == ["P2"]

    def test_validation_flags_bad_values(self, store):
        report = self._report(store)
        assert validate_comparison(report.results) == []
        bad = ReportComparator().compare([ReportRecord("P9", {"upa": float("nan")})], 1, is_new_cycle=True)
        assert any("non-finite" in e for e in validate_comparison(bad.results))

    def test_csv_export(self, store):
        csv_text = export_comparison_csv(self._report(store).results)
        lines = csv_text.strip().splitlines()
        assert lines[0].startswith("player_id,player_name,team,metric")
        assert len(lines) == 3
        assert "Ana,CARTEIRA_I,atividade" in lines[1]
