"""
Diff engine between an uploaded report batch and the last registered snapshots.
"""

from __future__ import annotations

import concurrent.futures
import logging
import math
from typing import Optional, Sequence

import pandas as pd

from .errors import SyncError
from .models import (
    METRIC_DISPLAY_NAMES,
    ComparisonReport,
    ComparisonResult,
    MetricDifference,
    ReportRecord,
    StoredSnapshot,
)
from .store import ReportStore

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.01
UNKNOWN_TEAM = "UNKNOWN"
EXPORT_COLUMNS = ["player_id", "player_name", "team", "metric", "old_value", "new_value", "delta", "percent_change"]


def percent_change(old: float, new: float) -> float:
    if old > 0:
        return round((new - old) / old * 100, 2)
    return 100.0 if new > 0 else 0.0


def _summarize_player(diffs: list, is_baseline: bool) -> str:
    if not diffs:
        return "No changes detected"
    parts = []
    for d in diffs:
        name = METRIC_DISPLAY_NAMES.get(d.metric, d.metric)
        sign = "+" if d.delta >= 0 else ""
        parts.append(f"{name}: {d.old_value:g} -> {d.new_value:g} ({sign}{d.delta:g})")
    prefix = "Initial values" if is_baseline else f"{len(diffs)} change(s)"
    return f"{prefix}: " + "; ".join(parts)


class ReportComparator:
    def __init__(
        self,
        store: Optional[ReportStore] = None,
        tolerance: float = DEFAULT_TOLERANCE,
        max_workers: int = 4,
    ):
        self.store = store
        self.tolerance = tolerance
        self.max_workers = max(1, int(max_workers))

    def detect_new_cycle(self, cycle_number: int) -> bool:
        """A cycle with no stored record at all is new. Lookup failures count as new."""
        if self.store is None:
            return True
        try:
            return not self.store.has_cycle_records(cycle_number)
        except SyncError as e:
            logger.warning(f"[Compare] Could not check cycle {cycle_number}, treating as new: {e}")
            return True

    def latest_snapshot(self, player_id: str, cycle_number: int) -> Optional[StoredSnapshot]:
        if self.store is None:
            return None
        try:
            return self.store.latest_snapshot(player_id, cycle_number)
        except SyncError as e:
            logger.warning(f"[Compare] Snapshot lookup failed for {player_id} (cycle {cycle_number}): {e}")
            return None

    def compare_player(
        self,
        record: ReportRecord,
        snapshot: Optional[StoredSnapshot],
        is_new_cycle: bool = False,
    ) -> ComparisonResult:
        baseline = is_new_cycle or snapshot is None
        diffs = []
        for metric, new_value in record.metrics.items():
            old_value = 0.0 if baseline else snapshot.metrics.get(metric, 0.0)
            delta = new_value - old_value
            if not baseline and abs(delta) <= self.tolerance:
                continue
            diffs.append(
                MetricDifference(
                    player_id=record.player_id,
                    metric=metric,
                    old_value=old_value,
                    new_value=new_value,
                    delta=round(delta, 6),
                    percent_change=percent_change(old_value, new_value),
                    requires_update=True,
                )
            )

        return ComparisonResult(
            player_id=record.player_id,
            player_name=record.player_name,
            team=record.team or (snapshot.team if snapshot else None) or UNKNOWN_TEAM,
            differences=diffs,
            has_changes=bool(diffs),
            summary=_summarize_player(diffs, baseline),
            stored_found=snapshot is not None,
        )

    def compare(
        self,
        batch: Sequence[ReportRecord],
        cycle_number: int,
        is_new_cycle: bool = False,
    ) -> ComparisonReport:
        if is_new_cycle:
            logger.info(f"[Compare] Cycle {cycle_number} is new; {len(batch)} record(s) compared against zero")
            snapshots: list = [None] * len(batch)
        else:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                snapshots = list(
                    executor.map(lambda r: self.latest_snapshot(r.player_id, cycle_number), batch)
                )

        results = [
            self.compare_player(record, snapshot, is_new_cycle)
            for record, snapshot in zip(batch, snapshots)
        ]

        with_changes = sum(1 for r in results if r.has_changes)
        total_diffs = sum(len(r.differences) for r in results)
        summary = (
            f"Compared {len(results)} player(s) for cycle {cycle_number}: "
            f"{with_changes} with changes, {total_diffs} metric difference(s)"
        )
        if is_new_cycle:
            summary += " (new cycle)"
        logger.info(f"[Compare] {summary}")

        return ComparisonReport(
            cycle_number=cycle_number,
            is_new_cycle=is_new_cycle,
            results=results,
            total_players=len(results),
            players_with_changes=with_changes,
            total_differences=total_diffs,
            summary=summary,
        )


def filter_changes_only(results: Sequence[ComparisonResult]) -> list:
    return [r for r in results if r.has_changes]


def differences_by_metric(results: Sequence[ComparisonResult]) -> dict[str, list]:
    grouped: dict[str, list] = {}
    for r in results:
        for d in r.differences:
            grouped.setdefault(d.metric, []).append(d)
    return grouped


def significant_changes(results: Sequence[ComparisonResult], threshold: float = 10.0) -> list:
    """Differences whose relative change is at least `threshold` percent."""
    return [d for r in results for d in r.differences if abs(d.percent_change) >= threshold]


def validate_comparison(results: Sequence[ComparisonResult]) -> list[str]:
    errors = []
    for r in results:
        if not r.player_id:
            errors.append("Comparison result without player id")
        for d in r.differences:
            for label, value in (("old value", d.old_value), ("new value", d.new_value), ("delta", d.delta)):
                if not math.isfinite(value):
                    errors.append(f"{r.player_id}: {d.metric} has a non-finite {label}")
            if d.new_value < 0:
                errors.append(f"{r.player_id}: {d.metric} new value is negative ({d.new_value})")
    return errors


def export_comparison_csv(results: Sequence[ComparisonResult]) -> str:
    rows = [
        {
            "player_id": r.player_id,
            "player_name": r.player_name or "",
            "team": r.team,
            "metric": d.metric,
            "old_value": d.old_value,
            "new_value": d.new_value,
            "delta": d.delta,
            "percent_change": d.percent_change,
        }
        for r in results
        for d in r.differences
    ]
    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    return df.to_csv(index=False)
