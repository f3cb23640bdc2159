"""
Read-side aggregation of stored snapshots into per-cycle history.

A cycle's final metrics come from its last upload (highest upload sequence);
its timeline has one point per upload.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from .config import DEFAULT_CYCLE_DAYS
from .cycles import build_cycle_info, cycle_start_date, date_from_epoch_ms, parse_date
from .errors import ErrorType, SyncError
from .models import (
    METRIC_DISPLAY_NAMES,
    SLOTS,
    CycleComparison,
    CycleHistoryData,
    CycleSummaryStats,
    ProgressDataPoint,
    StoredSnapshot,
    TeamVariant,
)
from .progress import is_goal_met
from .resolvers import sanitize_percentage
from .store import ReportStore
from .teams import get_strategy, team_from_identifier

logger = logging.getLogger(__name__)

TREND_MIN_CYCLES = 4
TREND_THRESHOLD = 5.0


def trend_for(performances: list) -> str:
    """Mean of the newer half vs the older half; input ordered oldest first."""
    if len(performances) < TREND_MIN_CYCLES:
        return "stable"
    mid = len(performances) // 2
    older, recent = performances[:mid], performances[mid:]
    diff = sum(recent) / len(recent) - sum(older) / len(older)
    if diff > TREND_THRESHOLD:
        return "improving"
    if diff < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def assess_improvement(total: float) -> tuple[str, str]:
    if total > 10:
        return "excellent_improvement", f"Excellent improvement: overall performance up {total:.1f} percentage points."
    if total > 0:
        return "good_progress", f"Good progress: overall performance up {total:.1f} percentage points."
    if total > -10:
        return "stable", f"Stable performance with a small variation of {total:.1f} percentage points."
    return "decline", f"Performance declined {abs(total):.1f} percentage points."


class CycleHistoryService:
    def __init__(self, store: ReportStore, today: Callable[[], date] = date.today):
        self.store = store
        self.today = today

    def _load(self, player_id: str, cycle_number: Optional[int] = None) -> dict[int, list]:
        filter_: dict = {"player_id": player_id, "cycle_number": {"$exists": True}}
        if cycle_number is not None:
            filter_["cycle_number"] = cycle_number
        try:
            docs = self.store.query(filter_)
        except SyncError as e:
            logger.error(f"[History] Loading snapshots for {player_id} failed: {e}")
            raise SyncError(
                ErrorType.DATA_PROCESSING, f"Could not load history for {player_id}", e.to_dict()
            ) from e

        by_cycle: dict[int, list] = {}
        for doc in docs:
            snap = StoredSnapshot.from_document(doc)
            by_cycle.setdefault(snap.cycle_number, []).append(snap)
        for snaps in by_cycle.values():
            snaps.sort(key=lambda s: (s.upload_sequence, s.time))
        return by_cycle

    def _build_cycle(self, cycle_number: int, snaps: list) -> CycleHistoryData:
        first, last = snaps[0], snaps[-1]
        total_days = last.total_cycle_days or DEFAULT_CYCLE_DAYS
        first_date = parse_date(first.report_date) or date_from_epoch_ms(first.time) or self.today()
        start = cycle_start_date(first_date, first.cycle_day)
        info = build_cycle_info(cycle_number, start, total_days, today=self.today())

        variant = team_from_identifier(last.team) or TeamVariant.CARTEIRA_I
        strategy = get_strategy(variant)
        metric_names = {slot: strategy.mapping_for(slot).metric for slot in SLOTS}

        final_metrics = {}
        for slot in SLOTS:
            metric = metric_names[slot]
            pct = sanitize_percentage(last.metrics.get(metric))
            final_metrics[slot.value] = {
                "metric": metric,
                "display_name": METRIC_DISPLAY_NAMES.get(metric, metric),
                "percentage": pct,
                "goal_met": is_goal_met(pct),
            }

        timeline = []
        for snap in snaps:
            point_date = snap.report_date or (
                date_from_epoch_ms(snap.time).isoformat() if snap.time else None
            )
            pct = [sanitize_percentage(snap.metrics.get(metric_names[slot])) for slot in SLOTS]
            timeline.append(
                ProgressDataPoint(
                    date=point_date,
                    cycle_day=snap.cycle_day,
                    upload_sequence=snap.upload_sequence,
                    primary=pct[0],
                    secondary1=pct[1],
                    secondary2=pct[2],
                )
            )

        return CycleHistoryData(
            cycle_number=cycle_number,
            start_date=info.start_date,
            end_date=info.end_date,
            total_days=total_days,
            completion_status="completed" if info.is_completed else "in_progress",
            final_metrics=final_metrics,
            progress_timeline=timeline,
        )

    def get_player_cycle_history(self, player_id: str) -> list:
        cycles = [self._build_cycle(n, snaps) for n, snaps in self._load(player_id).items()]
        completed = [c for c in cycles if c.completion_status == "completed"]
        completed.sort(key=lambda c: c.cycle_number, reverse=True)
        logger.info(f"[History] {player_id}: {len(completed)} completed cycle(s)")
        return completed

    def get_cycle_details(self, player_id: str, cycle_number: int) -> Optional[CycleHistoryData]:
        snaps = self._load(player_id, cycle_number).get(cycle_number)
        if not snaps:
            return None
        return self._build_cycle(cycle_number, snaps)

    def get_cycle_progress_timeline(self, player_id: str, cycle_number: int) -> list:
        details = self.get_cycle_details(player_id, cycle_number)
        return details.progress_timeline if details else []

    def get_player_cycles(self, player_id: str) -> list:
        infos = []
        for n, snaps in self._load(player_id).items():
            data = self._build_cycle(n, snaps)
            infos.append(build_cycle_info(n, data.start_date, data.total_days, today=self.today()))
        infos.sort(key=lambda i: i.cycle_number, reverse=True)
        return infos

    def has_historical_data(self, player_id: str) -> bool:
        return bool(self.get_player_cycle_history(player_id))

    def get_cycle_summary_stats(self, player_id: str) -> CycleSummaryStats:
        cycles = self.get_player_cycle_history(player_id)
        if not cycles:
            return CycleSummaryStats(0, 0.0, None, None, "stable")

        ordered = sorted(cycles, key=lambda c: c.cycle_number)
        performances = [c.performance for c in ordered]
        best = max(ordered, key=lambda c: c.performance)
        worst = min(ordered, key=lambda c: c.performance)
        return CycleSummaryStats(
            total_cycles=len(ordered),
            average_performance=round(sum(performances) / len(performances), 2),
            best_cycle=best.cycle_number,
            worst_cycle=worst.cycle_number,
            trend=trend_for(performances),
        )

    def compare_cycles(self, player_id: str, cycle_a: int, cycle_b: int) -> Optional[CycleComparison]:
        a = self.get_cycle_details(player_id, cycle_a)
        b = self.get_cycle_details(player_id, cycle_b)
        if a is None or b is None:
            logger.info(f"[History] {player_id}: cannot compare cycles {cycle_a} and {cycle_b}")
            return None

        improvements = {
            slot.value: round(
                b.final_metrics[slot.value]["percentage"] - a.final_metrics[slot.value]["percentage"], 2
            )
            for slot in SLOTS
        }
        total = round(sum(improvements.values()), 2)
        assessment, summary = assess_improvement(total)
        return CycleComparison(
            cycle_a=cycle_a,
            cycle_b=cycle_b,
            improvements=improvements,
            overall_improvement=total,
            assessment=assessment,
            summary=summary,
        )
