from __future__ import annotations

import concurrent.futures
import logging
from datetime import date
from typing import Callable, Mapping, Optional, Sequence

from .errors import SyncError
from .models import GoalMetric, MetricSlot, PlatformStatus, PlayerMetrics, ReportRecord, TeamVariant
from .teams import get_strategy, team_from_identifier, team_from_status

logger = logging.getLogger(__name__)

FALLBACK_VARIANT = TeamVariant.CARTEIRA_I


def resolve_metric(
    status: Optional[PlatformStatus],
    record: Optional[ReportRecord],
    team_variant: TeamVariant,
    slot: MetricSlot,
) -> GoalMetric:
    return get_strategy(team_variant).resolve_metric(status, record, slot)


def detect_variant(
    status: Optional[PlatformStatus],
    record: Optional[ReportRecord],
    team_variant: Optional[TeamVariant] = None,
) -> TeamVariant:
    if team_variant is not None:
        return TeamVariant(team_variant)
    variant = team_from_status(status) or team_from_identifier(record.team if record else None)
    if variant is None:
        pid = (status.player_id if status else None) or (record.player_id if record else "?")
        logger.warning(f"[Extract] {pid}: team not recognised, using {FALLBACK_VARIANT.value}")
        return FALLBACK_VARIANT
    return variant


def extract_player_metrics(
    status: Optional[PlatformStatus],
    record: Optional[ReportRecord],
    team_variant: Optional[TeamVariant] = None,
    today: Optional[date] = None,
) -> PlayerMetrics:
    variant = detect_variant(status, record, team_variant)
    return get_strategy(variant).process_player(status, record, today=today)


def extract_batch(
    player_ids: Sequence[str],
    fetch_status: Callable[[str], PlatformStatus],
    records: Mapping[str, ReportRecord],
    team_variant: Optional[TeamVariant] = None,
    max_workers: int = 6,
    today: Optional[date] = None,
) -> list[PlayerMetrics]:
    """
    Fetch platform status for every player in parallel and extract their goals.

    A failed status fetch degrades to report-only extraction for that player.
    Output order follows `player_ids`.
    """

    def _fetch(pid: str) -> Optional[PlatformStatus]:
        try:
            return fetch_status(pid)
        except SyncError as e:
            logger.warning(f"[Extract] Status fetch failed for {pid}: {e}")
            return None

    with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        statuses = list(executor.map(_fetch, player_ids))

    return [
        extract_player_metrics(status, records.get(pid), team_variant, today=today)
        for pid, status in zip(player_ids, statuses)
    ]
