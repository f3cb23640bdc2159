"""
Team variants and their goal mappings.

Each variant has one primary and two secondary goals. A goal is backed by a
report metric name and the platform challenges that track the same metric.
CARTEIRA_II computes its points locally from the primary goal instead of
trusting the platform's unlock item.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from .config import DEFAULT_CYCLE_DAYS
from .models import (
    METRIC_DISPLAY_NAMES,
    GoalMetric,
    MetricSlot,
    PlatformStatus,
    PlayerMetrics,
    ReportRecord,
    TeamVariant,
)
from .progress import GOAL, classify
from .resolvers import challenge_source, report_source, resolve_first

logger = logging.getLogger(__name__)

# Catalog items used as boolean flags on the player status
UNLOCK_POINTS_ITEM = "E6F0O5f"
BOOST_ITEMS = {
    MetricSlot.SECONDARY_1: "E6F0WGc",
    MetricSlot.SECONDARY_2: "E6K79Mt",
}

TEAM_IDS = {
    TeamVariant.CARTEIRA_0: "E6F5k30",
    TeamVariant.CARTEIRA_I: "E6F4sCh",
    TeamVariant.CARTEIRA_II: "E6F4O1b",
    TeamVariant.CARTEIRA_III: "E6F4Xf2",
    TeamVariant.CARTEIRA_IV: "E6F41Bb",
    TeamVariant.ER: "E500AbT",
}
ADMIN_TEAM_ID = "E6U1B1p"


@dataclass(frozen=True)
class MetricMapping:
    metric: str
    challenge_ids: tuple = ()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class TeamStrategy:
    """Goal resolution and point rules for one team variant."""

    def __init__(self, variant: TeamVariant, mappings: dict):
        missing = [s for s in MetricSlot if s not in mappings]
        if missing:
            raise ValueError(f"{variant.value}: no mapping for {[s.value for s in missing]}")
        self.variant = variant
        self.mappings = mappings

    def mapping_for(self, slot: MetricSlot) -> MetricMapping:
        return self.mappings[MetricSlot(slot)]

    def boost_active(self, status: Optional[PlatformStatus], slot: MetricSlot) -> bool:
        item = BOOST_ITEMS.get(MetricSlot(slot))
        if item is None or status is None:
            return False
        return status.item_count(item) > 0

    def resolve_metric(
        self,
        status: Optional[PlatformStatus],
        record: Optional[ReportRecord],
        slot: MetricSlot,
    ) -> GoalMetric:
        mapping = self.mapping_for(slot)
        percentage, source = resolve_first(
            [
                challenge_source(status, mapping.challenge_ids),
                report_source(record, mapping.metric),
            ]
        )
        band = classify(percentage)
        return GoalMetric(
            name=mapping.metric,
            display_name=METRIC_DISPLAY_NAMES.get(mapping.metric, mapping.metric),
            percentage=percentage,
            boost_active=self.boost_active(status, slot),
            band=band.band,
            visual_fill=band.visual_fill,
            source=source,
        )

    def points(self, status: Optional[PlatformStatus], goals: dict) -> tuple[float, bool, int]:
        """Return (total points, locked, multiplier)."""
        if status is None:
            return 0.0, True, 1
        return status.total_points, status.item_count(UNLOCK_POINTS_ITEM) == 0, 1

    def process_player(
        self,
        status: Optional[PlatformStatus],
        record: Optional[ReportRecord],
        today: Optional[date] = None,
    ) -> PlayerMetrics:
        today = today or date.today()
        goals = {slot: self.resolve_metric(status, record, slot) for slot in MetricSlot}
        total_points, locked, multiplier = self.points(status, goals)

        cycle_day = record.cycle_day if record and record.cycle_day else min(today.day, DEFAULT_CYCLE_DAYS)
        total_days = record.total_cycle_days if record and record.total_cycle_days else DEFAULT_CYCLE_DAYS

        player_id = (status.player_id if status else "") or (record.player_id if record else "")
        player_name = (status.name if status else None) or (record.player_name if record else None)

        return PlayerMetrics(
            player_id=player_id,
            player_name=player_name,
            team=self.variant,
            total_points=total_points,
            points_locked=locked,
            current_cycle_day=cycle_day,
            days_until_cycle_end=max(0, total_days - cycle_day),
            multiplier=multiplier,
            primary=goals[MetricSlot.PRIMARY],
            secondary1=goals[MetricSlot.SECONDARY_1],
            secondary2=goals[MetricSlot.SECONDARY_2],
        )


class LocalPointsStrategy(TeamStrategy):
    """Points unlock at 100% of the primary goal; each active boost adds 1x."""

    def points(self, status: Optional[PlatformStatus], goals: dict) -> tuple[float, bool, int]:
        base = status.total_points if status else 0.0
        unlocked = goals[MetricSlot.PRIMARY].percentage >= GOAL
        if not unlocked:
            return base, True, 1

        multiplier = 1 + sum(
            1 for slot in (MetricSlot.SECONDARY_1, MetricSlot.SECONDARY_2) if goals[slot].boost_active
        )
        return _round_half_up(base * multiplier), False, multiplier


_REAIS_POR_ATIVO = MetricMapping("reaisPorAtivo", ("E6Gm8RI", "E6Gke5g"))

TEAM_STRATEGIES: dict[TeamVariant, TeamStrategy] = {
    TeamVariant.CARTEIRA_0: TeamStrategy(
        TeamVariant.CARTEIRA_0,
        {
            MetricSlot.PRIMARY: MetricMapping("conversoes", ("E6GglPq",)),
            MetricSlot.SECONDARY_1: _REAIS_POR_ATIVO,
            MetricSlot.SECONDARY_2: MetricMapping("faturamento", ("E6LIVVX",)),
        },
    ),
    TeamVariant.CARTEIRA_I: TeamStrategy(
        TeamVariant.CARTEIRA_I,
        {
            MetricSlot.PRIMARY: MetricMapping("atividade", ("E6FO12f", "E6FQIjs", "E6KQAoh")),
            MetricSlot.SECONDARY_1: _REAIS_POR_ATIVO,
            MetricSlot.SECONDARY_2: MetricMapping("faturamento", ("E6GglPq", "E6LIVVX")),
        },
    ),
    TeamVariant.CARTEIRA_II: LocalPointsStrategy(
        TeamVariant.CARTEIRA_II,
        {
            MetricSlot.PRIMARY: MetricMapping("reaisPorAtivo", ("E6MTIIK",)),
            MetricSlot.SECONDARY_1: MetricMapping("atividade", ("E6Gv58l", "E6MZw2L")),
            MetricSlot.SECONDARY_2: MetricMapping("multimarcasPorAtivo", ("E6MWJKs", "E6MWYj3")),
        },
    ),
    TeamVariant.CARTEIRA_III: TeamStrategy(
        TeamVariant.CARTEIRA_III,
        {
            MetricSlot.PRIMARY: MetricMapping("faturamento", ("E6F8HMK", "E6Gahd4", "E6MLv3L")),
            MetricSlot.SECONDARY_1: _REAIS_POR_ATIVO,
            MetricSlot.SECONDARY_2: MetricMapping("multimarcasPorAtivo", ("E6MMH5v", "E6MM3eK")),
        },
    ),
    TeamVariant.CARTEIRA_IV: TeamStrategy(
        TeamVariant.CARTEIRA_IV,
        {
            MetricSlot.PRIMARY: MetricMapping("faturamento", ("E6F8HMK", "E6Gahd4", "E6MLv3L")),
            MetricSlot.SECONDARY_1: _REAIS_POR_ATIVO,
            MetricSlot.SECONDARY_2: MetricMapping("multimarcasPorAtivo", ("E6MMH5v", "E6MM3eK")),
        },
    ),
    TeamVariant.ER: TeamStrategy(
        TeamVariant.ER,
        {
            MetricSlot.PRIMARY: MetricMapping("faturamento", ("E6F8HMK", "E6Gahd4")),
            MetricSlot.SECONDARY_1: _REAIS_POR_ATIVO,
            MetricSlot.SECONDARY_2: MetricMapping("upa", ("E62x2PW",)),
        },
    ),
}


def get_strategy(variant) -> TeamStrategy:
    return TEAM_STRATEGIES[TeamVariant(variant)]


# Checked longest first so "carteira ii" never matches the "carteira i" pattern.
_NAME_PATTERNS = [
    (TeamVariant.CARTEIRA_IV, ("carteira_iv", "carteira4", "carteira_4")),
    (TeamVariant.CARTEIRA_III, ("carteira_iii", "carteira3", "carteira_3")),
    (TeamVariant.CARTEIRA_II, ("carteira_ii", "carteira2", "carteira_2")),
    (TeamVariant.CARTEIRA_I, ("carteira_i", "carteira1", "carteira_1")),
    (TeamVariant.CARTEIRA_0, ("carteira_0", "carteira0", "carteira_zero")),
]


def team_from_identifier(value: Optional[str]) -> Optional[TeamVariant]:
    """Map a platform team id, enum value or loose team name to a variant."""
    if not value:
        return None
    raw = str(value).strip()
    if raw == ADMIN_TEAM_ID:
        return None
    for variant, team_id in TEAM_IDS.items():
        if raw == team_id or raw.upper() == variant.value:
            return variant

    normalized = re.sub(r"[\s\-]+", "_", raw.lower())
    if normalized in ("er", "equipe_er", "time_er"):
        return TeamVariant.ER
    for variant, patterns in _NAME_PATTERNS:
        for pattern in patterns:
            if normalized == pattern or normalized.startswith(pattern + "_"):
                return variant
    return None


def team_from_status(status: Optional[PlatformStatus]) -> Optional[TeamVariant]:
    if status is None:
        return None
    for team_id in status.teams:
        variant = team_from_identifier(team_id)
        if variant is not None:
            return variant
    return None


def find_mapping_conflicts(strategies: Optional[dict] = None) -> list[dict]:
    """Challenge ids that back different metrics in different variants."""
    strategies = strategies or TEAM_STRATEGIES
    usages: dict[str, list[tuple[str, str, str]]] = {}
    for variant, strategy in strategies.items():
        for slot in MetricSlot:
            mapping = strategy.mapping_for(slot)
            for cid in mapping.challenge_ids:
                usages.setdefault(cid, []).append((TeamVariant(variant).value, slot.value, mapping.metric))

    conflicts = []
    for cid in sorted(usages):
        metrics = {metric for _, _, metric in usages[cid]}
        if len(metrics) < 2:
            continue
        entry = {
            "challenge_id": cid,
            "metrics": sorted(metrics),
            "usages": [{"team": t, "slot": s, "metric": m} for t, s, m in usages[cid]],
        }
        described = ", ".join(f"{t}.{s}={m}" for t, s, m in usages[cid])
        logger.warning(f"[Teams] Challenge {cid} backs different metrics: {described}")
        conflicts.append(entry)
    return conflicts
