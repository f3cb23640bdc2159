"""
Value objects passed between the reconciliation stages.

Every stage produces new instances; nothing here is mutated after creation.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)


class TeamVariant(str, Enum):
    CARTEIRA_0 = "CARTEIRA_0"
    CARTEIRA_I = "CARTEIRA_I"
    CARTEIRA_II = "CARTEIRA_II"
    CARTEIRA_III = "CARTEIRA_III"
    CARTEIRA_IV = "CARTEIRA_IV"
    ER = "ER"


class MetricSlot(str, Enum):
    PRIMARY = "primary"
    SECONDARY_1 = "secondary1"
    SECONDARY_2 = "secondary2"


METRIC_NAMES = (
    "atividade",
    "reaisPorAtivo",
    "faturamento",
    "multimarcasPorAtivo",
    "conversoes",
    "upa",
)

METRIC_DISPLAY_NAMES = {
    "atividade": "Atividade",
    "reaisPorAtivo": "Reais por Ativo",
    "faturamento": "Faturamento",
    "multimarcasPorAtivo": "Multimarcas por Ativo",
    "conversoes": "Conversões",
    "upa": "UPA",
}

SLOTS = (MetricSlot.PRIMARY, MetricSlot.SECONDARY_1, MetricSlot.SECONDARY_2)


def _first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        val = raw.get(key)
        if val is not None and val != "":
            return val
    return None


def coerce_number(value: Any) -> Optional[float]:
    """Parse numbers that may arrive as strings with a decimal comma or a % sign."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace("%", "").replace(",", ".")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _coerce_int(value: Any) -> Optional[int]:
    num = coerce_number(value)
    if num is None or not math.isfinite(num):
        return None
    return int(num)


@dataclass(frozen=True)
class ReportRecord:
    player_id: str
    metrics: dict[str, float] = field(default_factory=dict)
    cycle_day: Optional[int] = None
    total_cycle_days: Optional[int] = None
    report_date: Optional[str] = None
    player_name: Optional[str] = None
    team: Optional[str] = None

    def get(self, metric: str) -> Optional[float]:
        return self.metrics.get(metric)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ReportRecord":
        player_id = _first_present(raw, "player_id", "playerId", "email")
        if player_id is None:
            raise ValueError("report record has no player id")

        metrics: dict[str, float] = {}
        for name in METRIC_NAMES:
            value = _first_present(raw, name, f"{name}Percentual")
            if value is None:
                continue
            num = coerce_number(value)
            if num is None:
                logger.warning(f"[Report] {player_id}: unparseable {name} value {value!r} ignored")
                continue
            metrics[name] = num

        return cls(
            player_id=str(player_id),
            metrics=metrics,
            cycle_day=_coerce_int(_first_present(raw, "cycle_day", "currentCycleDay", "diaDociclo")),
            total_cycle_days=_coerce_int(
                _first_present(raw, "total_cycle_days", "totalCycleDays", "totalDiasCiclo")
            ),
            report_date=_first_present(raw, "report_date", "reportDate", "dataRelatorio"),
            player_name=_first_present(raw, "player_name", "playerName", "name"),
            team=_first_present(raw, "team", "teamName"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"player_id": self.player_id, **self.metrics}
        for key in ("cycle_day", "total_cycle_days", "report_date", "player_name", "team"):
            val = getattr(self, key)
            if val is not None:
                out[key] = val
        return out


@dataclass(frozen=True)
class PlatformStatus:
    player_id: str
    name: Optional[str] = None
    total_points: float = 0.0
    catalog_items: dict[str, int] = field(default_factory=dict)
    challenge_progress: tuple = ()
    teams: tuple = ()

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> "PlatformStatus":
        items_raw = raw.get("catalog_items") or {}
        items: dict[str, int] = {}
        if isinstance(items_raw, Mapping):
            for item_id, count in items_raw.items():
                items[str(item_id)] = _coerce_int(count) or 0

        progress = raw.get("challenge_progress") or []
        if not isinstance(progress, list):
            progress = []

        points = coerce_number(raw.get("total_points"))
        return cls(
            player_id=str(_first_present(raw, "_id", "player_id", "playerId") or ""),
            name=raw.get("name"),
            total_points=points if points is not None and math.isfinite(points) else 0.0,
            catalog_items=items,
            challenge_progress=tuple(p for p in progress if isinstance(p, Mapping)),
            teams=tuple(str(t) for t in (raw.get("teams") or [])),
        )

    def item_count(self, item_id: str) -> int:
        return self.catalog_items.get(item_id, 0)

    def challenge_percentage(self, challenge_ids: Iterable[str]) -> Optional[float]:
        """Percentage of the first mapped challenge (in mapping order) that has progress."""
        by_id: dict[str, Mapping[str, Any]] = {}
        for entry in self.challenge_progress:
            cid = _first_present(entry, "challenge", "challengeId", "id")
            if cid is not None:
                by_id.setdefault(str(cid), entry)

        for cid in challenge_ids:
            entry = by_id.get(cid)
            if entry is None:
                continue
            pct = _first_present(entry, "percent_completed", "percentage", "progress")
            if pct is not None:
                return coerce_number(pct)
        return None


@dataclass(frozen=True)
class GoalMetric:
    name: str
    display_name: str
    percentage: float
    boost_active: bool
    band: str
    visual_fill: float
    source: str

    @property
    def goal_met(self) -> bool:
        return self.percentage >= 100

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["goal_met"] = self.goal_met
        return out


@dataclass(frozen=True)
class PlayerMetrics:
    player_id: str
    player_name: Optional[str]
    team: TeamVariant
    total_points: float
    points_locked: bool
    current_cycle_day: int
    days_until_cycle_end: int
    multiplier: int
    primary: GoalMetric
    secondary1: GoalMetric
    secondary2: GoalMetric

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "team": self.team.value,
            "total_points": self.total_points,
            "points_locked": self.points_locked,
            "current_cycle_day": self.current_cycle_day,
            "days_until_cycle_end": self.days_until_cycle_end,
            "multiplier": self.multiplier,
            "goals": {
                "primary": self.primary.to_dict(),
                "secondary1": self.secondary1.to_dict(),
                "secondary2": self.secondary2.to_dict(),
            },
        }


@dataclass(frozen=True)
class StoredSnapshot:
    player_id: str
    cycle_number: int
    metrics: dict[str, float]
    upload_sequence: int = 1
    status: str = "REGISTERED"
    time: int = 0
    report_date: Optional[str] = None
    cycle_day: Optional[int] = None
    total_cycle_days: Optional[int] = None
    team: Optional[str] = None
    upload_url: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "StoredSnapshot":
        metrics: dict[str, float] = {}
        for name in METRIC_NAMES:
            num = coerce_number(doc.get(name))
            if num is not None:
                metrics[name] = num
        return cls(
            player_id=str(doc.get("player_id", "")),
            cycle_number=_coerce_int(doc.get("cycle_number")) or 0,
            metrics=metrics,
            upload_sequence=_coerce_int(doc.get("upload_sequence")) or 1,
            status=str(doc.get("status", "REGISTERED")),
            time=_coerce_int(doc.get("time")) or 0,
            report_date=doc.get("report_date"),
            cycle_day=_coerce_int(doc.get("cycle_day")),
            total_cycle_days=_coerce_int(doc.get("total_cycle_days")),
            team=doc.get("team"),
            upload_url=doc.get("upload_url"),
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "player_id": self.player_id,
            "cycle_number": self.cycle_number,
            **self.metrics,
            "upload_sequence": self.upload_sequence,
            "status": self.status,
            "time": self.time,
        }
        for key in ("report_date", "cycle_day", "total_cycle_days", "team", "upload_url"):
            val = getattr(self, key)
            if val is not None:
                doc[key] = val
        return doc


@dataclass(frozen=True)
class MetricDifference:
    player_id: str
    metric: str
    old_value: float
    new_value: float
    delta: float
    percent_change: float
    requires_update: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ComparisonResult:
    player_id: str
    player_name: Optional[str]
    team: str
    differences: list
    has_changes: bool
    summary: str
    stored_found: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "team": self.team,
            "differences": [d.to_dict() for d in self.differences],
            "has_changes": self.has_changes,
            "summary": self.summary,
            "stored_found": self.stored_found,
        }


@dataclass(frozen=True)
class ComparisonReport:
    cycle_number: int
    is_new_cycle: bool
    results: list
    total_players: int
    players_with_changes: int
    total_differences: int
    summary: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_number": self.cycle_number,
            "is_new_cycle": self.is_new_cycle,
            "total_players": self.total_players,
            "players_with_changes": self.players_with_changes,
            "total_differences": self.total_differences,
            "summary": self.summary,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class ActionLog:
    player_id: str
    action_id: str
    value: float
    timestamp: str
    metric: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_payload(self, attribute: str = "porcentagem_da_meta") -> dict[str, Any]:
        return {
            "actionId": self.action_id,
            "userId": self.player_id,
            "attributes": {attribute: self.value},
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ActionLog":
        value = coerce_number(raw.get("value"))
        return cls(
            player_id=str(_first_present(raw, "player_id", "userId") or ""),
            action_id=str(_first_present(raw, "action_id", "actionId") or ""),
            value=value if value is not None else math.nan,
            timestamp=str(raw.get("timestamp") or ""),
            metric=str(raw.get("metric") or ""),
            metadata=dict(raw.get("metadata") or {}),
        )


@dataclass(frozen=True)
class SubmissionResult:
    action_log: ActionLog
    success: bool
    error: Optional[str] = None
    attempts: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_log": self.action_log.to_dict(),
            "success": self.success,
            "error": self.error,
            "attempts": self.attempts,
        }


@dataclass(frozen=True)
class BatchResult:
    total: int
    successful: int
    failed: int
    results: list
    summary: str
    used_fallback: bool = False
    validation_errors: list = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if not self.total:
            return 0.0
        return round(self.successful / self.total * 100, 1)

    def failed_logs(self) -> list:
        return [r.action_log for r in self.results if not r.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "success_rate": self.success_rate,
            "summary": self.summary,
            "used_fallback": self.used_fallback,
            "validation_errors": list(self.validation_errors),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class CycleInfo:
    cycle_number: int
    start_date: date
    end_date: date
    total_days: int
    is_active: bool
    is_completed: bool

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["start_date"] = self.start_date.isoformat()
        out["end_date"] = self.end_date.isoformat()
        return out


@dataclass(frozen=True)
class ProgressDataPoint:
    date: Optional[str]
    cycle_day: Optional[int]
    upload_sequence: int
    primary: float
    secondary1: float
    secondary2: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CycleHistoryData:
    cycle_number: int
    start_date: date
    end_date: date
    total_days: int
    completion_status: str
    final_metrics: dict[str, Any]
    progress_timeline: list

    @property
    def performance(self) -> float:
        values = [self.final_metrics[s.value]["percentage"] for s in SLOTS]
        return sum(values) / len(values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_number": self.cycle_number,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "total_days": self.total_days,
            "completion_status": self.completion_status,
            "final_metrics": self.final_metrics,
            "progress_timeline": [p.to_dict() for p in self.progress_timeline],
        }


@dataclass(frozen=True)
class CycleSummaryStats:
    total_cycles: int
    average_performance: float
    best_cycle: Optional[int]
    worst_cycle: Optional[int]
    trend: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CycleComparison:
    cycle_a: int
    cycle_b: int
    improvements: dict[str, float]
    overall_improvement: float
    assessment: str
    summary: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
