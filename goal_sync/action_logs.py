from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional, Sequence

import pandas as pd

from .config import DEFAULT_ACTION_IDS
from .models import ActionLog, ComparisonResult, MetricDifference

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ActionLogGenerator:
    """Turns qualifying metric differences into delta action logs."""

    def __init__(
        self,
        action_ids: Optional[Mapping[str, str]] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.action_ids = dict(action_ids if action_ids is not None else DEFAULT_ACTION_IDS)
        self.clock = clock

    def create(self, diff: MetricDifference, player_name: Optional[str] = None) -> Optional[ActionLog]:
        action_id = self.action_ids.get(diff.metric)
        if not action_id:
            logger.warning(f"[ActionLog] No action id mapped for metric '{diff.metric}'; skipping {diff.player_id}")
            return None
        metadata = {
            "previous_value": diff.old_value,
            "new_value": diff.new_value,
            "percent_change": diff.percent_change,
        }
        if player_name:
            metadata["player_name"] = player_name
        return ActionLog(
            player_id=diff.player_id,
            action_id=action_id,
            value=diff.delta,
            timestamp=self.clock().isoformat(),
            metric=diff.metric,
            metadata=metadata,
        )

    def generate(self, results: Sequence[ComparisonResult]) -> list:
        logs = []
        for result in results:
            if not result.has_changes:
                continue
            for diff in result.differences:
                if not diff.requires_update:
                    continue
                log = self.create(diff, result.player_name)
                if log is not None:
                    logs.append(log)
        logger.info(f"[ActionLog] Generated {len(logs)} action log(s) from {len(results)} comparison result(s)")
        return logs


def action_log_errors(log: ActionLog) -> list[str]:
    errors = []
    if not log.player_id:
        errors.append("missing player id")
    if not log.action_id:
        errors.append("missing action id")
    if isinstance(log.value, bool) or not isinstance(log.value, (int, float)) or not math.isfinite(log.value):
        errors.append("value must be a finite number")
    if not log.timestamp:
        errors.append("missing timestamp")
    else:
        try:
            datetime.fromisoformat(log.timestamp.replace("Z", "+00:00"))
        except ValueError:
            errors.append(f"invalid timestamp '{log.timestamp}'")
    return errors


def validate_action_logs(logs: Sequence[ActionLog]) -> list[str]:
    return [f"Action log {i + 1}: {err}" for i, log in enumerate(logs) for err in action_log_errors(log)]


def group_by_player(logs: Sequence[ActionLog]) -> dict[str, list]:
    grouped: dict[str, list] = {}
    for log in logs:
        grouped.setdefault(log.player_id, []).append(log)
    return grouped


def group_by_metric(logs: Sequence[ActionLog]) -> dict[str, list]:
    grouped: dict[str, list] = {}
    for log in logs:
        grouped.setdefault(log.metric, []).append(log)
    return grouped


def export_action_logs_json(logs: Sequence[ActionLog]) -> str:
    return json.dumps([log.to_dict() for log in logs], ensure_ascii=False, indent=2, default=str)


def export_batch_csv(batch_result) -> str:
    """One row per submitted log with its outcome."""
    rows = [
        {
            "player_id": r.action_log.player_id,
            "action_id": r.action_log.action_id,
            "metric": r.action_log.metric,
            "value": r.action_log.value,
            "timestamp": r.action_log.timestamp,
            "success": r.success,
            "attempts": r.attempts,
            "error": r.error or "",
        }
        for r in batch_result.results
    ]
    columns = ["player_id", "action_id", "metric", "value", "timestamp", "success", "attempts", "error"]
    return pd.DataFrame(rows, columns=columns).to_csv(index=False)
