from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from .config import DEFAULT_CYCLE_DAYS
from .models import CycleInfo

DateLike = Union[str, date, datetime, None]


def parse_date(value: DateLike) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in ("%d/%m/%Y", "%Y-%m-%d"):
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    return None


def date_from_epoch_ms(ms: int) -> Optional[date]:
    if not ms:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).date()


def cycle_end_date(start: date, total_days: int = DEFAULT_CYCLE_DAYS) -> date:
    # the start day counts as day 1
    return start + timedelta(days=max(1, total_days) - 1)


def cycle_start_date(report_date: date, cycle_day: Optional[int]) -> date:
    return report_date - timedelta(days=max(1, cycle_day or 1) - 1)


def is_cycle_completed(end: date, today: date) -> bool:
    return today > end


def build_cycle_info(
    cycle_number: int,
    start: date,
    total_days: int = DEFAULT_CYCLE_DAYS,
    today: Optional[date] = None,
) -> CycleInfo:
    today = today or date.today()
    end = cycle_end_date(start, total_days)
    return CycleInfo(
        cycle_number=cycle_number,
        start_date=start,
        end_date=end,
        total_days=total_days,
        is_active=start <= today <= end,
        is_completed=is_cycle_completed(end, today),
    )
