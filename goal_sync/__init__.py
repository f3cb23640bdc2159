"""Report reconciliation and action-log sync for the incentive platform."""

from .action_logs import ActionLogGenerator, validate_action_logs
from .comparator import ReportComparator
from .errors import ErrorType, SyncError
from .extractor import extract_player_metrics, resolve_metric
from .history import CycleHistoryService
from .models import ActionLog, MetricSlot, PlatformStatus, ReportRecord, TeamVariant
from .pipeline import ReportSyncPipeline, UploadResult
from .progress import classify
from .store import MongoReportStore, PlatformReportStore, ReportStore
from .submitter import BatchSubmitter

__all__ = [
    "ActionLog",
    "ActionLogGenerator",
    "BatchSubmitter",
    "CycleHistoryService",
    "ErrorType",
    "MetricSlot",
    "MongoReportStore",
    "PlatformReportStore",
    "PlatformStatus",
    "ReportComparator",
    "ReportRecord",
    "ReportStore",
    "ReportSyncPipeline",
    "SyncError",
    "TeamVariant",
    "UploadResult",
    "classify",
    "extract_player_metrics",
    "resolve_metric",
    "validate_action_logs",
]
