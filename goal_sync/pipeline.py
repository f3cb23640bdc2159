"""
Upload orchestration: compare -> generate -> submit -> persist snapshots.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from .action_logs import ActionLogGenerator
from .comparator import ReportComparator
from .config import load_sync_config
from .errors import SyncError
from .models import BatchResult, ComparisonReport, ReportRecord, StoredSnapshot
from .store import REGISTERED, ReportStore
from .submitter import BatchSubmitter, ProgressCallback

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UploadResult:
    submission_id: str
    cycle_number: int
    records_processed: int
    action_logs_created: int
    differences_found: int
    submitted_at: str
    comparison: Optional[ComparisonReport] = None
    batch: Optional[BatchResult] = None
    snapshots_stored: int = 0
    errors: list = field(default_factory=list)

    @property
    def success(self) -> bool:
        if self.errors:
            return False
        return self.batch is None or self.batch.failed == 0

    @property
    def message(self) -> str:
        if self.action_logs_created == 0:
            base = f"Processed {self.records_processed} record(s); no changes to submit."
        elif self.batch is not None:
            base = f"Processed {self.records_processed} record(s). {self.batch.summary}"
        else:
            base = f"Processed {self.records_processed} record(s)."
        if self.errors:
            base += f" {len(self.errors)} error(s) reported."
        return base

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "submission_id": self.submission_id,
            "cycle_number": self.cycle_number,
            "records_processed": self.records_processed,
            "action_logs_created": self.action_logs_created,
            "differences_found": self.differences_found,
            "snapshots_stored": self.snapshots_stored,
            "submitted_at": self.submitted_at,
            "errors": list(self.errors),
            "comparison": self.comparison.to_dict() if self.comparison else None,
            "batch": self.batch.to_dict() if self.batch else None,
        }


class ReportSyncPipeline:
    def __init__(
        self,
        store: ReportStore,
        comparator: ReportComparator,
        generator: ActionLogGenerator,
        submitter: BatchSubmitter,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.comparator = comparator
        self.generator = generator
        self.submitter = submitter
        self.clock = clock

    @classmethod
    def from_config(cls, store: ReportStore, cfg: Optional[dict] = None, **submitter_kwargs) -> "ReportSyncPipeline":
        cfg = cfg if cfg is not None else load_sync_config()
        return cls(
            store=store,
            comparator=ReportComparator(
                store,
                tolerance=float(cfg.get("tolerance", 0.01)),
                max_workers=int(cfg.get("lookup_workers", 4)),
            ),
            generator=ActionLogGenerator(cfg.get("action_ids")),
            submitter=BatchSubmitter.from_config(cfg, **submitter_kwargs),
        )

    def _snapshot_documents(
        self,
        records: Sequence[ReportRecord],
        cycle_number: int,
        comparison: ComparisonReport,
        batch: Optional[BatchResult],
        upload_url: Optional[str],
    ) -> list:
        """
        One document per record holding the values the platform has confirmed.

        A metric whose action log failed keeps its previous value, so the next
        upload re-sends only that delta.
        """
        failed = set()
        if batch is not None:
            failed = {(r.action_log.player_id, r.action_log.metric) for r in batch.results if not r.success}
        previous = {
            (d.player_id, d.metric): d.old_value for result in comparison.results for d in result.differences
        }

        sequences = self.store.next_upload_sequences([r.player_id for r in records], cycle_number)
        time_ms = int(self.clock().timestamp() * 1000)
        docs = []
        for record in records:
            confirmed = dict(record.metrics)
            for metric in confirmed:
                if (record.player_id, metric) in failed:
                    confirmed[metric] = previous.get((record.player_id, metric), 0.0)
            snap = StoredSnapshot(
                player_id=record.player_id,
                cycle_number=cycle_number,
                metrics=confirmed,
                upload_sequence=sequences.get(record.player_id, 1),
                status=REGISTERED,
                time=time_ms,
                report_date=record.report_date,
                cycle_day=record.cycle_day,
                total_cycle_days=record.total_cycle_days,
                team=record.team,
                upload_url=upload_url,
            )
            doc = snap.to_document()
            if record.player_name:
                doc["player_name"] = record.player_name
            docs.append(doc)
        return docs

    def process_upload(
        self,
        records: Sequence[ReportRecord],
        credentials: str,
        cycle_number: int,
        upload_url: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        submission_id = uuid.uuid4().hex
        submitted_at = self.clock().isoformat()
        errors: list = []
        records = list(records)
        logger.info(f"[Upload] {submission_id}: {len(records)} record(s) for cycle {cycle_number}")

        is_new = self.comparator.detect_new_cycle(cycle_number)
        comparison = self.comparator.compare(records, cycle_number, is_new)

        logs = self.generator.generate(comparison.results)
        batch = None
        if logs:
            batch = self.submitter.submit_batch(logs, credentials, on_progress)
            errors.extend(batch.validation_errors)

        stored = 0
        if records:
            try:
                docs = self._snapshot_documents(records, cycle_number, comparison, batch, upload_url)
                stored = self.store.insert_many(docs)
            except SyncError as e:
                logger.error(f"[Upload] {submission_id}: storing snapshots failed: {e}")
                errors.append(f"Snapshot storage failed: {e}")

        result = UploadResult(
            submission_id=submission_id,
            cycle_number=cycle_number,
            records_processed=len(records),
            action_logs_created=len(logs),
            differences_found=comparison.total_differences,
            submitted_at=submitted_at,
            comparison=comparison,
            batch=batch,
            snapshots_stored=stored,
            errors=errors,
        )
        logger.info(f"[Upload] {submission_id}: {result.message}")
        return result
