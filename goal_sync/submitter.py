"""
Delivery of action logs to the platform.

Two stages:
  1) one bulk call; the platform reports how many entries it registered and
     those are the first N in submitted order,
  2) if the bulk call itself fails (network or HTTP error), every log is sent on its own with a short
     pause between requests and up to `max_retries` attempts each.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

import requests

from .action_logs import action_log_errors
from .config import FUNIFIER_BASE_URL
from .errors import SyncError
from .models import ActionLog, BatchResult, SubmissionResult
from .platform import PlatformClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

BULK_FAILURE = "failed in bulk submission"
BULK_UNCONFIRMED = "bulk submission not confirmed by the platform"


def _summarize(total: int, successful: int, failed: int) -> str:
    if total == 0:
        return "No action logs to submit"
    rate = round(successful / total * 100, 1)
    summary = f"Submitted {total} action log(s): {successful} succeeded, {failed} failed (success rate {rate}%)."
    if failed == 0:
        summary += " All action logs were registered."
    elif successful == 0:
        summary += " No action log was registered."
    else:
        summary += f" {failed} action log(s) can be retried."
    return summary


class BatchSubmitter:
    def __init__(
        self,
        base_url: str = FUNIFIER_BASE_URL,
        session: Optional[requests.Session] = None,
        attribute: str = "porcentagem_da_meta",
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        inter_request_delay: float = 0.1,
        bulk_timeout: float = 30.0,
        bulk_timeout_per_item: float = 0.5,
        single_timeout: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url
        self.session = session
        self.attribute = attribute
        self.max_retries = max(1, int(max_retries))
        self.retry_base_delay = retry_base_delay
        self.inter_request_delay = inter_request_delay
        self.bulk_timeout = bulk_timeout
        self.bulk_timeout_per_item = bulk_timeout_per_item
        self.single_timeout = single_timeout
        self.sleep = sleep

    @classmethod
    def from_config(cls, cfg: dict, **kwargs) -> "BatchSubmitter":
        return cls(
            attribute=str(cfg.get("action_attribute", "porcentagem_da_meta")),
            max_retries=int(cfg.get("max_retries", 3)),
            retry_base_delay=float(cfg.get("retry_base_delay", 1.0)),
            inter_request_delay=float(cfg.get("inter_request_delay", 0.1)),
            bulk_timeout=float(cfg.get("bulk_timeout", 30.0)),
            bulk_timeout_per_item=float(cfg.get("bulk_timeout_per_item", 0.5)),
            single_timeout=float(cfg.get("single_timeout", 10.0)),
            **kwargs,
        )

    def _client(self, credentials: str) -> PlatformClient:
        return PlatformClient(credentials, base_url=self.base_url, session=self.session)

    def bulk_timeout_for(self, count: int) -> float:
        return self.bulk_timeout + self.bulk_timeout_per_item * count

    # --- stage 1 ---

    def submit_bulk(
        self,
        logs: Sequence[ActionLog],
        client: PlatformClient,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list:
        """Raises SyncError when the bulk call itself fails."""
        payloads = [log.to_payload(self.attribute) for log in logs]
        registered = client.submit_action_logs_bulk(payloads, timeout=self.bulk_timeout_for(len(payloads)))
        results = []
        if registered is None:
            # accepted without a count: re-sending could register entries twice
            logger.warning(f"[Submit] Bulk call of {len(logs)} action log(s) was not confirmed; marking all failed")
            error = BULK_UNCONFIRMED
            registered = 0
        else:
            logger.info(f"[Submit] Bulk call registered {registered}/{len(logs)} action log(s)")
            error = BULK_FAILURE

        for i, log in enumerate(logs):
            ok = i < registered
            results.append(SubmissionResult(log, success=ok, error=None if ok else error, attempts=1))
            if on_progress:
                on_progress(i + 1, len(logs))
        return results

    # --- stage 2 ---

    def submit_one(self, log: ActionLog, client: PlatformClient) -> SubmissionResult:
        payload = log.to_payload(self.attribute)
        last_error = None
        for attempt in range(1, self.max_retries + 1):
            try:
                client.submit_action_log(payload, timeout=self.single_timeout)
                return SubmissionResult(log, success=True, attempts=attempt)
            except SyncError as e:
                last_error = e
                logger.warning(
                    f"[Submit] {log.player_id}/{log.action_id} attempt {attempt}/{self.max_retries} failed: {e}"
                )
                if attempt < self.max_retries:
                    self.sleep(self.retry_base_delay * attempt)
        return SubmissionResult(log, success=False, error=str(last_error), attempts=self.max_retries)

    def submit_individually(
        self,
        logs: Sequence[ActionLog],
        client: PlatformClient,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list:
        results = []
        for i, log in enumerate(logs):
            if i > 0 and self.inter_request_delay:
                self.sleep(self.inter_request_delay)
            results.append(self.submit_one(log, client))
            if on_progress:
                on_progress(i + 1, len(logs))
        return results

    # --- public ---

    def submit_batch(
        self,
        action_logs: Sequence[ActionLog],
        credentials: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchResult:
        logs = list(action_logs)
        if not logs:
            return BatchResult(0, 0, 0, [], _summarize(0, 0, 0))

        invalid_results = []
        valid = []
        validation_errors = []
        for log in logs:
            errors = action_log_errors(log)
            if errors:
                msg = "; ".join(errors)
                validation_errors.append(f"{log.player_id or '?'}/{log.action_id or '?'}: {msg}")
                invalid_results.append(SubmissionResult(log, success=False, error=f"validation: {msg}", attempts=0))
            else:
                valid.append(log)
        if validation_errors:
            logger.warning(f"[Submit] {len(validation_errors)} action log(s) failed validation and were not sent")

        used_fallback = False
        results: list = []
        if valid:
            try:
                client = self._client(credentials)
            except SyncError as e:
                results = [SubmissionResult(log, success=False, error=str(e), attempts=0) for log in valid]
            else:
                try:
                    results = self.submit_bulk(valid, client, on_progress)
                except SyncError as e:
                    logger.warning(f"[Submit] Bulk submission failed ({e}); falling back to individual submission")
                    used_fallback = True
                    results = self.submit_individually(valid, client, on_progress)

        results.extend(invalid_results)
        successful = sum(1 for r in results if r.success)
        failed = len(results) - successful
        summary = _summarize(len(results), successful, failed)
        logger.info(f"[Submit] {summary}")
        return BatchResult(
            total=len(results),
            successful=successful,
            failed=failed,
            results=results,
            summary=summary,
            used_fallback=used_fallback,
            validation_errors=validation_errors,
        )

    def retry_failed(
        self,
        batch_result: BatchResult,
        credentials: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchResult:
        failed = batch_result.failed_logs()
        logger.info(f"[Submit] Retrying {len(failed)} failed action log(s)")
        return self.submit_batch(failed, credentials, on_progress)
