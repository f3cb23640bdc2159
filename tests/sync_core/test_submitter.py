"""Tests for bulk submission, sequential fallback and retries."""

import requests

from goal_sync.action_logs import export_batch_csv
from goal_sync.models import ActionLog
from goal_sync.submitter import BULK_FAILURE, BULK_UNCONFIRMED, BatchSubmitter

from conftest import make_response


def logs(n, start=1):
    return [
        ActionLog(f"P{i}", "atividade", float(i), "2026-03-10T12:00:00+00:00", "atividade")
        for i in range(start, start + n)
    ]


def submitter(session, sleep):
    return BatchSubmitter(base_url="https://platform.test/v3", session=session, sleep=sleep)


class TestBulk:
    def test_all_registered(self, platform_session, no_sleep):
        sleep, delays = no_sleep
        progress = []
        result = submitter(platform_session, sleep).submit_batch(logs(3), "tok", lambda done, total: progress.append((done, total)))

        assert result.total == 3
        assert result.successful == 3
        assert result.failed == 0
        assert not result.used_fallback
        assert progress == [(1, 3), (2, 3), (3, 3)]
        assert delays == []

        call = platform_session.calls_to("/action/log/bulk")[0]
        assert call["headers"]["Authorization"] == "Bearer tok"
        assert call["json"][0] == {"actionId": "atividade", "userId": "P1", "attributes": {"porcentagem_da_meta": 1.0}}
        assert call["timeout"] > 10

    def test_partial_registration_marks_first_n(self, platform_session, no_sleep):
        sleep, _ = no_sleep
        platform_session.bulk_handler = lambda payload: make_response(200, {"total_registered": 2})
        result = submitter(platform_session, sleep).submit_batch(logs(5), "tok")

        assert [r.success for r in result.results] == [True, True, False, False, False]
        assert all(r.error == BULK_FAILURE for r in result.results[2:])
        assert result.successful == 2
        assert result.failed == 3
        assert "40.0%" in result.summary
        assert platform_session.calls_to("/action/log") == []

    def test_unconfirmed_bulk_is_not_resent(self, platform_session, no_sleep):
        sleep, delays = no_sleep
        platform_session.bulk_handler = lambda payload: make_response(200, {"status": "accepted"})
        progress = []
        result = submitter(platform_session, sleep).submit_batch(logs(3), "tok", lambda d, t: progress.append(d))

        assert not result.used_fallback
        assert result.failed == 3
        assert all(r.error == BULK_UNCONFIRMED for r in result.results)
        assert len(platform_session.calls_to("/action/log/bulk")) == 1
        assert platform_session.calls_to("/action/log") == []
        assert progress == [1, 2, 3]
        assert delays == []

    def test_empty_batch(self, platform_session, no_sleep):
        result = submitter(platform_session, no_sleep[0]).submit_batch([], "tok")
        assert result.total == 0
        assert result.summary == "No action logs to submit"
        assert platform_session.calls == []


class TestFallback:
    def test_bulk_http_error_falls_back_in_order(self, platform_session, no_sleep):
        sleep, delays = no_sleep
        platform_session.bulk_handler = lambda payload: make_response(500, {"message": "boom"})
        progress = []
        result = submitter(platform_session, sleep).submit_batch(logs(3), "tok", lambda d, t: progress.append(d))

        assert result.used_fallback
        assert result.successful == 3
        singles = platform_session.calls_to("/action/log")
        assert [c["json"]["userId"] for c in singles] == ["P1", "P2", "P3"]
        assert all(c["timeout"] == 10.0 for c in singles)
        assert progress == [1, 2, 3]
        # inter-request pauses only, no retry backoff
        assert delays == [0.1, 0.1]

    def test_bulk_network_error_falls_back(self, platform_session, no_sleep):
        platform_session.bulk_handler = lambda payload: requests.ConnectionError("reset")
        result = submitter(platform_session, no_sleep[0]).submit_batch(logs(2), "tok")
        assert result.used_fallback
        assert result.successful == 2

    def test_retries_then_succeeds(self, platform_session, no_sleep):
        sleep, delays = no_sleep
        platform_session.bulk_handler = lambda payload: requests.Timeout("slow")
        outcomes = iter([requests.Timeout("slow"), make_response(503, {}), make_response(200, {})])
        platform_session.single_handler = lambda payload: next(outcomes)

        result = submitter(platform_session, sleep).submit_batch(logs(1), "tok")

        assert result.successful == 1
        assert result.results[0].attempts == 3
        assert delays == [1.0, 2.0]

    def test_exactly_three_attempts_then_failure(self, platform_session, no_sleep):
        sleep, delays = no_sleep
        platform_session.bulk_handler = lambda payload: make_response(502, {})
        platform_session.single_handler = (
            lambda payload: make_response(400, {"message": "bad"}) if payload["userId"] == "P2" else make_response(200, {})
        )

        result = submitter(platform_session, sleep).submit_batch(logs(3), "tok")

        p2_calls = [c for c in platform_session.calls_to("/action/log") if c["json"]["userId"] == "P2"]
        assert len(p2_calls) == 3
        failed = [r for r in result.results if not r.success]
        assert len(failed) == 1
        assert failed[0].action_log.player_id == "P2"
        assert failed[0].attempts == 3
        assert "HTTP 400" in failed[0].error
        assert result.successful == 2
        assert delays == [0.1, 1.0, 2.0, 0.1]


class TestRetryFailed:
    def test_resubmits_only_failed_subset(self, platform_session, no_sleep):
        sleep, _ = no_sleep
        platform_session.bulk_handler = lambda payload: make_response(200, {"total_registered": 1})
        sub = submitter(platform_session, sleep)
        first = sub.submit_batch(logs(3), "tok")
        assert first.failed == 2

        platform_session.bulk_handler = lambda payload: make_response(200, {"total_registered": len(payload)})
        retry = sub.retry_failed(first, "tok")

        last_bulk = platform_session.calls_to("/action/log/bulk")[-1]
        assert [p["userId"] for p in last_bulk["json"]] == ["P2", "P3"]
        assert retry.total == 2
        assert retry.successful == 2


class TestValidationAndCredentials:
    def test_invalid_logs_are_not_sent(self, platform_session, no_sleep):
        bad = ActionLog("P9", "", float("nan"), "", "upa")
        result = submitter(platform_session, no_sleep[0]).submit_batch(logs(1) + [bad], "tok")

        sent = platform_session.calls_to("/action/log/bulk")[0]["json"]
        assert [p["userId"] for p in sent] == ["P1"]
        assert result.total == 2
        assert result.failed == 1
        assert result.validation_errors and "missing action id" in result.validation_errors[0]
        assert result.results[-1].attempts == 0

    def test_missing_credentials_fail_without_calls(self, platform_session, no_sleep):
        result = submitter(platform_session, no_sleep[0]).submit_batch(logs(2), "")
        assert result.failed == 2
        assert platform_session.calls == []

    def test_batch_csv_export(self, platform_session, no_sleep):
        platform_session.bulk_handler = lambda payload: make_response(200, {"total_registered": 1})
        result = submitter(platform_session, no_sleep[0]).submit_batch(logs(2), "tok")
        lines = export_batch_csv(result).strip().splitlines()
        assert lines[0] == "player_id,action_id,metric,value,timestamp,success,attempts,error"
        assert lines[2].endswith(BULK_FAILURE)


def test_retry_warnings_name_the_log_and_attempt(platform_session, no_sleep, caplog):
    platform_session.bulk_handler = lambda payload: make_response(500, {})
    platform_session.single_handler = lambda payload: make_response(503, {})
    submitter(platform_session, no_sleep[0]).submit_batch(logs(1), "tok")

    assert "[Submit] P1/atividade attempt 1/3 failed: REMOTE_REJECTION" in caplog.text
    assert "[Submit] P1/atividade attempt 3/3 failed" in caplog.text
