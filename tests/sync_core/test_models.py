"""Tests for report parsing and value-object serialisation."""

import pytest

from goal_sync.errors import ErrorType, SyncError
from goal_sync.models import ActionLog, ReportRecord, StoredSnapshot, coerce_number


class TestReportRecord:
    def test_aliases(self):
        rec = ReportRecord.from_dict(
            {
                "playerId": "ana@example.com",
                "atividadePercentual": "85,5%",
                "faturamento": 40,
                "diaDociclo": "12",
                "totalDiasCiclo": 21,
                "dataRelatorio": "2026-03-10",
                "name": "Ana",
                "teamName": "Carteira II",
            }
        )
        assert rec.player_id == "ana@example.com"
        assert rec.metrics == {"atividade": 85.5, "faturamento": 40.0}
        assert rec.cycle_day == 12
        assert rec.total_cycle_days == 21
        assert rec.report_date == "2026-03-10"
        assert rec.player_name == "Ana"
        assert rec.team == "Carteira II"

    def test_email_used_as_id(self):
        assert ReportRecord.from_dict({"email": "x@y.z", "upa": 1}).player_id == "x@y.z"

    def test_missing_id(self):
        with pytest.raises(ValueError):
            ReportRecord.from_dict({"atividade": 10})

    def test_unparseable_metric_skipped(self):
        rec = ReportRecord.from_dict({"player_id": "P1", "atividade": "n/a", "upa": "12"})
        assert rec.metrics == {"upa": 12.0}
        assert rec.get("atividade") is None

    def test_to_dict_drops_empty_fields(self):
        rec = ReportRecord.from_dict({"player_id": "P1", "atividade": 3})
        assert rec.to_dict() == {"player_id": "P1", "atividade": 3.0}


@pytest.mark.parametrize(
    "raw, expected",
    [("12,5", 12.5), ("80%", 80.0), (7, 7.0), (True, None), ("", None), ("abc", None), (None, None)],
)
def test_coerce_number(raw, expected):
    assert coerce_number(raw) == expected


class TestSnapshotDocument:
    def test_document_keeps_metrics_flat(self):
        snap = StoredSnapshot("P1", 3, {"atividade": 50.0}, upload_sequence=2, time=10, team="ER")
        doc = snap.to_document()
        assert doc["atividade"] == 50.0
        assert doc["team"] == "ER"
        assert "report_date" not in doc
        assert StoredSnapshot.from_document(doc) == snap


class TestActionLog:
    def test_payload(self):
        log = ActionLog("P1", "faturamento", 12.25, "2026-03-10T12:00:00+00:00", "faturamento")
        assert log.to_payload() == {
            "actionId": "faturamento",
            "userId": "P1",
            "attributes": {"porcentagem_da_meta": 12.25},
        }
        assert log.to_payload("pct")["attributes"] == {"pct": 12.25}

    def test_dict_round_trip(self):
        log = ActionLog("P1", "upa", -3.0, "2026-03-10T12:00:00+00:00", "upa", {"player_name": "Ana"})
        assert ActionLog.from_dict(log.to_dict()) == log


def test_sync_error_text():
    err = SyncError(ErrorType.NETWORK, "timeout", status_code=504)
    assert str(err) == "NETWORK_ERROR: timeout"
    assert err.to_dict() == {"type": "NETWORK_ERROR", "message": "timeout", "status_code": 504}
