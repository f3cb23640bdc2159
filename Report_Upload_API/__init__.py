import logging

import azure.functions as func

from goal_sync.config import load_sync_config
from goal_sync.models import ActionLog, ReportRecord
from goal_sync.pipeline import ReportSyncPipeline
from goal_sync.store import MongoReportStore
from goal_sync.submitter import BatchSubmitter
from utils.db_utils import get_db, get_report_collection
from utils.http import bearer_token, error_response, json_body, options_response, respond


def main(req: func.HttpRequest) -> func.HttpResponse:
    method = req.method
    action = (req.route_params.get("action") or "").strip("/")

    if method == "OPTIONS":
        return options_response()
    if method == "POST" and action in ("", "upload"):
        return upload_report(req)
    if method == "POST" and action == "retry":
        return retry_action_logs(req)

    return error_response("Not Found", 404)


def _config():
    return load_sync_config(get_db())


def _build_pipeline():
    store = MongoReportStore(get_report_collection())
    return ReportSyncPipeline.from_config(store, _config())


def _build_submitter():
    return BatchSubmitter.from_config(_config())


def upload_report(req: func.HttpRequest) -> func.HttpResponse:
    token = bearer_token(req)
    if not token:
        return error_response("Missing bearer credential", 401)

    body = json_body(req)
    if not isinstance(body, dict):
        return error_response("Invalid JSON body", 400)

    try:
        cycle_number = int(body.get("cycle_number"))
    except (TypeError, ValueError):
        return error_response("cycle_number must be an integer", 400)

    raw_records = body.get("records")
    if not isinstance(raw_records, list) or not raw_records:
        return error_response("records must be a non-empty list", 400)

    records = []
    rejected = []
    for i, raw in enumerate(raw_records):
        if not isinstance(raw, dict):
            rejected.append(f"Record {i + 1}: not an object")
            continue
        try:
            records.append(ReportRecord.from_dict(raw))
        except ValueError as e:
            rejected.append(f"Record {i + 1}: {e}")
    if not records:
        return error_response("No valid records in upload", 400, rejected)

    logging.info(f"[Upload API] cycle={cycle_number} records={len(records)} rejected={len(rejected)}")
    result = _build_pipeline().process_upload(
        records,
        token,
        cycle_number,
        upload_url=body.get("upload_url"),
    )

    payload = result.to_dict()
    payload["rejected_records"] = rejected
    # 207: some action logs or snapshots did not make it
    return respond(payload, 200 if result.success else 207)


def retry_action_logs(req: func.HttpRequest) -> func.HttpResponse:
    token = bearer_token(req)
    if not token:
        return error_response("Missing bearer credential", 401)

    body = json_body(req)
    raw_logs = body.get("action_logs") if isinstance(body, dict) else None
    if not isinstance(raw_logs, list) or not raw_logs:
        return error_response("action_logs must be a non-empty list", 400)

    logs = [ActionLog.from_dict(raw) for raw in raw_logs if isinstance(raw, dict)]
    batch = _build_submitter().submit_batch(logs, token)
    return respond(batch.to_dict(), 200 if batch.failed == 0 else 207)
