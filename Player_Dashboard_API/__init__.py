import logging

import azure.functions as func

from goal_sync.errors import ErrorType, SyncError
from goal_sync.extractor import extract_player_metrics
from goal_sync.models import ReportRecord
from goal_sync.platform import PlatformClient
from goal_sync.store import MongoReportStore
from goal_sync.teams import team_from_identifier
from utils.db_utils import get_report_collection
from utils.http import bearer_token, error_response, options_response, respond


def main(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return options_response()
    if req.method != "GET":
        return error_response("Method Not Allowed", 405)

    player_id = (req.route_params.get("player_id") or "").strip()
    if not player_id:
        return error_response("player_id is required", 400)
    token = bearer_token(req)
    if not token:
        return error_response("Missing bearer credential", 401)

    team_param = req.params.get("team")
    variant = team_from_identifier(team_param) if team_param else None
    if team_param and variant is None:
        return error_response(f"Unknown team '{team_param}'", 400)

    try:
        status = PlatformClient(token).get_player_status(player_id)
    except SyncError as e:
        logging.error(f"[Dashboard API] status for {player_id}: {e}")
        code = 401 if e.error_type == ErrorType.AUTHENTICATION else 502
        return error_response(e.message, code, e.to_dict())

    record = latest_report(player_id)
    metrics = extract_player_metrics(status, record, variant)
    body = metrics.to_dict()
    body["report_date"] = record.report_date if record else None
    return respond(body)


def latest_report(player_id):
    """Most recent uploaded record for the player, or None if the store is unavailable."""
    store = MongoReportStore(get_report_collection())
    try:
        docs = store.query({"player_id": player_id})
    except SyncError as e:
        logging.warning(f"[Dashboard API] report lookup for {player_id} failed: {e}")
        return None
    if not docs:
        return None
    latest = max(docs, key=lambda d: d.get("time") or 0)
    return ReportRecord.from_dict(latest)
