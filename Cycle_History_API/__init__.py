import logging

import azure.functions as func

from goal_sync.errors import SyncError
from goal_sync.history import CycleHistoryService
from goal_sync.store import MongoReportStore
from utils.db_utils import get_report_collection
from utils.http import error_response, options_response, respond

# Route: history/{player_id}/{action?}/{cycle?}


def main(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return options_response()
    if req.method != "GET":
        return error_response("Method Not Allowed", 405)

    player_id = (req.route_params.get("player_id") or "").strip()
    action = (req.route_params.get("action") or "").strip("/")
    if not player_id:
        return error_response("player_id is required", 400)

    service = _build_service()
    try:
        if action == "":
            return get_history(service, player_id)
        if action == "cycles":
            return get_cycle(service, player_id, req.route_params.get("cycle"))
        if action == "stats":
            return respond(service.get_cycle_summary_stats(player_id).to_dict())
        if action == "compare":
            return compare(service, player_id, req.params.get("a"), req.params.get("b"))
    except SyncError as e:
        logging.error(f"[History API] {player_id}/{action}: {e}")
        return error_response(e.message, 502, e.to_dict())

    return error_response("Not Found", 404)


def _build_service():
    return CycleHistoryService(MongoReportStore(get_report_collection()))


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_history(service, player_id):
    cycles = service.get_player_cycle_history(player_id)
    return respond(
        {
            "player_id": player_id,
            "has_history": bool(cycles),
            "cycles": [c.to_dict() for c in cycles],
        }
    )


def get_cycle(service, player_id, cycle):
    if cycle is None:
        return respond({"player_id": player_id, "cycles": [c.to_dict() for c in service.get_player_cycles(player_id)]})

    cycle_number = _as_int(cycle)
    if cycle_number is None:
        return error_response("cycle must be an integer", 400)
    details = service.get_cycle_details(player_id, cycle_number)
    if details is None:
        return error_response(f"No data for cycle {cycle_number}", 404)
    return respond(details.to_dict())


def compare(service, player_id, a, b):
    cycle_a, cycle_b = _as_int(a), _as_int(b)
    if cycle_a is None or cycle_b is None:
        return error_response("query parameters a and b must be integers", 400)
    comparison = service.compare_cycles(player_id, cycle_a, cycle_b)
    if comparison is None:
        return error_response("One or both cycles have no data", 404)
    return respond(comparison.to_dict())
