import os

import azure.functions as func
from bson import json_util


def cors_headers():
    return {
        "Access-Control-Allow-Origin": os.getenv("ALLOWED_ORIGIN", "*"),
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def respond(body=None, status=200):
    # json_util handles ObjectId/datetime values coming straight from Mongo
    return func.HttpResponse(
        json_util.dumps(body) if body is not None else "",
        status_code=status,
        mimetype="application/json",
        headers=cors_headers(),
    )


def error_response(message, status=400, details=None):
    body = {"error": message}
    if details is not None:
        body["details"] = details
    return respond(body, status)


def options_response():
    return func.HttpResponse("", status_code=204, headers=cors_headers())


def bearer_token(req: func.HttpRequest):
    header = req.headers.get("Authorization") or req.headers.get("authorization") or ""
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        return token or None
    return None


def json_body(req: func.HttpRequest):
    """Parsed JSON body, or None when the body is missing or malformed."""
    if not req.get_body():
        return None
    try:
        return req.get_json()
    except ValueError:
        return None
