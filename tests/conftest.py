"""
Shared fixtures: an in-memory snapshot store and a scripted platform session.

Nothing here touches Mongo or the network.
"""

import json as _json
from datetime import date, datetime, timezone

import pytest
import requests

from goal_sync.errors import ErrorType, SyncError
from goal_sync.store import ReportStore

_MISSING = object()


def _matches(doc, filter_):
    for key, cond in filter_.items():
        val = doc.get(key, _MISSING)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                if op == "$exists":
                    if (val is not _MISSING) != bool(arg):
                        return False
                elif op == "$in":
                    if val is _MISSING or val not in arg:
                        return False
                elif op == "$ne":
                    if val == arg:
                        return False
                else:
                    raise NotImplementedError(op)
        elif val is _MISSING or val != cond:
            return False
    return True


def _field(row, expr):
    if isinstance(expr, str) and expr == "$$ROOT":
        return dict(row)
    if isinstance(expr, str) and expr.startswith("$"):
        return row.get(expr[1:])
    return expr


def _group(rows, spec):
    groups = {}
    for row in rows:
        key = _field(row, spec["_id"])
        acc = groups.setdefault(key, {"_id": key})
        for name, op_spec in spec.items():
            if name == "_id":
                continue
            (op, expr), = op_spec.items()
            val = _field(row, expr)
            if op == "$first":
                acc.setdefault(name, val)
            elif op == "$sum":
                acc[name] = acc.get(name, 0) + (val or 0)
            elif op == "$max":
                if val is not None and (acc.get(name) is None or val > acc[name]):
                    acc[name] = val
                acc.setdefault(name, None)
            else:
                raise NotImplementedError(op)
    return list(groups.values())


class FakeReportStore(ReportStore):
    """Evaluates the same stage subset the real store allows."""

    def __init__(self, docs=None):
        self.docs = [dict(d) for d in (docs or [])]
        self.pipelines = []
        self.failing_players = set()
        self.fail_all = False
        self.fail_insert = False

    def _raise_if_failing(self, filter_):
        cond = filter_.get("player_id")
        if isinstance(cond, dict):
            players = set(cond.get("$in", []))
        else:
            players = {cond}
        if self.fail_all or players & self.failing_players:
            raise SyncError(ErrorType.NETWORK, "store unavailable")

    def query(self, filter_):
        self._raise_if_failing(filter_)
        return [dict(d) for d in self.docs if _matches(d, filter_)]

    def _aggregate(self, pipeline):
        self.pipelines.append(pipeline)
        first = pipeline[0].get("$match", {})
        self._raise_if_failing(first)

        rows = [dict(d) for d in self.docs]
        for stage in pipeline:
            (op, arg), = stage.items()
            if op == "$match":
                rows = [r for r in rows if _matches(r, arg)]
            elif op == "$sort":
                for key, direction in reversed(list(arg.items())):
                    rows.sort(key=lambda r: (r.get(key) is None, r.get(key)), reverse=direction < 0)
            elif op == "$limit":
                rows = rows[:arg]
            elif op == "$group":
                rows = _group(rows, arg)
            elif op == "$replaceRoot":
                rows = [_field(r, arg["newRoot"]) for r in rows]
            elif op == "$project":
                rows = [{k: r[k] for k, v in arg.items() if v and k in r} for r in rows]
        return rows

    def insert_many(self, documents):
        if self.fail_insert:
            raise SyncError(ErrorType.NETWORK, "insert failed")
        self.docs.extend(dict(d) for d in documents)
        return len(documents)


def make_response(status=200, body=None):
    resp = requests.Response()
    resp.status_code = status
    resp._content = _json.dumps(body).encode("utf-8") if body is not None else b""
    resp.headers["Content-Type"] = "application/json"
    return resp


class FakePlatformSession:
    """
    Stand-in for requests.Session. Handlers receive the JSON payload and return a
    Response or an exception instance (raised).
    """

    def __init__(self):
        self.calls = []
        self.bulk_handler = lambda payload: make_response(200, {"total_registered": len(payload)})
        self.single_handler = lambda payload: make_response(200, {"status": "OK"})
        self.status_handler = lambda player_id: make_response(404, {"message": "not found"})

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        payload = kwargs.get("json")
        self.calls.append({"method": method, "url": url, "headers": headers, "timeout": timeout, "json": payload})
        if url.endswith("/action/log/bulk"):
            outcome = self.bulk_handler(payload)
        elif url.endswith("/action/log"):
            outcome = self.single_handler(payload)
        elif url.endswith("/status"):
            outcome = self.status_handler(url.rsplit("/", 2)[-2])
        else:
            outcome = make_response(404, {"message": "no route"})
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def calls_to(self, suffix):
        return [c for c in self.calls if c["url"].endswith(suffix)]


@pytest.fixture
def store():
    return FakeReportStore()


@pytest.fixture
def platform_session():
    return FakePlatformSession()


@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def today():
    return date(2026, 3, 10)


@pytest.fixture
def no_sleep():
    delays = []
    return delays.append, delays
