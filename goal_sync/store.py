"""
Snapshot store access.

The core only needs three operations on the report collection: filtered
reads, aggregation pipelines restricted to a small stage set, and bulk
inserts. Two backends: a pymongo collection and the platform's own custom
collection endpoints.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pymongo.errors import PyMongoError

from .config import REPORT_COLLECTION
from .errors import ErrorType, SyncError
from .models import StoredSnapshot
from .platform import PlatformClient

logger = logging.getLogger(__name__)

ALLOWED_STAGES = {"$match", "$sort", "$group", "$limit", "$project", "$replaceRoot"}
REGISTERED = "REGISTERED"


def validate_pipeline(pipeline: list) -> None:
    if not isinstance(pipeline, list) or not pipeline:
        raise SyncError(ErrorType.VALIDATION, "Aggregation pipeline must be a non-empty list")
    for i, stage in enumerate(pipeline):
        if not isinstance(stage, dict) or len(stage) != 1:
            raise SyncError(ErrorType.VALIDATION, f"Stage {i} must be a single-key mapping", stage)
        op = next(iter(stage))
        if op not in ALLOWED_STAGES:
            raise SyncError(ErrorType.VALIDATION, f"Stage {i} uses unsupported operator {op}")


def latest_snapshot_pipeline(player_id: str, cycle_number: int) -> list:
    return [
        {
            "$match": {
                "player_id": player_id,
                "cycle_number": cycle_number,
                "status": REGISTERED,
                "time": {"$exists": True},
            }
        },
        {"$sort": {"time": -1}},
        {"$limit": 1},
    ]


def last_sequence_pipeline(player_ids: list, cycle_number: int) -> list:
    return [
        {"$match": {"cycle_number": cycle_number, "player_id": {"$in": list(player_ids)}}},
        {"$group": {"_id": "$player_id", "last_sequence": {"$max": "$upload_sequence"}}},
    ]


class ReportStore:
    """Query/aggregate/insert service over the report snapshot collection."""

    def query(self, filter_: dict) -> list:
        raise NotImplementedError

    def _aggregate(self, pipeline: list) -> list:
        raise NotImplementedError

    def insert_many(self, documents: list) -> int:
        raise NotImplementedError

    def aggregate(self, pipeline: list) -> list:
        validate_pipeline(pipeline)
        return self._aggregate(pipeline)

    def latest_snapshot(self, player_id: str, cycle_number: int) -> Optional[StoredSnapshot]:
        rows = self.aggregate(latest_snapshot_pipeline(player_id, cycle_number))
        if not rows:
            return None
        return StoredSnapshot.from_document(rows[0])

    def has_cycle_records(self, cycle_number: int) -> bool:
        rows = self.aggregate([{"$match": {"cycle_number": cycle_number}}, {"$limit": 1}])
        return bool(rows)

    def next_upload_sequences(self, player_ids: list, cycle_number: int) -> dict[str, int]:
        if not player_ids:
            return {}
        rows = self.aggregate(last_sequence_pipeline(player_ids, cycle_number))
        last = {str(r["_id"]): int(r.get("last_sequence") or 0) for r in rows}
        return {pid: last.get(pid, 0) + 1 for pid in player_ids}


class MongoReportStore(ReportStore):
    def __init__(self, collection):
        self.collection = collection

    def query(self, filter_: dict) -> list:
        try:
            return list(self.collection.find(filter_, {"_id": 0}))
        except PyMongoError as e:
            raise SyncError(ErrorType.NETWORK, f"Mongo find failed: {e}") from e

    def _aggregate(self, pipeline: list) -> list:
        try:
            return list(self.collection.aggregate(pipeline))
        except PyMongoError as e:
            raise SyncError(ErrorType.NETWORK, f"Mongo aggregate failed: {e}") from e

    def insert_many(self, documents: list) -> int:
        if not documents:
            return 0
        try:
            # insert_many mutates its input with _id; keep callers' dicts clean
            res = self.collection.insert_many([dict(d) for d in documents], ordered=False)
        except PyMongoError as e:
            raise SyncError(ErrorType.NETWORK, f"Mongo insert_many failed: {e}") from e
        return len(res.inserted_ids)


class PlatformReportStore(ReportStore):
    def __init__(self, client: PlatformClient, collection: str = REPORT_COLLECTION):
        self.client = client
        self.collection = collection

    def query(self, filter_: dict) -> list:
        return self.client.database_find(self.collection, filter_)

    def _aggregate(self, pipeline: list) -> list:
        return self.client.database_aggregate(self.collection, pipeline)

    def insert_many(self, documents: list) -> int:
        if not documents:
            return 0
        data: Any = self.client.database_insert_bulk(self.collection, documents)
        if isinstance(data, dict) and "total_registered" in data:
            return int(data["total_registered"])
        return len(documents)
