#!/usr/bin/env python3
"""
Replay a report file against the snapshot store.

  python tools/replay_upload.py reports.csv --cycle 12            # dry run: diff + action logs only
  python tools/replay_upload.py reports.json --cycle 12 --submit  # full pipeline, needs FUNIFIER_TOKEN

CSV files are read with pandas; JSON files must hold a list of records.
"""
import argparse
import json
import os
import sys

import pandas as pd

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(ROOT_DIR)

from goal_sync.action_logs import ActionLogGenerator, export_action_logs_json, validate_action_logs
from goal_sync.comparator import ReportComparator, export_comparison_csv
from goal_sync.config import load_sync_config
from goal_sync.models import ReportRecord
from goal_sync.pipeline import ReportSyncPipeline
from goal_sync.store import MongoReportStore
from utils.db_utils import get_db, get_report_collection


def load_records(path):
    ext = os.path.splitext(path)[1].lower()
    if ext == ".json":
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    else:
        raw = pd.read_csv(path).to_dict(orient="records")

    records = []
    for i, row in enumerate(raw):
        # pandas leaves NaN for empty cells
        row = {k: v for k, v in row.items() if not (isinstance(v, float) and pd.isna(v))}
        try:
            records.append(ReportRecord.from_dict(row))
        except ValueError as e:
            print(f"WARN: row {i + 1} skipped: {e}")
    return records


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Compare a report file with stored snapshots.")
    parser.add_argument("path", help="CSV or JSON report file")
    parser.add_argument("--cycle", type=int, required=True, help="Cycle number the report belongs to")
    parser.add_argument("--new-cycle", action="store_true", help="Force new-cycle comparison (diff from zero)")
    parser.add_argument("--submit", action="store_true", help="Submit action logs and store snapshots")
    parser.add_argument("--csv-out", default=None, help="Write the comparison as CSV to this path")
    args = parser.parse_args()

    records = load_records(args.path)
    print(f"Loaded {len(records)} record(s) from {args.path}")

    cfg = load_sync_config(get_db())
    store = MongoReportStore(get_report_collection())

    if args.submit:
        token = os.getenv("FUNIFIER_TOKEN")
        if not token:
            print("ERROR: FUNIFIER_TOKEN env var not set")
            sys.exit(1)
        result = ReportSyncPipeline.from_config(store, cfg).process_upload(
            records, token, args.cycle, upload_url=os.path.abspath(args.path)
        )
        print(json.dumps(result.to_dict(), indent=2, default=str))
        sys.exit(0 if result.success else 2)

    comparator = ReportComparator(store, tolerance=float(cfg["tolerance"]), max_workers=int(cfg["lookup_workers"]))
    is_new = args.new_cycle or comparator.detect_new_cycle(args.cycle)
    report = comparator.compare(records, args.cycle, is_new)
    print(report.summary)

    logs = ActionLogGenerator(cfg["action_ids"]).generate(report.results)
    for err in validate_action_logs(logs):
        print(f"INVALID: {err}")
    print(export_action_logs_json(logs))

    if args.csv_out:
        with open(args.csv_out, "w", encoding="utf-8") as f:
            f.write(export_comparison_csv(report.results))
        print(f"Comparison written to {args.csv_out}")
