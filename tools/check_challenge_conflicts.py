#!/usr/bin/env python3
"""
List challenge ids that back different metrics in different team variants.

Exit code 1 when conflicts exist so CI can flag a bad mapping edit.
"""
import argparse
import json
import os
import sys

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(ROOT_DIR)

from goal_sync.models import MetricSlot
from goal_sync.teams import TEAM_STRATEGIES, find_mapping_conflicts


def print_mappings():
    for variant, strategy in TEAM_STRATEGIES.items():
        print(f"{variant.value}:")
        for slot in MetricSlot:
            m = strategy.mapping_for(slot)
            print(f"  {slot.value:<11} {m.metric:<20} {', '.join(m.challenge_ids)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Detect challenge ids shared between metrics.")
    parser.add_argument("--json", action="store_true", help="Print conflicts as JSON")
    parser.add_argument("--show-mappings", action="store_true", help="Print every variant's mapping table first")
    args = parser.parse_args()

    if args.show_mappings:
        print_mappings()
        print()

    conflicts = find_mapping_conflicts()
    if args.json:
        print(json.dumps(conflicts, indent=2))
    elif not conflicts:
        print("No challenge id conflicts found.")
    else:
        print(f"Found {len(conflicts)} conflicting challenge id(s):")
        for c in conflicts:
            print(f"- {c['challenge_id']} -> {', '.join(c['metrics'])}")
            for u in c["usages"]:
                print(f"    {u['team']}.{u['slot']} = {u['metric']}")

    sys.exit(1 if conflicts else 0)
