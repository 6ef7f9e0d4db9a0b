"""
Seed script for the report workflow store (in-memory or Firestore).

Usage:
  - Dry run (default): python scripts/seed_db.py
  - Apply to configured store: python scripts/seed_db.py --apply
  - Use a different seed file: python scripts/seed_db.py --apply --seed ./my_seed.json

Seed file format (JSON list):
  [
    {
      "reporter": {"id": "citizen-1", "role": "reporter"},
      "report": {"title": "...", "description": "...", "category_id": "roads"},
      "transitions": [
        {"actor": {"id": "admin-1", "role": "admin"}, "status": "assigned",
         "extra": {"assigned_officer_ids": ["officer-1"]}}
      ]
    }
  ]

Reports are created and moved through the normal services, so every seeded
report has a consistent audit trail and its notifications.

NOTE: When applying to real Firestore, set FIREBASE_CREDENTIALS_PATH and
USE_MOCK_DB=false in `.env`.
"""

import argparse
import json
import os
from typing import Dict, List

from app.core.errors import DispatchFailure
from app.models.workflow import Actor, ReportCreate, TransitionExtra
from app.services.report_service import get_report_service
from app.services.workflow_service import get_workflow_service


def load_seed(path: str) -> List[Dict]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def apply_seed(seed: List[Dict], apply: bool = False) -> int:
    """Create every seeded report and replay its transitions. Returns the number of reports created."""
    created = 0
    for item in seed:
        reporter = Actor.model_validate(item["reporter"])
        payload = ReportCreate.model_validate(item["report"])
        print(f"Preparing: {payload.title!r} by {reporter.id} ({len(item.get('transitions', []))} transitions)")
        if not apply:
            continue

        report = get_report_service().create_report(reporter, payload)
        created += 1
        print(f"Created: {report.id}")

        for step in item.get("transitions", []):
            actor = Actor.model_validate(step["actor"])
            extra = TransitionExtra.model_validate(step.get("extra") or {})
            try:
                result = get_workflow_service().apply_transition(report.id, step["status"], actor, extra=extra)
            except DispatchFailure as e:
                print(f"  {step['status']}: committed, notifications dead-lettered ({e})")
                continue
            if result.ok:
                print(f"  → {step['status']} (v{result.report.version})")
            else:
                print(f"  ✗ {step['status']}: {result.reason.value} - {result.message}")
    return created


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--apply", action="store_true", help="Write seed to the store instead of dry-run")
    parser.add_argument("--seed", default=os.path.join(os.getcwd(), "db_seed.json"), help="Path to the seed JSON file")
    args = parser.parse_args()

    if not os.path.exists(args.seed):
        print(f"Seed file not found: {args.seed}")
        return

    created = apply_seed(load_seed(args.seed), apply=args.apply)

    if args.apply:
        print(f"Seeding completed: {created} report(s).")
    else:
        print("Dry run complete. Re-run with --apply to write to the store.")


if __name__ == "__main__":
    main()
