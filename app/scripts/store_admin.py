from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import store  # noqa: E402
from data_exchange import import_roster  # noqa: E402
from errors import ValidationError  # noqa: E402
from models import Setup  # noqa: E402
from validation import validate_week  # noqa: E402

ACTOR = "store_admin"


def _issue_token(args: argparse.Namespace) -> int:
    with store.SessionLocal() as session:
        token = store.issue_token(session, label=args.label)
    print(f"[store] Issued token for '{args.label or 'unlabeled'}': {token}")
    return 0


def _seed(args: argparse.Namespace) -> int:
    document = json.loads(Path(args.file).read_text(encoding="utf-8"))
    with store.SessionLocal() as session:
        try:
            created = store.create_schedule_document(session, document)
        except ValidationError as exc:
            print(f"[store][error] {exc}", file=sys.stderr)
            return 1
        store.record_audit_log(session, ACTOR, "SETUP_CREATED", target_id=created["id"], payload={"source": args.file})
    print(f"[store] Created setup {created['id']} ({created.get('name')})")
    return 0


def _import_roster(args: argparse.Namespace) -> int:
    with store.SessionLocal() as session:
        document = store.get_schedule_document(session, args.setup_id)
        if document is None:
            print(f"[store][error] Setup {args.setup_id} not found", file=sys.stderr)
            return 1
        setup = Setup.from_dict(document)
        try:
            imported, skipped = import_roster(setup, Path(args.file), replace=not args.merge)
        except ValidationError as exc:
            print(f"[store][error] {exc}", file=sys.stderr)
            return 1
        for message in skipped:
            print(f"[store][warning] {message}")
        body = {"uploadedSchedules": [employee.to_dict() for employee in setup.uploaded_schedules]}
        store.replace_schedule_document(session, args.setup_id, body)
        store.record_audit_log(session, ACTOR, "ROSTER_IMPORTED", target_id=args.setup_id, payload={"rows": imported})
    print(f"[store] Imported {imported} roster rows into {args.setup_id}")
    return 0


def _validate(args: argparse.Namespace) -> int:
    with store.SessionLocal() as session:
        document = store.get_schedule_document(session, args.setup_id)
    if document is None:
        print(f"[store][error] Setup {args.setup_id} not found", file=sys.stderr)
        return 1
    report = validate_week(Setup.from_dict(document))
    for issue in report["issues"]:
        print(f"[store][validation-error] {issue['message']}")
    for warning in report["warnings"]:
        print(f"[store][warning] {warning['message']}")
    for check in report["checks"]:
        print(f"[store] {check['label']} {check['status']}")
    return 1 if report["issues"] else 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Maintain the setup sheet document store.")
    commands = parser.add_subparsers(dest="command", required=True)

    token = commands.add_parser("issue-token", help="Create a bearer token for API clients.")
    token.add_argument("--label", default="", help="Name recorded in the audit trail for this token.")
    token.set_defaults(handler=_issue_token)

    seed = commands.add_parser("seed", help="Create a setup from a JSON document.")
    seed.add_argument("file", help="Path to a setup JSON file.")
    seed.set_defaults(handler=_seed)

    roster = commands.add_parser("import-roster", help="Load a CSV, JSON or .xlsx roster export into a setup.")
    roster.add_argument("setup_id")
    roster.add_argument("file")
    roster.add_argument("--merge", action="store_true", help="Keep existing roster entries.")
    roster.set_defaults(handler=_import_roster)

    check = commands.add_parser("validate", help="Print the conflict report for a setup.")
    check.add_argument("setup_id")
    check.set_defaults(handler=_validate)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    store.init_database()
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
