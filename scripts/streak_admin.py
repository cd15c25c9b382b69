#!/usr/bin/env python3
"""Operator commands for streak records (support/recovery).

  python scripts/streak_admin.py show 0xabc...
  python scripts/streak_admin.py export 0xabc...
  python scripts/streak_admin.py import <backup code>
  python scripts/streak_admin.py reset-cooldown 0xabc...
"""

import argparse
import json
import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app  # noqa: E402
from streak_codec import record_to_dict  # noqa: E402
from streak_errors import NoStreakDataError  # noqa: E402


def run(args, app) -> dict:
    svc = app.extensions["streaks"]
    with app.app_context():
        if args.command == "show":
            record = svc.store.load(args.wallet)
            now = datetime.now(timezone.utc)
            next_at = svc.cooldown.next_eligible_at(args.wallet, now)
            return {
                "ok": True,
                "record": record_to_dict(record) if record else None,
                "next_claim_at": next_at.isoformat() if next_at else None,
            }
        if args.command == "export":
            try:
                return {"ok": True, "backup_code": svc.backups.export_backup(args.wallet)}
            except NoStreakDataError as e:
                return {"ok": False, "error": str(e)}
        if args.command == "import":
            result = svc.backups.import_backup(args.code)
            return {"ok": result.success, "wallet": result.wallet, "message": result.message}
        if args.command == "reset-cooldown":
            svc.cooldown.reset(args.wallet)
            return {"ok": True, "wallet": args.wallet}
    raise ValueError(f"unknown command {args.command}")


def main(argv=None, app=None):
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    sub = parser.add_subparsers(dest="command", required=True)
    for name in ("show", "export", "reset-cooldown"):
        sub.add_parser(name).add_argument("wallet")
    sub.add_parser("import").add_argument("code")
    args = parser.parse_args(argv)

    result = run(args, app or create_app())
    print(json.dumps(result))
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    sys.exit(main())
