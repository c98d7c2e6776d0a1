"""
Recalculate every user's lead score from the aggregated activity counters.

Use --dry-run to report how many users would be rescored without writing.
"""
from __future__ import annotations

import argparse
from typing import Dict

from growth.core.config import settings
from growth.core.logging import configure_logging
from growth.features.scoring.container import build_container


def recalculate(*, dry_run: bool) -> Dict:
    container = build_container()
    user_ids = container.users.list_user_ids()
    if dry_run:
        return {"users": len(user_ids), "updated": 0, "errors": 0, "dry_run": True}

    report = container.service.recalculate_all_scores()
    return {"users": len(user_ids), **report, "dry_run": False}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Recalculate lead scores for all users.")
    parser.add_argument("--dry-run", action="store_true", help="Count users without writing scores.")
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    report = recalculate(dry_run=args.dry_run)
    print(report)
    return 1 if report["errors"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
