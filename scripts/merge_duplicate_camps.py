"""Merge camps that share a normalized name within an organization.

Sessions move to the keeper (most sessions, then earliest created) and
image URLs are unioned. Each group commits on its own.

Usage:
    docker compose exec backend python -m scripts.merge_duplicate_camps --dry-run
    docker compose exec backend python -m scripts.merge_duplicate_camps --organization <uuid>
"""

import argparse
import logging
from uuid import UUID

from campscout.models.base import SyncSessionLocal
from campscout.models.organization import Organization  # noqa: F401 — needed for relationship resolution
from campscout.models.source import Source  # noqa: F401
from campscout.models.scrape_job import ScrapeJob  # noqa: F401
from campscout.models.camp import Camp, CampSession  # noqa: F401
from campscout.models.session_change import SessionChange  # noqa: F401
from campscout.models.alert import ScraperAlert  # noqa: F401
from campscout.models.development_request import DevelopmentRequest  # noqa: F401
from campscout.services.deduplication import merge_duplicate_camps

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")


def merge(organization_id: str | None, dry_run: bool):
    db = SyncSessionLocal()
    try:
        outcome = merge_duplicate_camps(
            db,
            organization_id=UUID(organization_id) if organization_id else None,
            dry_run=dry_run,
        )
        for group in outcome["groups"]:
            print(
                f"  Keep {group['keeper_name']} ({group['keeper_id']}): "
                f"removing {len(group['removed_ids'])}, moving {group['sessions_moved']} sessions"
            )
        for failure in outcome["failed"]:
            print(f"  FAILED {failure['name']} in {failure['organization_id']}: {failure['error']}")

        prefix = "Dry run" if dry_run else "Done"
        print(f"\n{prefix}: {len(outcome['groups'])} groups, {outcome['camps_removed']} camps removed")
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Merge duplicate camps within organizations")
    parser.add_argument("--dry-run", action="store_true", help="Report merges without writing")
    parser.add_argument("--organization", help="Only merge camps of this organization id")
    args = parser.parse_args()
    merge(args.organization, args.dry_run)
