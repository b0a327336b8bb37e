"""Seed a market from a JSON file of camp provider URLs.

Creates organizations (matched by domain), inactive sources and queued
development requests. The file holds a list of {"url", "name"?, "notes"?}.

Usage:
    docker compose exec backend python -m scripts.seed_market_sources austin camps_austin.json
"""

import argparse
import json
import logging

from campscout.models.base import SyncSessionLocal
from campscout.models.organization import Organization  # noqa: F401 — needed for relationship resolution
from campscout.models.source import Source  # noqa: F401
from campscout.models.scrape_job import ScrapeJob  # noqa: F401
from campscout.models.camp import Camp, CampSession  # noqa: F401
from campscout.models.session_change import SessionChange  # noqa: F401
from campscout.models.alert import ScraperAlert  # noqa: F401
from campscout.models.development_request import DevelopmentRequest  # noqa: F401
from campscout.services.market_seeding import seed_market

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")


def seed(market: str, path: str):
    with open(path) as f:
        entries = json.load(f)

    db = SyncSessionLocal()
    try:
        outcome = seed_market(db, market, entries)
        for result in outcome["results"]:
            line = f"  {result['status']:8} {result['name']} ({result['url']})"
            if result.get("error"):
                line += f" — {result['error']}"
            print(line)
        summary = outcome["summary"]
        print(
            f"\nDone: {summary['created']} created, {summary['existing']} existing, "
            f"{summary['errors']} errors of {summary['total']}"
        )
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a market's camp sources and queue extraction development")
    parser.add_argument("market", help="Market slug, e.g. austin")
    parser.add_argument("file", help="JSON file with a list of {url, name, notes}")
    args = parser.parse_args()
    seed(args.market, args.file)
