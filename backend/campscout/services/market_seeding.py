"""Market seeding — bootstrap a market from a list of camp provider URLs.

Each entry yields an organization (found by domain or created), an
inactive source and, for new sources, a queued development request.
"""

import logging

from sqlalchemy.orm import Session

from campscout.services.development import request_development
from campscout.services.errors import StateError
from campscout.services.organizations import (
    domain_of,
    find_source_by_url,
    get_or_create_organization,
    get_or_create_source,
)

logger = logging.getLogger(__name__)


def name_from_url(url: str) -> str:
    """Readable organization name from a URL's domain label."""
    domain = domain_of(url) or url
    label = domain.split(".")[0]
    return " ".join(part.capitalize() for part in label.replace("_", "-").split("-") if part)


def seed_market(db: Session, market: str, entries: list[dict]) -> dict:
    """Seed one market. Entries are ``{"url", "name"?, "notes"?}``.

    Every entry commits on its own so a bad URL does not lose the others.
    """
    results = []
    created = existing = errors = 0

    for entry in entries:
        url = entry["url"].strip()
        name = entry.get("name") or name_from_url(url)
        try:
            source_existed = find_source_by_url(db, url) is not None
            organization = get_or_create_organization(db, url, name=name, market=market)
            source = get_or_create_source(
                db, url, name=name, market=market, organization=organization, discovered_by="market_seed",
            )

            request_id = None
            if not source_existed:
                try:
                    request = request_development(
                        db, name, url,
                        market=market,
                        source_id=source.id,
                        notes=entry.get("notes"),
                        requested_by="market-seeding",
                        commit=False,
                    )
                    request_id = str(request.id)
                except StateError:
                    logger.info(f"Development request already open for {url}")
            db.commit()

            status = "exists" if source_existed else "created"
            if source_existed:
                existing += 1
            else:
                created += 1
            results.append({
                "url": url,
                "name": name,
                "organization_id": str(organization.id),
                "source_id": str(source.id),
                "development_request_id": request_id,
                "status": status,
            })
        except Exception as e:
            db.rollback()
            errors += 1
            logger.error(f"Seeding {url} failed: {e}")
            results.append({"url": url, "name": name, "status": "error", "error": str(e)})

    logger.info(f"Seeded market {market}: {created} created, {existing} existing, {errors} errors")
    return {
        "market": market,
        "results": results,
        "summary": {"total": len(entries), "created": created, "existing": existing, "errors": errors},
    }
