"""Organization and source lookup by URL — locate-or-create helpers.

Organizations are keyed by the hostname of their website (``www.`` dropped),
sources by their canonical URL.
"""

import logging
import re
from urllib.parse import urlparse

from sqlalchemy.orm import Session

from campscout.config import get_settings
from campscout.models.organization import Organization
from campscout.models.source import Source

logger = logging.getLogger(__name__)


def domain_of(url: str | None) -> str | None:
    """Hostname of a URL, lower-cased, without a leading www."""
    if not url:
        return None
    if "://" not in url:
        url = f"https://{url}"
    host = (urlparse(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def canonical_url(url: str) -> str:
    """Strip whitespace, fragments and a trailing slash for URL comparisons."""
    url = url.strip().split("#", 1)[0]
    if url.endswith("/") and urlparse(url).path not in ("", "/"):
        url = url.rstrip("/")
    return url


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:200] or "organization"


def _unique_slug(db: Session, base: str) -> str:
    slug = base
    suffix = 2
    while db.query(Organization.id).filter(Organization.slug == slug).first():
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


def get_or_create_organization(
    db: Session,
    url: str,
    name: str | None = None,
    market: str | None = None,
) -> Organization:
    """Find the organization owning the URL's domain, creating it if needed."""
    domain = domain_of(url)
    if domain:
        existing = db.query(Organization).filter(Organization.domain == domain).first()
        if existing:
            return existing

    display_name = name or (domain.split(".")[0].title() if domain else "Unknown organization")
    org = Organization(
        name=display_name,
        slug=_unique_slug(db, slugify(display_name)),
        domain=domain,
        website_url=f"https://{domain}" if domain else None,
        market=market,
    )
    db.add(org)
    db.flush()
    logger.info(f"Created organization {org.name} ({domain})")
    return org


def find_source_by_url(db: Session, url: str) -> Source | None:
    target = canonical_url(url)
    candidates = db.query(Source).filter(Source.url.in_([target, target + "/"])).all()
    return candidates[0] if candidates else None


def get_or_create_source(
    db: Session,
    url: str,
    name: str,
    market: str | None = None,
    organization: Organization | None = None,
    discovered_by: str = "manual",
) -> Source:
    """Find a source by canonical URL, creating an inactive one if needed."""
    source = find_source_by_url(db, url)
    if source:
        if organization and not source.organization_id:
            source.organization_id = organization.id
        return source

    source = Source(
        name=name,
        url=canonical_url(url),
        market=market,
        organization_id=organization.id if organization else None,
        is_active=False,
        scrape_frequency_hours=get_settings().default_scrape_frequency_hours,
        additional_urls=[],
        url_history=[],
        discovered_by=discovered_by,
    )
    db.add(source)
    db.flush()
    logger.info(f"Created source {name} ({source.url})")
    return source
