"""Built-in extraction for sites that publish schema.org Event markup.

Many registration platforms embed one JSON-LD ``Event`` per session, which
is enough to recover name, dates, price, location and registration URL
without site-specific code.
"""

import json
import logging
import re
from datetime import date, datetime
from typing import Any
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from campscout.config import get_settings
from campscout.extraction.base import ExtractionLogic, build_result
from campscout.extraction.registry import register_logic
from campscout.schemas.extraction import ExtractionResult

logger = logging.getLogger(__name__)

EVENT_TYPES = {"Event", "EducationEvent", "ChildrensEvent", "SportsEvent", "CourseInstance"}
_AGE_RANGE_RE = re.compile(r"(\d{1,2})\s*(?:-|to|–)\s*(\d{1,2})")

AVAILABILITY_MAP = {
    "soldout": "sold_out",
    "limitedavailability": "active",
    "instock": "active",
    "preorder": "active",
    "waitlist": "waitlist",
}


def _parse_date(value: Any) -> date | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None


def _iter_nodes(data: Any):
    """Walk JSON-LD documents, descending into @graph and lists."""
    if isinstance(data, list):
        for item in data:
            yield from _iter_nodes(item)
    elif isinstance(data, dict):
        if "@graph" in data:
            yield from _iter_nodes(data["@graph"])
        yield data


def _node_types(node: dict) -> set[str]:
    types = node.get("@type") or []
    if isinstance(types, str):
        types = [types]
    return set(types)


def _first_offer(node: dict) -> dict:
    offers = node.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    return offers if isinstance(offers, dict) else {}


def _location_name(node: dict) -> str | None:
    location = node.get("location")
    if isinstance(location, list):
        location = location[0] if location else None
    if isinstance(location, str):
        return location
    if isinstance(location, dict):
        if location.get("name"):
            return location["name"]
        address = location.get("address")
        if isinstance(address, dict):
            return address.get("streetAddress")
        if isinstance(address, str):
            return address
    return None


def event_to_session(node: dict, page_url: str) -> dict | None:
    """Map one schema.org Event node to an extracted session dict."""
    start = _parse_date(node.get("startDate"))
    name = (node.get("name") or "").strip()
    if not start or not name:
        return None

    offer = _first_offer(node)
    price = offer.get("price")
    try:
        price = float(price) if price not in (None, "") else None
    except (TypeError, ValueError):
        price = None

    availability = str(offer.get("availability") or "").rsplit("/", 1)[-1].lower()
    session = {
        "name": name,
        "start_date": start,
        "end_date": _parse_date(node.get("endDate")),
        "price": price,
        "location": _location_name(node),
        "registration_url": urljoin(page_url, offer.get("url") or node.get("url") or page_url),
        "availability": AVAILABILITY_MAP.get(availability, "active"),
        "raw_dates": f"{node.get('startDate')} - {node.get('endDate') or ''}".strip(" -"),
        "raw_price": str(offer.get("price")) if offer.get("price") is not None else None,
    }

    if str(node.get("eventStatus") or "").endswith("EventCancelled"):
        session["availability"] = "cancelled"

    audience = node.get("typicalAgeRange")
    if not audience and isinstance(node.get("audience"), dict):
        audience = node["audience"].get("suggestedAge")
    if isinstance(audience, str):
        session["raw_ages"] = audience
        match = _AGE_RANGE_RE.search(audience)
        if match:
            session["min_age"], session["max_age"] = int(match.group(1)), int(match.group(2))

    image = node.get("image")
    if isinstance(image, str):
        session["image_urls"] = [urljoin(page_url, image)]
    elif isinstance(image, list):
        session["image_urls"] = [urljoin(page_url, i) for i in image if isinstance(i, str)]

    return session


def parse_jsonld_events(html: str, page_url: str) -> dict:
    """Extract sessions (and the organizer, when present) from page HTML."""
    soup = BeautifulSoup(html, "lxml")
    sessions = []
    organization = None

    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except (json.JSONDecodeError, TypeError):
            continue
        for node in _iter_nodes(data):
            if not (_node_types(node) & EVENT_TYPES):
                continue
            session = event_to_session(node, page_url)
            if session:
                sessions.append(session)
            organizer = node.get("organizer")
            if organization is None and isinstance(organizer, dict) and organizer.get("name"):
                organization = {"name": organizer["name"], "website_url": organizer.get("url")}

    return {"sessions": sessions, "organization": organization}


@register_logic("jsonld_events")
class JsonLdEventsLogic(ExtractionLogic):
    """Direct fetch with httpx, then JSON-LD parsing."""

    async def extract(self, url: str, hints: dict[str, Any]) -> ExtractionResult:
        settings = get_settings()
        async with httpx.AsyncClient(
            timeout=30,
            follow_redirects=True,
            headers={"User-Agent": settings.user_agent},
        ) as client:
            resp = await client.get(url)
            resp.raise_for_status()

        payload = parse_jsonld_events(resp.text, str(resp.url))
        logger.info(f"[jsonld_events] {url}: {len(payload['sessions'])} events")
        return build_result(payload)


@register_logic("jsonld_events_rendered")
class RenderedJsonLdEventsLogic(ExtractionLogic):
    """Same parsing after client-side rendering, for catalogs injected by JS."""

    requires_browser = True

    async def extract(self, url: str, hints: dict[str, Any]) -> ExtractionResult:
        from campscout.extraction.browser import get_browser

        async with get_browser() as browser:
            html = await browser.render(url)

        payload = parse_jsonld_events(html, url)
        logger.info(f"[jsonld_events_rendered] {url}: {len(payload['sessions'])} events")
        return build_result(payload)
