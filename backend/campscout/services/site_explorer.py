"""Site exploration — navigation summary gathered before generating extraction code.

Detects the registration platform, location and category navigation, and
whether the site is a directory (a listing that links out to many camp
providers) rather than a provider itself.
"""

import logging
import re
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from campscout.config import get_settings
from campscout.schemas.extraction import DirectoryLink, SiteExploration
from campscout.services.organizations import domain_of

logger = logging.getLogger(__name__)

DIRECTORY_INDICATORS = (
    "kidsoutandabout.com",
    "parentmap.com",
    "summercamps.com",
    "campnavigator.com",
    "kidscamps.com",
    "activityhero.com",
    "sawyer.com",
    "acacamps.org",
    "/guide",
    "/list",
    "/directory",
    "/best-",
    "/top-",
)

# External camp sites linked from one page before it counts as a directory
DIRECTORY_EXTERNAL_LINK_THRESHOLD = 15

REGISTRATION_SYSTEMS = {
    "activecommunities.com": "ActiveCommunities",
    "campminder.com": "CampMinder",
    "ultracamp.com": "UltraCamp",
    "campbrainregistration.com": "CampBrain",
    "jumbula.com": "Jumbula",
    "sawyer.com": "Sawyer",
    "amilia.com": "Amilia",
    "regpack.com": "Regpack",
    "daysmartrecreation.com": "DaySmart",
    "campdoc.com": "CampDoc",
}

SKIP_DOMAINS_RE = re.compile(
    r"facebook|twitter|instagram|linkedin|youtube|google|yelp|tripadvisor|amazon|pinterest|reddit|tiktok|snapchat",
    re.IGNORECASE,
)

CAMP_DETAIL_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"/content/.*camp",
        r"/camps?/[^/]+$",
        r"/programs?/[^/]+$",
        r"/activit(y|ies)/[^/]+$",
        r"/class(es)?/[^/]+$",
        r"/events?/.*camp",
        r"/listings?/[^/]+$",
        r"/providers?/[^/]+$",
        r"/organizations?/[^/]+$",
        r"/venues?/[^/]+$",
        r"camp.*-\d{4}$",
    )
]

EXCLUDE_PATH_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"/search", r"/filter", r"/page/\d+", r"/category/", r"/tag/", r"/author/",
        r"/login", r"/register", r"/cart", r"/checkout", r"/account", r"/about",
        r"/contact", r"/privacy", r"/terms", r"/faq", r"^/?$",
    )
]

CAMP_TEXT_RE = re.compile(r"camp|program|class|activity|workshop|lesson", re.IGNORECASE)
LOCATION_TEXT_RE = re.compile(r"community center|park|school|campus|location|facility|branch", re.IGNORECASE)
CATEGORY_TEXT_RE = re.compile(r"art|sport|science|stem|music|theater|nature|outdoor|day camp|overnight|dance|coding", re.IGNORECASE)


def classify_links(soup: BeautifulSoup, page_url: str) -> tuple[list[DirectoryLink], list[DirectoryLink]]:
    """Split page links into external camp sites (one per domain) and internal detail pages."""
    host = domain_of(page_url)
    current_path = urlparse(page_url).path
    external: list[DirectoryLink] = []
    internal: list[DirectoryLink] = []
    seen_urls: set[str] = set()
    seen_domains: set[str] = set()

    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href or href.startswith(("mailto:", "tel:", "javascript:", "#")):
            continue
        full_url = urljoin(page_url, href).split("#", 1)[0]
        parsed = urlparse(full_url)
        if parsed.scheme not in ("http", "https"):
            continue

        path = parsed.path
        domain = domain_of(full_url)
        name = a.get_text(" ", strip=True)
        if full_url in seen_urls or (path == current_path and domain == host):
            continue
        if any(p.search(path) for p in EXCLUDE_PATH_PATTERNS):
            continue

        if domain == host:
            if any(p.search(path) for p in CAMP_DETAIL_PATTERNS) or CAMP_TEXT_RE.search(name):
                seen_urls.add(full_url)
                if 2 < len(name) < 200:
                    internal.append(DirectoryLink(url=full_url, name=name))
        else:
            if not domain or SKIP_DOMAINS_RE.search(domain) or domain in seen_domains:
                continue
            seen_domains.add(domain)
            seen_urls.add(full_url)
            link_name = name if len(name) > 2 else domain.split(".")[0]
            if len(link_name) < 200:
                external.append(DirectoryLink(url=full_url, name=link_name))

    return external, internal


def analyze_page(html: str, page_url: str) -> SiteExploration:
    """Build an exploration summary from a page's HTML."""
    soup = BeautifulSoup(html, "lxml")
    title = soup.title.get_text(strip=True) if soup.title else None
    exploration = SiteExploration(url=page_url, title=title)

    lowered = html.lower()
    for marker, system in REGISTRATION_SYSTEMS.items():
        if marker in lowered:
            exploration.registration_system = system
            exploration.notes.append(f"Registration handled by {system}")
            break

    nav_texts = []
    for a in soup.select("nav a, header a, .menu a, aside a"):
        text = a.get_text(" ", strip=True)
        if text and len(text) < 80 and text not in nav_texts:
            nav_texts.append(text)
    exploration.locations = [t for t in nav_texts if LOCATION_TEXT_RE.search(t)][:25]
    exploration.categories = [t for t in nav_texts if CATEGORY_TEXT_RE.search(t)][:25]
    if len(exploration.locations) > 1:
        exploration.notes.append("Camps appear to be organized by location")

    external, internal = classify_links(soup, page_url)
    exploration.camp_links = [link.url for link in internal][:25]

    url_lower = page_url.lower()
    is_directory = (
        any(indicator in url_lower for indicator in DIRECTORY_INDICATORS)
        or len(external) >= DIRECTORY_EXTERNAL_LINK_THRESHOLD
    )
    if is_directory:
        exploration.site_type = "directory"
        exploration.external_links = external
        exploration.internal_links = internal
        exploration.notes.append(
            f"Directory site: {len(external)} external camp sites, {len(internal)} internal detail pages"
        )

    return exploration


class SiteExplorer:
    """Fetches a site's landing page and summarizes its navigation."""

    def explore(self, url: str) -> SiteExploration:
        settings = get_settings()
        try:
            resp = httpx.get(
                url,
                timeout=30,
                follow_redirects=True,
                headers={"User-Agent": settings.user_agent},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Exploration fetch failed for {url}: {e}")
            exploration = SiteExploration(url=url)
            exploration.notes.append(f"Exploration encountered error: {str(e)[:200]}")
            return exploration

        exploration = analyze_page(resp.text, str(resp.url))
        logger.info(
            f"Explored {url}: type={exploration.site_type}, "
            f"registration={exploration.registration_system or 'unknown'}"
        )
        return exploration
