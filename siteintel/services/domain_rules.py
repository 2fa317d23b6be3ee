"""
Domain Rules — every tunable heuristic pattern in one place.

Covers search-result filtering (blocklists, directory detection, the
"high authority" heuristic) and contact/location extraction used by the
local-SEO checks (phone, street address, email ranking, City, ST tokens).
The scorer and the search engine only call the functions here, so patterns
can be tuned without touching their control flow.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

logger = logging.getLogger("siteintel.rules")

# ─── Search filtering ──────────────────────────────────────────────────

# Social / platform hosts that will never be leads
CORE_BLOCKLIST = [
    "facebook.", "linkedin.", "instagram.", "twitter.",
    "youtube.", "pinterest.", "tiktok.", "reddit.",
    "wikipedia.", "google.", "maps.google.",
]

# Short hosts that would over-match as substrings
EXACT_BLOCKLIST = {"x.com", "t.co"}

# Directories, review aggregators, maps, jobs, real estate
DIRECTORY_DOMAIN_PATTERNS = [
    "yelp", "yellowpages", "yp.com", "whitepages", "superpages",
    "bbb.org", "angieslist", "angi.com", "homeadvisor", "thumbtack",
    "houzz", "zillow", "realtor", "apartments", "trulia",
    "healthgrades", "vitals", "zocdoc", "webmd", "healthline",
    "tripadvisor", "expedia", "booking.com", "kayak",
    "glassdoor", "indeed", "ziprecruiter", "monster", "careerbuilder",
    "manta", "chamberofcommerce", "alignable", "nextdoor",
    "mapquest", "foursquare", "citysearch",
    # agency directories
    "clutch.co", "upcity", "sortlist", "agency-list", "agencyspotter",
    "designrush", "expertise.com", "bark.com", "goodfirms",
    "topdesignfirms", "digitalagencynetwork", "awwwards", "cssdesignawards",
    # general aggregators
    "g2.com", "capterra", "softwareadvice", "getapp", "trustpilot",
    "sitejabber", "consumeraffairs", "pissedconsumer", "complaintsboard",
    "crunchbase", "owler", "zoominfo", "clearbit",
]

DIRECTORY_PATH_PATTERNS = [
    "/profile/", "/listing/", "/company/", "/business/", "/vendor/",
    "/provider/", "/firm/", "/agency/", "/contractor/", "/professional/",
    "/find/", "/search/", "/directory/", "/list/", "/top-", "/best-",
    "/reviews/", "/ratings/", "/compare/", "/hire/",
]

DIRECTORY_TITLE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^top \d+", r"^best \d+", r"^\d+ best", r"^\d+ top",
        r"directory of", r"list of", r"find a ", r"hire a ",
        r"compare \d+", r"\d+ (companies|agencies|firms|businesses)",
        r"near you", r"in your area", r"reviews for",
    )
]

DIRECTORY_TLDS = (".directory", ".guide")

# Brand names that usually mean a franchise when combined with a location signal
BIG_BRANDS = [
    "aspen", "heartland", "perfect", "smile", "bright", "gentle",
    "affordable", "family", "comfort", "clear", "lumino", "pacific",
]
FRANCHISE_SIGNAL = re.compile(r"\d|location|group")

AUTHORITY_TLDS = (".gov", ".org", ".edu", ".mil")

CORPORATE_TOKENS = [
    "corp", "inc", "group", "partners", "associates",
    "solutions", "services", "healthcare", "medical",
    "premier", "elite", "professional", "advanced",
]

MIN_DOMAIN_LENGTH = 5


def is_blocklisted(domain: str) -> bool:
    """Substring match against social platforms and directory/aggregator hosts."""
    d = domain.lower()
    if d in EXACT_BLOCKLIST or d.endswith(tuple("." + h for h in EXACT_BLOCKLIST)):
        return True
    if any(p in d for p in CORE_BLOCKLIST):
        return True
    if any(p in d for p in DIRECTORY_DOMAIN_PATTERNS):
        return True
    return d.endswith(DIRECTORY_TLDS)


def looks_like_directory_page(url: str, title: str = "") -> bool:
    """Listing-shaped URL paths or listicle titles ("Top 10 …", "… near you")."""
    path = urlsplit(url).path.lower() if "://" in url else url.lower()
    if any(p in path for p in DIRECTORY_PATH_PATTERNS):
        return True
    t = (title or "").strip()
    return any(p.search(t) for p in DIRECTORY_TITLE_PATTERNS)


def is_likely_high_authority(domain: str) -> bool:
    """Heuristic for sites that are unlikely to need help (franchises, .gov/.org, corporates)."""
    d = domain.lower()
    if d.endswith(AUTHORITY_TLDS):
        return True
    if any(brand in d for brand in BIG_BRANDS) and FRANCHISE_SIGNAL.search(d):
        return True
    primary = d.split(".")[0]
    matches = sum(1 for token in CORPORATE_TOKENS if token in primary)
    return matches >= 2


def reject_reason(domain: str, url: str = "", title: str = "") -> Optional[str]:
    """Return why a search hit is not a business lead, or None if it passes."""
    if not domain:
        return "empty"
    if is_blocklisted(domain):
        return "blocklisted"
    if url and looks_like_directory_page(url, title):
        return "directory"
    if is_likely_high_authority(domain):
        return "high_authority"
    if len(domain) < MIN_DOMAIN_LENGTH:
        return "too_short"
    return None


# ─── Content hub / location patterns ───────────────────────────────────

BLOG_MARKERS = ["/blog", "/news", "/articles", "/insights", "blog.", "news."]

PHONE_PATTERN = re.compile(r"\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
ADDRESS_PATTERN = re.compile(
    r"\d+\s+[\w\s]+(?:street|st|avenue|ave|road|rd|boulevard|blvd|lane|ln"
    r"|drive|dr|court|ct|way|place|pl)[.,\s]*",
    re.IGNORECASE,
)
CITY_STATE_PATTERN = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*),?\s+([A-Z]{2})\b")


def is_blog_link(href: str) -> bool:
    return bool(href) and any(marker in href for marker in BLOG_MARKERS)


def has_location_keyword(text: str) -> bool:
    return bool(CITY_STATE_PATTERN.search(text or ""))


# ─── Email ranking ─────────────────────────────────────────────────────

EMAIL_REGEX = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

EMAIL_QUALITY = {
    "personal": ["owner", "founder", "ceo", "president", "director", "manager"],
    "business": ["contact", "hello", "hi", "inquiries", "inquiry", "business"],
    "generic": ["info", "office", "admin", "team"],
    "avoid": [
        "noreply", "no-reply", "donotreply", "support", "help", "billing",
        "sales", "marketing", "jobs", "careers", "hr", "legal", "press",
        "media", "spam", "abuse", "postmaster", "webmaster", "hostmaster",
        "mailer-daemon",
    ],
}

PERSONAL_LOCAL_PART = re.compile(r"^[a-z]+(\.[a-z]+)?$")

# Bonus for emails that appear in footer/contact blocks
CONTACT_BLOCK_BONUS = 10
CONTACT_BLOCK_SELECTOR = "footer, .footer, #footer, .contact, #contact, .contact-info"


def score_email(email: str, domain: str) -> int:
    """Outreach quality of an address: owner/personal > business > generic > avoid."""
    local, _, email_domain = email.lower().partition("@")
    base = domain.lower().removeprefix("www.")
    stem = re.sub(r"\.(com|net|org)$", "", email_domain)
    match = (base in email_domain) or (bool(stem) and stem in base)

    if any(a in local for a in EMAIL_QUALITY["avoid"]):
        return 5 if match else 1
    if any(p in local for p in EMAIL_QUALITY["personal"]):
        return 100 if match else 70
    if PERSONAL_LOCAL_PART.match(local) and 2 < len(local) < 20:
        return 90 if match else 60
    if any(b in local for b in EMAIL_QUALITY["business"]):
        return 80 if match else 50
    if local in EMAIL_QUALITY["generic"]:
        return 40 if match else 20
    return 30 if match else 15


def _usable_email(email: str) -> bool:
    if "@" not in email or "." not in email:
        return False
    if "example.com" in email or "test.com" in email:
        return False
    return not email.endswith((".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg"))


def _jsonld_emails(data) -> list[str]:
    """Walk a JSON-LD payload for email / contactPoint.email / @graph entries."""
    found: list[str] = []
    items = data if isinstance(data, list) else [data]
    for item in items:
        if not isinstance(item, dict):
            continue
        if isinstance(item.get("email"), str):
            found.append(item["email"])
        contacts = item.get("contactPoint") or []
        for contact in contacts if isinstance(contacts, list) else [contacts]:
            if isinstance(contact, dict) and isinstance(contact.get("email"), str):
                found.append(contact["email"])
        if isinstance(item.get("@graph"), list):
            found.extend(_jsonld_emails(item["@graph"]))
    return found


def extract_best_email(soup: BeautifulSoup, body_text: str, domain: str) -> Optional[str]:
    """Collect emails from mailto links, JSON-LD and visible text; return the best-ranked one."""
    ranked: dict[str, int] = {}

    def _add(raw: str, bonus: int = 0) -> None:
        email = raw.replace("mailto:", "").split("?")[0].strip().lower()
        if not _usable_email(email):
            return
        score = score_email(email, domain) + bonus
        ranked[email] = max(ranked.get(email, 0), score)

    for a in soup.select('a[href^="mailto:"]'):
        _add(a.get("href", ""), bonus=5)

    for script in soup.select('script[type="application/ld+json"]'):
        try:
            data = json.loads(script.string or "")
        except (ValueError, TypeError):
            continue
        for email in _jsonld_emails(data):
            _add(email, bonus=3)

    for email in EMAIL_REGEX.findall(body_text or ""):
        _add(email)

    contact_text = " ".join(el.get_text(" ") for el in soup.select(CONTACT_BLOCK_SELECTOR))
    for email in EMAIL_REGEX.findall(contact_text):
        _add(email, bonus=CONTACT_BLOCK_BONUS)

    if not ranked:
        return None
    return max(ranked.items(), key=lambda kv: kv[1])[0]


# ─── NAP ───────────────────────────────────────────────────────────────

@dataclass
class NapInfo:
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None

    @property
    def has_phone(self) -> bool:
        return bool(self.phone)

    @property
    def has_address(self) -> bool:
        return bool(self.address)


class ContactRules:
    """Pattern set for NAP extraction. Subclass or pass other patterns to tune."""

    def __init__(
        self,
        phone_pattern: re.Pattern = PHONE_PATTERN,
        address_pattern: re.Pattern = ADDRESS_PATTERN,
    ):
        self.phone_pattern = phone_pattern
        self.address_pattern = address_pattern

    def extract_nap(self, soup: Optional[BeautifulSoup], body_text: str, domain: str) -> NapInfo:
        text = body_text or ""
        phone = self.phone_pattern.search(text)
        address = self.address_pattern.search(text)
        email = extract_best_email(soup, text, domain) if soup is not None else None
        return NapInfo(
            phone=phone.group(0).strip() if phone else None,
            address=address.group(0).strip() if address else None,
            email=email,
        )


default_contact_rules = ContactRules()
