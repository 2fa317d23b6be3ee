"""
SEO Scorer — bracket-based heuristic score for a single page.

    overall = TECHNICAL (0-40) + ON-PAGE (0-30) + CONTENT (0-20) + LOCAL (0-10)

which is the same as weighting each sub-score's percentage 40/30/20/10.
Every signal appends a concrete issue (with a fix) when it falls short of its
bracket maximum. Pure: no I/O, the clock is injectable for freshness checks.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Optional
from urllib.parse import urlsplit

from siteintel.errors import FetchTimeout
from siteintel.services.domain_rules import (
    BLOG_MARKERS,
    ContactRules,
    default_contact_rules,
    has_location_keyword,
    is_blog_link,
)
from siteintel.services.fetch_engine import ScrapedPage

logger = logging.getLogger("siteintel.seo")

TECHNICAL_MAX = 40
ON_PAGE_MAX = 30
CONTENT_MAX = 20
LOCAL_MAX = 10

WEIGHTS = {
    "technical_seo": 0.40,
    "on_page_seo": 0.30,
    "content_marketing": 0.20,
    "local_seo": 0.10,
}
MAXIMUMS = {
    "technical_seo": TECHNICAL_MAX,
    "on_page_seo": ON_PAGE_MAX,
    "content_marketing": CONTENT_MAX,
    "local_seo": LOCAL_MAX,
}

TECHNICAL = "Technical SEO"
ON_PAGE = "On-Page SEO"
CONTENT = "Content Marketing"
LOCAL = "Local SEO"
ACCESS = "Website Access"

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


@dataclass
class SeoIssue:
    category: str
    issue: str
    severity: str
    fix: str


@dataclass
class SeoScore:
    technical_seo: int = 0
    on_page_seo: int = 0
    content_marketing: int = 0
    local_seo: int = 0
    overall: int = 0
    has_blog: bool = False
    blog_post_count: int = 0
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    issues: list[SeoIssue] = field(default_factory=list)
    reachable: bool = True

    def pct(self, name: str) -> float:
        """Sub-score normalized to 0–100."""
        return getattr(self, name) / MAXIMUMS[name] * 100

    def has_critical(self, category: str) -> bool:
        return any(i.severity == "critical" and i.category == category for i in self.issues)

    def ranked_issues(self) -> list[SeoIssue]:
        return sorted(self.issues, key=lambda i: SEVERITY_ORDER.get(i.severity, 9))

    def as_dict(self) -> dict:
        return asdict(self)


def compute_overall(technical: int, on_page: int, content: int, local: int) -> int:
    """round(0.40·tech% + 0.30·on-page% + 0.20·content% + 0.10·local%), capped at 100."""
    parts = {
        "technical_seo": min(technical, TECHNICAL_MAX),
        "on_page_seo": min(on_page, ON_PAGE_MAX),
        "content_marketing": min(content, CONTENT_MAX),
        "local_seo": min(local, LOCAL_MAX),
    }
    total = sum(WEIGHTS[k] * (v / MAXIMUMS[k] * 100) for k, v in parts.items())
    return min(100, max(0, round(total)))


# ═══════════════════════════════════════════════════════════════════════
# Technical SEO (0–40)
# ═══════════════════════════════════════════════════════════════════════

def _score_technical(page: ScrapedPage) -> tuple[int, list[SeoIssue]]:
    points = 0
    issues: list[SeoIssue] = []

    title_len = len(page.title)
    if not page.title:
        issues.append(SeoIssue(
            TECHNICAL, "Missing title tag", "critical",
            "Add a unique, descriptive title tag (50-60 characters) to every page",
        ))
    elif title_len < 30:
        points += 5
        issues.append(SeoIssue(
            TECHNICAL, "Title tag too short", "high",
            f"Expand title from {title_len} to 50-60 characters with relevant keywords",
        ))
    elif title_len > 70:
        points += 7
        issues.append(SeoIssue(
            TECHNICAL, "Title tag too long", "medium",
            f"Shorten title from {title_len} to 50-60 characters",
        ))
    else:
        points += 10

    meta_len = len(page.meta_description)
    if not page.meta_description:
        issues.append(SeoIssue(
            TECHNICAL, "Missing meta description", "critical",
            "Add compelling meta descriptions (150-160 characters) to improve click-through rates",
        ))
    elif meta_len < 120:
        points += 5
        issues.append(SeoIssue(
            TECHNICAL, "Meta description too short", "high",
            f"Expand meta description from {meta_len} to 150-160 characters",
        ))
    elif meta_len > 160:
        points += 8
        issues.append(SeoIssue(
            TECHNICAL, "Meta description too long", "low",
            f"Shorten meta description from {meta_len} to 150-160 characters",
        ))
    else:
        points += 10

    if page.has_structured_data:
        points += 10
    else:
        issues.append(SeoIssue(
            TECHNICAL, "No structured data (Schema.org)", "high",
            "Implement LocalBusiness, Organization, or Product schema to appear in rich snippets",
        ))

    if page.has_viewport_tag:
        points += 5
    else:
        issues.append(SeoIssue(
            TECHNICAL, "Not mobile-responsive", "critical",
            "Add viewport meta tag and implement responsive design (60%+ of traffic is mobile)",
        ))

    # No images means nothing is missing alt text
    if page.images_total == 0:
        points += 5
    else:
        ratio = page.images_with_alt / page.images_total
        if ratio < 0.5:
            points += 2
            issues.append(SeoIssue(
                TECHNICAL, f"Only {round(ratio * 100)}% of images have alt text", "high",
                "Add descriptive alt text to all images for accessibility and image SEO",
            ))
        elif ratio < 0.9:
            points += 4
            issues.append(SeoIssue(
                TECHNICAL, f"{round(ratio * 100)}% of images have alt text (should be 100%)", "medium",
                "Complete alt text coverage for remaining images",
            ))
        else:
            points += 5

    return min(points, TECHNICAL_MAX), issues


# ═══════════════════════════════════════════════════════════════════════
# On-page SEO (0–30)
# ═══════════════════════════════════════════════════════════════════════

def _score_on_page(page: ScrapedPage) -> tuple[int, list[SeoIssue]]:
    points = 0
    issues: list[SeoIssue] = []

    if page.h1_count == 0:
        issues.append(SeoIssue(
            ON_PAGE, "No H1 tag found", "critical",
            "Add one H1 tag per page with primary keyword",
        ))
    elif page.h1_count > 1:
        points += 7
        issues.append(SeoIssue(
            ON_PAGE, f"Multiple H1 tags ({page.h1_count} found)", "medium",
            "Use only one H1 per page for clear content hierarchy",
        ))
    elif len(page.h1_text) < 20:
        points += 8
        issues.append(SeoIssue(
            ON_PAGE, "H1 tag too short/generic", "medium",
            "Use descriptive H1 with target keywords (20-70 characters)",
        ))
    else:
        points += 10

    if page.h2_count == 0:
        points += 3
        issues.append(SeoIssue(
            ON_PAGE, "No H2 tags (poor content structure)", "high",
            "Use H2-H6 tags to organize content and include related keywords",
        ))
    elif page.h2_count >= 2:
        points += 10
    else:
        points += 7

    if page.internal_link_count < 3:
        points += 4
        issues.append(SeoIssue(
            ON_PAGE, "Weak internal linking structure", "medium",
            "Add internal links to related pages/posts to improve site structure and rankings",
        ))
    elif page.internal_link_count < 10:
        points += 7
    else:
        points += 10

    return min(points, ON_PAGE_MAX), issues


# ═══════════════════════════════════════════════════════════════════════
# Content marketing (0–20)
# ═══════════════════════════════════════════════════════════════════════

def count_blog_posts(hrefs: list[str]) -> int:
    """Distinct links that sit *under* a blog-like hub (``/blog/my-post``), not the hub itself."""
    posts = set()
    for href in hrefs:
        if not is_blog_link(href):
            continue
        path = urlsplit(href).path if "://" in href else href.split("?")[0].split("#")[0]
        path = path.rstrip("/")
        for marker in BLOG_MARKERS:
            if not marker.startswith("/"):
                continue
            idx = path.find(marker + "/")
            if idx != -1 and path[idx + len(marker) + 1:]:
                posts.add(path)
                break
    return len(posts)


def _score_content(page: ScrapedPage, today: date) -> tuple[int, list[SeoIssue], bool, int]:
    points = 0
    issues: list[SeoIssue] = []

    words = page.body_word_count
    if words < 300:
        points += 2
        issues.append(SeoIssue(
            CONTENT, f"Thin content (only {words} words)", "high",
            "Expand content to 500+ words for better rankings and user value",
        ))
    elif words < 500:
        points += 4
    else:
        points += 5

    has_blog = any(is_blog_link(h) for h in page.outbound_link_hrefs)
    post_count = 0
    if has_blog:
        points += 10
        post_count = count_blog_posts(page.outbound_link_hrefs)
    else:
        issues.append(SeoIssue(
            CONTENT, "No blog or content hub detected", "critical",
            "Start a blog to capture organic search traffic and establish thought leadership",
        ))

    this_year = str(today.year)
    last_year = str(today.year - 1)
    if this_year in page.body_text:
        points += 5
    elif last_year in page.body_text:
        points += 3
        issues.append(SeoIssue(
            CONTENT, "Content appears outdated (last year)", "low",
            "Update content regularly to signal freshness to search engines",
        ))
    else:
        points += 1
        issues.append(SeoIssue(
            CONTENT, "Content appears very outdated", "medium",
            "Refresh content with current information and dates to improve rankings",
        ))

    return min(points, CONTENT_MAX), issues, has_blog, post_count


# ═══════════════════════════════════════════════════════════════════════
# Local SEO (0–10)
# ═══════════════════════════════════════════════════════════════════════

def _score_local(page: ScrapedPage, domain: str, rules: ContactRules):
    points = 0
    issues: list[SeoIssue] = []
    nap = rules.extract_nap(page.soup, page.body_text, domain)

    if not nap.has_phone and not nap.has_address:
        issues.append(SeoIssue(
            LOCAL, "No contact info (phone/address) found", "high",
            "Add NAP (Name, Address, Phone) consistently across all pages for local SEO",
        ))
    elif not (nap.has_phone and nap.has_address):
        points += 3
        issues.append(SeoIssue(
            LOCAL,
            "Address not found on homepage" if nap.has_phone else "Phone number not found on homepage",
            "medium",
            "Display complete NAP info on every page for local search rankings",
        ))
    else:
        points += 5

    if has_location_keyword(page.body_text):
        points += 5
    else:
        points += 2
        issues.append(SeoIssue(
            LOCAL, "Missing location keywords in content", "medium",
            "Include city/state keywords in titles, headers, and content for local rankings",
        ))

    return min(points, LOCAL_MAX), issues, nap


# ═══════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════

def score_page(
    page: ScrapedPage,
    domain: str,
    today: Optional[date] = None,
    rules: Optional[ContactRules] = None,
) -> SeoScore:
    """Score one parsed page. Deterministic for a fixed ``today``."""
    today = today or date.today()
    rules = rules or default_contact_rules

    technical, tech_issues = _score_technical(page)
    on_page, on_page_issues = _score_on_page(page)
    content, content_issues, has_blog, post_count = _score_content(page, today)
    local, local_issues, nap = _score_local(page, domain, rules)

    return SeoScore(
        technical_seo=technical,
        on_page_seo=on_page,
        content_marketing=content,
        local_seo=local,
        overall=compute_overall(technical, on_page, content, local),
        has_blog=has_blog,
        blog_post_count=post_count,
        phone=nap.phone,
        address=nap.address,
        email=nap.email,
        issues=tech_issues + on_page_issues + content_issues + local_issues,
    )


def neutral_score(error: Optional[BaseException] = None) -> SeoScore:
    """Midpoint scores for a site that could not be fetched or parsed.

    Timeouts get a medium "too slow" issue, anything else a high "could not
    access" issue, so a failed fetch never reads as a terrible website.
    """
    timed_out = isinstance(error, FetchTimeout)
    if timed_out:
        issue = SeoIssue(
            ACCESS, "Website took too long to respond", "medium",
            "Website may be slow or have protective measures. Try visiting manually "
            "to verify it works, then proceed with outreach.",
        )
    else:
        issue = SeoIssue(
            ACCESS, "Could not access website for analysis", "high",
            str(error) if error else "Check if website is accessible and try again",
        )
    technical, on_page, content, local = (
        TECHNICAL_MAX // 2, ON_PAGE_MAX // 2, CONTENT_MAX // 2, LOCAL_MAX // 2,
    )
    return SeoScore(
        technical_seo=technical,
        on_page_seo=on_page,
        content_marketing=content,
        local_seo=local,
        overall=compute_overall(technical, on_page, content, local),
        issues=[issue],
        reachable=False,
    )
