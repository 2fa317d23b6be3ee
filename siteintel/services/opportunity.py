"""
Opportunity Classifier — maps a score set to a sales rating + dominant gap.

The "sweet spot" (overall 45–70) is a site with enough foundation to be a
real business and enough gaps to need help.
"""

from dataclasses import dataclass
from typing import Optional

from siteintel.services.seo_scorer import TECHNICAL, SeoScore

HIGH = "high"
MEDIUM = "medium"
LOW = "low"

RATING_ORDER = {HIGH: 0, MEDIUM: 1, LOW: 2}

MISSING_TECHNICAL_SEO = "missing-technical-seo"
NO_CONTENT_STRATEGY = "no-content-strategy"
WEAK_LOCAL_SEO = "weak-local-seo"
NEEDS_OPTIMIZATION = "needs-optimization"

SWEET_SPOT = (45, 70)
MEDIUM_BAND = (70, 85)  # exclusive on both ends


@dataclass
class Opportunity:
    rating: str
    type: Optional[str] = None


def rate_opportunity(overall: int) -> str:
    if SWEET_SPOT[0] <= overall <= SWEET_SPOT[1]:
        return HIGH
    if MEDIUM_BAND[0] < overall < MEDIUM_BAND[1]:
        return MEDIUM
    return LOW


def opportunity_type(score: SeoScore) -> Optional[str]:
    """First matching gap wins. Thresholds apply to sub-scores as percentages."""
    if score.pct("technical_seo") < 60 or score.has_critical(TECHNICAL):
        return MISSING_TECHNICAL_SEO
    if not score.has_blog or score.pct("content_marketing") < 50:
        return NO_CONTENT_STRATEGY
    if score.pct("local_seo") < 50:
        return WEAK_LOCAL_SEO
    if score.overall < 70:
        return NEEDS_OPTIMIZATION
    return None


def classify(score: SeoScore) -> Opportunity:
    return Opportunity(rating=rate_opportunity(score.overall), type=opportunity_type(score))
