"""
Course taxonomy: maps a free-text purchased-course name to one macro-category.

Classification runs in two stages on canonical text (see scripts.lib.text):

1. Family detection. Families are tried in the order of COURSE_FAMILIES and
   the first one whose tokens are all present wins.
2. Sub-rules inside subdivided families, in fixed order:
   free offer -> scholarship -> promo (with percentage tier) -> family default.

Empty input is "Unspecified"; non-empty input matching no family is "Other".
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from scripts.lib.text import canon

UNSPECIFIED_LABEL = "Unspecified"
OTHER_LABEL = "Other"
LABEL_SEPARATOR = " – "


@dataclass(frozen=True)
class CourseFamily:
    key: str
    tokens: Tuple[str, ...]
    label: str
    free_offer: bool = False
    scholarship: bool = False
    promo_tiers: Optional[Tuple[str, ...]] = None

    @property
    def subdivided(self) -> bool:
        return self.free_offer or self.scholarship or self.promo_tiers is not None

    def matches(self, text: str) -> bool:
        return all(token in text for token in self.tokens)

    def sub_label(self, suffix: str) -> str:
        return f"{self.label}{LABEL_SEPARATOR}{suffix}"


COURSE_FAMILIES: Tuple[CourseFamily, ...] = (
    CourseFamily(
        "FULL_2026", ("full", "ssm", "2026"), "Full 2026",
        free_offer=True, scholarship=True, promo_tiers=("65%", "40%", "30%"),
    ),
    CourseFamily(
        "ACADEMY_2026", ("academy", "2026"), "Academy 2026",
        free_offer=True, promo_tiers=("40%",),
    ),
    CourseFamily("FOCUS_2025", ("focus", "2025"), "Focus SSM 2025"),
    CourseFamily("BIENNALE_2027", ("biennale", "2027"), "Biennale SSM 2027"),
    CourseFamily("ONE_MORE_TIME_2026", ("one more time", "2026"), "One More Time SSM 2026"),
    CourseFamily("ON_DEMAND_PRO", ("on demand pro",), "On Demand Pro"),
)


# ---------------------------------------------------------------------------
# Sub-rule indicators
# ---------------------------------------------------------------------------

def has_free_offer(text: str) -> bool:
    """'Free if you get in' offers: "gratis" plus an "entri" phrase."""
    return "gratis" in text and ("se entri" in text or " entri " in text)


def has_scholarship(text: str) -> bool:
    return "borsa" in text and "studio" in text


def has_promo(text: str) -> bool:
    return "promo" in text or "sconto" in text


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def detect_family(text: str) -> Optional[CourseFamily]:
    """Return the first family whose tokens all appear in canonical text."""
    if not text:
        return None
    for family in COURSE_FAMILIES:
        if family.matches(text):
            return family
    return None


def _apply_sub_rules(family: CourseFamily, text: str) -> str:
    if not family.subdivided:
        return family.label
    if family.free_offer and has_free_offer(text):
        return family.sub_label("Free if admitted")
    if family.scholarship and has_scholarship(text):
        return family.sub_label("Scholarship")
    if family.promo_tiers is not None and has_promo(text):
        for tier in family.promo_tiers:
            if tier in text:
                return family.sub_label(f"Promo {tier}")
        return family.sub_label("Promo")
    return family.sub_label(OTHER_LABEL)


def classify_course(text: str) -> str:
    """Map canonical course text to exactly one macro-category label."""
    if not text:
        return UNSPECIFIED_LABEL
    family = detect_family(text)
    if family is None:
        return OTHER_LABEL
    return _apply_sub_rules(family, text)


def course_macro(raw_course) -> str:
    """Canonicalize a raw attribute value, then classify it."""
    return classify_course(canon(raw_course))
