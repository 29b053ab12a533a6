"""
Per-attribute normalizers for contact fields.

- normalize_source:      acquisition channel (alias table + capitalized fallback)
- normalize_cohort_year: university year / status from free text
- extract_birth_year:    first plausible 4-digit year in a date-like string
- relabel_cohort_years:  chart-friendly regrouping of a cohort distribution

All functions are total: bad input degrades to a sentinel label, never raises.
"""
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from scripts.lib.text import canon, capitalize_first, safe_string

SOURCE_MISSING_LABEL = "Unknown/undeclared"
COHORT_MISSING_LABEL = "ND"
COHORT_GRADUATE = "Graduate"
COHORT_OFF_TRACK = "Off-track"
COHORT_POST_GRADUATE = "Post-graduate"
COHORT_OTHER = "Other"

SOURCE_ALIASES: Dict[str, str] = {
    "adv meta": "META",
    "facebook ads": "META",
    "instagram ads": "META",
    "fb": "META",
    "ig": "Instagram",
    "instagram": "Instagram",
    "google ads": "Google",
    "google": "Google",
    "seo": "SEO",
    "organic": "SEO",
    "referral": "Referral",
    "passaparola": "Referral",
    "webinar": "Webinar",
    "email": "Email",
    "newsletter": "Email",
    "conversazioni": "Conversations",
    "sito": "Website",
    "ambassador": "Ambassador",
    "iscritto": "Members",
}

COHORT_ALIASES: Dict[str, str] = {
    "1°": "1", "primo": "1",
    "2°": "2", "secondo": "2",
    "3°": "3", "terzo": "3",
    "4°": "4", "quarto": "4",
    "5°": "5", "quinto": "5",
    "6°": "6", "sesto": "6",
    "laureato": COHORT_GRADUATE,
    "laureata": COHORT_GRADUATE,
    "post laurea": COHORT_POST_GRADUATE,
    "fuori corso": COHORT_OFF_TRACK,
    "fuoricorso": COHORT_OFF_TRACK,
}

_BARE_YEAR_RE = re.compile(r"(?:^|\D)([1-6])(?:\D|$)")
_GRADUATE_RE = re.compile(r"laureat")
_OFF_TRACK_RE = re.compile(r"fuori\s*cors|fuoricors")
_POST_GRADUATE_RE = re.compile(r"post\s*laurea|specializz|master")
_COHORT_ALIAS_RES = [
    (re.compile(rf"\b{re.escape(alias)}\b", re.IGNORECASE), label)
    for alias, label in COHORT_ALIASES.items()
]
_BIRTH_YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")

COHORT_CHART_LABELS: Dict[str, str] = {
    "1": "1st year",
    "2": "2nd year",
    "3": "3rd year",
    "4": "4th year",
    "5": "5th year",
    "6": "6th year",
    COHORT_GRADUATE: COHORT_GRADUATE,
}
COHORT_CHART_ORDER = [*COHORT_CHART_LABELS.values(), COHORT_OTHER]


def normalize_source(value) -> str:
    raw = safe_string(value).strip()
    if not raw:
        return SOURCE_MISSING_LABEL
    alias = SOURCE_ALIASES.get(canon(raw))
    if alias:
        return alias
    return capitalize_first(raw)


def normalize_cohort_year(value) -> str:
    """Resolve a free-text cohort year to "1".."6" or a status label."""
    raw = safe_string(value).strip()
    if not raw:
        return COHORT_MISSING_LABEL
    text = raw.lower()

    match = _BARE_YEAR_RE.search(text)
    if match:
        return match.group(1)
    if _GRADUATE_RE.search(text):
        return COHORT_GRADUATE
    if _OFF_TRACK_RE.search(text):
        return COHORT_OFF_TRACK
    if _POST_GRADUATE_RE.search(text):
        return COHORT_POST_GRADUATE
    for pattern, label in _COHORT_ALIAS_RES:
        if pattern.search(text):
            return label
    return COHORT_OTHER


def extract_birth_year(value) -> Optional[str]:
    match = _BIRTH_YEAR_RE.search(safe_string(value))
    return match.group(0) if match else None


def relabel_cohort_years(entries: Iterable[dict]) -> List[dict]:
    """Regroup a cohort distribution into the fixed chart buckets.

    Years 1-6 and Graduate keep their own bar; every other label (ND,
    Off-track, Post-graduate, Other) folds into Other. Empty buckets are
    dropped except Other, which is always present.
    """
    totals: Dict[str, int] = {}
    for entry in entries:
        label = COHORT_CHART_LABELS.get(safe_string(entry.get("name")).strip(), COHORT_OTHER)
        totals[label] = totals.get(label, 0) + int(entry.get("value") or 0)
    return [
        {"name": label, "value": totals.get(label, 0)}
        for label in COHORT_CHART_ORDER
        if totals.get(label, 0) > 0 or label == COHORT_OTHER
    ]
