"""
Funnel Contact Analyzer
========================
Folds a full CRM contact population into funnel counters, frequency
distributions and the webinar / in-target segment figures that make up a
snapshot.

Exports:
    FunnelAnalyzer, DistributionAnalyzer, WebinarAnalyzer,
    TargetSegmentAnalyzer, to_distribution, group_by_threshold,
    analyze_contacts
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Sequence

from models.dashboard_models import DatasetMetrics, DistributionEntry, FunnelCounters
from scripts.lib.contact_rules import (
    ATTR_BIRTH_DATE,
    ATTR_COHORT_YEAR,
    ATTR_COURSE,
    ATTR_SOURCE,
    ATTR_UNIVERSITY,
    DEFAULT_RULES,
    ContactRules,
    attr,
    attr_text,
    list_ids,
)
from scripts.lib.logger import setup_logger
from scripts.lib.normalizers import extract_birth_year, normalize_cohort_year, normalize_source
from scripts.lib.taxonomy import course_macro
from scripts.lib.utils import safe_div

logger = setup_logger(__name__)

# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------
UNIVERSITY_MISSING_LABEL = "Unspecified"
BIRTH_YEAR_MISSING_LABEL = "No year"
OTHER_LABEL = "Other"

LIST_MACRO_PLATFORM = "PLATFORM"
LIST_MACRO_WEBINAR = "WEBINAR"

# In-target heuristic: advanced cohort or the matching birth years
TARGET_COHORT_YEARS = frozenset({"5", "6"})
TARGET_BIRTH_YEARS = frozenset({2000, 2001})


# ---------------------------------------------------------------------------
# Distribution helpers
# ---------------------------------------------------------------------------

def to_distribution(counts: Counter) -> List[DistributionEntry]:
    """Counter -> entries sorted by descending count, ties by label."""
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [DistributionEntry(name=name, value=value) for name, value in ordered]


def group_by_threshold(
    entries: Iterable[Any],
    threshold: int = 2,
    other_label: str = OTHER_LABEL,
) -> List[DistributionEntry]:
    """Fold the long tail of a distribution into one trailing bucket.

    Entries with ``value >= threshold`` are kept, sorted by descending value.
    The rest, plus any unnamed entry or one already called ``other_label``,
    are summed into a
    single ``other_label`` entry appended only when the sum is positive.
    The total is preserved.
    """
    if threshold < 0:
        raise ValueError("threshold must be >= 0")

    kept: List[DistributionEntry] = []
    other_sum = 0
    for raw in entries:
        entry = raw if isinstance(raw, DistributionEntry) else DistributionEntry.model_validate(raw)
        if not entry.name or entry.name == other_label or entry.value < threshold:
            other_sum += entry.value
        else:
            kept.append(entry)

    kept.sort(key=lambda e: (-e.value, e.name))
    if other_sum > 0:
        kept.append(DistributionEntry(name=other_label, value=other_sum))
    return kept


def _pairs(*items) -> List[DistributionEntry]:
    return [DistributionEntry(name=name, value=value) for name, value in items]


# ============================================================================
# Analyzer Classes
# ============================================================================

class FunnelAnalyzer:
    """The five funnel counters, each an independent filter over everyone."""

    def __init__(self, rules: ContactRules = DEFAULT_RULES):
        self.rules = rules

    def analyze(self, contacts: Sequence[dict]) -> FunnelCounters:
        r = self.rules
        return FunnelCounters(
            leads=len(contacts),
            platform_members=sum(1 for c in contacts if r.is_platform_member(c)),
            profiled=sum(1 for c in contacts if r.has_complete_profile(c)),
            enrolled=sum(1 for c in contacts if r.is_enrolled(c)),
            paying=sum(1 for c in contacts if r.is_paying(c)),
        )


class DistributionAnalyzer:
    """Per-field frequency distributions in a single pass."""

    def __init__(self, rules: ContactRules = DEFAULT_RULES):
        self.rules = rules

    def list_macro(self, list_id: int) -> str:
        if list_id == self.rules.platform_list_id:
            return LIST_MACRO_PLATFORM
        if list_id == self.rules.webinar_list_id:
            return LIST_MACRO_WEBINAR
        return OTHER_LABEL

    def analyze(self, contacts: Sequence[dict]) -> Dict[str, List[DistributionEntry]]:
        universities: Counter = Counter()
        cohort_years: Counter = Counter()
        sources: Counter = Counter()
        birth_years: Counter = Counter()
        courses: Counter = Counter()
        paying_courses: Counter = Counter()
        list_macros: Counter = Counter()
        list_id_counts: Counter = Counter()

        for c in contacts:
            universities[attr_text(c, ATTR_UNIVERSITY) or UNIVERSITY_MISSING_LABEL] += 1
            cohort_years[normalize_cohort_year(attr(c, ATTR_COHORT_YEAR))] += 1
            sources[normalize_source(attr(c, ATTR_SOURCE))] += 1
            birth_years[extract_birth_year(attr(c, ATTR_BIRTH_DATE)) or BIRTH_YEAR_MISSING_LABEL] += 1

            if self.rules.is_enrolled(c):
                macro = course_macro(attr(c, ATTR_COURSE))
                courses[macro] += 1
                if self.rules.is_paying(c):
                    paying_courses[macro] += 1

            # listIds is a set: one contact can land in several buckets
            for list_id in list_ids(c):
                list_macros[self.list_macro(list_id)] += 1
                list_id_counts[str(list_id)] += 1

        return {
            "universities": to_distribution(universities),
            "cohort_years": to_distribution(cohort_years),
            "sources": to_distribution(sources),
            "birth_years": to_distribution(birth_years),
            "courses": to_distribution(courses),
            "paying_courses": to_distribution(paying_courses),
            "list_macros": to_distribution(list_macros),
            "list_ids": to_distribution(list_id_counts),
        }


class WebinarAnalyzer:
    """Webinar participation crossed with the funnel, plus simulation usage."""

    def __init__(self, rules: ContactRules = DEFAULT_RULES):
        self.rules = rules

    def analyze(self, contacts: Sequence[dict]) -> Dict[str, List[DistributionEntry]]:
        r = self.rules
        participants = [c for c in contacts if r.is_webinar_participant(c)]
        members = [c for c in contacts if r.is_platform_member(c)]
        crm_users = [c for c in contacts if r.is_crm_user(c)]

        members_with_webinar = sum(1 for c in members if r.is_webinar_participant(c))
        crm_with_webinar = sum(1 for c in crm_users if r.is_webinar_participant(c))
        members_with_sim = sum(1 for c in members if r.has_simulation(c))

        return {
            "webinar_conversions": _pairs(
                ("Webinar participants", len(participants)),
                ("Enrolled from webinar", sum(1 for c in participants if r.is_enrolled(c))),
                ("Paying from webinar", sum(1 for c in participants if r.is_paying(c))),
            ),
            "members_webinar": _pairs(
                ("Members with webinar", members_with_webinar),
                ("Members without webinar", len(members) - members_with_webinar),
            ),
            "crm_webinar": _pairs(
                ("CRM users with webinar", crm_with_webinar),
                ("CRM users without webinar", len(crm_users) - crm_with_webinar),
            ),
            "members_simulation": _pairs(
                ("With simulation", members_with_sim),
                ("Without simulation", len(members) - members_with_sim),
            ),
        }


class TargetSegmentAnalyzer:
    """Non-enrolled CRM users worth prioritizing for outreach."""

    def __init__(self, rules: ContactRules = DEFAULT_RULES):
        self.rules = rules

    def is_in_target(self, contact: dict) -> bool:
        if not self.rules.is_webinar_participant(contact):
            return False
        if normalize_cohort_year(attr(contact, ATTR_COHORT_YEAR)) in TARGET_COHORT_YEARS:
            return True
        birth_year = extract_birth_year(attr(contact, ATTR_BIRTH_DATE))
        return birth_year is not None and int(birth_year) in TARGET_BIRTH_YEARS

    def analyze(self, contacts: Sequence[dict]) -> Dict[str, Any]:
        non_enrolled = [
            c for c in contacts
            if self.rules.is_crm_user(c) and not self.rules.is_enrolled(c)
        ]
        in_target = sum(1 for c in non_enrolled if self.is_in_target(c))
        return {
            "crm_non_enrolled": len(non_enrolled),
            "crm_non_enrolled_in_target": in_target,
            "pct_non_enrolled_in_target": safe_div(in_target, len(non_enrolled)),
        }


# ============================================================================
# Entry point
# ============================================================================

def analyze_contacts(
    contacts: Iterable[dict],
    rules: Optional[ContactRules] = None,
) -> DatasetMetrics:
    """Compute every snapshot metric for one contact population."""
    rules = rules or DEFAULT_RULES
    population = list(contacts)
    logger.info("Analyzing %d contacts", len(population))

    funnel = FunnelAnalyzer(rules).analyze(population)
    logger.info(
        "Funnel: leads=%d members=%d profiled=%d enrolled=%d paying=%d",
        funnel.leads, funnel.platform_members, funnel.profiled,
        funnel.enrolled, funnel.paying,
    )

    distributions = DistributionAnalyzer(rules).analyze(population)
    webinar = WebinarAnalyzer(rules).analyze(population)
    segment = TargetSegmentAnalyzer(rules).analyze(population)
    logger.info(
        "In-target: %d of %d non-enrolled CRM users",
        segment["crm_non_enrolled_in_target"], segment["crm_non_enrolled"],
    )

    return DatasetMetrics(funnel=funnel, **distributions, **webinar, **segment)
