"""
Contact classification predicates.

Every predicate takes one raw CRM contact dict and returns a bool without
raising, whatever shape the record has (missing attributes, null listIds,
listIds exported as a "6,69" string). The aggregator uses these same
functions so the funnel and the distributions always agree.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, FrozenSet

from scripts.lib.text import safe_string

PLATFORM_LIST_ID = 6
WEBINAR_LIST_ID = 69

ATTR_COURSE = "CORSO_ACQUISTATO"
ATTR_UNIVERSITY = "ATENEO"
ATTR_SOURCE = "FONTE"
ATTR_COHORT_YEAR = "ANNO"
ATTR_BIRTH_DATE = "DATA_DI_NASCITA"
ATTR_LAST_SIMULATION = "ULTIMA_SIMULAZIONE"

SCHOLARSHIP_MARKER = "borsa di studio"


def attr(contact: Any, key: str, default: Any = None) -> Any:
    """Safely retrieve an attribute from a CRM contact."""
    if not isinstance(contact, dict):
        return default
    attributes = contact.get("attributes")
    if not isinstance(attributes, dict):
        return default
    value = attributes.get(key)
    return default if value is None else value


def attr_text(contact: Any, key: str) -> str:
    """Attribute as a trimmed string ("" when missing)."""
    return safe_string(attr(contact, key)).strip()


def _to_int(value: Any):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def list_ids(contact: Any) -> FrozenSet[int]:
    """The contact's list memberships as a set of ints."""
    if not isinstance(contact, dict):
        return frozenset()
    raw = contact.get("listIds")
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        raw = raw.split(",")
    elif not isinstance(raw, (list, tuple, set, frozenset)):
        raw = [raw]
    ids = (_to_int(item) for item in raw)
    return frozenset(i for i in ids if i is not None)


@dataclass(frozen=True)
class ContactRules:
    """Predicates bound to the two list ids the funnel depends on."""

    platform_list_id: int = PLATFORM_LIST_ID
    webinar_list_id: int = WEBINAR_LIST_ID

    def is_enrolled(self, contact: Any) -> bool:
        return attr_text(contact, ATTR_COURSE) != ""

    def is_paying(self, contact: Any) -> bool:
        if not self.is_enrolled(contact):
            return False
        return SCHOLARSHIP_MARKER not in attr_text(contact, ATTR_COURSE).lower()

    def is_platform_member(self, contact: Any) -> bool:
        return self.platform_list_id in list_ids(contact)

    def is_webinar_participant(self, contact: Any) -> bool:
        return self.webinar_list_id in list_ids(contact)

    def has_complete_profile(self, contact: Any) -> bool:
        return attr_text(contact, ATTR_BIRTH_DATE) != ""

    def is_crm_user(self, contact: Any) -> bool:
        """Any list membership at all."""
        return bool(list_ids(contact))

    def has_simulation(self, contact: Any) -> bool:
        return attr_text(contact, ATTR_LAST_SIMULATION) != ""


DEFAULT_RULES = ContactRules()

is_enrolled = DEFAULT_RULES.is_enrolled
is_paying = DEFAULT_RULES.is_paying
is_platform_member = DEFAULT_RULES.is_platform_member
is_webinar_participant = DEFAULT_RULES.is_webinar_participant
has_complete_profile = DEFAULT_RULES.has_complete_profile
is_crm_user = DEFAULT_RULES.is_crm_user
has_simulation = DEFAULT_RULES.has_simulation
