"""
PII scrubbing for contacts before they are persisted in a snapshot.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

# Phone numbers (several export formats), external ids, legal names
SENSITIVE_ATTRIBUTES = (
    "SMS",
    "WHATSAPP",
    "LANDLINE",
    "EXT_ID",
    "LANDLINE_NUMBER",
    "WHATSAPP_NUMBER",
    "SMS_NUMBER",
    "NOME",
    "COGNOME",
)


def scrub_contact(contact: Dict[str, Any]) -> Dict[str, Any]:
    """Return a deep copy of the contact without email or sensitive attributes.

    The input is never modified; absent fields are simply skipped.
    """
    cleaned = copy.deepcopy(contact) if isinstance(contact, dict) else {}
    cleaned.pop("email", None)

    attributes = cleaned.get("attributes")
    if isinstance(attributes, dict):
        for key in SENSITIVE_ATTRIBUTES:
            attributes.pop(key, None)
    return cleaned


def scrub_contacts(contacts: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    scrubbed = [scrub_contact(c) for c in contacts]
    logger.info("Scrubbed PII from %d contacts", len(scrubbed))
    return scrubbed
