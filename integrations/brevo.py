"""
Brevo Integration
==================

Pulls the full contact population from the Brevo (ex Sendinblue) contacts API.

- Offset pagination, 1000 records/page, stop on a short or empty page
- Fixed pause between pages to stay under the rate limit
- Every failure is fatal for the run: a truncated population would skew
  every downstream counter, so nothing is retried or skipped

Setup:
1. Brevo -> SMTP & API -> API Keys -> Generate a new API key
2. Set BREVO_API_KEY in .env
"""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import requests

from scripts.lib.errors import (
    APIAuthError,
    APIError,
    APIRateLimitError,
    APITimeoutError,
    DataFetchError,
    SchemaValidationError,
)
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

BREVO_CONTACTS_URL = "https://api.brevo.com/v3/contacts"
BREVO_PAGE_LIMIT = 1000
BREVO_TIMEOUT = 30
BREVO_PAGE_DELAY = 0.1  # seconds
BREVO_MAX_PAGES = 1000


class BrevoClient:
    """Brevo contacts API client with bounded offset pagination."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = BREVO_CONTACTS_URL,
        page_size: int = BREVO_PAGE_LIMIT,
        timeout: float = BREVO_TIMEOUT,
        page_delay: float = BREVO_PAGE_DELAY,
        max_pages: int = BREVO_MAX_PAGES,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.page_size = page_size
        self.timeout = timeout
        self.page_delay = page_delay
        self.max_pages = max_pages
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if api_key:
            self.session.headers["api-key"] = api_key

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def list_contacts(self, limit: int, offset: int) -> Dict[str, Any]:
        """Fetch one page. Returns the decoded body with a ``contacts`` list."""
        params = {"limit": limit, "offset": offset}
        try:
            resp = self.session.get(self.base_url, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            raise APITimeoutError(self.base_url, self.timeout) from e
        except requests.RequestException as e:
            raise APIError(f"GET {self.base_url} failed: {e}", url=self.base_url) from e

        if resp.status_code in (401, 403):
            raise APIAuthError(self.base_url, status_code=resp.status_code)
        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After")
            raise APIRateLimitError(
                self.base_url,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if not 200 <= resp.status_code < 300:
            raise APIError(
                f"GET {self.base_url} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code, url=self.base_url,
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise SchemaValidationError(f"Response from {self.base_url} is not JSON") from e
        if not isinstance(body, dict):
            raise SchemaValidationError("Contacts response is not a JSON object")
        contacts = body.get("contacts", [])
        if contacts is None:
            contacts = []
        if not isinstance(contacts, list):
            raise SchemaValidationError("'contacts' is not a list", field="contacts")
        body["contacts"] = contacts
        return body

    def fetch_all_contacts(self) -> List[dict]:
        """Walk every page in order and return the concatenated contacts."""
        all_contacts: List[dict] = []
        offset = 0
        page = 0
        while True:
            if page >= self.max_pages:
                raise DataFetchError(
                    f"Gave up after {self.max_pages} pages ({len(all_contacts)} contacts)",
                    source=self.base_url,
                )
            page += 1
            contacts = self.list_contacts(self.page_size, offset)["contacts"]
            all_contacts.extend(contacts)
            logger.debug(f"Page {page}: {len(contacts)} contacts (total: {len(all_contacts)})")

            if len(contacts) < self.page_size:
                break
            offset += self.page_size
            if self.page_delay > 0:
                time.sleep(self.page_delay)

        logger.info(f"Fetched {len(all_contacts)} contacts in {page} page(s)")
        return all_contacts

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": "Brevo",
            "configured": self.is_configured,
            "base_url": self.base_url,
            "page_size": self.page_size,
        }
