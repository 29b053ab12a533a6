"""Shared fixtures for the funnel dashboard tests."""

import os

os.environ.setdefault("LOG_TO_FILE", "false")

from datetime import datetime, timezone
from pathlib import Path

import pytest

from scripts.lib.settings import Settings


def make_contact(contact_id=1, list_ids=None, email=None, **attributes):
    """Build a Brevo-shaped contact record."""
    contact = {"id": contact_id, "attributes": dict(attributes), "listIds": list(list_ids or [])}
    if email is not None:
        contact["email"] = email
    return contact


@pytest.fixture
def sample_contacts():
    return [
        make_contact(
            1, [6, 69], email="a@example.com",
            CORSO_ACQUISTATO="Corso Full SSM 2026 Promo 40%",
            ATENEO="Sapienza", FONTE="adv meta", ANNO="5",
            DATA_DI_NASCITA="2000-03-14", ULTIMA_SIMULAZIONE="2025-09-30",
            NOME="Anna", COGNOME="Rossi", SMS="+39333",
        ),
        make_contact(
            2, [6], email="b@example.com",
            CORSO_ACQUISTATO="Full SSM 2026 Borsa di Studio",
            ATENEO="Federico II", FONTE="Instagram", ANNO="6° anno",
            DATA_DI_NASCITA="12/05/1999",
        ),
        make_contact(
            3, [69],
            CORSO_ACQUISTATO="", ATENEO="", FONTE="", ANNO="quinto",
        ),
        make_contact(4, [], FONTE="passaparola", ANNO="laureato"),
    ]


@pytest.fixture
def fixed_now():
    # A Wednesday
    return datetime(2025, 10, 1, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings(tmp_path: Path):
    return Settings(
        brevo_api_key="test-key",
        brevo_base_url="https://api.brevo.test/v3/contacts",
        datasets_path=tmp_path / "datasets.json",
        history_path=tmp_path / "historical-data.json",
        datasets_url=None,
        history_url=None,
        page_size=2,
        request_timeout=5.0,
        page_delay=0.0,
        platform_list_id=6,
        webinar_list_id=69,
        weekly_snapshot_weekday=2,
        log_level="INFO",
        dashboard_port=8001,
        cors_origins=["http://localhost:3000"],
    )
