"""
Funnel Dashboard — Artifact Pydantic Models
=============================================

Typed shapes for everything the pipeline publishes and the API serves:
snapshot artifact, retained history, and the derived delta/trend report.

Python attribute names are English; the wire keys (aliases) are the ones the
chart front end already consumes, e.g. ``funnel.leadsACRM`` or
``distribuzione_fonte``. Dump with ``by_alias=True`` when writing JSON.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

SNAPSHOT_SCHEMA_VERSION = 2


class WireModel(BaseModel):
    """Base for models that read and write aliased wire keys."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ─── Building blocks ────────────────────────────────────────

class DistributionEntry(WireModel):
    """One bar/slice of a distribution."""
    name: str
    value: int = Field(0, ge=0)


class FunnelCounters(WireModel):
    """The five funnel counters. Independent filters, not a nested chain."""
    leads: int = Field(0, ge=0, alias="leadsACRM")
    platform_members: int = Field(0, ge=0, alias="iscrittiPiattaforma")
    profiled: int = Field(0, ge=0, alias="profiloCompleto")
    enrolled: int = Field(0, ge=0, alias="corsisti")
    paying: int = Field(0, ge=0, alias="paganti")


# (attribute, display label) in funnel order
FUNNEL_METRICS: Tuple[Tuple[str, str], ...] = (
    ("leads", "Leads in CRM"),
    ("platform_members", "Platform members"),
    ("profiled", "Complete profile"),
    ("enrolled", "Enrolled students"),
    ("paying", "Paying customers"),
)


# ─── Snapshot ───────────────────────────────────────────────

class DatasetMetrics(WireModel):
    """Everything the aggregator computes from one contact population."""
    funnel: FunnelCounters = Field(default_factory=FunnelCounters)

    universities: List[DistributionEntry] = Field(default_factory=list, alias="distribuzione_atenei")
    cohort_years: List[DistributionEntry] = Field(
        default_factory=list, alias="distribuzione_anno_profilazione"
    )
    sources: List[DistributionEntry] = Field(default_factory=list, alias="distribuzione_fonte")
    birth_years: List[DistributionEntry] = Field(default_factory=list, alias="distribuzione_anno_nascita")
    courses: List[DistributionEntry] = Field(default_factory=list, alias="distribuzione_corsi")
    paying_courses: List[DistributionEntry] = Field(default_factory=list, alias="distribuzione_corsi_pagati")
    list_macros: List[DistributionEntry] = Field(default_factory=list, alias="distribuzione_liste_corsisti")
    list_ids: List[DistributionEntry] = Field(default_factory=list, alias="distribuzione_liste_id")

    members_simulation: List[DistributionEntry] = Field(
        default_factory=list, alias="iscritti_con_simulazione"
    )
    webinar_conversions: List[DistributionEntry] = Field(default_factory=list)
    members_webinar: List[DistributionEntry] = Field(default_factory=list, alias="iscritti_webinar")
    crm_webinar: List[DistributionEntry] = Field(default_factory=list, alias="utenti_crm_webinar")

    crm_non_enrolled: int = Field(0, ge=0, alias="utenti_crm_non_corsisti")
    crm_non_enrolled_in_target: int = Field(0, ge=0, alias="utenti_crm_non_corsisti_in_target")
    pct_non_enrolled_in_target: float = Field(0.0, ge=0.0, le=1.0, alias="pct_non_corsisti_in_target")


# Distributions that can be requested by name from the API
DISTRIBUTION_FIELDS: Tuple[str, ...] = (
    "universities",
    "cohort_years",
    "sources",
    "birth_years",
    "courses",
    "paying_courses",
    "list_macros",
    "list_ids",
    "members_simulation",
    "webinar_conversions",
    "members_webinar",
    "crm_webinar",
)


class Snapshot(DatasetMetrics):
    """Immutable artifact produced by one pipeline run."""
    schema_version: int = Field(SNAPSHOT_SCHEMA_VERSION, alias="schemaVersion")
    generated_at: datetime = Field(alias="generatedAt")
    total_contacts: int = Field(0, ge=0, alias="totalContacts")
    contacts: List[Dict[str, Any]] = Field(default_factory=list)

    def to_artifact(self, include_contacts: bool = True) -> Dict[str, Any]:
        """Flat JSON-ready dict, header keys first."""
        body = self.model_dump(mode="json", by_alias=True)
        header = {
            key: body.pop(key)
            for key in ("schemaVersion", "generatedAt", "totalContacts", "contacts")
        }
        if not include_contacts:
            header.pop("contacts")
        return {**header, **body}


# ─── History ────────────────────────────────────────────────

class DailySnapshot(WireModel):
    date: str
    funnel: FunnelCounters = Field(default_factory=FunnelCounters)
    total_contacts: int = Field(0, ge=0, alias="totalContacts")


class WeeklySnapshot(WireModel):
    week: str
    date: Optional[str] = None
    funnel: FunnelCounters = Field(default_factory=FunnelCounters)
    total_contacts: int = Field(0, ge=0, alias="totalContacts")


class History(WireModel):
    weekly: List[WeeklySnapshot] = Field(default_factory=list)
    daily: List[DailySnapshot] = Field(default_factory=list)

    def to_artifact(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ─── Deltas & trends ────────────────────────────────────────

class DeltaItem(BaseModel):
    metric: str
    current: int
    previous: int
    rate_current: float
    rate_previous: float
    delta_abs: int
    delta_pp: float


class TrendPoint(BaseModel):
    date: str
    value: int
    rate: float


class TrendSeries(BaseModel):
    metric: str
    points: List[TrendPoint] = Field(default_factory=list)


class DeltaReport(BaseModel):
    week_current: str
    week_previous: str
    items: List[DeltaItem] = Field(default_factory=list)
    trend: List[TrendSeries] = Field(default_factory=list)
