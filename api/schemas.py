from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ThresholdsModel(BaseModel):
    sla_target_pct: float = 95.0
    sla_warning_pct: float = 85.0
    out_of_rule_hours: float = 48.0
    user_top_n: int = 20


class IncidentFiltersModel(BaseModel):
    search_text: str = ""
    category: str = ""
    status: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    thresholds: ThresholdsModel = Field(default_factory=ThresholdsModel)


class IncidentModel(BaseModel):
    """One ingested record; export-style field names are accepted as aliases."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    number: str = Field(default="", alias="Number")
    opened: Optional[str] = Field(default=None, alias="Opened")
    short_description: Optional[str] = Field(default=None, alias="ShortDescription")
    caller: Optional[str] = Field(default=None, alias="Caller")
    priority: Optional[str] = Field(default=None, alias="Priority")
    state: Optional[str] = Field(default=None, alias="State")
    category: Optional[str] = Field(default=None, alias="Category")
    subcategory: Optional[str] = Field(default=None, alias="Subcategory")
    assignment_group: Optional[str] = Field(default=None, alias="AssignmentGroup")
    assigned_to: Optional[str] = Field(default=None, alias="AssignedTo")
    updated: Optional[str] = Field(default=None, alias="Updated")
    updated_by: Optional[str] = Field(default=None, alias="UpdatedBy")
    business_impact: Optional[str] = Field(default=None, alias="BusinessImpact")
    response_time: Optional[str] = Field(default=None, alias="ResponseTime")
    location: Optional[str] = Field(default=None, alias="Location")
    comments_and_work_notes: Optional[str] = Field(default=None, alias="CommentsAndWorkNotes")


class SlaDrilldownModel(BaseModel):
    filters: IncidentFiltersModel = Field(default_factory=IncidentFiltersModel)
    priority: str
    compliant: bool
    on_hold_only: bool = False


class DimensionDrilldownModel(BaseModel):
    filters: IncidentFiltersModel = Field(default_factory=IncidentFiltersModel)
    dimension: str
    value: str
    status: str = ""
    bucket: Optional[str] = None


class HistoryDrilldownModel(BaseModel):
    filters: IncidentFiltersModel = Field(default_factory=IncidentFiltersModel)
    dimension: str
    value: str
    month: str
