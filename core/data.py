from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd

from core.classify import UNCATEGORIZED, category_options
from core.dates import as_utc, format_timestamp, parse_timestamps, utc_now
from core.filters import (
    IncidentFilters,
    critical_pending_incidents,
    filter_incidents,
    normalize_filters,
    on_hold_incidents,
    out_of_rule_incidents,
    pending_incidents,
)
from core.normalize import PRIORITY_UNDEFINED, normalize_priority, normalize_state


logger = logging.getLogger(__name__)

INCIDENT_COLUMNS = {
    "Number": "number",
    "Opened": "opened",
    "ShortDescription": "short_description",
    "Short description": "short_description",
    "Caller": "caller",
    "Priority": "priority",
    "State": "state",
    "Category": "category",
    "Subcategory": "subcategory",
    "AssignmentGroup": "assignment_group",
    "Assignment group": "assignment_group",
    "AssignedTo": "assigned_to",
    "Assigned to": "assigned_to",
    "Updated": "updated",
    "UpdatedBy": "updated_by",
    "Updated by": "updated_by",
    "BusinessImpact": "business_impact",
    "Business impact": "business_impact",
    "ResponseTime": "response_time",
    "Response time": "response_time",
    "Location": "location",
    "CommentsAndWorkNotes": "comments_and_work_notes",
    "Comments and Work notes": "comments_and_work_notes",
}

CANONICAL_COLUMNS: List[str] = list(dict.fromkeys(INCIDENT_COLUMNS.values()))

# Columns derived at load time; never part of exports.
DERIVED_COLUMNS = ["opened_ts", "updated_ts", "state_norm", "priority_norm"]


def empty_incident_frame() -> pd.DataFrame:
    df = pd.DataFrame({c: pd.Series(dtype="string") for c in CANONICAL_COLUMNS})
    df["opened_ts"] = pd.Series(dtype="datetime64[ns, UTC]")
    df["updated_ts"] = pd.Series(dtype="datetime64[ns, UTC]")
    df["state_norm"] = pd.Series(dtype=object)
    df["priority_norm"] = pd.Series(dtype=object)
    return df


def drop_duplicate_columns(df: pd.DataFrame) -> pd.DataFrame:
    return df.loc[:, ~df.columns.duplicated()]


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            series = df[col]
            if isinstance(series, pd.DataFrame):
                series = series.iloc[:, 0]
            series = series.astype("string").str.strip()
            series = series.replace({"nan": pd.NA, "None": pd.NA, "NaT": pd.NA})
            df[col] = series.fillna("")
    return df


def normalize_number(value: object) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def prepare_incidents(
    records: Union[pd.DataFrame, Iterable[Dict[str, object]], None],
    *,
    loaded_at: Optional[pd.Timestamp] = None,
) -> pd.DataFrame:
    """Build the session incident frame from ingested records.

    Export-style headers ("Number", "AssignmentGroup", ...) and snake_case names are
    both accepted. Missing category/state/priority get the same defaults the upload
    step applies, an empty Opened becomes the load time, and the parsed helper
    columns ``opened_ts``/``updated_ts`` plus the normalised ``state_norm``/
    ``priority_norm`` are attached. Nothing here raises on malformed values.
    """
    if records is None:
        return empty_incident_frame()
    df = records.copy() if isinstance(records, pd.DataFrame) else pd.DataFrame(list(records))
    if df.empty:
        return empty_incident_frame()

    df = df.rename(columns=INCIDENT_COLUMNS)
    df = drop_duplicate_columns(df)
    for col in CANONICAL_COLUMNS:
        if col not in df.columns:
            df[col] = ""
    df = df[CANONICAL_COLUMNS].copy()

    df["number"] = df["number"].map(normalize_number)
    df = coerce_str_safe(df, [c for c in CANONICAL_COLUMNS if c != "number"])
    df["number"] = df["number"].astype("string")

    loaded_at = as_utc(loaded_at) or utc_now()
    df["category"] = df["category"].mask(df["category"].eq(""), UNCATEGORIZED)
    df["state"] = df["state"].mask(df["state"].eq(""), "Aberto")
    df["priority"] = df["priority"].mask(df["priority"].eq(""), PRIORITY_UNDEFINED)
    df["opened"] = df["opened"].mask(df["opened"].eq(""), loaded_at.isoformat())

    df["opened_ts"] = parse_timestamps(df["opened"])
    df["updated_ts"] = parse_timestamps(df["updated"])
    df["state_norm"] = df["state"].map(normalize_state).astype(object)
    df["priority_norm"] = df["priority"].map(normalize_priority).astype(object)

    bad_opened = int(df["opened_ts"].isna().sum())
    if bad_opened:
        logger.warning("%s incidents had an unparseable Opened date; they are excluded from date-filtered views.", bad_opened)
    bad_updated = int((df["updated_ts"].isna() & df["updated"].ne("")).sum())
    if bad_updated:
        logger.warning("%s incidents had an unparseable Updated date.", bad_updated)
    return df.reset_index(drop=True)


def incident_records(df: pd.DataFrame) -> List[Dict[str, object]]:
    """Plain records for payloads: canonical fields plus normalised priority/state."""
    if df.empty:
        return []
    out = df[[c for c in CANONICAL_COLUMNS if c in df.columns]].copy()
    out["priority_norm"] = df["priority_norm"] if "priority_norm" in df.columns else df["priority"].map(normalize_priority)
    out["state_norm"] = df["state_norm"] if "state_norm" in df.columns else df["state"].map(normalize_state)
    if "opened_ts" in df.columns:
        out["opened_display"] = df["opened_ts"].map(format_timestamp)
    return out.to_dict(orient="records")


def export_frame(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=CANONICAL_COLUMNS)
    return df.drop(columns=DERIVED_COLUMNS, errors="ignore")


def prepare_context(
    filters: dict | IncidentFilters,
    incidents: pd.DataFrame,
    *,
    now: Optional[pd.Timestamp] = None,
    filtered: Optional[pd.DataFrame] = None,
) -> Dict[str, object]:
    filt = filters if isinstance(filters, IncidentFilters) else normalize_filters(filters)
    now = as_utc(now) or utc_now()
    if filtered is None:
        filtered = filter_incidents(incidents, filt)

    # Critical and pending alerts are global; on-hold and out-of-rule follow the filters.
    return {
        "filters": filt,
        "now": now,
        "incidents": incidents,
        "filtered_incidents": filtered,
        "critical_pending": critical_pending_incidents(incidents),
        "pending": pending_incidents(incidents),
        "on_hold": on_hold_incidents(filtered),
        "out_of_rule": out_of_rule_incidents(filtered, now=now, max_age_hours=filt.thresholds.out_of_rule_hours),
        "categories": category_options(incidents),
    }
