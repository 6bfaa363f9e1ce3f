from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

import pandas as pd

from core.dates import as_utc, end_of_day, hours_between, parse_date, parse_timestamps, start_of_day, utc_now
from core.normalize import (
    CANONICAL_STATES,
    HIGH_PRIORITIES,
    STATE_CANCELLED,
    is_active_incident,
    is_on_hold,
    normalize_priority,
    normalize_state,
)


# Raw-state tokens an incident must carry to be aged by the out-of-rule check.
AGEABLE_STATE_TOKENS = ("open", "in progress", "assigned", "aberto", "em andamento", "atribuído")

SEARCH_FIELDS = (
    "number",
    "short_description",
    "caller",
    "category",
    "assignment_group",
    "assigned_to",
    "location",
)


@dataclass(frozen=True)
class Thresholds:
    sla_target_pct: float = 95.0
    sla_warning_pct: float = 85.0
    out_of_rule_hours: float = 48.0
    user_top_n: int = 20


@dataclass(frozen=True)
class IncidentFilters:
    search_text: str = ""
    category: str = ""
    status: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    thresholds: Thresholds = field(default_factory=Thresholds)


def default_window(today: Optional[date] = None) -> tuple[date, date]:
    today = today or utc_now().date()
    return date(today.year, 1, 1), today


def _as_float(value: object, default: float) -> float:
    try:
        return float(value)
    except Exception:
        return default


def normalize_filters(raw: dict, *, default_window_dates: bool = True, today: Optional[date] = None) -> IncidentFilters:
    raw = raw or {}
    search_text = str(raw.get("search_text") or "").strip()
    category = str(raw.get("category") or "").strip()
    status = str(raw.get("status") or "").strip()
    if status not in CANONICAL_STATES:
        status = ""

    start = parse_date(raw.get("start_date"))
    end = parse_date(raw.get("end_date"))
    if default_window_dates:
        window_start, window_end = default_window(today)
        start = start or window_start
        end = end or window_end

    t = raw.get("thresholds") or {}
    top_n = t.get("user_top_n", 20)
    try:
        top_n = int(top_n)
    except Exception:
        top_n = 20
    thresholds = Thresholds(
        sla_target_pct=_as_float(t.get("sla_target_pct", 95.0), 95.0),
        sla_warning_pct=_as_float(t.get("sla_warning_pct", 85.0), 85.0),
        out_of_rule_hours=_as_float(t.get("out_of_rule_hours", 48.0), 48.0),
        user_top_n=max(1, min(200, top_n)),
    )
    return IncidentFilters(
        search_text=search_text,
        category=category,
        status=status,
        start_date=start,
        end_date=end,
        thresholds=thresholds,
    )


# ---------------- Column helpers ----------------
def text_series(df: pd.DataFrame, col: str) -> pd.Series:
    if col not in df.columns:
        return pd.Series("", index=df.index, dtype="string")
    return df[col].astype("string").fillna("").str.strip()


def _lower(df: pd.DataFrame, col: str) -> pd.Series:
    return text_series(df, col).str.lower()


def timestamp_series(df: pd.DataFrame, col: str) -> pd.Series:
    ts_col = f"{col}_ts"
    if ts_col in df.columns:
        return df[ts_col]
    if col not in df.columns:
        return pd.Series(pd.NaT, index=df.index, dtype="datetime64[ns, UTC]")
    return parse_timestamps(df[col])


def state_series(df: pd.DataFrame) -> pd.Series:
    if "state_norm" in df.columns:
        return df["state_norm"]
    return text_series(df, "state").map(normalize_state).astype(object)


def priority_series(df: pd.DataFrame) -> pd.Series:
    if "priority_norm" in df.columns:
        return df["priority_norm"]
    return text_series(df, "priority").map(normalize_priority).astype(object)


def on_hold_mask(df: pd.DataFrame) -> pd.Series:
    """Hold check shared by the pending, on-hold, out-of-rule and SLA views."""
    return state_series(df).map(is_on_hold).astype(bool)


def active_mask(df: pd.DataFrame) -> pd.Series:
    return state_series(df).map(is_active_incident).astype(bool)


# ---------------- Filter pipeline ----------------
def date_range_mask(df: pd.DataFrame, start: Optional[date], end: Optional[date]) -> pd.Series:
    if start is None and end is None:
        return pd.Series(True, index=df.index)
    opened = timestamp_series(df, "opened")
    mask = opened.notna()
    if start is not None:
        mask &= opened >= start_of_day(start)
    if end is not None:
        mask &= opened <= end_of_day(end)
    return mask.fillna(False).astype(bool)


def search_mask(df: pd.DataFrame, search_text: str) -> pd.Series:
    query = (search_text or "").strip().lower()
    if not query:
        return pd.Series(True, index=df.index)
    matches = pd.Series(False, index=df.index)
    for col in SEARCH_FIELDS:
        matches |= _lower(df, col).str.contains(query, regex=False)

    # "007" also finds "7" and "0000007"; an all-zero query strips to "" and matches every number.
    stripped_query = query.lstrip("0")
    if not stripped_query:
        return pd.Series(True, index=df.index)
    number = _lower(df, "number").str.replace(r"^0+", "", regex=True)
    matches |= number.str.contains(stripped_query, regex=False)
    return matches.astype(bool)


def filter_incidents(df: pd.DataFrame, filters: IncidentFilters) -> pd.DataFrame:
    """Apply search, category, status and date window; cancelled incidents never survive."""
    if df.empty:
        return df.copy()
    states = state_series(df)
    mask = states.ne(STATE_CANCELLED)

    if filters.category:
        mask &= _lower(df, "category").str.contains(filters.category.lower(), regex=False)
    if filters.status:
        mask &= states.eq(filters.status)
    mask &= date_range_mask(df, filters.start_date, filters.end_date)
    mask &= search_mask(df, filters.search_text)
    return df[mask.astype(bool)].copy()


# ---------------- Derived subsets ----------------
def critical_pending_incidents(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return df.copy()
    high = priority_series(df).isin(HIGH_PRIORITIES)
    return df[high & active_mask(df)].copy()


def pending_incidents(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return df.copy()
    return df[active_mask(df) & ~on_hold_mask(df)].copy()


def on_hold_incidents(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return df.copy()
    return df[on_hold_mask(df)].copy()


def out_of_rule_incidents(
    df: pd.DataFrame, *, now: Optional[pd.Timestamp] = None, max_age_hours: float = 48.0
) -> pd.DataFrame:
    """Open or in-progress incidents, not on hold, whose last update is older than max_age_hours."""
    if df.empty:
        return df.copy()
    now = as_utc(now) or utc_now()
    states = state_series(df)
    raw_state = _lower(df, "state")
    ageable = pd.Series(False, index=df.index)
    for tok in AGEABLE_STATE_TOKENS:
        ageable |= raw_state.str.contains(tok, regex=False)

    updated = timestamp_series(df, "updated")
    missing = text_series(df, "updated").eq("")
    last_update = updated.where(~missing, now)
    elapsed = hours_between(last_update, pd.Series(now, index=df.index))
    stale = elapsed.gt(max_age_hours).fillna(False).astype(bool)

    mask = ~on_hold_mask(df) & states.ne(STATE_CANCELLED) & ageable & stale
    return df[mask].copy()
