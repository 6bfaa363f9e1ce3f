from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

import numpy as np
import pandas as pd


def utc_now() -> pd.Timestamp:
    return pd.Timestamp(datetime.now(timezone.utc))


def as_utc(value: object) -> Optional[pd.Timestamp]:
    """Coerce a scalar to a UTC timestamp; naive values are read as UTC. None when unparseable."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        ts = pd.to_datetime(value, errors="coerce", utc=True)
    except (TypeError, ValueError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts


def parse_timestamps(series: pd.Series) -> pd.Series:
    if series.empty:
        return pd.Series(pd.NaT, index=series.index, dtype="datetime64[ns, UTC]")
    text = series.astype("string").str.strip()
    return pd.to_datetime(text, errors="coerce", utc=True, format="ISO8601")


def parse_date(value: object) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    ts = as_utc(value)
    return ts.date() if ts is not None else None


def start_of_day(d: date) -> pd.Timestamp:
    return pd.Timestamp(d.year, d.month, d.day, tz="UTC")


def end_of_day(d: date) -> pd.Timestamp:
    return start_of_day(d) + pd.Timedelta(days=1) - pd.Timedelta(nanoseconds=1)


def hours_between(start: pd.Series, end: pd.Series) -> pd.Series:
    """Whole hours from start to end, truncated toward zero; NaN where either side is NaT."""
    seconds = (end - start).dt.total_seconds()
    return pd.Series(np.trunc(seconds / 3600), index=seconds.index)


def month_key(series: pd.Series) -> pd.Series:
    out = series.dt.strftime("%Y-%m")
    return out.where(series.notna(), None)


def format_timestamp(value: object) -> str:
    ts = as_utc(value)
    if ts is None:
        return "Data inválida"
    return ts.strftime("%d/%m/%Y às %H:%M")
