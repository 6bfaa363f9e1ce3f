from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import pandas as pd

from core.data import incident_records
from core.dates import month_key
from core.filters import IncidentFilters, timestamp_series
from core.metrics_dimensions import Dimension, dimension_values, get_dimension
from core.metrics_sla import compliance_rate, compliance_status, sla_compliant


def incident_months(df: pd.DataFrame) -> pd.Series:
    """YYYY-MM of Opened; None where Opened is unparseable."""
    return month_key(timestamp_series(df, "opened"))


def monthly_counts(df: pd.DataFrame) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    months = incident_months(df).dropna()
    counts = months.value_counts().sort_index()
    return [{"month": str(m), "count": int(c)} for m, c in counts.items()]


def monthly_history(
    df: pd.DataFrame, dimension: str | Dimension, *, top_n: Optional[int] = 5
) -> Dict[str, Any]:
    """Month-over-month counts for the ``top_n`` busiest values of a dimension."""
    dim = dimension if isinstance(dimension, Dimension) else get_dimension(dimension)
    if df.empty:
        return {"months": [], "values": [], "series": []}

    frame = pd.DataFrame({"value": dimension_values(df, dim), "month": incident_months(df)}).dropna(subset=["month"])
    if frame.empty:
        return {"months": [], "values": [], "series": []}

    totals = frame.groupby("value").size().reset_index(name="total")
    totals = totals.sort_values(["total", "value"], ascending=[False, True], kind="mergesort")
    if top_n is not None:
        totals = totals.head(max(0, int(top_n)))
    keep = totals["value"].tolist()

    pivot = (
        frame[frame["value"].isin(keep)]
        .groupby(["month", "value"])
        .size()
        .unstack(fill_value=0)
        .reindex(columns=keep, fill_value=0)
        .sort_index()
        .rename_axis(columns=None)
    )
    long_df = pivot.reset_index().melt(id_vars="month", var_name="value", value_name="count")
    return {
        "months": [str(m) for m in pivot.index.tolist()],
        "values": keep,
        "series": [
            {"month": str(r["month"]), "value": r["value"], "count": int(r["count"])}
            for r in long_df.to_dict(orient="records")
        ],
    }


def history_incidents(df: pd.DataFrame, dimension: str | Dimension, value: str, month: str) -> pd.DataFrame:
    """Exact incident list behind one (dimension value, month) point."""
    dim = dimension if isinstance(dimension, Dimension) else get_dimension(dimension)
    if df.empty:
        return df.copy()
    mask = dimension_values(df, dim).eq(value) & incident_months(df).eq(month).fillna(False)
    return df[mask.astype(bool)].copy()


def sla_history(
    df: pd.DataFrame, *, now: Optional[pd.Timestamp] = None, filters: Optional[IncidentFilters] = None
) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    frame = pd.DataFrame({"month": incident_months(df), "compliant": sla_compliant(df, now=now)}).dropna(subset=["month"])
    rows = []
    for month, part in frame.groupby("month", sort=True):
        within = int(part["compliant"].sum())
        outside = int(len(part) - within)
        rate = compliance_rate(within, outside)
        row = {"month": str(month), "within_sla": within, "outside_sla": outside, "compliance_rate": rate}
        if filters is not None:
            row["status"] = compliance_status(rate, filters.thresholds)
        rows.append(row)
    return rows


def compute_history(
    filters: IncidentFilters, ctx: Dict[str, Any], *, dimension: str, top_n: Optional[int] = 5
) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered_incidents", pd.DataFrame())
    dim = get_dimension(dimension)
    return {
        "filters": asdict(filters),
        "dimension": dim.name,
        "monthly_totals": monthly_counts(df),
        "history": monthly_history(df, dim, top_n=top_n),
    }


def compute_sla_history(filters: IncidentFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered_incidents", pd.DataFrame())
    return {
        "filters": asdict(filters),
        "target_pct": filters.thresholds.sla_target_pct,
        "months": sla_history(df, now=ctx.get("now"), filters=filters),
    }


def compute_history_drilldown(
    filters: IncidentFilters, ctx: Dict[str, Any], *, dimension: str, value: str, month: str
) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered_incidents", pd.DataFrame())
    rows = history_incidents(df, dimension, value, month)
    return {
        "filters": asdict(filters),
        "dimension": dimension,
        "value": value,
        "month": month,
        "count": int(len(rows)),
        "incidents": incident_records(rows),
    }
