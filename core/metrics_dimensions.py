from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import pandas as pd

from core.classify import UNCATEGORIZED, bucket_category
from core.data import incident_records
from core.filters import IncidentFilters, priority_series, state_series, text_series
from core.normalize import CANONICAL_PRIORITIES, CANONICAL_STATES, HIGH_PRIORITIES, STATE_CLOSED


@dataclass(frozen=True)
class Dimension:
    name: str
    column: str
    unknown: str
    default_top_n: Optional[int] = None


DIMENSIONS: Dict[str, Dimension] = {
    d.name: d
    for d in [
        Dimension("category", "category", UNCATEGORIZED),
        Dimension("group", "assignment_group", "Sem grupo"),
        Dimension("user", "caller", "Não identificado", default_top_n=20),
        Dimension("location", "location", "Não informado"),
        Dimension("analyst", "assigned_to", "Não atribuído"),
        Dimension("subcategory", "subcategory", "Não especificado"),
    ]
}


def get_dimension(name: str) -> Dimension:
    try:
        return DIMENSIONS[name]
    except KeyError:
        raise ValueError(f"Unknown dimension: {name!r}") from None


def dimension_values(df: pd.DataFrame, dimension: Dimension) -> pd.Series:
    values = text_series(df, dimension.column)
    return values.mask(values.eq(""), dimension.unknown).astype(object)


def in_category_bucket(df: pd.DataFrame, bucket: Optional[str]) -> pd.DataFrame:
    """Rows whose category falls in ``bucket`` (e.g. "Software"); everything when no bucket is given."""
    if not bucket or df.empty:
        return df
    return df[text_series(df, "category").map(bucket_category).eq(bucket)]


def group_by_dimension(df: pd.DataFrame, dimension: str | Dimension, *, top_n: Optional[int] = None) -> List[Dict[str, Any]]:
    """Per-value totals with priority and state breakdowns, largest groups first.

    ``percentage`` is each group's share of all grouped incidents, computed before
    the ``top_n`` cap is applied.
    """
    dim = dimension if isinstance(dimension, Dimension) else get_dimension(dimension)
    if df.empty:
        return []

    priorities = priority_series(df)
    states = state_series(df)
    is_open = states.ne(STATE_CLOSED)
    frame = pd.DataFrame(
        {
            "name": dimension_values(df, dim),
            "priority": priorities,
            "state": states,
            "open": is_open,
            "critical": is_open & priorities.isin(HIGH_PRIORITIES),
        }
    )

    by_priority = pd.crosstab(frame["name"], frame["priority"]).reindex(columns=list(CANONICAL_PRIORITIES), fill_value=0)
    by_state = pd.crosstab(frame["name"], frame["state"]).reindex(columns=list(CANONICAL_STATES), fill_value=0)
    summary = frame.groupby("name").agg(
        total=("name", "size"),
        open_incidents=("open", "sum"),
        critical_pending=("critical", "sum"),
    )
    grand_total = int(summary["total"].sum())
    summary = summary.reset_index().sort_values(["total", "name"], ascending=[False, True], kind="mergesort")

    if top_n is None:
        top_n = dim.default_top_n
    if top_n is not None:
        summary = summary.head(max(0, int(top_n)))

    rows: List[Dict[str, Any]] = []
    for rec in summary.to_dict(orient="records"):
        name = rec["name"]
        total = int(rec["total"])
        rows.append(
            {
                "name": name,
                "total": total,
                "percentage": (total / grand_total) * 100 if grand_total else 0.0,
                "priorities": {p: int(by_priority.at[name, p]) for p in CANONICAL_PRIORITIES},
                "states": {s: int(by_state.at[name, s]) for s in CANONICAL_STATES},
                "open_incidents": int(rec["open_incidents"]),
                "critical_pending": int(rec["critical_pending"]),
            }
        )
    return rows


def dimension_incidents(df: pd.DataFrame, dimension: str | Dimension, value: str, *, status: str = "") -> pd.DataFrame:
    dim = dimension if isinstance(dimension, Dimension) else get_dimension(dimension)
    if df.empty:
        return df.copy()
    mask = dimension_values(df, dim).eq(value)
    if status:
        mask &= state_series(df).eq(status)
    return df[mask].copy()


def compute_dimension(
    filters: IncidentFilters,
    ctx: Dict[str, Any],
    *,
    dimension: str,
    top_n: Optional[int] = None,
    bucket: Optional[str] = None,
) -> Dict[str, Any]:
    df: pd.DataFrame = in_category_bucket(ctx.get("filtered_incidents", pd.DataFrame()), bucket)
    dim = get_dimension(dimension)
    if top_n is None and dim.name == "user":
        top_n = filters.thresholds.user_top_n
    rows = group_by_dimension(df, dim, top_n=top_n)
    return {
        "filters": asdict(filters),
        "dimension": dim.name,
        "bucket": bucket,
        "total_incidents": int(len(df)),
        "groups": rows,
        # Top five feed the stacked priority chart.
        "chart": [{"name": r["name"], "total": r["total"], **r["priorities"]} for r in rows[:5]],
    }


def compute_dimension_drilldown(
    filters: IncidentFilters,
    ctx: Dict[str, Any],
    *,
    dimension: str,
    value: str,
    status: str = "",
    bucket: Optional[str] = None,
) -> Dict[str, Any]:
    df: pd.DataFrame = in_category_bucket(ctx.get("filtered_incidents", pd.DataFrame()), bucket)
    everything = dimension_incidents(df, dimension, value)
    states = state_series(everything) if not everything.empty else pd.Series(dtype=object)
    rows = everything[states.eq(status)] if status and not everything.empty else everything
    return {
        "filters": asdict(filters),
        "dimension": dimension,
        "value": value,
        "bucket": bucket,
        "status": status,
        "count": int(len(rows)),
        "status_counts": {s: int(states.eq(s).sum()) for s in CANONICAL_STATES},
        "incidents": incident_records(rows),
    }
