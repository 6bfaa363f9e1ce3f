from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

import pandas as pd

from core.data import CANONICAL_COLUMNS, incident_records
from core.dates import format_timestamp
from core.filters import IncidentFilters, priority_series, state_series, text_series
from core.metrics_sla import format_sla_breach, sla_breach_hours, sla_threshold
from core.normalize import HIGH_PRIORITIES, STATE_CANCELLED


def _count(ctx: Dict[str, Any], key: str) -> int:
    df = ctx.get(key)
    return int(len(df)) if df is not None else 0


def compute_overview(filters: IncidentFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    filtered: pd.DataFrame = ctx.get("filtered_incidents", pd.DataFrame())
    critical: pd.DataFrame = ctx.get("critical_pending", pd.DataFrame())

    total = int(len(filtered))
    high_priority = 0
    categories = 0
    if total:
        high_mask = priority_series(filtered).isin(HIGH_PRIORITIES) & state_series(filtered).ne(STATE_CANCELLED)
        high_priority = int(high_mask.sum())
        categories = int(text_series(filtered, "category").nunique())

    high_pct = (high_priority / total) * 100 if total else 0.0
    trend = f"↑ {high_pct:.2f}%" if round(high_pct, 2) > 0 else "0%"

    return {
        "filters": asdict(filters),
        "kpis": {
            "total": total,
            "high_priority": high_priority,
            "high_priority_pct": high_pct,
            "categories": categories,
            "critical_pending": _count(ctx, "critical_pending"),
            "pending": _count(ctx, "pending"),
            "on_hold": _count(ctx, "on_hold"),
            "out_of_rule": _count(ctx, "out_of_rule"),
            "trend": trend,
        },
        "category_options": ctx.get("categories", []),
        "critical_alert": incident_records(critical) if critical is not None else [],
    }


def compute_alert_list(filters: IncidentFilters, ctx: Dict[str, Any], *, kind: str) -> Dict[str, Any]:
    """Incident list behind one of the alert cards (critical_pending, pending, on_hold, out_of_rule)."""
    if kind not in ("critical_pending", "pending", "on_hold", "out_of_rule"):
        raise ValueError(f"Unknown alert list: {kind!r}")
    df: pd.DataFrame = ctx.get(kind, pd.DataFrame())
    return {"filters": asdict(filters), "kind": kind, "count": int(len(df)), "incidents": incident_records(df)}


def incident_detail(df: pd.DataFrame, number: str, *, now: Optional[pd.Timestamp] = None) -> Optional[Dict[str, Any]]:
    if df.empty:
        return None
    match = df[text_series(df, "number").eq(str(number).strip())]
    if match.empty:
        return None
    row = match.head(1)
    rec = {c: row.iloc[0][c] for c in CANONICAL_COLUMNS if c in row.columns}
    priority = priority_series(row).iloc[0]
    rec.update(
        {
            "priority_norm": priority,
            "state_norm": state_series(row).iloc[0],
            "sla_threshold_hours": sla_threshold(priority),
            "sla_breach": format_sla_breach(sla_breach_hours(row, now=now).iloc[0]),
            "opened_display": format_timestamp(row.iloc[0].get("opened_ts", row.iloc[0]["opened"])),
            "updated_display": format_timestamp(row.iloc[0].get("updated_ts", row.iloc[0]["updated"])),
        }
    )
    return rec
