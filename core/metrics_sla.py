from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import pandas as pd

from core.data import incident_records
from core.dates import as_utc, hours_between, utc_now
from core.filters import IncidentFilters, Thresholds, on_hold_mask, priority_series, text_series, timestamp_series
from core.normalize import CANONICAL_PRIORITIES


SLA_HOURS = {"P1": 1, "P2": 4, "P3": 36, "P4": 72}
SLA_FALLBACK_HOURS = 36


def sla_threshold(priority: str) -> int:
    return SLA_HOURS.get(priority, SLA_FALLBACK_HOURS)


def sla_elapsed_hours(df: pd.DataFrame, *, now: Optional[pd.Timestamp] = None) -> pd.Series:
    """Whole hours between Opened and Updated (now when Updated is absent)."""
    now = as_utc(now) or utc_now()
    opened = timestamp_series(df, "opened")
    last_update = timestamp_series(df, "updated").where(text_series(df, "updated").ne(""), now)
    return hours_between(opened, last_update)


def sla_breach_hours(df: pd.DataFrame, *, now: Optional[pd.Timestamp] = None) -> pd.Series:
    """Hours beyond the priority threshold; <= 0 means compliant, NaN when not computable."""
    if df.empty:
        return pd.Series(dtype=float)
    thresholds = priority_series(df).map(sla_threshold).astype(float)
    return sla_elapsed_hours(df, now=now) - thresholds


def sla_compliant(df: pd.DataFrame, *, now: Optional[pd.Timestamp] = None) -> pd.Series:
    # Unparseable dates land on the outside-SLA side.
    return sla_breach_hours(df, now=now).le(0).fillna(False).astype(bool)


def format_sla_breach(hours_over: object) -> str:
    if hours_over is None or pd.isna(hours_over):
        return "Tempo não calculado"
    hours_over = int(hours_over)
    if hours_over <= 0:
        return "Dentro do SLA"
    days, remaining = divmod(hours_over, 24)

    def hours_label(n: int) -> str:
        return f"{n} {'hora' if n == 1 else 'horas'}"

    if days > 0:
        text = f"{days} {'dia' if days == 1 else 'dias'}"
        if remaining > 0:
            text += f" e {hours_label(remaining)}"
        return f"{text} fora do SLA"
    return f"{hours_label(hours_over)} fora do SLA"


def compliance_rate(within: int, outside: int) -> float:
    total = within + outside
    return (within / total) * 100 if total > 0 else 0.0


def compliance_status(rate: float, thresholds: Thresholds = Thresholds()) -> str:
    if rate >= thresholds.sla_target_pct:
        return "green"
    if rate >= thresholds.sla_warning_pct:
        return "yellow"
    return "red"


def _on_hold_only(df: pd.DataFrame) -> pd.DataFrame:
    return df[on_hold_mask(df)]


def sla_rollup(
    df: pd.DataFrame,
    *,
    on_hold_only: bool = False,
    now: Optional[pd.Timestamp] = None,
    thresholds: Thresholds = Thresholds(),
) -> List[Dict[str, Any]]:
    """Per-priority SLA compliance, one row per canonical priority in P1..P4, "Não definido" order."""
    if not df.empty and on_hold_only:
        df = _on_hold_only(df)

    if df.empty:
        frame = pd.DataFrame(columns=["priority", "compliant", "on_hold"])
    else:
        frame = pd.DataFrame(
            {
                "priority": priority_series(df),
                "compliant": sla_compliant(df, now=now),
                "on_hold": on_hold_mask(df),
            }
        )

    rows = []
    for priority in CANONICAL_PRIORITIES:
        part = frame[frame["priority"] == priority]
        within = int(part["compliant"].sum())
        outside = int(len(part) - within)
        rate = compliance_rate(within, outside)
        rows.append(
            {
                "priority": priority,
                "threshold_hours": sla_threshold(priority),
                "total": int(len(part)),
                "within_sla": within,
                "outside_sla": outside,
                "on_hold": int(part["on_hold"].sum()),
                "compliance_rate": rate,
                "status": compliance_status(rate, thresholds),
            }
        )
    return rows


def sla_incidents(
    df: pd.DataFrame,
    priority: str,
    compliant: bool,
    *,
    on_hold_only: bool = False,
    now: Optional[pd.Timestamp] = None,
) -> pd.DataFrame:
    """Drill-down behind one rollup cell."""
    if df.empty:
        return df.copy()
    if on_hold_only:
        df = _on_hold_only(df)
    df = df[priority_series(df).eq(priority)]
    if df.empty:
        return df.copy()
    ok = sla_compliant(df, now=now)
    out = df[ok if compliant else ~ok].copy()
    out["sla_breach"] = sla_breach_hours(out, now=now).map(format_sla_breach)
    return out


def compute_sla(filters: IncidentFilters, ctx: Dict[str, Any], *, on_hold_only: bool = False) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered_incidents", pd.DataFrame())
    now = ctx.get("now")
    rollup = sla_rollup(df, on_hold_only=on_hold_only, now=now, thresholds=filters.thresholds)
    within = sum(r["within_sla"] for r in rollup)
    outside = sum(r["outside_sla"] for r in rollup)
    overall = compliance_rate(within, outside)
    return {
        "filters": asdict(filters),
        "on_hold_only": on_hold_only,
        "target_pct": filters.thresholds.sla_target_pct,
        "kpis": {
            "within_sla": within,
            "outside_sla": outside,
            "compliance_rate": overall,
            "status": compliance_status(overall, filters.thresholds),
        },
        "priorities": rollup,
    }


def compute_sla_drilldown(
    filters: IncidentFilters,
    ctx: Dict[str, Any],
    *,
    priority: str,
    compliant: bool,
    on_hold_only: bool = False,
) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered_incidents", pd.DataFrame())
    rows = sla_incidents(df, priority, compliant, on_hold_only=on_hold_only, now=ctx.get("now"))
    records = incident_records(rows)
    if not rows.empty:
        for rec, breach in zip(records, rows["sla_breach"].tolist()):
            rec["sla_breach"] = breach
    return {
        "filters": asdict(filters),
        "priority": priority,
        "compliant": compliant,
        "count": len(records),
        "incidents": records,
    }
