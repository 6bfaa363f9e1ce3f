from __future__ import annotations

import logging
import math
from typing import List, Literal, Optional

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import (
    DimensionDrilldownModel,
    HistoryDrilldownModel,
    IncidentFiltersModel,
    IncidentModel,
    SlaDrilldownModel,
)
from core.data import export_frame
from core.filters import IncidentFilters, normalize_filters
from core.metrics_dimensions import compute_dimension, compute_dimension_drilldown
from core.metrics_history import compute_history, compute_history_drilldown, compute_sla_history
from core.metrics_overview import compute_alert_list, compute_overview, incident_detail
from core.metrics_sla import compute_sla, compute_sla_drilldown
from core.normalize import CANONICAL_STATES
from core.session import DashboardSession, Panel


app = FastAPI(title="IT Operations Incident Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Process-wide session: replaced on load, cleared on logout.
session = DashboardSession()

DimensionName = Literal["category", "group", "user", "location", "analyst", "subcategory"]
AlertKind = Literal["critical_pending", "pending", "on_hold", "out_of_rule"]


def _filters_from_model(model: Optional[IncidentFiltersModel]) -> IncidentFilters:
    raw = model.model_dump() if model is not None else {}
    return session.set_filters(normalize_filters(raw))


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                type(pd.NaT): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(name: str, exc: Exception) -> JSONResponse:
    logger.exception("%s failed", name)
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.put("/incidents")
def load_incidents(incidents: List[IncidentModel]):
    try:
        loaded = session.load([i.model_dump() for i in incidents])
        return _json({"loaded": loaded, "version": session.version})
    except Exception as exc:
        return _error("load_incidents", exc)


@app.delete("/incidents")
def logout():
    session.logout()
    return _json({"loaded": 0, "version": session.version})


@app.get("/incidents/{number}")
def get_incident(number: str):
    try:
        detail = incident_detail(session.incidents, number)
        if detail is None:
            return JSONResponse(status_code=404, content={"error": f"Incident {number} not found"})
        session.view = session.view.select_incident(number)
        return _json(detail)
    except Exception as exc:
        return _error("get_incident", exc)


@app.get("/meta/categories")
def meta_categories():
    try:
        ctx = session.context()
        return _json({"values": ctx.get("categories", [])})
    except Exception as exc:
        return _error("meta_categories", exc)


@app.get("/meta/states")
def meta_states():
    return _json({"values": list(CANONICAL_STATES)})


@app.get("/view")
def get_view():
    return _json({"panel": session.view.panel, "selected_incident": session.view.selected_incident})


@app.post("/view/{panel}")
def toggle_view(panel: Panel):
    session.view = session.view.toggle(panel)
    return get_view()


@app.delete("/view")
def close_view():
    session.view = session.view.close().clear_incident()
    return get_view()


@app.post("/overview")
def overview(filters: Optional[IncidentFiltersModel] = None):
    try:
        f = _filters_from_model(filters)
        return _json(compute_overview(f, session.context(f)))
    except Exception as exc:
        return _error("overview", exc)


@app.post("/alerts/{kind}")
def alerts(kind: AlertKind, filters: Optional[IncidentFiltersModel] = None):
    try:
        f = _filters_from_model(filters)
        return _json(compute_alert_list(f, session.context(f), kind=kind))
    except Exception as exc:
        return _error("alerts", exc)


@app.post("/sla")
def sla(filters: Optional[IncidentFiltersModel] = None, on_hold_only: bool = Query(default=False)):
    try:
        f = _filters_from_model(filters)
        return _json(compute_sla(f, session.context(f), on_hold_only=on_hold_only))
    except Exception as exc:
        return _error("sla", exc)


@app.post("/sla-history")
def sla_history(filters: Optional[IncidentFiltersModel] = None):
    try:
        f = _filters_from_model(filters)
        return _json(compute_sla_history(f, session.context(f)))
    except Exception as exc:
        return _error("sla_history", exc)


@app.post("/dimensions/{dimension}")
def dimensions(
    dimension: DimensionName,
    filters: Optional[IncidentFiltersModel] = None,
    top_n: Optional[int] = Query(default=None, ge=1, le=500),
    bucket: Optional[str] = Query(default=None),
):
    try:
        f = _filters_from_model(filters)
        return _json(compute_dimension(f, session.context(f), dimension=dimension, top_n=top_n, bucket=bucket))
    except Exception as exc:
        return _error("dimensions", exc)


@app.post("/history/{dimension}")
def history(
    dimension: DimensionName,
    filters: Optional[IncidentFiltersModel] = None,
    top_n: int = Query(default=5, ge=1, le=50),
):
    try:
        f = _filters_from_model(filters)
        return _json(compute_history(f, session.context(f), dimension=dimension, top_n=top_n))
    except Exception as exc:
        return _error("history", exc)


@app.post("/drilldown/sla")
def drilldown_sla(body: SlaDrilldownModel):
    try:
        f = _filters_from_model(body.filters)
        return _json(
            compute_sla_drilldown(
                f, session.context(f), priority=body.priority, compliant=body.compliant, on_hold_only=body.on_hold_only
            )
        )
    except Exception as exc:
        return _error("drilldown_sla", exc)


@app.post("/drilldown/dimension")
def drilldown_dimension(body: DimensionDrilldownModel):
    try:
        f = _filters_from_model(body.filters)
        return _json(
            compute_dimension_drilldown(
                f,
                session.context(f),
                dimension=body.dimension,
                value=body.value,
                status=body.status,
                bucket=body.bucket,
            )
        )
    except ValueError as exc:
        return JSONResponse(status_code=422, content={"error": str(exc), "type": type(exc).__name__})
    except Exception as exc:
        return _error("drilldown_dimension", exc)


@app.post("/drilldown/history")
def drilldown_history(body: HistoryDrilldownModel):
    try:
        f = _filters_from_model(body.filters)
        return _json(
            compute_history_drilldown(
                f, session.context(f), dimension=body.dimension, value=body.value, month=body.month
            )
        )
    except ValueError as exc:
        return JSONResponse(status_code=422, content={"error": str(exc), "type": type(exc).__name__})
    except Exception as exc:
        return _error("drilldown_history", exc)


@app.post("/export/{page}")
def export_page(page: str, filters: Optional[IncidentFiltersModel] = None):
    f = _filters_from_model(filters)
    ctx = session.context(f)

    filename = f"{page}.csv"
    if page == "incidents":
        export_df = ctx.get("filtered_incidents")
    elif page in {"critical", "critical-pending"}:
        export_df = ctx.get("critical_pending")
        filename = "critical_pending.csv"
    elif page == "pending":
        export_df = ctx.get("pending")
    elif page in {"on-hold", "on_hold"}:
        export_df = ctx.get("on_hold")
        filename = "on_hold.csv"
    elif page in {"out-of-rule", "out_of_rule"}:
        export_df = ctx.get("out_of_rule")
        filename = "out_of_rule.csv"
    else:
        export_df = pd.DataFrame()

    if export_df is None or not hasattr(export_df, "to_csv"):
        export_df = pd.DataFrame()
    csv_bytes = export_frame(export_df).to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
