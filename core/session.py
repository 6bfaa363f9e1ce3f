from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple, Union

import pandas as pd

from core.data import empty_incident_frame, prepare_context, prepare_incidents
from core.dates import as_utc, utc_now
from core.filters import IncidentFilters, filter_incidents, normalize_filters


logger = logging.getLogger(__name__)


class Panel(str, Enum):
    CATEGORY = "category"
    SOFTWARE = "software"
    HARDWARE = "hardware"
    GROUP = "group"
    SLA = "sla"
    USER = "user"
    LOCATION = "location"
    ANALYST = "analyst"
    GROUP_HISTORY = "group_history"
    CATEGORY_HISTORY = "category_history"
    LOCATION_HISTORY = "location_history"
    SLA_HISTORY = "sla_history"
    CRITICAL_INCIDENTS = "critical_incidents"
    PENDING_INCIDENTS = "pending_incidents"
    ON_HOLD_INCIDENTS = "on_hold_incidents"
    OUT_OF_RULE_INCIDENTS = "out_of_rule_incidents"


@dataclass(frozen=True)
class ViewState:
    """Which detail panel is open; at most one at a time."""

    panel: Optional[Panel] = None
    selected_incident: Optional[str] = None

    def open(self, panel: Panel) -> "ViewState":
        return replace(self, panel=Panel(panel))

    def toggle(self, panel: Panel) -> "ViewState":
        panel = Panel(panel)
        return replace(self, panel=None if self.panel == panel else panel)

    def close(self) -> "ViewState":
        return replace(self, panel=None)

    def select_incident(self, number: str) -> "ViewState":
        return replace(self, selected_incident=str(number))

    def clear_incident(self) -> "ViewState":
        return replace(self, selected_incident=None)


class DashboardSession:
    """Session-scoped incident collection plus the current filters and view.

    The collection is replaced wholesale by ``load`` and dropped by ``logout``;
    it is never mutated in place. Filtered frames are memoised per
    (collection version, filters).
    """

    def __init__(self, *, cache_size: int = 16):
        self._cache_size = cache_size
        self._cache: "OrderedDict[Tuple[int, IncidentFilters], pd.DataFrame]" = OrderedDict()
        self._lock = threading.Lock()
        self.version = 0
        self.incidents = empty_incident_frame()
        self.filters = normalize_filters({})
        self.view = ViewState()

    @property
    def loaded(self) -> bool:
        return not self.incidents.empty

    def load(
        self,
        records: Union[pd.DataFrame, Iterable[Dict[str, object]], None],
        *,
        loaded_at: Optional[pd.Timestamp] = None,
    ) -> int:
        self._reset(prepare_incidents(records, loaded_at=loaded_at))
        logger.info("Loaded %s incidents (session version %s)", len(self.incidents), self.version)
        return int(len(self.incidents))

    def logout(self) -> None:
        self._reset(empty_incident_frame())
        logger.info("Session cleared")

    def _reset(self, incidents: pd.DataFrame) -> None:
        with self._lock:
            self.incidents = incidents
            self.version += 1
            self._cache.clear()
        self.filters = normalize_filters({})
        self.view = ViewState()

    def set_filters(self, filters: Union[dict, IncidentFilters]) -> IncidentFilters:
        self.filters = filters if isinstance(filters, IncidentFilters) else normalize_filters(filters)
        return self.filters

    def filtered(self, filters: Optional[IncidentFilters] = None) -> pd.DataFrame:
        filters = filters or self.filters
        with self._lock:
            key = (self.version, filters)
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                return cached
            result = filter_incidents(self.incidents, filters)
            self._cache[key] = result
            if len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)
            return result

    def context(self, filters: Optional[IncidentFilters] = None, *, now: Optional[pd.Timestamp] = None) -> Dict[str, object]:
        filters = filters or self.filters
        now = as_utc(now) or utc_now()
        return prepare_context(filters, self.incidents, now=now, filtered=self.filtered(filters))
