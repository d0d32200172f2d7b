from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional

from rts_core.data import SHIPMENT_COLUMNS


ROWS_PER_PAGE = 25
SORT_DIRECTIONS = ("asc", "desc")
KPI_FILTERS = ("ALL", "AVG_STATION", "STUCK_5", "CRITICAL_20")
EQUALITY_FILTERS = ("latest_station_name", "responsability", "stuck_aging", "since_drop_aging")


@dataclass(frozen=True)
class OperationalFilters:
    latest_station_name: str = ""
    responsability: str = ""
    stuck_aging: str = ""
    since_drop_aging: str = ""
    sort_key: Optional[str] = None
    sort_direction: Optional[str] = None
    kpi: Optional[str] = None
    page: int = 1
    rows_per_page: int = ROWS_PER_PAGE


@dataclass(frozen=True)
class ReportFilters:
    selected_stations: List[str] = field(default_factory=list)


def _as_str(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def _as_positive_int(value: object, default: int) -> int:
    try:
        out = int(value)  # type: ignore[arg-type]
    except Exception:
        return default
    return max(1, out)


def normalize_filters(raw: dict) -> OperationalFilters:
    sort_key = raw.get("sort_key") or None
    sort_direction = raw.get("sort_direction") or None
    if sort_key not in SHIPMENT_COLUMNS or sort_direction not in SORT_DIRECTIONS:
        sort_key, sort_direction = None, None

    kpi = raw.get("kpi") or None
    if kpi not in KPI_FILTERS:
        kpi = None

    return OperationalFilters(
        latest_station_name=_as_str(raw.get("latest_station_name")),
        responsability=_as_str(raw.get("responsability")),
        stuck_aging=_as_str(raw.get("stuck_aging")),
        since_drop_aging=_as_str(raw.get("since_drop_aging")),
        sort_key=sort_key,
        sort_direction=sort_direction,
        kpi=kpi,
        page=_as_positive_int(raw.get("page", 1), 1),
        rows_per_page=_as_positive_int(raw.get("rows_per_page", ROWS_PER_PAGE), ROWS_PER_PAGE),
    )


def next_sort(filters: OperationalFilters, key: str) -> OperationalFilters:
    """Clicking a column cycles: unsorted -> asc -> desc -> unsorted."""
    direction: Optional[str] = "asc"
    if filters.sort_key == key and filters.sort_direction == "asc":
        direction = "desc"
    elif filters.sort_key == key and filters.sort_direction == "desc":
        direction = None
    return replace(filters, sort_key=key if direction else None, sort_direction=direction)


def toggle_kpi(filters: OperationalFilters, kpi: str) -> OperationalFilters:
    return replace(filters, kpi=None if filters.kpi == kpi else kpi, page=1)


def normalize_report_filters(raw: dict) -> ReportFilters:
    stations: Iterable[object] = raw.get("selected_stations") or []
    seen: List[str] = []
    for s in stations:
        if s is None:
            continue
        name = str(s)
        if name not in seen:
            seen.append(name)
    return ReportFilters(selected_stations=seen)
