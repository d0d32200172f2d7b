from __future__ import annotations

import math
from dataclasses import asdict
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from rts_core.charts import BLUE, horizontal_bar, to_vega_spec, vertical_bar
from rts_core.data import count_by, distinct_values, percent, round_half_up, safe_mean
from rts_core.filters import EQUALITY_FILTERS, OperationalFilters


STUCK_DAYS = 5
CRITICAL_RTS_DAYS = 20

RTS_DAY_BINS = [-np.inf, 5, 10, 20, 30, np.inf]
RTS_DAY_LABELS = ["0-5 dias", "6-10 dias", "11-20 dias", "21-30 dias", "31+ dias"]

KPI_TITLES = {
    None: "Monitoramento RTS",
    "ALL": "Todos os Envios",
    "AVG_STATION": "Envios Acima da Média em Estação ({avg} dias)",
    "STUCK_5": "Envios Stuck > 5 Dias",
    "CRITICAL_20": "Envios Críticos (> 20 Dias RTS)",
}


def apply_equality_filters(df: pd.DataFrame, filters: OperationalFilters) -> pd.DataFrame:
    out = df
    for col in EQUALITY_FILTERS:
        value = getattr(filters, col)
        if value:
            out = out[out[col] == value]
    return out


def apply_sort(df: pd.DataFrame, filters: OperationalFilters) -> pd.DataFrame:
    if not filters.sort_key or not filters.sort_direction or filters.sort_key not in df.columns:
        return df
    return df.sort_values(filters.sort_key, ascending=filters.sort_direction == "asc", kind="mergesort")


def rts_day_histogram(df: pd.DataFrame) -> List[Dict[str, Any]]:
    if df.empty:
        return [{"name": label, "value": 0} for label in RTS_DAY_LABELS]
    bins = pd.cut(df["days_open_since_rts"], bins=RTS_DAY_BINS, labels=RTS_DAY_LABELS, right=True)
    counts = bins.value_counts(sort=False).reindex(RTS_DAY_LABELS, fill_value=0)
    return [{"name": str(label), "value": int(n)} for label, n in counts.items()]


def apply_kpi_drilldown(df: pd.DataFrame, kpi: str | None, avg_days_station: float) -> pd.DataFrame:
    if kpi == "AVG_STATION":
        return df[df["days_open_in_station"] > avg_days_station]
    if kpi == "STUCK_5":
        return df[df["days_stuck"] > STUCK_DAYS]
    if kpi == "CRITICAL_20":
        return df[df["days_open_since_rts"] > CRITICAL_RTS_DAYS]
    return df


def paginate(df: pd.DataFrame, page: int, rows_per_page: int) -> Dict[str, Any]:
    total_rows = int(len(df))
    total_pages = math.ceil(total_rows / rows_per_page) if rows_per_page else 0
    page = max(1, min(page, total_pages or 1))
    start_idx = (page - 1) * rows_per_page
    rows = df.iloc[start_idx : start_idx + rows_per_page]
    return {
        "page": page,
        "total_pages": total_pages,
        "total_rows": total_rows,
        "start": start_idx + 1 if total_rows else 0,
        "end": min(page * rows_per_page, total_rows),
        "rows": rows.to_dict(orient="records"),
    }


def compute_operational(filters: OperationalFilters, df: pd.DataFrame) -> Dict[str, Any]:
    options = {col: distinct_values(df, col) for col in EQUALITY_FILTERS}

    filtered = apply_sort(apply_equality_filters(df, filters), filters)
    total = int(len(filtered))
    avg_days_station = safe_mean(filtered["days_open_in_station"]) if total else 0.0
    stuck_over_5 = int((filtered["days_stuck"] > STUCK_DAYS).sum()) if total else 0
    critical = int((filtered["days_open_since_rts"] > CRITICAL_RTS_DAYS).sum()) if total else 0
    pct_stuck = percent(stuck_over_5, total)

    by_resp = count_by(filtered, "responsability")
    by_station_aging = count_by(filtered, "in_station_aging")
    histogram = rts_day_histogram(filtered)

    table_df = apply_kpi_drilldown(filtered, filters.kpi, avg_days_station)
    avg_display = round_half_up(avg_days_station, 1) or 0.0
    table = paginate(table_df, filters.page, filters.rows_per_page)
    table["title"] = KPI_TITLES.get(filters.kpi, KPI_TITLES[None]).format(avg=f"{avg_display:.1f}")

    charts: Dict[str, Any] = {}
    if total:
        charts = {
            "volume_by_responsability": to_vega_spec(horizontal_bar(by_resp, title="Responsável")),
            "aging_in_station": to_vega_spec(vertical_bar(by_station_aging, title="Aging em Estação")),
            "rts_days_histogram": to_vega_spec(vertical_bar(histogram, title="Dias desde RTS", color=BLUE, alert_after=2)),
        }

    return {
        "filters": asdict(filters),
        "options": options,
        "kpis": {
            "total_shipments": total,
            "avg_days_in_station": avg_display,
            "stuck_over_5": stuck_over_5,
            "percent_stuck": pct_stuck,
            "percent_stuck_alert": pct_stuck > 15,
            "critical_over_20": critical,
        },
        "volume_by_responsability": by_resp,
        "aging_in_station": by_station_aging,
        "rts_days_histogram": histogram,
        "table": table,
        "charts": charts,
    }
