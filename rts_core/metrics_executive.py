from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd

from rts_core.charts import ALERT_RED, SLATE, donut, horizontal_bar, to_vega_spec
from rts_core.data import count_by, percent, round_half_up
from rts_core.metrics_operational import CRITICAL_RTS_DAYS, STUCK_DAYS


CRITICAL_STATION_DAYS = 10
TOP_CRITICAL_STATIONS = 10


def top_critical_stations(df: pd.DataFrame, *, min_days: int = CRITICAL_STATION_DAYS, top_n: int = TOP_CRITICAL_STATIONS) -> List[Dict[str, Any]]:
    critical = df[df["days_open_since_rts"] > min_days] if not df.empty else df
    if critical.empty:
        return []
    stats = (
        critical.groupby("latest_station_name", sort=False)["days_open_since_rts"]
        .agg(total_days="sum", shipments="count")
        .reset_index()
    )
    stats["avg_days"] = [round_half_up(t / c, 1) for t, c in zip(stats["total_days"], stats["shipments"])]
    stats = stats.sort_values("avg_days", ascending=False, kind="mergesort").head(top_n)
    return [
        {"name": str(r.latest_station_name), "avg_days": float(r.avg_days), "count": int(r.shipments)}
        for r in stats.itertuples(index=False)
    ]


def compute_executive(df: pd.DataFrame) -> Dict[str, Any]:
    total = int(len(df))
    stuck_over_5 = int((df["days_stuck"] > STUCK_DAYS).sum()) if total else 0
    critical = int((df["days_open_since_rts"] > CRITICAL_RTS_DAYS).sum()) if total else 0
    pct_stuck = percent(stuck_over_5, total)

    aging_distribution = count_by(df, "since_drop_aging")
    stations = top_critical_stations(df)

    charts: Dict[str, Any] = {}
    if total:
        charts["aging_distribution"] = to_vega_spec(donut(aging_distribution, title="RTS Aging"))
        if stations:
            charts["top_critical_stations"] = to_vega_spec(
                horizontal_bar(
                    stations,
                    value_field="avg_days",
                    title="Estação",
                    highlight_top=3,
                    color=ALERT_RED,
                    rest_color=SLATE,
                )
            )

    return {
        "kpis": {
            "total_shipments": total,
            "stuck_over_5": stuck_over_5,
            "percent_stuck": pct_stuck,
            "critical_over_20": critical,
        },
        "aging_distribution": aging_distribution,
        "top_critical_stations": stations,
        "summary": [
            f"Base atual: {total:,} envios em aberto",
            f"{pct_stuck:.1f}% estão com mais de {STUCK_DAYS} dias de stuck",
            f"{critical:,} casos ultrapassam {CRITICAL_RTS_DAYS} dias",
        ],
        "recommendation": (
            f"Recomenda-se ação imediata nas estações com média superior a {CRITICAL_STATION_DAYS} dias."
        ),
        "charts": charts,
    }
