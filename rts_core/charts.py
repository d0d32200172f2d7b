from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

BRAND_ORANGE = "#EE4D2D"
BRAND_ORANGE_LIGHT = "#FF7A59"
SLATE = "#0F172A"
ALERT_RED = "#D7263D"
BLUE = "#3B82F6"
DONUT_PALETTE = ["#EE4D2D", "#FF7A59", "#FFB199", "#FFD3C4", "#FFEDEB"]


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _frame(items: List[Dict[str, Any]], value_field: str) -> pd.DataFrame:
    df = pd.DataFrame(items, columns=["name", value_field])
    df["rank"] = range(len(df))
    return df


def horizontal_bar(
    items: List[Dict[str, Any]],
    *,
    value_field: str = "value",
    title: str = "",
    highlight_top: int = 1,
    color: str = BRAND_ORANGE,
    rest_color: str = BRAND_ORANGE_LIGHT,
    height: int = 260,
) -> alt.Chart:
    df = _frame(items, value_field)
    df["color"] = [color if i < highlight_top else rest_color for i in df["rank"]]
    return (
        alt.Chart(df)
        .mark_bar(cornerRadiusTopRight=4, cornerRadiusBottomRight=4)
        .encode(
            x=alt.X(f"{value_field}:Q", title=None, axis=alt.Axis(gridDash=[3, 3], domain=False, ticks=False)),
            y=alt.Y("name:N", title=None, sort=None, axis=alt.Axis(labelLimit=160)),
            color=alt.Color("color:N", scale=None, legend=None),
            tooltip=[alt.Tooltip("name:N", title=title or "Name"), alt.Tooltip(f"{value_field}:Q", title="Value")],
        )
        .properties(height=height)
    )


def vertical_bar(
    items: List[Dict[str, Any]],
    *,
    value_field: str = "value",
    title: str = "",
    color: str = SLATE,
    alert_after: Optional[int] = None,
    alert_color: str = ALERT_RED,
    height: int = 260,
) -> alt.Chart:
    df = _frame(items, value_field)
    if alert_after is None:
        color_enc: Any = alt.value(color)
    else:
        df["color"] = [alert_color if i > alert_after else color for i in df["rank"]]
        color_enc = alt.Color("color:N", scale=None, legend=None)
    return (
        alt.Chart(df)
        .mark_bar(cornerRadiusTopLeft=4, cornerRadiusTopRight=4)
        .encode(
            x=alt.X("name:N", title=None, sort=None, axis=alt.Axis(labelAngle=0)),
            y=alt.Y(f"{value_field}:Q", title=None, axis=alt.Axis(gridDash=[3, 3], domain=False, ticks=False)),
            color=color_enc,
            tooltip=[alt.Tooltip("name:N", title=title or "Name"), alt.Tooltip(f"{value_field}:Q", title="Value")],
        )
        .properties(height=height)
    )


def donut(items: List[Dict[str, Any]], *, title: str = "", height: int = 300) -> alt.Chart:
    df = _frame(items, "value")
    palette = [DONUT_PALETTE[i % len(DONUT_PALETTE)] for i in range(len(df))]
    return (
        alt.Chart(df)
        .mark_arc(innerRadius=80, outerRadius=120, padAngle=0.03)
        .encode(
            theta=alt.Theta("value:Q"),
            color=alt.Color(
                "name:N",
                sort=df["name"].tolist(),
                scale=alt.Scale(domain=df["name"].tolist(), range=palette),
                legend=alt.Legend(orient="bottom", title=None),
            ),
            order=alt.Order("rank:Q"),
            tooltip=[alt.Tooltip("name:N", title=title or "Name"), alt.Tooltip("value:Q", title="Value")],
        )
        .properties(height=height)
    )
