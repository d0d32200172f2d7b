import altair as alt
import pandas as pd
import streamlit as st
from contextlib import contextmanager
from dataclasses import asdict, replace
from typing import List, Optional

from rts_core.config import configure_logging, load_settings
from rts_core.data import SHIPMENT_COLUMNS, distinct_values, records_to_frame
from rts_core.filters import (
    EQUALITY_FILTERS,
    KPI_FILTERS,
    OperationalFilters,
    next_sort,
    normalize_filters,
    normalize_report_filters,
    toggle_kpi,
)
from rts_core.metrics_executive import compute_executive
from rts_core.metrics_operational import compute_operational
from rts_core.metrics_report import compute_report, group_stations, render_report_markdown, search_groups
from rts_core.state import RefreshScheduler, ShipmentStore

alt.data_transformers.disable_max_rows()

COLUMN_LABELS = {
    "shipment_id": "Shipment ID",
    "latest_station_name": "Estação",
    "responsability": "Responsável",
    "days_open_in_station": "Dias em Estação",
    "days_open_since_rts": "Dias RTS",
    "days_stuck": "Dias Stuck",
    "stuck_aging": "Stuck Aging",
}
KPI_LABELS = {
    "ALL": "Total de Envios",
    "AVG_STATION": "Média Dias em Estação",
    "STUCK_5": "% Stuck > 5 Dias",
    "CRITICAL_20": "Críticos > 20 Dias",
}


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #0F172A;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #0F172A;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .chip.group {background: rgba(238,77,45,0.1);border-color: rgba(238,77,45,0.2);color: #EE4D2D;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header"><div class="card-title">{title}</div></div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def render_page_header(title: str, breadcrumb: str, export_df: Optional[pd.DataFrame] = None, export_name: str = "export.csv"):
    inject_base_styles()
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if export_df is not None and not export_df.empty:
            st.download_button(
                "Export CSV",
                data=export_df.to_csv(index=False).encode("utf-8"),
                file_name=export_name,
                mime="text/csv",
            )


def render_tags(tags: List[dict]):
    if not tags:
        return
    chips = "".join(f"<span class='chip{' group' if t['is_group'] else ''}'>{t['label']}</span>" for t in tags)
    st.markdown(f"<div class='chip-row'>{chips}</div>", unsafe_allow_html=True)


def render_chart(spec: Optional[dict]):
    if spec:
        st.vega_lite_chart(spec, use_container_width=True)
    else:
        st.info("Sem dados para exibir")


def upload_fallback(store: ShipmentStore, key: str):
    uploaded = st.file_uploader("Upload CSV", type=["csv"], key=key)
    if uploaded is not None and st.session_state.get(f"{key}_id") != uploaded.file_id:
        st.session_state[f"{key}_id"] = uploaded.file_id
        store.handle_file_upload(uploaded)
        st.rerun()


# ---------- Session state ----------
def get_scheduler() -> RefreshScheduler:
    if "scheduler" not in st.session_state:
        settings = load_settings()
        configure_logging(settings.log_level)
        scheduler = RefreshScheduler(ShipmentStore.from_settings(settings), interval_seconds=settings.refresh_seconds)
        with st.spinner("Loading RTS data..."):
            scheduler.mount()
        st.session_state["scheduler"] = scheduler
        st.session_state["op_filters"] = OperationalFilters()
    return st.session_state["scheduler"]


def refresh_when_due(scheduler: RefreshScheduler):
    if scheduler.tick() is not None:
        st.rerun()


# ---------- UI setup ----------
st.set_page_config(page_title="RTS Dashboard", layout="wide")
inject_base_styles()

scheduler = get_scheduler()
store = scheduler.store
st.fragment(run_every=scheduler.interval_seconds)(refresh_when_due)(scheduler)
state = store.state

if state.show_failure:
    st.error("Failed to load data")
    if state.needs_upload:
        st.write(
            "The Google Sheet is restricted to your company and cannot be accessed directly by the dashboard. "
            "Download it as a CSV (File > Download > Comma-separated values) and upload it here."
        )
        upload_fallback(store, "fallback_upload")
    else:
        st.write(state.error)
    if st.button("Try again"):
        store.refetch()
        st.rerun()
    st.stop()

df = records_to_frame(state.data)

with st.sidebar:
    st.markdown("### Navegação")
    nav_choice = st.radio("Navegação", ["Operacional", "Executiva", "Relatório"], index=0, label_visibility="collapsed")
    st.markdown("---")
    if st.button("Atualizar dados"):
        store.refetch()
        st.rerun()
    with st.expander("Upload CSV", expanded=False):
        upload_fallback(store, "sidebar_upload")
    if state.error:
        st.warning(state.error)
    if state.loaded_at is not None:
        st.caption(f"{len(state.data):,} registros · fonte: {state.source} · {state.loaded_at:%H:%M:%S} UTC")


def render_operational():
    filters: OperationalFilters = st.session_state["op_filters"]
    options = {field: distinct_values(df, field) for field in EQUALITY_FILTERS}

    with card("Filtros"):
        cols = st.columns(4)
        values = {}
        for col, (field, label) in zip(
            cols,
            [
                ("latest_station_name", "Estação"),
                ("responsability", "Responsável"),
                ("stuck_aging", "Stuck Aging"),
                ("since_drop_aging", "Since Drop Aging"),
            ],
        ):
            choices = [""] + options[field]
            current = getattr(filters, field)
            values[field] = col.selectbox(
                label,
                choices,
                index=choices.index(current) if current in choices else 0,
                format_func=lambda v: v or "Todos",
            )
    raw = dict(asdict(filters), **values)
    if any(values[field] != getattr(filters, field) for field in values):
        raw["page"] = 1
    filters = normalize_filters(raw)
    payload = compute_operational(filters, df)
    kpis = payload["kpis"]

    kpi_cols = st.columns(4)
    kpi_values = {
        "ALL": f"{kpis['total_shipments']:,}",
        "AVG_STATION": f"{kpis['avg_days_in_station']:.1f} dias",
        "STUCK_5": f"{kpis['percent_stuck']:.1f}%",
        "CRITICAL_20": f"{kpis['critical_over_20']:,}",
    }
    for col, kpi in zip(kpi_cols, KPI_FILTERS):
        col.metric(KPI_LABELS[kpi], kpi_values[kpi])
        if col.button("Detalhar" if filters.kpi != kpi else "Limpar filtro", key=f"kpi_{kpi}"):
            filters = toggle_kpi(filters, kpi)
            st.session_state["op_filters"] = filters
            st.rerun()

    chart_cols = st.columns(3)
    for col, (key, title) in zip(
        chart_cols,
        [
            ("volume_by_responsability", "Volume por Responsável"),
            ("aging_in_station", "Aging em Estação"),
            ("rts_days_histogram", "Distribuição Dias desde RTS"),
        ],
    ):
        with col:
            with card(title):
                render_chart(payload["charts"].get(key))

    table = payload["table"]
    with card(table["title"]):
        if filters.kpi:
            st.caption(f"{table['total_rows']} registros")
        sort_cols = st.columns(len(COLUMN_LABELS))
        for col, (key, label) in zip(sort_cols, COLUMN_LABELS.items()):
            arrow = {"asc": " ▲", "desc": " ▼"}.get(filters.sort_direction, "") if filters.sort_key == key else ""
            if col.button(f"{label}{arrow}", key=f"sort_{key}", use_container_width=True):
                st.session_state["op_filters"] = next_sort(filters, key)
                st.rerun()
        rows = pd.DataFrame(table["rows"], columns=SHIPMENT_COLUMNS)
        st.dataframe(rows[list(COLUMN_LABELS)].rename(columns=COLUMN_LABELS), hide_index=True, use_container_width=True)
        if table["total_pages"] > 1:
            st.caption(f"Mostrando {table['start']}-{table['end']} de {table['total_rows']}")
            page = st.number_input("Página", min_value=1, max_value=table["total_pages"], value=table["page"], step=1)
            filters = replace(filters, page=int(page))

    st.session_state["op_filters"] = filters


def render_executive():
    payload = compute_executive(df)
    left, right = st.columns(2)
    with left:
        with card("Distribuição RTS Aging"):
            render_chart(payload["charts"].get("aging_distribution"))
    with right:
        with card("Top 10 Estações Críticas (>10 dias)"):
            render_chart(payload["charts"].get("top_critical_stations"))
    with card("📌 RESUMO EXECUTIVO"):
        st.markdown("\n".join(f"- {line}" for line in payload["summary"]))
        st.warning(payload["recommendation"])


def render_report():
    groups = group_stations(df)
    with card("Filtrar por Tipo de Operação"):
        query = st.text_input("Buscar operação (ex: SOC, HUB)", "")
        visible = search_groups(groups, query)
        options = [s for stations in visible.values() for s in stations]
        selected_groups = st.multiselect("Grupos", list(visible))
        selected = st.multiselect("Estações", options, default=[s for s in st.session_state.get("report_stations", []) if s in options])
        for group in selected_groups:
            selected += [s for s in visible[group] if s not in selected]
        st.session_state["report_stations"] = selected

    report = compute_report(normalize_report_filters({"selected_stations": selected}), df)
    render_tags(report["tags"])
    st.caption(report["selection_label"])
    markdown = render_report_markdown(report)
    st.download_button("Exportar relatório", data=markdown.encode("utf-8"), file_name=report["filename"], mime="text/markdown")
    with card(report["header"]["subject"]):
        st.markdown(markdown)


if nav_choice == "Operacional":
    render_page_header("Monitoramento RTS", "RTS / Operacional", export_df=df, export_name="rts_operacional.csv")
    render_operational()
elif nav_choice == "Executiva":
    render_page_header("Visão Executiva", "RTS / Executiva")
    render_executive()
else:
    render_page_header("Relatório Estratégico", "RTS / Relatório")
    render_report()
