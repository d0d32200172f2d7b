from datetime import date

import pandas as pd
import pytest

from rts_core.data import records_to_frame
from rts_core.filters import (
    OperationalFilters,
    ReportFilters,
    next_sort,
    normalize_filters,
    normalize_report_filters,
    toggle_kpi,
)
from rts_core.metrics_executive import compute_executive, top_critical_stations
from rts_core.metrics_operational import compute_operational, paginate, rts_day_histogram
from rts_core.metrics_report import (
    compute_report,
    group_stations,
    render_report_markdown,
    search_groups,
    selection_tags,
    station_group,
)


def _ids(rows):
    return [r["shipment_id"] for r in rows]


# ---------------- Filters ----------------
def test_normalize_filters_drops_invalid_values():
    f = normalize_filters({"sort_key": "bogus", "sort_direction": "asc", "kpi": "X", "page": "0", "responsability": None})
    assert f == OperationalFilters()

    f = normalize_filters({"sort_key": "days_stuck", "sort_direction": "desc", "kpi": "STUCK_5", "page": "3"})
    assert (f.sort_key, f.sort_direction, f.kpi, f.page) == ("days_stuck", "desc", "STUCK_5", 3)


def test_next_sort_cycles():
    f = OperationalFilters()
    f = next_sort(f, "days_stuck")
    assert (f.sort_key, f.sort_direction) == ("days_stuck", "asc")
    f = next_sort(f, "days_stuck")
    assert (f.sort_key, f.sort_direction) == ("days_stuck", "desc")
    f = next_sort(f, "days_stuck")
    assert (f.sort_key, f.sort_direction) == (None, None)
    f = next_sort(next_sort(f, "days_stuck"), "shipment_id")
    assert (f.sort_key, f.sort_direction) == ("shipment_id", "asc")


def test_toggle_kpi_resets_page():
    f = toggle_kpi(OperationalFilters(page=4), "STUCK_5")
    assert (f.kpi, f.page) == ("STUCK_5", 1)
    assert toggle_kpi(f, "STUCK_5").kpi is None


def test_normalize_report_filters_dedupes():
    assert normalize_report_filters({"selected_stations": ["A", None, "A", "B"]}) == ReportFilters(["A", "B"])


# ---------------- Operational ----------------
def test_operational_kpis(sample_frame):
    payload = compute_operational(OperationalFilters(), sample_frame)
    kpis = payload["kpis"]

    assert kpis["total_shipments"] == 5
    assert kpis["avg_days_in_station"] == 6.2
    assert kpis["stuck_over_5"] == 2
    assert kpis["percent_stuck"] == 40.0
    assert kpis["percent_stuck_alert"] is True
    assert kpis["critical_over_20"] == 2
    assert set(payload["charts"]) == {"volume_by_responsability", "aging_in_station", "rts_days_histogram"}


def test_operational_breakdowns(sample_frame):
    payload = compute_operational(OperationalFilters(), sample_frame)

    assert payload["volume_by_responsability"] == [
        {"name": "Carrier", "value": 2},
        {"name": "Logistics", "value": 1},
        {"name": "Seller", "value": 1},
        {"name": "", "value": 1},
    ]
    assert [b["value"] for b in payload["rts_days_histogram"]] == [2, 0, 1, 1, 1]
    assert payload["options"]["latest_station_name"] == ["SOC SP", "SOC RJ", "HUB-RJ", "XPT1"]


def test_histogram_bucket_edges():
    df = pd.DataFrame({"days_open_since_rts": [0, 5, 6, 10, 11, 20, 21, 30, 31, 400]})
    assert [b["value"] for b in rts_day_histogram(df)] == [2, 2, 2, 2, 2]
    assert [b["name"] for b in rts_day_histogram(df.iloc[0:0])] == [
        "0-5 dias",
        "6-10 dias",
        "11-20 dias",
        "21-30 dias",
        "31+ dias",
    ]


def test_operational_equality_filter_and_options_from_full_dataset(sample_frame):
    payload = compute_operational(OperationalFilters(responsability="Carrier"), sample_frame)
    assert payload["kpis"]["total_shipments"] == 2
    assert _ids(payload["table"]["rows"]) == ["A", "D"]
    assert payload["options"]["responsability"] == ["Carrier", "Logistics", "Seller"]


def test_operational_stable_sort(sample_frame):
    payload = compute_operational(OperationalFilters(sort_key="days_stuck", sort_direction="desc"), sample_frame)
    assert _ids(payload["table"]["rows"]) == ["C", "B", "D", "A", "E"]

    payload = compute_operational(OperationalFilters(sort_key="latest_station_name", sort_direction="asc"), sample_frame)
    assert _ids(payload["table"]["rows"]) == ["E", "C", "B", "A", "D"]


@pytest.mark.parametrize(
    "kpi, expected",
    [
        ("ALL", ["A", "B", "C", "D", "E"]),
        ("AVG_STATION", ["B", "C"]),
        ("STUCK_5", ["B", "C"]),
        ("CRITICAL_20", ["C", "D"]),
    ],
)
def test_operational_kpi_drilldown(sample_frame, kpi, expected):
    payload = compute_operational(OperationalFilters(kpi=kpi), sample_frame)
    assert _ids(payload["table"]["rows"]) == expected
    # KPIs describe the filtered set, not the drill-down
    assert payload["kpis"]["total_shipments"] == 5


def test_operational_table_title(sample_frame):
    assert compute_operational(OperationalFilters(), sample_frame)["table"]["title"] == "Monitoramento RTS"
    title = compute_operational(OperationalFilters(kpi="AVG_STATION"), sample_frame)["table"]["title"]
    assert "6.2" in title


def test_pagination(sample_frame):
    page = paginate(sample_frame, 3, 2)
    assert (page["page"], page["total_pages"], page["start"], page["end"]) == (3, 3, 5, 5)
    assert _ids(page["rows"]) == ["E"]

    clamped = paginate(sample_frame, 10, 2)
    assert clamped["page"] == 3

    empty = paginate(sample_frame.iloc[0:0], 1, 25)
    assert (empty["page"], empty["total_pages"], empty["start"], empty["end"], empty["rows"]) == (1, 0, 0, 0, [])


def test_operational_on_empty_dataset():
    payload = compute_operational(OperationalFilters(), records_to_frame(()))
    assert payload["kpis"]["total_shipments"] == 0
    assert payload["kpis"]["avg_days_in_station"] == 0.0
    assert payload["kpis"]["percent_stuck"] == 0.0
    assert payload["charts"] == {}
    assert payload["table"]["rows"] == []


# ---------------- Executive ----------------
def test_executive_payload(sample_frame):
    payload = compute_executive(sample_frame)

    assert payload["kpis"] == {"total_shipments": 5, "stuck_over_5": 2, "percent_stuck": 40.0, "critical_over_20": 2}
    assert payload["aging_distribution"][0] == {"name": "0-5 dias", "value": 2}
    assert [s["name"] for s in payload["top_critical_stations"]] == ["XPT1", "HUB-RJ", "SOC RJ"]
    assert payload["top_critical_stations"][0] == {"name": "XPT1", "avg_days": 40.0, "count": 1}
    assert payload["summary"][1] == "40.0% estão com mais de 5 dias de stuck"
    assert set(payload["charts"]) == {"aging_distribution", "top_critical_stations"}


def test_top_critical_stations_averages_and_limits():
    df = pd.DataFrame(
        {
            "latest_station_name": ["S1", "S1", "S2", "S3"] + [f"X{i}" for i in range(12)],
            "days_open_since_rts": [11, 14, 10, 50] + [20 + i for i in range(12)],
        }
    )
    stations = top_critical_stations(df)
    assert len(stations) == 10
    assert stations[0] == {"name": "S3", "avg_days": 50.0, "count": 1}
    assert "S2" not in [s["name"] for s in stations]  # exactly 10 days is not critical
    assert top_critical_stations(df, top_n=20)[-1] == {"name": "S1", "avg_days": 12.5, "count": 2}


# ---------------- Report ----------------
@pytest.mark.parametrize(
    "name, group",
    [("XPT1", "XPT"), ("SoC SP", "SOC"), ("HUB-RJ", "HUB"), ("A1", "OUTROS"), ("123", "OUTROS")],
)
def test_station_group(name, group):
    assert station_group(name) == group


def test_group_stations_and_tags(sample_frame):
    groups = group_stations(sample_frame)
    assert groups == {"SOC": ["SOC RJ", "SOC SP"], "HUB": ["HUB-RJ"], "XPT": ["XPT1"]}

    assert selection_tags(["SOC SP", "SOC RJ", "XPT1"], groups) == [
        {"id": "SOC", "label": "Todos: SOC", "is_group": True},
        {"id": "XPT", "label": "Todos: XPT", "is_group": True},
    ]
    assert selection_tags(["SOC RJ"], groups) == [{"id": "SOC RJ", "label": "SOC RJ", "is_group": False}]


def test_search_groups():
    groups = {"SOC": ["SOC RJ", "SOC SP"], "HUB": ["HUB-RJ"]}
    assert search_groups(groups, "soc") == {"SOC": ["SOC RJ", "SOC SP"]}
    assert search_groups(groups, "rj") == {"SOC": ["SOC RJ"], "HUB": ["HUB-RJ"]}
    assert search_groups(groups, "") == groups


def test_report_without_selection(sample_frame):
    report = compute_report(ReportFilters(), sample_frame, today=date(2026, 10, 18))

    assert report["kpis"] == {"total_shipments": 5, "avg_aging": 16.0, "out_of_sla": 1, "percent_out_of_sla": 20.0}
    assert report["filename"] == "Relatorio_Estrategico_RTS_2026-10-18.md"
    assert report["header"]["date"] == "18/10/2026"
    assert report["selection_label"] == "Exibindo todas as operações."
    assert [(s["name"], s["status"]) for s in report["station_stats"]] == [
        ("XPT1", "Crítico"),
        ("HUB-RJ", "Atenção"),
        ("SOC RJ", "Atenção"),
        ("SOC SP", "Atenção"),
        ("Desconhecido", "Atenção"),
    ]
    assert [(s["name"], s["avg_aging"], s["impact"]) for s in report["responsability_stats"]] == [
        ("Seller", 25.0, "Atraso no processo/disputa"),
        ("Carrier", 21.5, "Falha na coleta/devolução física"),
        ("Logistics", 12.0, "Falha na conferência/inventário"),
        ("Não Atribuído", 0.0, "Atraso no processo/disputa"),
    ]


def test_report_with_station_selection(sample_frame):
    df = sample_frame.copy()
    df.loc[df["shipment_id"] == "A", "latest_station_name"] = " SOC SP "
    report = compute_report(ReportFilters(["SOC SP", "SOC RJ"]), df)

    assert report["kpis"]["total_shipments"] == 2
    assert "(foco em Todos: SOC)" in report["summary"][0]
    assert report["selection_label"] == "2 estação(ões) selecionada(s)."


def test_report_markdown(sample_frame):
    report = compute_report(ReportFilters(), sample_frame, today=date(2026, 10, 18))
    markdown = render_report_markdown(report)

    assert "## 1. Resumo Executivo" in markdown
    assert "| XPT1 | 1 | 40.0 | Crítico |" in markdown
    assert "**DATA:** 18/10/2026" in markdown
    assert "3. **Auditoria de Contratos e SLAs:**" in markdown


def test_report_on_empty_dataset():
    report = compute_report(ReportFilters(), records_to_frame(()))
    assert report["kpis"]["total_shipments"] == 0
    assert report["station_stats"] == []
    assert "Sem dados para exibir" in render_report_markdown(report)
