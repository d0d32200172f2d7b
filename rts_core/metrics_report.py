from __future__ import annotations

import re
from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from rts_core.data import percent, round_half_up, safe_mean
from rts_core.filters import ReportFilters


SLA_DAYS = 30
TOP_REPORT_STATIONS = 5
OTHER_GROUP = "OUTROS"
UNKNOWN_STATION = "Desconhecido"
UNASSIGNED = "Não Atribuído"

_GROUP_PREFIX_RE = re.compile(r"^([A-Za-z]+)")

MEMO_HEADER = {
    "to": "Diretoria de Operações / Gerência de Supply Chain",
    "from": "Engenharia de Inteligência de Logística Reversa",
    "subject": "Relatório Estratégico de Performance e Recuperação de Ativos",
}

RECOMMENDATIONS = [
    (
        "Força-Tarefa de Saneamento (Write-off ou Recuperação)",
        "Devido ao aging elevado, a probabilidade de integridade física dos itens mais antigos é baixa. "
        "Recomendo a auditoria física imediata nas localidades mais críticas apontadas acima. Caso os itens "
        "não sejam localizados em 48h, proceder com o write-off (baixa contábil) e acionamento de seguro ou "
        "penalização dos responsáveis.",
    ),
    (
        "Revisão do Fluxo de Escalonamento",
        "O fato de uma parcela significativa dos itens estar fora do SLA e ser de Risco Alto sem intervenção "
        "prévia demonstra falha nos alertas automáticos. É necessário implementar um Gatilho de Crise no "
        f"ERP/WMS para casos que ultrapassem {SLA_DAYS} dias de aging, com reporte direto à gerência.",
    ),
    (
        "Auditoria de Contratos e SLAs",
        "É imperativo realizar uma revisão técnica nos contratos de transporte e operação logística para "
        "aplicar as cláusulas de penalidade por extravio ou atraso excessivo na logística reversa, visando "
        "recuperar o capital parado através de ressarcimento.",
    ),
]

ENGINEERING_NOTE = (
    f"Um aging superior a {SLA_DAYS} dias em grande parte da amostra indica que estes itens podem ter sofrido "
    "sinistros não baixados no sistema ou estão em \"limbo\" administrativo entre as transferências de custódia."
)


# ---------------- Station groups ----------------
def station_group(name: str) -> str:
    """'XPT1' -> 'XPT', 'SoC SP' -> 'SOC'; single letters or no prefix -> OUTROS."""
    match = _GROUP_PREFIX_RE.match(name)
    prefix = match.group(1).upper() if match else OTHER_GROUP
    return prefix if len(prefix) > 1 else OTHER_GROUP


def group_stations(df: pd.DataFrame) -> Dict[str, List[str]]:
    groups: Dict[str, List[str]] = {}
    if df.empty:
        return groups
    for raw in df["latest_station_name"].tolist():
        if not raw:
            continue
        name = str(raw).strip()
        members = groups.setdefault(station_group(name), [])
        if name not in members:
            members.append(name)
    return {group: sorted(members) for group, members in groups.items()}


def selection_tags(selected: List[str], groups: Dict[str, List[str]]) -> List[Dict[str, Any]]:
    chosen = set(selected)
    tags: List[Dict[str, Any]] = []
    for group, stations in groups.items():
        in_group = [s for s in stations if s in chosen]
        if stations and len(in_group) == len(stations):
            tags.append({"id": group, "label": f"Todos: {group}", "is_group": True})
        else:
            tags.extend({"id": s, "label": s, "is_group": False} for s in in_group)
    return tags


def search_groups(groups: Dict[str, List[str]], query: str) -> Dict[str, List[str]]:
    """Dropdown search: a matching group name shows all its stations."""
    q = (query or "").lower()
    out: Dict[str, List[str]] = {}
    for group, stations in groups.items():
        hits = [s for s in stations if q in s.lower()]
        if q in group.lower() and not hits:
            out[group] = list(stations)
        elif hits:
            out[group] = hits
    return out


def filter_by_stations(df: pd.DataFrame, selected: List[str]) -> pd.DataFrame:
    if not selected or df.empty:
        return df
    return df[df["latest_station_name"].astype(str).str.strip().isin(set(selected))]


# ---------------- Tables ----------------
def _aging_stats(df: pd.DataFrame, col: str, fallback: str) -> pd.DataFrame:
    keys = df[col].astype(str).where(df[col].astype(str) != "", fallback)
    stats = (
        df.assign(_key=keys)
        .groupby("_key", sort=False)["days_open_since_rts"]
        .agg(total_aging="sum", shipments="count")
        .reset_index()
        .rename(columns={"_key": "name"})
    )
    stats["avg_raw"] = stats["total_aging"] / stats["shipments"]
    stats["avg_aging"] = stats["avg_raw"].apply(lambda v: round_half_up(v, 1))
    return stats.sort_values("avg_aging", ascending=False, kind="mergesort")


def station_stats(df: pd.DataFrame, top_n: int = TOP_REPORT_STATIONS) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    stats = _aging_stats(df, "latest_station_name", UNKNOWN_STATION).head(top_n)
    return [
        {
            "name": str(r.name),
            "count": int(r.shipments),
            "avg_aging": float(r.avg_aging),
            "status": "Crítico" if r.avg_raw > SLA_DAYS else "Atenção",
        }
        for r in stats.itertuples(index=False)
    ]


def responsability_impact(name: str) -> str:
    lowered = name.lower()
    if "carrier" in lowered:
        return "Falha na coleta/devolução física"
    if "logistic" in lowered:
        return "Falha na conferência/inventário"
    return "Atraso no processo/disputa"


def responsability_stats(df: pd.DataFrame) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    stats = _aging_stats(df, "responsability", UNASSIGNED)
    return [
        {
            "name": str(r.name),
            "count": int(r.shipments),
            "avg_aging": float(r.avg_aging),
            "impact": responsability_impact(str(r.name)),
        }
        for r in stats.itertuples(index=False)
    ]


# ---------------- Report ----------------
def compute_report(filters: ReportFilters, df: pd.DataFrame, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or date.today()
    groups = group_stations(df)
    tags = selection_tags(filters.selected_stations, groups)
    filtered = filter_by_stations(df, filters.selected_stations)

    total = int(len(filtered))
    avg_aging = round_half_up(safe_mean(filtered["days_open_since_rts"]), 1) if total else 0.0
    out_of_sla = int((filtered["days_open_since_rts"] > SLA_DAYS).sum()) if total else 0
    pct_out_of_sla = percent(out_of_sla, total)

    focus = f" (foco em {', '.join(t['label'] for t in tags)})" if filters.selected_stations else ""
    summary = [
        (
            f"O cenário atual da operação de logística reversa{focus} apresenta um estado que requer atenção "
            f"imediata. Com um volume de {total:,} itens retidos no fluxo, a ineficiência operacional é "
            f"evidenciada pelo Aging Médio que atingiu {avg_aging:.1f} dias de retenção desde o RTS."
        ),
        (
            f"A operação registra {pct_out_of_sla:.1f}% de descumprimento de SLA (itens com mais de {SLA_DAYS} "
            "dias), e a totalidade destes itens é classificada como Risco Alto. Estes dados indicam que os "
            "produtos estão, na prática, paralisados no fluxo ou retidos por questões burocráticas/processuais "
            "severas, resultando em depreciação do ativo e custo de oportunidade elevado para a companhia."
        ),
    ]

    return {
        "filters": asdict(filters),
        "date": today.isoformat(),
        "filename": f"Relatorio_Estrategico_RTS_{today.isoformat()}.md",
        "header": dict(MEMO_HEADER, date=today.strftime("%d/%m/%Y")),
        "station_groups": groups,
        "tags": tags,
        "selection_label": (
            "Exibindo todas as operações."
            if not filters.selected_stations
            else f"{len(filters.selected_stations)} estação(ões) selecionada(s)."
        ),
        "kpis": {
            "total_shipments": total,
            "avg_aging": avg_aging,
            "out_of_sla": out_of_sla,
            "percent_out_of_sla": pct_out_of_sla,
        },
        "summary": summary,
        "station_stats": station_stats(filtered),
        "responsability_stats": responsability_stats(filtered),
        "engineering_note": ENGINEERING_NOTE,
        "recommendations": [{"title": t, "text": body} for t, body in RECOMMENDATIONS],
    }


def _md_table(headers: List[str], rows: List[List[Any]]) -> List[str]:
    lines = ["| " + " | ".join(headers) + " |", "|" + "|".join("---" for _ in headers) + "|"]
    if not rows:
        lines.append("| Sem dados para exibir |" + " |" * (len(headers) - 1))
    for row in rows:
        lines.append("| " + " | ".join(str(v) for v in row) + " |")
    return lines


def render_report_markdown(report: Dict[str, Any]) -> str:
    header = report["header"]
    lines = [
        f"**PARA:** {header['to']}  ",
        f"**DE:** {header['from']}  ",
        f"**ASSUNTO:** {header['subject'].upper()}  ",
        f"**DATA:** {header['date']}",
        "",
        "## 1. Resumo Executivo",
        "",
    ]
    for paragraph in report["summary"]:
        lines += [paragraph, ""]

    lines += [
        "## 2. Diagnóstico Técnico",
        "",
        "### Análise por Localização (Gargalos Regionais - Top 5)",
        "",
    ]
    lines += _md_table(
        ["Localização", "Volume (Itens)", "Aging Médio (Dias)", "Status de Criticidade"],
        [[s["name"], s["count"], f"{s['avg_aging']:.1f}", s["status"]] for s in report["station_stats"]],
    )
    lines += ["", "### Análise por Responsabilidade", ""]
    lines += _md_table(
        ["Responsável", "Volume", "Aging Médio (Dias)", "Impacto no Processo"],
        [[s["name"], s["count"], f"{s['avg_aging']:.1f}", s["impact"]] for s in report["responsability_stats"]],
    )
    lines += ["", f"> **Observação de Engenharia:** {report['engineering_note']}", "", "## 3. Recomendações Práticas", ""]
    for idx, rec in enumerate(report["recommendations"], start=1):
        lines.append(f"{idx}. **{rec['title']}:** {rec['text']}")
    lines += ["", "---", "Shopee Logistics Intelligence • Documento Confidencial", ""]
    return "\n".join(lines)
