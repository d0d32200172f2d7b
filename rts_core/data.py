from __future__ import annotations

import io
import logging
import math
import re
from dataclasses import asdict, dataclass, fields
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from rts_core.errors import CoercionError, ParseError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShipmentRecord:
    shipment_id: str = ""
    latest_station_name: str = ""
    responsability: str = ""
    days_open_in_station: int = 0
    days_open_since_rts: int = 0
    days_stuck: int = 0
    stuck_aging: str = ""
    since_drop_aging: str = ""
    in_station_aging: str = ""
    latest_spx_status: str = ""


SHIPMENT_COLUMNS: List[str] = [f.name for f in fields(ShipmentRecord)]
NUMERIC_COLUMNS: List[str] = ["days_open_in_station", "days_open_since_rts", "days_stuck"]
TEXT_COLUMNS: List[str] = [
    "shipment_id",
    "latest_station_name",
    "responsability",
    "stuck_aging",
    "since_drop_aging",
    "in_station_aging",
]

# Upstream spelling of the carrier status column drifts between exports.
SPX_STATUS_KEYS = ["lastest_spx_status", "latest_spx_status", "spx_status"]
SPX_STATUS_CANDIDATES = ["lastestspxstatus", "latestspxstatus", "spxstatus", "statusspx", "status"]

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


# ---------------- Headers ----------------
def normalize_header(token: object) -> str:
    """'Days Open  In Station' -> 'days_open_in_station'."""
    return _WHITESPACE_RE.sub("_", str(token).strip().lower())


def dedupe_headers(headers: Iterable[str]) -> List[str]:
    used: set = set()
    counts: Dict[str, int] = {}
    out: List[str] = []
    for header in headers:
        name = header
        if name in used:
            n = counts.get(header, 0)
            while name in used:
                n += 1
                name = f"{header}_{n}"
            counts[header] = n
        used.add(name)
        out.append(name)
    return out


def compact_key(key: object) -> str:
    return _NON_ALNUM_RE.sub("", str(key).lower())


# ---------------- Parsing ----------------
def _read_cells(text: str, **kwargs) -> pd.DataFrame:
    return pd.read_csv(
        io.StringIO(text),
        header=None,
        dtype=str,
        keep_default_na=False,
        na_filter=False,
        skip_blank_lines=True,
        engine="python",
        **kwargs,
    )


def parse_csv_text(text: str) -> List[Dict[str, str]]:
    """Parse delimited text with a header row into header-keyed string rows.

    Blank lines are skipped and every cell stays a string; short rows are padded
    with "" and cells beyond the header width are dropped.
    """
    if text is None or not str(text).strip():
        raise ParseError("Failed to parse CSV data: no header row found")
    try:
        width = _read_cells(text, nrows=1).shape[1]
        raw = _read_cells(text, on_bad_lines=lambda cells: cells[:width])
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as exc:
        raise ParseError(f"Failed to parse CSV data: {exc}") from exc

    if raw.empty:
        raise ParseError("Failed to parse CSV data: no header row found")
    raw = raw.fillna("")

    headers = dedupe_headers(normalize_header(h) for h in raw.iloc[0].tolist())
    body = raw.iloc[1:]
    return [dict(zip(headers, values)) for values in body.itertuples(index=False, name=None)]


# ---------------- Field reconciliation ----------------
def _present(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return str(value) != ""


def extract_spx_status(row: Mapping[str, object]) -> str:
    """Resolve the carrier status from whichever header variant the export used.

    Precedence is fixed: exact keys first, then compacted-key candidates in
    order, then the first key mentioning both 'spx' and 'status', then the first
    key mentioning 'spx'. Always returns a string.
    """
    for key in SPX_STATUS_KEYS:
        if key in row and _present(row[key]):
            return str(row[key])

    compacted: List[Tuple[object, str]] = [(key, compact_key(key)) for key in row.keys()]

    for candidate in SPX_STATUS_CANDIDATES:
        match = next((key for key, norm in compacted if norm == candidate), None)
        if match is not None and _present(row[match]):
            return str(row[match])

    partial = next((key for key, norm in compacted if "spx" in norm and "status" in norm), None)
    if partial is not None and _present(row[partial]):
        return str(row[partial])

    spx_only = next((key for key, norm in compacted if "spx" in norm), None)
    if spx_only is not None and _present(row[spx_only]):
        return str(row[spx_only])

    return ""


# ---------------- Coercion ----------------
def coerce_count(value: object) -> int:
    """Day counts: anything unparsable, negative or non-finite becomes 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0
    number = pd.to_numeric(value, errors="coerce")
    if pd.isna(number):
        return 0
    number = float(number)
    if not math.isfinite(number) or number < 0:
        return 0
    return int(number)


def coerce_text(value: object) -> str:
    if not _present(value):
        return ""
    return str(value)


def coerce_record(row: Mapping[str, object]) -> ShipmentRecord:
    values: Dict[str, object] = {col: coerce_text(row.get(col)) for col in TEXT_COLUMNS}
    values.update({col: coerce_count(row.get(col)) for col in NUMERIC_COLUMNS})
    values["latest_spx_status"] = extract_spx_status(row)
    return ShipmentRecord(**values)


def coerce_records(rows: Sequence[Mapping[str, object]]) -> Tuple[ShipmentRecord, ...]:
    out: List[ShipmentRecord] = []
    for idx, row in enumerate(rows):
        try:
            out.append(coerce_record(row))
        except Exception as exc:
            raise CoercionError(f"Failed to parse data (row {idx + 1}): {exc}") from exc
    return tuple(out)


def ingest_csv_text(text: str) -> Tuple[ShipmentRecord, ...]:
    rows = parse_csv_text(text)
    records = coerce_records(rows)
    logger.debug("Parsed %d rows into %d shipment records", len(rows), len(records))
    return records


# ---------------- Frames ----------------
def empty_shipment_frame() -> pd.DataFrame:
    return pd.DataFrame(
        {col: pd.Series(dtype="int64" if col in NUMERIC_COLUMNS else "object") for col in SHIPMENT_COLUMNS}
    )


def records_to_frame(records: Iterable[ShipmentRecord]) -> pd.DataFrame:
    rows = [asdict(r) for r in records]
    if not rows:
        return empty_shipment_frame()
    df = pd.DataFrame(rows, columns=SHIPMENT_COLUMNS)
    for col in NUMERIC_COLUMNS:
        df[col] = df[col].astype("int64")
    return df


def distinct_values(df: pd.DataFrame, col: str) -> List[str]:
    """Non-empty distinct values in first-seen order."""
    if df.empty or col not in df.columns:
        return []
    values = df[col].astype(str)
    return [v for v in values.drop_duplicates().tolist() if v]


def count_by(df: pd.DataFrame, col: str) -> List[Dict[str, object]]:
    """[{'name': value, 'value': count}] sorted by count desc, ties in first-seen order."""
    if df.empty or col not in df.columns:
        return []
    values = df[col].astype(str)
    counts = values.groupby(values, sort=False).size()
    counts = counts.sort_values(ascending=False, kind="mergesort")
    return [{"name": str(name), "value": int(n)} for name, n in counts.items()]


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def safe_mean(series: pd.Series) -> float:
    if series.empty:
        return 0.0
    return float(series.mean())


def percent(part: int, whole: int, ndigits: int = 1) -> float:
    if not whole:
        return 0.0
    return round_half_up(part / whole * 100, ndigits) or 0.0
