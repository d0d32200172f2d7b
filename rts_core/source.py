from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Optional, Union
from urllib.parse import quote, urlencode

import requests

from rts_core.errors import (
    AccessRestrictedError,
    FetchError,
    IngestionError,
    ParseError,
    PrivateSheetError,
)


logger = logging.getLogger(__name__)

EXPORT_URL_TEMPLATE = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq?tqx=out:csv&sheet={sheet}"
HTML_MARKERS = ("<!doctype html", "<html")

UploadSource = Union[bytes, bytearray, str, Path, IO[bytes], IO[str]]


def build_export_url(sheet_id: str, tab_name: str) -> str:
    return EXPORT_URL_TEMPLATE.format(sheet_id=sheet_id, sheet=quote(tab_name, safe=""))


def build_proxy_url(proxy_base: str, sheet_id: str, tab_name: str) -> str:
    query = urlencode({"sheetId": sheet_id, "tabName": tab_name}, quote_via=quote)
    return f"{proxy_base.rstrip('/')}/api/sheet?{query}"


def sniff_html(text: str) -> bool:
    head = text.strip().lower()
    return any(head.startswith(marker) for marker in HTML_MARKERS)


def decode_body(payload: bytes, *, errors: str = "strict") -> str:
    return payload.decode("utf-8-sig", errors=errors)


def fetch_bytes(url: str, *, timeout: Optional[float] = None, session: Optional[requests.Session] = None) -> bytes:
    """GET a URL and return the raw body; no content checks."""
    http = session or requests
    try:
        response = http.get(url, timeout=timeout)
    except requests.Timeout as exc:
        logger.warning("Sheet fetch timed out for %s: %s", url, exc)
        raise IngestionError(str(exc) or None) from exc
    except requests.ConnectionError as exc:
        logger.warning("Sheet fetch transport failure for %s: %s", url, exc)
        raise AccessRestrictedError() from exc
    except requests.RequestException as exc:
        logger.warning("Sheet fetch failed for %s: %s", url, exc)
        raise IngestionError(str(exc) or None) from exc

    if not 200 <= response.status_code < 300:
        raise FetchError(response.status_code, reason=response.reason or "")

    return response.content


def fetch_text(url: str, *, timeout: Optional[float] = None, session: Optional[requests.Session] = None) -> str:
    return decode_body(fetch_bytes(url, timeout=timeout, session=session), errors="replace")


def fetch_sheet_csv(
    sheet_id: str,
    tab_name: str,
    *,
    proxy_url: Optional[str] = None,
    timeout: Optional[float] = None,
    session: Optional[requests.Session] = None,
) -> str:
    """Fetch the CSV export of a sheet tab and return its text.

    Raises FetchError on a non-2xx status, PrivateSheetError when the body is an
    HTML page (sharing/permissions issue), AccessRestrictedError on a bare
    transport failure and IngestionError for any other request failure.
    """
    url = build_proxy_url(proxy_url, sheet_id, tab_name) if proxy_url else build_export_url(sheet_id, tab_name)
    text = fetch_text(url, timeout=timeout, session=session)
    if sniff_html(text):
        raise PrivateSheetError()
    return text


def read_upload_text(source: UploadSource) -> str:
    """Read an uploaded CSV (bytes, path or file-like object) into text."""
    try:
        if isinstance(source, (bytes, bytearray)):
            payload = bytes(source)
        elif isinstance(source, (str, Path)):
            payload = Path(source).read_bytes()
        elif hasattr(source, "getvalue"):
            payload = source.getvalue()
        else:
            if hasattr(source, "seek"):
                source.seek(0)
            payload = source.read()
    except OSError as exc:
        raise ParseError(f"Failed to read CSV file: {exc}") from exc

    if isinstance(payload, str):
        return payload
    try:
        return decode_body(payload)
    except UnicodeDecodeError as exc:
        raise ParseError("Failed to parse CSV file: content is not valid UTF-8") from exc
