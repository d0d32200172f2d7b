from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from rts_api.schemas import ErrorResponse, HealthResponse
from rts_core.config import load_settings
from rts_core.errors import FetchError
from rts_core.source import build_export_url, fetch_bytes


app = FastAPI(title="RTS Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)
settings = load_settings()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.get("/api/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse()


@app.get("/api/sheet", responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
def sheet(
    sheet_id: Optional[str] = Query(default=None, alias="sheetId"),
    tab_name: Optional[str] = Query(default=None, alias="tabName"),
):
    """Forward the Google Sheets CSV export server-side and return the body untouched."""
    if not sheet_id or not tab_name:
        return JSONResponse(status_code=400, content={"error": "Missing sheetId or tabName"})

    try:
        body = fetch_bytes(build_export_url(sheet_id, tab_name), timeout=settings.request_timeout)
    except FetchError as exc:
        detail = f"Failed to fetch from Google Sheets: {exc.reason}" if exc.reason else "Failed to fetch from Google Sheets"
        return PlainTextResponse(detail, status_code=exc.status_code)
    except Exception:
        logger.exception("Error fetching Google Sheet %s / %s", sheet_id, tab_name)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch from Google Sheets"})

    return Response(content=body, media_type="text/csv")
