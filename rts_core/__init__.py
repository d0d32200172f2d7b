"""Core (UI-agnostic) RTS dashboard logic.

This package contains:
- source resolution (Google Sheets CSV export or uploaded file -> text)
- parsing, header reconciliation and record coercion (text -> ShipmentRecord)
- the dataset state container and refresh scheduler
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
