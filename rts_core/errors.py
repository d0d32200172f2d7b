from __future__ import annotations

from typing import Optional


class IngestionError(Exception):
    """Base class for every failure between the data source and the record set."""

    default_message = "Failed to fetch data"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        return str(self)


class FetchError(IngestionError):
    def __init__(self, status_code: int, message: Optional[str] = None, *, reason: str = "") -> None:
        self.status_code = int(status_code)
        self.reason = reason
        super().__init__(message or f"HTTP error! status: {self.status_code}")


class PrivateSheetError(IngestionError):
    default_message = (
        "Received HTML instead of CSV. The Google Sheet might be private. "
        "Please publish it to the web (File > Share > Publish to web)."
    )


class AccessRestrictedError(IngestionError):
    default_message = (
        "The Google Sheet is restricted and cannot be accessed directly by the dashboard. "
        "Download it as CSV (File > Download > Comma-separated values) and upload it here."
    )


class ParseError(IngestionError):
    default_message = "Failed to parse CSV data"


class CoercionError(IngestionError):
    default_message = "Failed to parse data"
