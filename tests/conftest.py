from __future__ import annotations

import pytest

from rts_core.data import ShipmentRecord, records_to_frame


class FakeResponse:
    def __init__(self, body: str | bytes, status_code: int = 200, reason: str = "OK"):
        self.content = body.encode("utf-8") if isinstance(body, str) else body
        self.status_code = status_code
        self.reason = reason


class FakeSession:
    """Stands in for requests; records requested URLs and replays one outcome."""

    def __init__(self, response: FakeResponse | None = None, exc: Exception | None = None):
        self.response = response
        self.exc = exc
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.fixture
def sample_records():
    return (
        ShipmentRecord("A", "SOC SP", "Carrier", 2, 3, 0, "0-5 dias", "0-5 dias", "0-5 dias", "IN_TRANSIT"),
        ShipmentRecord("B", "SOC RJ", "Logistics", 8, 12, 6, "6-10 dias", "11-20 dias", "6-10 dias", "AT_HUB"),
        ShipmentRecord("C", "HUB-RJ", "Seller", 20, 25, 10, "6-10 dias", "21-30 dias", "11-20 dias", ""),
        ShipmentRecord("D", "XPT1", "Carrier", 1, 40, 2, "0-5 dias", "31+ dias", "0-5 dias", "LOST"),
        ShipmentRecord("E", "", "", 0, 0, 0, "0-5 dias", "0-5 dias", "0-5 dias", ""),
    )


@pytest.fixture
def sample_frame(sample_records):
    return records_to_frame(sample_records)
