from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Tuple

from rts_core.config import Settings
from rts_core.data import ShipmentRecord, ingest_csv_text
from rts_core.errors import AccessRestrictedError, IngestionError
from rts_core.source import UploadSource, fetch_sheet_csv, read_upload_text


logger = logging.getLogger(__name__)

Fetcher = Callable[[], str]
Listener = Callable[["DatasetState"], None]


class DatasetStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class DatasetState:
    status: DatasetStatus = DatasetStatus.IDLE
    records: Tuple[ShipmentRecord, ...] = ()
    error: Optional[str] = None
    error_kind: Optional[str] = None
    source: Optional[str] = None
    loaded_at: Optional[datetime] = None

    @property
    def data(self) -> Tuple[ShipmentRecord, ...]:
        return self.records

    @property
    def loading(self) -> bool:
        return self.status == DatasetStatus.LOADING

    @property
    def needs_upload(self) -> bool:
        return self.error_kind == AccessRestrictedError.__name__

    @property
    def show_failure(self) -> bool:
        return self.status == DatasetStatus.FAILED and not self.records


@dataclass(frozen=True)
class DatasetView:
    """Read-only contract handed to presentation code."""

    data: Tuple[ShipmentRecord, ...]
    loading: bool
    error: Optional[str]
    refetch: Callable[[], "DatasetState"]
    handle_file_upload: Callable[[UploadSource], "DatasetState"]


def sheet_fetcher(settings: Settings) -> Fetcher:
    def _fetch() -> str:
        return fetch_sheet_csv(
            settings.sheet_id,
            settings.tab_name,
            proxy_url=settings.proxy_url,
            timeout=settings.request_timeout,
        )

    return _fetch


class ShipmentStore:
    """Holds the single dataset state; every transition swaps in a new state object.

    Overlapping ingestions are not serialized: whichever finishes last wins.
    """

    def __init__(self, fetcher: Fetcher) -> None:
        self._fetcher = fetcher
        self._state = DatasetState()
        self._listeners: List[Listener] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShipmentStore":
        return cls(sheet_fetcher(settings))

    @property
    def state(self) -> DatasetState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def view(self) -> DatasetView:
        state = self._state
        return DatasetView(
            data=state.records,
            loading=state.loading,
            error=state.error,
            refetch=self.refetch,
            handle_file_upload=self.handle_file_upload,
        )

    def refetch(self) -> DatasetState:
        return self._ingest(self._fetcher, source="sheet")

    def handle_file_upload(self, file: UploadSource) -> DatasetState:
        return self._ingest(lambda: read_upload_text(file), source="upload")

    def _set(self, state: DatasetState) -> DatasetState:
        self._state = state
        for listener in list(self._listeners):
            listener(state)
        return state

    def _ingest(self, load_text: Fetcher, *, source: str) -> DatasetState:
        self._set(replace(self._state, status=DatasetStatus.LOADING, error=None, error_kind=None))
        try:
            records = ingest_csv_text(load_text())
        except IngestionError as exc:
            logger.warning("Ingestion from %s failed: %s: %s", source, type(exc).__name__, exc)
            # previous records survive a failed ingestion
            return self._set(
                replace(
                    self._state,
                    status=DatasetStatus.FAILED,
                    error=exc.user_message,
                    error_kind=type(exc).__name__,
                )
            )
        logger.info("Loaded %d shipment records from %s", len(records), source)
        return self._set(
            DatasetState(
                status=DatasetStatus.READY,
                records=records,
                source=source,
                loaded_at=datetime.now(timezone.utc),
            )
        )


class RefreshScheduler:
    """Re-runs the store's network ingestion on a fixed period.

    `tick` suits rerun-driven UIs; `start`/`stop` run a background timer thread.
    """

    def __init__(self, store: ShipmentStore, interval_seconds: float = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self.store = store
        self.interval_seconds = float(interval_seconds)
        self._clock = clock
        self._last_run: Optional[float] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def last_run(self) -> Optional[float]:
        return self._last_run

    def _trigger(self, now: Optional[float] = None) -> DatasetState:
        self._last_run = self._clock() if now is None else now
        return self.store.refetch()

    def mount(self) -> DatasetState:
        return self._trigger()

    def due(self, now: Optional[float] = None) -> bool:
        if self._last_run is None:
            return True
        now = self._clock() if now is None else now
        return now - self._last_run >= self.interval_seconds

    def tick(self, now: Optional[float] = None) -> Optional[DatasetState]:
        if not self.due(now):
            return None
        return self._trigger(now)

    def seconds_until_next(self, now: Optional[float] = None) -> float:
        if self._last_run is None:
            return 0.0
        now = self._clock() if now is None else now
        return max(0.0, self.interval_seconds - (now - self._last_run))

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="rts-refresh", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.seconds_until_next()):
            self._trigger()
