"""Pytest configuration and fixtures."""

import threading
import time
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from queueprint.config import AgentConfig
from queueprint.errors import DeliveryError
from queueprint.printing.base import LABEL_LAYOUT
from queueprint.store.sql import PrintJobRow, SqlJobStore

BASE_TIME = datetime(2024, 5, 1, 9, 0, 0)


class FakePrinter:
    """Printer backend that records submissions instead of printing."""

    is_available = True

    def __init__(self, results: list | None = None):
        self.calls: list[dict] = []
        self.results = list(results or [])

    def get_printers(self) -> list[dict]:
        return [{"name": "Label_Printer", "state": 3, "state_message": "", "is_default": True}]

    def get_default_printer(self) -> str | None:
        return "Label_Printer"

    def get_printer_status(self, printer_name: str | None = None) -> str:
        return "ready"

    def print_file(self, path, printer_name, layout=LABEL_LAYOUT, title="", wait=False) -> bool:
        self.calls.append(
            {
                "path": Path(path),
                "existed": Path(path).exists(),
                "content": Path(path).read_bytes() if Path(path).exists() else None,
                "printer_name": printer_name,
                "layout": layout,
                "wait": wait,
            }
        )
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return True


class FakeExecutor:
    """Executor that fails a fixed number of times and tracks overlap."""

    def __init__(self, failures: int = 0, error: Exception | None = None, delay: float = 0):
        self.failures = failures
        self.error = error or DeliveryError("printer offline")
        self.delay = delay
        self.calls: list[dict] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def deliver(self, label_url, printer_name=None, silent=True, layout=LABEL_LAYOUT) -> None:
        with self._lock:
            self.calls.append(
                {
                    "label_url": label_url,
                    "printer_name": printer_name,
                    "silent": silent,
                    "layout": layout,
                }
            )
            attempt = len(self.calls)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if attempt <= self.failures:
                raise self.error
        finally:
            with self._lock:
                self.active -= 1


class ManualTimer:
    """threading.Timer stand-in that only fires when the test says so."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self):
        return self.function(*self.args, **self.kwargs)


class TimerRecorder:
    """Timer factory that keeps every timer it builds."""

    def __init__(self):
        self.timers: list[ManualTimer] = []

    def __call__(self, interval, function, args=None, kwargs=None) -> ManualTimer:
        timer = ManualTimer(interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> ManualTimer:
        return self.timers[-1]


@pytest.fixture
def sql_store(tmp_path: Path) -> Generator[SqlJobStore, None, None]:
    """File-backed SQLite store so several threads can share it."""
    store = SqlJobStore.from_url(f"sqlite:///{tmp_path / 'jobs.db'}")
    store.create_tables()
    yield store
    store.engine.dispose()


def seed_job(store: SqlJobStore, minutes: int = 0, **fields) -> str:
    """Insert a job row and return its id."""
    fields.setdefault("label_url", "https://labels.example.com/label.pdf")
    fields.setdefault("order_id", "ORDER-1")
    fields.setdefault("created_at", BASE_TIME + timedelta(minutes=minutes))
    with store.session_factory() as session:
        row = PrintJobRow(**fields)
        session.add(row)
        session.commit()
        return row.id


@pytest.fixture
def fake_printer() -> FakePrinter:
    """Printer that accepts everything."""
    return FakePrinter()


@pytest.fixture
def timers() -> TimerRecorder:
    """Manual retry timers."""
    return TimerRecorder()


@pytest.fixture
def agent_config(tmp_path: Path) -> AgentConfig:
    """Configured agent settings stored under tmp_path."""
    return AgentConfig(
        agent_id="packing-1",
        printer_name="Label_Printer",
        database_url=f"sqlite:///{tmp_path / 'jobs.db'}",
        config_path=tmp_path / "settings.json",
        poll_interval=1,
    )


@pytest.fixture
def seed(sql_store: SqlJobStore):
    """Insert job rows into the SQLite store."""

    def _seed(minutes: int = 0, **fields) -> str:
        return seed_job(sql_store, minutes, **fields)

    return _seed


@pytest.fixture
def make_executor():
    """Build a FakeExecutor."""
    return FakeExecutor


@pytest.fixture
def make_printer():
    """Build a FakePrinter with scripted results."""
    return FakePrinter
