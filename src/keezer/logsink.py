"""Control log: one record per control tick.

The control log is the appliance's history (what the temperatures were,
what power was commanded and why). It is separate from the diagnostic
messages sent through the logging module.
"""

import csv
import logging
import queue
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, TextIO

from pydantic import BaseModel, ConfigDict, Field

from keezer.base.entity import Entity
from keezer.base.process import NS_PER_SECOND

logger = logging.getLogger(__name__)

NS_PER_MS = NS_PER_SECOND // 1000


def _format_temperature(value: float | None) -> str:
    if value is None:
        return ""
    return f"{value:.3f}"


class LogRecord(BaseModel):
    """What the control loop did on one tick."""

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(description="Tick time in nanoseconds")
    power_on: bool | None = Field(description="Power level after the tick")
    enclosure_temp: float | None = None
    secondary_temp: float | None = None
    mode: str = "enclosure"
    reason: str = Field(description="'control', 'protection' or 'shutdown'")
    note: str = Field(
        default="",
        description="Why protection intervened; blank when unchanged "
        "from the previous record",
    )

    def to_csv_row(self) -> list[str]:
        """Render as a CSV row.

        Columns: timestamp_ms,power,enclosure,secondary,mode,reason,note
        """
        if self.power_on is None:
            power = ""
        else:
            power = "1" if self.power_on else "0"
        return [
            str(self.timestamp // NS_PER_MS),
            power,
            _format_temperature(self.enclosure_temp),
            _format_temperature(self.secondary_temp),
            self.mode,
            self.reason,
            self.note,
        ]


class LogSink(Entity, ABC):
    """Destination for control log records.

    append() is called from inside the control tick and must not block
    on I/O.
    """

    @abstractmethod
    def append(self, record: LogRecord) -> None:
        """Queue one record."""

    def close(self) -> None:
        """Flush queued records and release resources.

        Default implementation does nothing.
        """


class MemoryLogSink(LogSink):
    """Keeps records in memory, for simulations and tests."""

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        self._records: list[LogRecord] = []
        self._closed = False

    @property
    def records(self) -> list[LogRecord]:
        return list(self._records)

    @property
    def closed(self) -> bool:
        return self._closed

    def append(self, record: LogRecord) -> None:
        self._records.append(record)

    def close(self) -> None:
        self._closed = True


class CsvFileLogSink(LogSink):
    """Appends records as CSV lines from a background writer thread.

    The first candidate path that can be opened for appending is used;
    missing parent directories are created. If none can be opened the
    failure is logged and records are discarded, so a full or read-only
    disk never stops temperature control.
    """

    paths: list[str] = Field(min_length=1, description="Candidate log files")
    close_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long close() waits for queued records",
    )

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        self._queue: queue.Queue[LogRecord | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._closed = False
        self._path: str | None = None

    @property
    def path(self) -> str | None:
        """File being written, once the writer has opened one."""
        return self._path

    def append(self, record: LogRecord) -> None:
        with self._lock:
            if self._closed:
                logger.debug(f"Control log closed, dropping record {record}")
                return
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._write_loop,
                    name=f"ControlLog-{self.name}",
                    daemon=True,
                )
                self._thread.start()
            self._queue.put(record)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread

        if thread is None:
            return
        self._queue.put(None)
        thread.join(timeout=self.close_timeout_seconds)
        if thread.is_alive():
            logger.warning("Control log writer did not drain within timeout")

    def _open(self) -> TextIO | None:
        for candidate in self.paths:
            path = Path(candidate).expanduser()
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                handle = path.open("a", newline="", encoding="utf-8")
            except OSError as e:
                logger.warning(f"Cannot open {path} for the control log: {e}")
                continue
            self._path = str(path)
            logger.info(f"Writing control log to {path}")
            return handle

        logger.error(
            f"No usable control log path in {self.paths}; "
            "control log disabled"
        )
        return None

    def _write_loop(self) -> None:
        handle = self._open()
        writer = csv.writer(handle) if handle is not None else None
        try:
            while True:
                record = self._queue.get()
                if record is None:
                    break
                if writer is None:
                    continue
                try:
                    writer.writerow(record.to_csv_row())
                    handle.flush()
                except OSError as e:
                    logger.error(f"Writing control log failed: {e}")
        finally:
            if handle is not None:
                handle.close()
