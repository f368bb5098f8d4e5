"""Output reporting helpers."""
from __future__ import annotations

import csv
import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, TextIO, Union

from .records import LegacyPlace, PlaceRecord

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("csv", "json")

LEGACY_CSV_FIELDS = ["name", "address", "rating", "user_ratings_total", "place_id", "lat", "lng"]
PLACES_CSV_FIELDS = [
    "id",
    "name",
    "address",
    "rating",
    "user_rating_count",
    "lat",
    "lng",
    "business_status",
]


class RequestCounters(Protocol):
    requests_count: int


@dataclass(frozen=True)
class ToFile:
    format: str
    path: Optional[str] = None

    def resolved_path(self) -> str:
        return self.path or f"places_output.{self.format}"


@dataclass(frozen=True)
class ToCallback:
    handler: Callable[[List[PlaceRecord]], Any]


OutputDisposition = Union[ToFile, ToCallback]


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: str, text: str) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        f.write(text)


def csv_fieldnames(records: Sequence[PlaceRecord]) -> List[str]:
    if records and isinstance(records[0], LegacyPlace):
        return list(LEGACY_CSV_FIELDS)
    return list(PLACES_CSV_FIELDS)


def write_results_csv(path: str, records: Iterable[PlaceRecord]) -> None:
    records = list(records)
    fieldnames = csv_fieldnames(records)
    with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
        writer.writeheader()
        for record in records:
            writer.writerow(record.summary_row())


def write_results_json(path: str, records: Iterable[PlaceRecord]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump([r.payload for r in records], f, ensure_ascii=False, indent=2)


def write_json_object(path: str, payload: Dict[str, Any]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def write_summary(path: str, summary_lines: List[str]) -> None:
    atomic_write_text(path, "\n".join(summary_lines))


def deliver(disposition: OutputDisposition, records: List[PlaceRecord]) -> Optional[str]:
    """Hand the final records to the configured sink.

    Returns the written path for file outputs, None for callbacks.
    """
    if isinstance(disposition, ToCallback):
        disposition.handler(records)
        return None
    if isinstance(disposition, ToFile):
        path = disposition.resolved_path()
        if disposition.format == "json":
            write_results_json(path, records)
        elif disposition.format == "csv":
            write_results_csv(path, records)
        else:
            raise ValueError(f"Unknown output format: {disposition.format}")
        logger.info("Saved %s results to %s", len(records), path)
        return path
    raise TypeError(f"Unsupported output disposition: {disposition!r}")


class ProgressReporter:
    def __init__(
        self,
        output_path: Optional[str],
        log_every: int = 0,
        write_interval_seconds: float = 5.0,
        logger: Optional[logging.Logger] = None,
        counters: Optional[RequestCounters] = None,
    ) -> None:
        self.output_path = output_path
        self.log_every = max(1, int(log_every)) if log_every else 0
        self.write_interval_seconds = float(write_interval_seconds)
        self.logger = logger or logging.getLogger(__name__)
        self._counters = counters
        self.stage = "init"
        self.processed_count = 0
        self.total_estimate: Optional[int] = None
        self._next_log = self.log_every if self.log_every else 0
        self._last_write = 0.0

    def set_stage(self, stage: str, total_estimate: Optional[int] = None) -> None:
        self.stage = stage
        self.processed_count = 0
        self.total_estimate = total_estimate
        self._next_log = self.log_every if self.log_every else 0
        self._write_if_due(force=True)

    def advance(self, count: int = 1) -> None:
        if count <= 0:
            return
        self.processed_count += count
        if self.log_every and self.processed_count >= self._next_log:
            requests_count = self._get_requests()
            if self.total_estimate:
                percentage = 100.0 * self.processed_count / self.total_estimate
                self.logger.info(
                    "Progress: %.1f%% (%s/%s batches) stage=%s requests=%s",
                    percentage,
                    self.processed_count,
                    self.total_estimate,
                    self.stage,
                    requests_count,
                )
            else:
                self.logger.info(
                    "Progress: stage=%s processed=%s requests=%s",
                    self.stage,
                    self.processed_count,
                    requests_count,
                )
            self._next_log += self.log_every
        self._write_if_due()

    def flush(self) -> None:
        self._write_if_due(force=True)

    def _get_requests(self) -> int:
        if self._counters is None:
            return 0
        return int(getattr(self._counters, "requests_count", 0))

    def _write_if_due(self, force: bool = False) -> None:
        if not self.output_path:
            return
        now = time.monotonic()
        if not force and (now - self._last_write) < self.write_interval_seconds:
            return
        payload = {
            "stage": self.stage,
            "processed_count": self.processed_count,
            "total_estimate": self.total_estimate,
            "requests": self._get_requests(),
            "timestamp": utc_now_iso(),
        }
        with atomic_writer(self.output_path, mode="w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        self._last_write = now
