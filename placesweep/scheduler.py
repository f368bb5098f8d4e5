"""Sequential batch scheduling over search tiles."""
from __future__ import annotations

import logging
import math
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .config import SearchConfig
from .geo import Coordinate
from .records import PlaceRecord
from .reporting import ProgressReporter

logger = logging.getLogger(__name__)

FetchFn = Callable[[Coordinate], List[PlaceRecord]]
BatchHandler = Callable[[int, List[PlaceRecord]], None]


@dataclass
class ScheduleReport:
    tiles_total: int
    tiles_planned: int
    tiles_searched: int = 0
    yields: List[int] = field(default_factory=list)
    failed_tiles: List[int] = field(default_factory=list)
    cancelled: bool = False

    @property
    def empty_tiles(self) -> int:
        return sum(1 for count in self.yields if count == 0)

    def as_dict(self) -> dict:
        return {
            "tiles_total": self.tiles_total,
            "tiles_planned": self.tiles_planned,
            "tiles_searched": self.tiles_searched,
            "records_yielded": sum(self.yields),
            "empty_tiles": self.empty_tiles,
            "failed_tiles": list(self.failed_tiles),
            "cancelled": self.cancelled,
        }


def max_batches_for_limit(limit: int, per_batch_yield: int) -> int:
    return int(math.ceil(limit / max(1, per_batch_yield)))


def plan_batches(
    tiles: Sequence[Coordinate],
    limit: Optional[int],
    per_batch_yield: int,
    rng: Optional[random.Random] = None,
) -> List[Coordinate]:
    """Shrink the tile list when a result cap makes a full sweep unnecessary.

    The kept tiles are a uniform random subset so the cap does not favour the
    rows generated first.
    """
    planned = list(tiles)
    if limit is None:
        return planned
    max_batches = max_batches_for_limit(limit, per_batch_yield)
    if len(planned) <= max_batches:
        return planned
    rng = rng or random.Random()
    rng.shuffle(planned)
    logger.info(
        "Limit %s set: searching %s of %s tiles (~%s results per tile)",
        limit,
        max_batches,
        len(tiles),
        per_batch_yield,
    )
    return planned[:max_batches]


class BatchScheduler:
    """Runs one fetch per tile, strictly one at a time.

    A tile whose fetch raises contributes nothing; the loop moves on and the
    tile index is recorded in the report.
    """

    def __init__(
        self,
        batch_delay_seconds: float = 0.0,
        cooldown_every: int = 0,
        cooldown_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        progress: Optional[ProgressReporter] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.batch_delay_seconds = batch_delay_seconds
        self.cooldown_every = cooldown_every
        self.cooldown_seconds = cooldown_seconds
        self.sleep = sleep
        self.progress = progress
        self.cancel_event = cancel_event

    @classmethod
    def from_config(
        cls,
        search_config: SearchConfig,
        sleep: Callable[[float], None] = time.sleep,
        progress: Optional[ProgressReporter] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "BatchScheduler":
        return cls(
            batch_delay_seconds=search_config.batch_delay_seconds,
            cooldown_every=search_config.cooldown_every,
            cooldown_seconds=search_config.cooldown_seconds,
            sleep=sleep,
            progress=progress,
            cancel_event=cancel_event,
        )

    def run(
        self,
        tiles: Sequence[Coordinate],
        fetch: FetchFn,
        on_batch: BatchHandler,
        tiles_total: Optional[int] = None,
    ) -> ScheduleReport:
        total = len(tiles)
        report = ScheduleReport(
            tiles_total=total if tiles_total is None else tiles_total,
            tiles_planned=total,
        )
        if self.progress is not None:
            self.progress.set_stage("fetch", total_estimate=total)

        for idx, tile in enumerate(tiles):
            if self.cancel_event is not None and self.cancel_event.is_set():
                logger.warning("Run cancelled after %s/%s batches", idx, total)
                report.cancelled = True
                break

            logger.debug(
                "Querying batch %s/%s at %s, %s", idx + 1, total, tile.latitude, tile.longitude
            )
            try:
                records = list(fetch(tile))
            except Exception:
                logger.exception("Batch %s/%s failed; continuing", idx + 1, total)
                report.failed_tiles.append(idx)
                records = []

            on_batch(idx, records)
            report.tiles_searched += 1
            report.yields.append(len(records))
            if self.progress is not None:
                self.progress.advance()

            if self.batch_delay_seconds > 0:
                self.sleep(self.batch_delay_seconds)
            if self.cooldown_every and (idx + 1) % self.cooldown_every == 0 and self.cooldown_seconds > 0:
                logger.info("Cooldown %.1fs after %s batches", self.cooldown_seconds, idx + 1)
                self.sleep(self.cooldown_seconds)

        return report
