import math
import random
import threading

from placesweep.geo import Coordinate
from placesweep.records import Place
from placesweep.scheduler import BatchScheduler, max_batches_for_limit, plan_batches


def make_tiles(n):
    return [Coordinate(10.0 + i * 0.001, 10.0) for i in range(n)]


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def test_plan_batches_without_limit_keeps_order():
    tiles = make_tiles(7)
    assert plan_batches(tiles, None, 20) == tiles


def test_plan_batches_shrinks_to_ceil_limit_over_yield():
    tiles = make_tiles(50)
    planned = plan_batches(tiles, 30, 20, rng=random.Random(1))
    assert len(planned) == math.ceil(30 / 20)
    assert set(planned) <= set(tiles)


def test_plan_batches_keeps_all_when_under_budget():
    tiles = make_tiles(3)
    assert plan_batches(tiles, 100, 20, rng=random.Random(1)) == tiles


def test_plan_batches_seeded_is_reproducible():
    tiles = make_tiles(40)
    first = plan_batches(tiles, 60, 20, rng=random.Random(7))
    second = plan_batches(tiles, 60, 20, rng=random.Random(7))
    assert first == second
    assert len(first) == 3
    assert tiles == make_tiles(40)


def test_max_batches_for_limit():
    assert max_batches_for_limit(1, 20) == 1
    assert max_batches_for_limit(20, 20) == 1
    assert max_batches_for_limit(21, 20) == 2
    assert max_batches_for_limit(100, 60) == 2


def test_run_fetches_each_tile_once_in_order():
    tiles = make_tiles(5)
    seen = []
    batches = []

    def fetch(tile):
        seen.append(tile)
        return [Place(payload={"id": f"p{len(seen)}"})]

    scheduler = BatchScheduler(sleep=SleepRecorder())
    report = scheduler.run(tiles, fetch, lambda idx, records: batches.append((idx, len(records))))

    assert seen == tiles
    assert batches == [(0, 1), (1, 1), (2, 1), (3, 1), (4, 1)]
    assert report.tiles_searched == 5
    assert report.yields == [1, 1, 1, 1, 1]
    assert report.failed_tiles == []


def test_run_sleeps_between_batches_and_cools_down():
    sleep = SleepRecorder()
    scheduler = BatchScheduler(
        batch_delay_seconds=0.2, cooldown_every=2, cooldown_seconds=2.0, sleep=sleep
    )

    scheduler.run(make_tiles(5), lambda tile: [], lambda idx, records: None)

    assert sleep.calls.count(0.2) == 5
    assert sleep.calls.count(2.0) == 2
    assert sleep.calls[:3] == [0.2, 0.2, 2.0]


def test_run_continues_after_failed_tile():
    calls = []

    def fetch(tile):
        calls.append(tile)
        if len(calls) == 2:
            raise RuntimeError("boom")
        return [Place(payload={"id": f"p{len(calls)}"})]

    batches = []
    scheduler = BatchScheduler(sleep=SleepRecorder())
    report = scheduler.run(make_tiles(3), fetch, lambda idx, records: batches.append(len(records)))

    assert len(calls) == 3
    assert batches == [1, 0, 1]
    assert report.failed_tiles == [1]
    assert report.empty_tiles == 1


def test_run_stops_when_cancelled():
    cancel = threading.Event()
    calls = []

    def fetch(tile):
        calls.append(tile)
        if len(calls) == 2:
            cancel.set()
        return []

    scheduler = BatchScheduler(sleep=SleepRecorder(), cancel_event=cancel)
    report = scheduler.run(make_tiles(6), fetch, lambda idx, records: None)

    assert len(calls) == 2
    assert report.cancelled is True
    assert report.tiles_searched == 2
    assert report.tiles_planned == 6
