"""Pipeline orchestration."""
from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from . import config
from .aggregator import ResultAggregator
from .config import SearchConfig
from .coverage import build_coverage_report
from .geo import Coordinate, generate_tiles
from .http import HttpClient, RequestBudget, RequestMetrics
from .places_client import PaginatedFetcher, make_places_client
from .records import PlaceRecord
from .reporting import (
    ProgressReporter,
    deliver,
    ensure_dir,
    utc_now_iso,
    write_json_object,
    write_summary,
)
from .scheduler import BatchScheduler, plan_batches

logger = logging.getLogger(__name__)

FetcherLike = Union[PaginatedFetcher, Callable[[Coordinate], List[PlaceRecord]]]


@dataclass
class PipelineResult:
    results: List[PlaceRecord]
    summary: Dict[str, Any]
    output_path: Optional[str] = None


def plan_tiles(
    search_config: SearchConfig, rng: Optional[random.Random] = None
) -> Tuple[List[Coordinate], List[Coordinate]]:
    """Return (all tiles, tiles that will actually be searched)."""
    all_tiles = generate_tiles(search_config.area)
    if rng is None:
        rng = random.Random(search_config.shuffle_seed)
    planned = plan_batches(all_tiles, search_config.limit, search_config.per_batch_yield, rng=rng)
    return all_tiles, planned


def run(
    search_config: SearchConfig,
    fetcher: Optional[FetcherLike] = None,
    http_client: Optional[HttpClient] = None,
    metrics: Optional[RequestMetrics] = None,
    output_dir: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
    progress_log_every: int = 0,
    cancel_event: Optional[threading.Event] = None,
    rng: Optional[random.Random] = None,
) -> PipelineResult:
    search_config.validate()

    if metrics is None:
        metrics = RequestMetrics()

    if output_dir:
        ensure_dir(output_dir)

    progress = ProgressReporter(
        output_path=f"{output_dir}/progress.json" if output_dir else None,
        log_every=progress_log_every,
        write_interval_seconds=config.PROGRESS_WRITE_INTERVAL_SECONDS,
        logger=logger,
        counters=metrics,
    )

    budget: Optional[RequestBudget] = None
    if fetcher is None:
        budget = RequestBudget(max_requests=search_config.max_requests, metrics=metrics)
        if http_client is not None and http_client.budget is None:
            http_client.budget = budget
        fetcher = make_places_client(
            search_config, http_client=http_client, metrics=metrics, budget=budget, sleep=sleep
        )
    fetch = getattr(fetcher, "fetch", fetcher)

    started_at = utc_now_iso()
    center = search_config.center
    logger.info("Stage 1: tiling")
    logger.info("Location: %s, %s", center.latitude, center.longitude)
    logger.info(
        "Radius: %sm, Sub-radius: %sm", search_config.radius_m, search_config.sub_radius_m
    )
    all_tiles, planned = plan_tiles(search_config, rng=rng)
    logger.info("Generated %s sub-circles, searching %s", len(all_tiles), len(planned))

    logger.info("Stage 2: fetch")
    aggregator = ResultAggregator()

    def on_batch(idx: int, records: List[PlaceRecord]) -> None:
        aggregator.add(records, tile_id=f"tile_{idx}")

    scheduler = BatchScheduler.from_config(
        search_config, sleep=sleep, progress=progress, cancel_event=cancel_event
    )
    schedule = scheduler.run(planned, fetch, on_batch, tiles_total=len(all_tiles))
    if budget is not None and budget.remaining() == 0 and metrics.budget_skips:
        logger.warning(
            "Request budget of %s exhausted; %s requests skipped",
            budget.max_requests,
            metrics.budget_skips,
        )

    logger.info("Stage 3: filters")
    results = aggregator.finalize(search_config)
    logger.info("Finished! Found %s unique places, kept %s.", len(aggregator), len(results))

    summary: Dict[str, Any] = {
        "started_at": started_at,
        "finished_at": utc_now_iso(),
        "center": {"latitude": center.latitude, "longitude": center.longitude},
        "radius_m": search_config.radius_m,
        "sub_radius_m": search_config.sub_radius_m,
        "place_type": search_config.place_type,
        "api_version": search_config.api_version,
        "min_rating": search_config.min_rating,
        "limit": search_config.limit,
        "allow_closed": search_config.allow_closed,
        "schedule": schedule.as_dict(),
        "requests": metrics.as_dict(),
        "budget_remaining": budget.remaining() if budget is not None else None,
        "unique_places": len(aggregator),
        "dropped_without_identity": aggregator.dropped_without_identity,
        "rejections": dict(aggregator.rejection_counts),
        "results": len(results),
        "coverage": build_coverage_report(
            aggregator.per_tile_sets(), schedule, search_config.per_batch_yield
        ),
    }

    logger.info("Stage 4: outputs")
    output_path = deliver(search_config.output, results)
    if output_dir:
        write_json_object(f"{output_dir}/summary.json", summary)
        write_summary(f"{output_dir}/summary.txt", render_summary(summary))
    progress.set_stage("done", total_estimate=schedule.tiles_planned)
    progress.flush()

    return PipelineResult(results=results, summary=summary, output_path=output_path)


def render_summary(summary: Dict[str, Any]) -> List[str]:
    schedule = summary.get("schedule") or {}
    requests = summary.get("requests") or {}
    coverage = summary.get("coverage") or {}
    rejections = summary.get("rejections") or {}
    center = summary.get("center") or {}
    lines = [
        "Places sweep summary",
        f"Started: {summary.get('started_at')}",
        f"Finished: {summary.get('finished_at')}",
        f"Center: {center.get('latitude')}, {center.get('longitude')}",
        f"Radius: {summary.get('radius_m')}m (sub-radius {summary.get('sub_radius_m')}m)",
        f"Place type: {summary.get('place_type')} via {summary.get('api_version')} API",
        "",
        "Tiles:",
        f"- generated: {schedule.get('tiles_total')}",
        f"- planned: {schedule.get('tiles_planned')}",
        f"- searched: {schedule.get('tiles_searched')}",
        f"- empty: {schedule.get('empty_tiles')}",
        f"- failed: {len(schedule.get('failed_tiles') or [])}",
        f"- saturated: {coverage.get('saturated_tiles')}",
        f"- overlap ratio: {coverage.get('overlap_ratio')}",
        f"- cancelled: {schedule.get('cancelled')}",
        "",
        "Requests:",
        f"- network: {requests.get('network_requests')}",
        f"- pages: {requests.get('pages_fetched')}",
        f"- failed: {requests.get('failed_requests')}",
        f"- budget skips: {requests.get('budget_skips')}",
        f"- budget remaining: {summary.get('budget_remaining')}",
        "",
        "Results:",
        f"- unique places: {summary.get('unique_places')}",
        f"- dropped without id: {summary.get('dropped_without_identity')}",
    ]
    for reason in sorted(rejections):
        lines.append(f"- rejected {reason}: {rejections[reason]}")
    lines.append(f"- kept: {summary.get('results')}")
    return lines
