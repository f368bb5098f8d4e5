"""CLI entrypoint."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from placesweep import config
from placesweep.config import ConfigError, SearchConfig
from placesweep.geo import Coordinate
from placesweep.http import HttpClient, RequestBudget, RequestMetrics
from placesweep.pipeline import plan_tiles, run
from placesweep.places_client import make_places_client
from placesweep.reporting import ToFile


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def _split_csv(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sweep a circular area for Google Places by tiling it into sub-circles"
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--preflight", action="store_true", help="Run offline checks only")
    group.add_argument(
        "--preflight-online",
        action="store_true",
        help="Run offline checks + one Places call at the center",
    )
    group.add_argument(
        "--dry-run", action="store_true", help="Plan tiles and print the request estimate, no network"
    )
    parser.add_argument("--config", type=str, default=None, help="Path to search_config.json")
    parser.add_argument("--lat", type=float, default=None, help="Center latitude")
    parser.add_argument("--lon", type=float, default=None, help="Center longitude")
    parser.add_argument("--radius", type=float, default=None, help="Search radius in meters")
    parser.add_argument("--sub-radius", type=float, default=None, help="Tile radius in meters")
    parser.add_argument("--type", dest="place_type", type=str, default=None)
    parser.add_argument("--min-rating", type=float, default=None)
    parser.add_argument("--limit", type=int, default=None, help="Maximum number of results")
    parser.add_argument("--allow-closed", action="store_true", default=None)
    parser.add_argument("--fields", type=str, default=None, help="Comma-separated Places fields")
    parser.add_argument(
        "--exclude-types", type=str, default=None, help="Comma-separated excluded primary types"
    )
    parser.add_argument("--api-version", choices=list(config.API_VERSIONS), default=None)
    parser.add_argument("--api-key", type=str, default=None)
    parser.add_argument("--format", choices=["csv", "json"], default="json")
    parser.add_argument("--output", type=str, default=None, help="Output file path")
    parser.add_argument("--out", type=str, default=None, help="Directory for summary/progress files")
    parser.add_argument("--seed", type=int, default=None, help="Seed for tile down-sampling")
    parser.add_argument("--max-requests", type=int, default=None)
    parser.add_argument("--http-retries", type=int, default=None)
    parser.add_argument("--verbose", action="store_true", help="Log each stage")
    parser.add_argument("--progress", action="store_true", help="Log progress after every batch")
    return parser.parse_args(argv)


def build_search_config(args: argparse.Namespace, api_key: Optional[str]) -> SearchConfig:
    data: Dict[str, Any] = config.load_search_config(args.config) or {}
    if args.lat is not None and args.lon is not None:
        data["center"] = Coordinate(args.lat, args.lon)
    elif "center" not in data:
        raise ConfigError("A center is required: pass --lat/--lon or set it in search_config.json")

    output = ToFile(format=args.format, path=args.output)
    return SearchConfig.from_mapping(
        data,
        radius_m=args.radius,
        sub_radius_m=args.sub_radius,
        place_type=args.place_type,
        min_rating=args.min_rating,
        limit=args.limit,
        allow_closed=args.allow_closed,
        fields=_split_csv(args.fields),
        excluded_primary_types=_split_csv(args.exclude_types),
        api_version=args.api_version,
        api_key=api_key,
        output=output,
        shuffle_seed=args.seed,
        max_requests=args.max_requests,
        http_retry_max=args.http_retries,
    )


def run_preflight(search_config: SearchConfig, online: bool) -> int:
    ok = True
    try:
        search_config.validate()
        print("Config: OK")
    except ConfigError as exc:
        print(f"Config: FAIL ({exc})")
        ok = False

    if ok:
        all_tiles, planned = plan_tiles(search_config)
        print(f"Tiles: {len(all_tiles)} generated, {len(planned)} planned")

    if online:
        if not ok:
            print("Online Places call: SKIPPED (invalid config)")
        else:
            metrics = RequestMetrics()
            budget = RequestBudget(max_requests=1, metrics=metrics)
            http_client = HttpClient(
                search_config.api_key or "",
                timeout=config.HTTP_TIMEOUT_SECONDS,
                retry_max=1,
                budget=budget,
            )
            client = make_places_client(
                search_config.with_overrides(max_pages_per_tile=1),
                http_client=http_client,
                metrics=metrics,
            )
            places = client.fetch(search_config.center)
            if metrics.failed_requests:
                print("Online Places call: FAIL (see log)")
                ok = False
            else:
                print(f"Online Places call: OK ({len(places)} places)")

    print("Preflight: PASS" if ok else "Preflight: FAIL")
    return 0 if ok else 1


def run_dry(search_config: SearchConfig) -> int:
    all_tiles, planned = plan_tiles(search_config)
    pages = 1 if search_config.api_version == config.API_VERSION_NEW else search_config.max_pages_per_tile
    print(f"Tiles generated: {len(all_tiles)}")
    print(f"Tiles planned: {len(planned)}")
    print(f"Max requests: {len(planned) * pages}")
    for tile in planned:
        print(f"{tile.latitude:.6f},{tile.longitude:.6f}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    args = parse_args(argv)
    level = logging.INFO if (args.verbose or args.progress) else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    api_key = args.api_key or os.environ.get(config.API_KEY_ENV)
    try:
        search_config = build_search_config(args, api_key)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.preflight or args.preflight_online:
        return run_preflight(search_config, online=args.preflight_online)

    if args.dry_run:
        try:
            return run_dry(search_config)
        except ValueError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    try:
        result = run(
            search_config,
            output_dir=args.out,
            progress_log_every=1 if args.progress else 0,
        )
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Done. {len(result.results)} places written to {result.output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
