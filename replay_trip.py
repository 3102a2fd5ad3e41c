#!/usr/bin/env python3
"""Replay a recorded trip through the tracking engine and print its eco score.

The input is either a JSON list of samples
(``{"lat", "lng", "timestamp", "speed"?, "accuracy"?}``) or a GeoJSON
LineString (bare geometry or Feature) whose vertices are replayed one per
tick. By default the recorded path doubles as the planned route and the
trip is kept in memory; ``--osrm`` plans the route with OSRM and ``--mongo``
persists the trip.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any

from core.exceptions import EcoTrackError, ValidationError
from core.http.session import cleanup_session
from core.http.weather import WeatherClient
from core.spatial import GeometryService
from routing.constants import ROUTE_SOURCE_RECORDED
from routing.models import Route
from routing.service import RoutingService, profile_for_mode
from tracking.models import GeoSample
from tracking.services.location_sources import ReplayLocationSource
from tracking.services.tracking_service import TripTrackingController
from trips.services.trip_store import BeanieTripStore, InMemoryTripStore

logger = logging.getLogger("replay_trip")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replay a recorded trip and compute its eco score.",
    )
    parser.add_argument("path", type=Path, help="Recorded samples or GeoJSON path.")
    parser.add_argument(
        "--mode",
        default="CAR",
        help="Travel mode: PUBLIC, WALK, CYCLE, CAR or BIKE (default: CAR).",
    )
    parser.add_argument("--trip-id", default=None)
    parser.add_argument("--user-id", default=None)
    parser.add_argument(
        "--tick-ms",
        type=int,
        default=1000,
        help="Spacing of replayed GeoJSON vertices in milliseconds.",
    )
    parser.add_argument(
        "--time-scale",
        type=float,
        default=0.0,
        help="Playback speed-up; 0 replays without waiting between ticks.",
    )
    parser.add_argument(
        "--eta-minutes",
        type=float,
        default=None,
        help="Planned duration for the recorded route.",
    )
    parser.add_argument("--weather", default=None, help="Weather condition, e.g. rain.")
    parser.add_argument("--temp", type=float, default=None, help="Temperature in °C.")
    parser.add_argument("--ticket-verified", action="store_true")
    parser.add_argument("--steps-match", action="store_true")
    parser.add_argument(
        "--osrm",
        action="store_true",
        help="Plan the route with OSRM instead of using the recorded path.",
    )
    parser.add_argument(
        "--mongo",
        action="store_true",
        help="Persist the trip to MongoDB instead of keeping it in memory.",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def load_source(
    path: Path,
    *,
    tick_ms: int,
    time_scale: float,
) -> ReplayLocationSource:
    data: Any = json.loads(path.read_text(encoding="utf-8"))

    if isinstance(data, dict) and data.get("type") == "Feature":
        data = data.get("geometry")
    if isinstance(data, dict):
        points = GeometryService.coordinates_from_geometry(data)
        if len(points) < 2:
            msg = f"{path} holds no usable LineString"
            raise ValidationError(msg)
        return ReplayLocationSource.from_points(
            points,
            tick_ms=tick_ms,
            time_scale=time_scale,
        )

    if isinstance(data, list):
        samples = [GeoSample.from_dict(item) for item in data]
        samples.sort(key=lambda s: s.timestamp_ms)
        if len(samples) < 2:
            msg = f"{path} holds fewer than two samples"
            raise ValidationError(msg)
        return ReplayLocationSource(samples, tick_ms=tick_ms, time_scale=time_scale)

    msg = f"Unrecognized trip file: {path}"
    raise ValidationError(msg)


async def replay(args: argparse.Namespace) -> dict[str, Any] | None:
    source = load_source(args.path, tick_ms=args.tick_ms, time_scale=args.time_scale)
    origin = source.samples[0].position
    destination = source.samples[-1].position
    mode = args.mode.upper()

    route = None
    if not args.osrm:
        route = Route(
            points=tuple(sample.position for sample in source.samples),
            duration_s=args.eta_minutes * 60 if args.eta_minutes else None,
            profile=profile_for_mode(mode),
            source=ROUTE_SOURCE_RECORDED,
        )

    if args.mongo:
        from db.manager import init_database

        await init_database()
        store = BeanieTripStore()
    else:
        store = InMemoryTripStore()

    context: dict[str, Any] = {
        "verification": {
            "ticketVerified": args.ticket_verified,
            "stepsMatch": args.steps_match,
        },
    }
    if args.weather or args.temp is not None:
        context["weather"] = {"condition": args.weather, "temp": args.temp}

    weather_client = WeatherClient()
    controller = TripTrackingController(
        RoutingService(),
        store,
        weather_provider=weather_client if weather_client.configured else None,
    )
    await controller.start(
        args.trip_id or uuid.uuid4().hex,
        source,
        origin,
        destination,
        mode,
        route=route,
        user_id=args.user_id,
        context=context,
    )

    await source.join()
    await controller.drain()
    if controller.completed_trip is None and controller.state.is_active:
        logger.info("Replay ended before arrival; finishing trip by hand")
        await controller.finish()

    completed = await controller.wait()
    if completed is None:
        return None
    return completed.model_dump(by_alias=True, mode="json")


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        result = await replay(args)
    except EcoTrackError as exc:
        logger.error("Replay failed: %s", exc.message)
        return 1
    finally:
        await cleanup_session()

    if result is None:
        logger.error("Trip was not completed")
        return 1

    logger.info("Eco score: %s", result["ecoScore"]["ecoScore"])
    print(json.dumps(result, indent=2))
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
