"""
Orienteer CLI entrypoint.

This CLI is intended for quick local demos and debugging without a game client:
browse the local catalog, measure distances, replay a recorded walk through a full
`HuntSession`, or serve the HTTP front.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any

from orienteer.catalog.loader import load_hunts, load_track
from orienteer.catalog.source import HuntCatalog
from orienteer.checkin.local import LocalHuntBackend, LocalHuntService
from orienteer.config.settings import get_settings
from orienteer.core.geo import GeoPoint, bearing_deg, distance_m, format_distance
from orienteer.core.logging import configure_logging
from orienteer.domain.models import HuntFilter
from orienteer.errors import HuntError
from orienteer.location.source import ReplayLocationSource
from orienteer.location.supervisor import LocationStreamSupervisor
from orienteer.proximity.evaluator import ProximityEvaluator
from orienteer.remote.dto import HuntDto
from orienteer.session import HuntSession

logger = logging.getLogger(__name__)


def _cmd_hunts(args: argparse.Namespace) -> int:
    """Handle the `hunts` subcommand."""
    settings = get_settings()
    hunt_filter = HuntFilter(search=args.search, difficulty=args.difficulty, active_only=args.active)
    hunts = [h for h in load_hunts(settings.catalog.path) if hunt_filter.matches(h)]

    if args.json:
        payload = [HuntDto.from_domain(h).model_dump(mode="json") for h in hunts]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    if not hunts:
        print("No hunts match.")
        return 0
    for hunt in hunts:
        state = "" if hunt.active else "  (inactive)"
        print(
            f"{hunt.id}: {hunt.name} [{hunt.difficulty.value}] "
            f"{hunt.waypoint_count} waypoints, {hunt.total_points} pts, ~{hunt.estimated_duration_minutes} min{state}"
        )
    return 0


def _cmd_distance(args: argparse.Namespace) -> int:
    a = GeoPoint(latitude=args.lat1, longitude=args.lon1)
    b = GeoPoint(latitude=args.lat2, longitude=args.lon2)
    meters = distance_m(a, b)
    print(f"{meters:.1f} m ({format_distance(meters)}), bearing {bearing_deg(a, b):.0f} deg")
    return 0


async def _simulate(args: argparse.Namespace) -> int:
    settings = get_settings()
    service = LocalHuntService(load_hunts(settings.catalog.path), radius_m=settings.checkin.radius_m)
    backend = LocalHuntBackend(service, args.player)
    source = ReplayLocationSource(load_track(args.track), delay_seconds=args.delay)
    # Replayed samples are already spaced out; only the distance gate applies.
    supervisor = LocationStreamSupervisor(
        source,
        min_interval_ms=0,
        min_distance_m=settings.location.min_distance_m,
    )
    session = HuntSession(
        args.player,
        HuntCatalog(backend),
        backend,
        evaluator=ProximityEvaluator(settings.checkin.radius_m),
        supervisor=supervisor,
    )

    await session.start_hunt(args.hunt_id)
    view = session.get_active_hunt_view()
    print(f"Started {view.hunt.name} ({view.hunt.waypoint_count} waypoints, {view.hunt.total_points} pts)")

    idle_timeout = max(1.0, args.delay * 5)
    async with supervisor.open() as stream:
        while True:
            try:
                sample = await asyncio.wait_for(stream.__anext__(), timeout=idle_timeout)
            except (StopAsyncIteration, asyncio.TimeoutError):
                break
            reading = session.update_position(sample)
            target = session.get_active_hunt_view().target
            marker = "  <- in range" if reading.eligible else ""
            print(
                f"  {sample.latitude:.5f},{sample.longitude:.5f}  "
                f"{target.name if target else '-'}: {format_distance(reading.distance_m)}{marker}"
            )
            if not reading.eligible:
                continue
            try:
                outcome = await session.attempt_check_in()
            except HuntError as exc:
                print(f"  check-in failed: {exc.message}")
                continue
            print(f"  check-in: {outcome.message} (+{outcome.points_earned})")
            if outcome.completed:
                break

    view = session.get_active_hunt_view()
    progress = view.progress
    print(
        f"{view.status.value}: {progress.earned_points}/{view.hunt.total_points} pts, "
        f"{len(progress.visited_waypoint_ids)}/{view.hunt.waypoint_count} waypoints, "
        f"elapsed {view.elapsed_display()}"
    )
    return 0 if progress.completed else 1


def _cmd_simulate(args: argparse.Namespace) -> int:
    """Handle the `simulate` subcommand."""
    try:
        return asyncio.run(_simulate(args))
    except HuntError as exc:
        print(f"error: {exc.message}")
        return 2


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    host = args.host or settings.server.host
    port = args.port or settings.server.port
    logger.info("Serving Orienteer API on %s:%d", host, port)
    uvicorn.run("orienteer.api.app:app", host=host, port=port, log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the Orienteer CLI."""
    parser = argparse.ArgumentParser(prog="orienteer")
    sub = parser.add_subparsers(dest="command", required=True)

    hunts = sub.add_parser("hunts", help="List hunts from the local catalog.")
    hunts.add_argument("--search", type=str, default=None, help="Case-insensitive name/description filter")
    hunts.add_argument(
        "--difficulty",
        type=str.upper,
        default=None,
        choices=["BEGINNER", "INTERMEDIATE", "ADVANCED", "EXPERT"],
    )
    hunts.add_argument("--active", action="store_true", help="Only active hunts")
    hunts.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    hunts.set_defaults(func=_cmd_hunts)

    dist = sub.add_parser("distance", help="Great-circle distance between two points.")
    dist.add_argument("lat1", type=float)
    dist.add_argument("lon1", type=float)
    dist.add_argument("lat2", type=float)
    dist.add_argument("lon2", type=float)
    dist.set_defaults(func=_cmd_distance)

    sim = sub.add_parser("simulate", help="Replay a recorded track through a hunt session.")
    sim.add_argument("hunt_id")
    sim.add_argument("--track", required=True, help="JSON list of {latitude, longitude} samples")
    sim.add_argument("--player", type=str, default="cli-player")
    sim.add_argument("--delay", type=float, default=0.05, help="Seconds between replayed samples")
    sim.set_defaults(func=_cmd_simulate)

    srv = sub.add_parser("serve", help="Run the HTTP API (uvicorn).")
    srv.add_argument("--host", type=str, default=None)
    srv.add_argument("--port", type=int, default=None)
    srv.set_defaults(func=_cmd_serve)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m orienteer.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
