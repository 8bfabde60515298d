"""Command line entry point for trip detection and road matching."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .config import BATCH_DEFAULT_LIMIT, DATABASE_URL, MATCH_CALL_DELAY_SECONDS
from .errors import ConfigurationError, InvalidRequestError, TripMileageError
from .matching.pacing import CallPacer
from .models import ShiftStatus, Trip
from .services import (
    BatchMatchService,
    BatchRequest,
    RoadMatchService,
    TripDetectionService,
)
from .storage.repository import TripStore
from .tools.fix_import import import_fixes
from .tools.trip_map import build_trip_map

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_REQUEST = 2
EXIT_CONFIGURATION = 3


def _setup_logging(verbose: bool = False) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def trip_to_dict(trip: Trip) -> Dict[str, Any]:
    return {
        "id": trip.id,
        "shift_id": trip.shift_id,
        "started_at": trip.started_at.isoformat(),
        "ended_at": trip.ended_at.isoformat(),
        "start_latitude": trip.start_coord[0],
        "start_longitude": trip.start_coord[1],
        "end_latitude": trip.end_coord[0],
        "end_longitude": trip.end_coord[1],
        "haversine_distance_km": trip.haversine_distance_km,
        "duration_minutes": trip.duration_minutes,
        "classification": trip.classification.value,
        "fix_count": trip.fix_count,
        "gps_confidence": trip.gps_confidence,
        "low_accuracy_fixes": trip.low_accuracy_fixes,
        "match_status": trip.match_status.value,
        "match_attempts": trip.match_attempts,
        "road_distance_km": trip.road_distance_km,
        "match_confidence": trip.match_confidence,
        "match_error": trip.match_error,
        "effective_distance_km": trip.effective_distance_km,
    }


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _cmd_detect(store: TripStore, args: argparse.Namespace) -> int:
    trips = TripDetectionService(store).detect_trips(args.shift_id)
    _emit({"shift_id": args.shift_id, "trips": [trip_to_dict(t) for t in trips]})
    return EXIT_OK


def _cmd_match(store: TripStore, args: argparse.Namespace) -> int:
    report = RoadMatchService(store).match_trip(args.trip_id)
    _emit(report.to_dict())
    return EXIT_OK


def _cmd_batch(store: TripStore, args: argparse.Namespace) -> int:
    if args.payload:
        try:
            payload = json.loads(args.payload)
        except json.JSONDecodeError as exc:
            raise InvalidRequestError(f"Payload is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise InvalidRequestError("Payload must be a JSON object")
        request = BatchRequest.from_mapping(payload)
    else:
        request = BatchRequest(
            trip_ids=args.trip_ids or None,
            shift_id=args.shift_id,
            reprocess_failed=args.reprocess_failed,
            reprocess_all=args.reprocess_all,
            limit=args.limit,
        )
    matcher = RoadMatchService(store, pacer=CallPacer(args.delay))
    response = BatchMatchService(matcher).run(request)
    _emit(response.to_dict())
    return EXIT_OK


def _cmd_import(store: TripStore, args: argparse.Namespace) -> int:
    fixes = import_fixes(
        store,
        args.shift_id,
        args.csv,
        status=ShiftStatus(args.status),
        employee_id=args.employee_id,
    )
    _emit({"shift_id": args.shift_id, "imported": len(fixes)})
    return EXIT_OK


def _cmd_map(store: TripStore, args: argparse.Namespace) -> int:
    trip = store.get_trip(args.trip_id)
    if trip is None:
        logging.error("Trip not found: %s", args.trip_id)
        return EXIT_ERROR
    output = args.output or Path("maps") / f"trip-{trip.id}.html"
    build_trip_map(trip, store.trip_fixes(trip.id), output_html=output)
    logging.info("Trip map written to %s", output)
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trip-mileage",
        description="Detect trips from shift GPS fixes and match them to roads.",
    )
    parser.add_argument(
        "--db", default=DATABASE_URL, help="SQLAlchemy database URL"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    detect = sub.add_parser("detect", help="Detect and persist trips for a shift")
    detect.add_argument("shift_id")
    detect.set_defaults(handler=_cmd_detect)

    match = sub.add_parser("match", help="Road-match one trip")
    match.add_argument("trip_id")
    match.set_defaults(handler=_cmd_match)

    batch = sub.add_parser("batch", help="Road-match trips in bulk")
    batch.add_argument("--trip-id", dest="trip_ids", action="append", default=[])
    batch.add_argument("--shift-id")
    batch.add_argument("--reprocess-failed", action="store_true")
    batch.add_argument("--reprocess-all", action="store_true")
    batch.add_argument("--limit", type=int, default=BATCH_DEFAULT_LIMIT)
    batch.add_argument(
        "--payload", help="JSON request body; overrides the selector flags"
    )
    batch.add_argument(
        "--delay",
        type=float,
        default=MATCH_CALL_DELAY_SECONDS,
        help="Seconds between matching service calls",
    )
    batch.set_defaults(handler=_cmd_batch)

    importer = sub.add_parser("import-fixes", help="Load fixes from a CSV file")
    importer.add_argument("shift_id")
    importer.add_argument("csv", type=Path)
    importer.add_argument(
        "--status",
        choices=[s.value for s in ShiftStatus],
        default=ShiftStatus.ACTIVE.value,
    )
    importer.add_argument("--employee-id")
    importer.set_defaults(handler=_cmd_import)

    map_cmd = sub.add_parser("map", help="Render a trip to an HTML map")
    map_cmd.add_argument("trip_id")
    map_cmd.add_argument("--output", type=Path)
    map_cmd.set_defaults(handler=_cmd_map)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        store = TripStore.from_url(args.db)
        return args.handler(store, args)
    except InvalidRequestError as exc:
        logging.error("Invalid request: %s", exc)
        return EXIT_INVALID_REQUEST
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return EXIT_CONFIGURATION
    except (TripMileageError, ValueError, FileNotFoundError) as exc:
        logging.error("%s", exc)
        return EXIT_ERROR


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
