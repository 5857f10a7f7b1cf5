"""Command line entry point: ``python -m location_tracker``."""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

from .app import LocationTrackerApp
from .config import (
    EXPORT_DIR,
    MAP_OUTPUT_FILE,
    PENDING_LOOKUP_WAIT_SECONDS,
    POSITION_BACKEND,
    REPLAY_LOOP,
    WATCH_POLL_INTERVAL_SECONDS,
)
from .exporter import ExcelExporter
from .geocoder import NominatimGeocoder
from .position_backends import IpGeolocationBackend, PositionBackend, ReplayBackend
from .position_source import PositionSource

InputFn = Callable[[str], str]

MENU_TEXT = (
    "\nLocation Tracker\n"
    "  1) Live Location\n"
    "  2) Export to Excel\n"
    "  3) Track in Map\n"
    "  q) Quit\n"
)
MAP_TEXT = (
    "\nMap view\n"
    "  r) Record Path / Stop Recording\n"
    "  s) Show position\n"
    "  t) Retry location\n"
    "  b) Back to Menu\n"
)


def _setup_logging(verbose: bool = False) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="location_tracker",
        description=(
            "Track your location on an interactive map, record the path with"
            " addresses and speed, and export it to Excel."
        ),
    )
    parser.add_argument(
        "--backend",
        choices=("ip", "replay"),
        default=POSITION_BACKEND,
        help="Positioning backend (default: %(default)s)",
    )
    parser.add_argument(
        "--replay-file", type=Path, help="CSV of fixes for the replay backend"
    )
    parser.add_argument(
        "--replay-loop",
        action="store_true",
        default=REPLAY_LOOP,
        help="Restart the replay file when it is exhausted",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=WATCH_POLL_INTERVAL_SECONDS,
        help="Seconds between continuous position reads (default: %(default)s)",
    )
    parser.add_argument(
        "--export-dir",
        type=Path,
        default=Path(EXPORT_DIR),
        help="Directory for exported workbooks (default: %(default)s)",
    )
    parser.add_argument(
        "--map-output",
        type=Path,
        default=Path(MAP_OUTPUT_FILE),
        help="HTML file the live map is written to (default: %(default)s)",
    )
    parser.add_argument("--verbose", "-v", action="store_true")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("live", help="Print the current location once")
    track = sub.add_parser("track", help="Track (and optionally record) for a while")
    track.add_argument(
        "--duration",
        type=float,
        default=60.0,
        help="Seconds to track before stopping (default: %(default)s)",
    )
    track.add_argument("--record", action="store_true", help="Record the path")
    track.add_argument(
        "--export", action="store_true", help="Export recorded points on exit"
    )
    sub.add_parser("menu", help="Interactive menu (default)")
    return parser


def build_backend(args: argparse.Namespace) -> PositionBackend:
    if args.backend == "replay":
        if args.replay_file is None:
            raise ValueError("--replay-file is required with --backend replay")
        return ReplayBackend.from_csv(args.replay_file, loop=args.replay_loop)
    return IpGeolocationBackend()


def build_app(
    args: argparse.Namespace, backend: PositionBackend, geocoder: NominatimGeocoder
) -> LocationTrackerApp:
    source = PositionSource(backend, poll_interval_s=args.poll_interval)
    app = LocationTrackerApp(
        source,
        geocoder,
        map_output=args.map_output,
        notify=print,
    )
    app.exporter = ExcelExporter(
        capability=app.spreadsheet_capability, directory=args.export_dir
    )
    return app


def run_track(
    app: LocationTrackerApp, duration: float, record: bool, export: bool
) -> int:
    for future in app.load_capabilities():
        future.result()
    if not app.track_in_map():
        app.close()
        return 1
    if record:
        app.toggle_recording()
    deadline = time.monotonic() + max(0.0, duration)
    try:
        while time.monotonic() < deadline:
            time.sleep(min(1.0, max(0.0, deadline - time.monotonic())))
    except KeyboardInterrupt:
        logging.info("Interrupted; stopping tracking")
    if record and app.pipeline.recording:
        app.toggle_recording()
    app.back_to_menu()
    if not app.pipeline.wait_for_pending(PENDING_LOOKUP_WAIT_SECONDS):
        logging.warning("Some address lookups did not finish in time")
    if app.map_output is not None:
        logging.info("Map written to %s", app.map_output)
    if export:
        return 0 if app.export_to_excel() is not None else 1
    return 0


def run_menu(app: LocationTrackerApp, read: InputFn = input) -> int:
    app.load_capabilities()
    try:
        while True:
            if app.screen == "menu":
                choice = read(MENU_TEXT + "> ").strip().lower()
                if choice == "1":
                    app.live_location()
                elif choice == "2":
                    app.pipeline.wait_for_pending(PENDING_LOOKUP_WAIT_SECONDS)
                    app.export_to_excel()
                elif choice == "3":
                    app.track_in_map()
                elif choice in {"q", "quit", "exit"}:
                    return 0
            else:
                choice = read(MAP_TEXT + "> ").strip().lower()
                if choice == "r":
                    app.toggle_recording()
                elif choice == "s":
                    print("\n".join(app.status_lines()))
                elif choice == "t":
                    app.track_in_map()
                elif choice == "b":
                    app.back_to_menu()
    except (EOFError, KeyboardInterrupt):
        return 0
    finally:
        app.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        backend = build_backend(args)
    except (ValueError, FileNotFoundError) as exc:
        logging.error("Failed to set up positioning backend: %s", exc)
        return 1

    geocoder = NominatimGeocoder()
    app = build_app(args, backend, geocoder)
    try:
        if args.command == "live":
            return 0 if app.live_location() is not None else 1
        if args.command == "track":
            return run_track(app, args.duration, args.record, args.export)
        return run_menu(app)
    finally:
        app.close()
        app.source.close()
        geocoder.close()
