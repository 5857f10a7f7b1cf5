"""Application shell: the menu and map screens and their user-facing alerts."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Literal, Optional, Union

from .capabilities import Capability, map_capability, spreadsheet_capability
from .config import MAP_OUTPUT_FILE, TRACKING_MAP_ZOOM
from .errors import (
    ExportPreconditionFailure,
    InitializationFailure,
    MapNotReady,
    PositionError,
)
from .exporter import ExcelExporter
from .map_view import MapView
from .models import Position
from .pipeline import AddressResolver, TrackingPipeline
from .position_source import PositionSource
from .utils import format_accuracy, format_coordinate, format_speed

Notifier = Callable[[str], None]
Screen = Literal["menu", "map"]
PathLike = Union[str, Path]

LOGGER = logging.getLogger(__name__)


def _log_notification(message: str) -> None:
    LOGGER.info("%s", message)


class LocationTrackerApp:
    """Menu actions (live location, export, track in map) and map actions
    (record/stop, back to menu).

    Every failure is reported through ``notify`` and leaves the app on a
    usable screen with the recorded data intact.
    """

    def __init__(
        self,
        source: PositionSource,
        resolver: AddressResolver,
        *,
        exporter: ExcelExporter | None = None,
        map_loader: Capability | None = None,
        spreadsheet_loader: Capability | None = None,
        notify: Notifier = _log_notification,
        map_output: Optional[PathLike] = MAP_OUTPUT_FILE,
        map_factory: Callable[..., MapView] = MapView,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.source = source
        self.notify = notify
        self.map_capability = map_loader or map_capability()
        self.spreadsheet_capability = spreadsheet_loader or spreadsheet_capability()
        self.exporter = exporter or ExcelExporter(
            capability=self.spreadsheet_capability
        )
        self.pipeline = TrackingPipeline(source, resolver, clock=clock)
        self.map_output = Path(map_output) if map_output is not None else None
        self._map_factory = map_factory
        self.map_view: Optional[MapView] = None
        self.screen: Screen = "menu"

    def load_capabilities(self) -> List["Future[bool]"]:
        return [self.map_capability.load(), self.spreadsheet_capability.load()]

    # -- menu -------------------------------------------------------------
    def live_location(self) -> Optional[Position]:
        try:
            position = self.source.get_current_position()
        except PositionError as exc:
            self.notify(
                "Unable to retrieve your location. Please allow location permission."
                f"\n\nError: {exc}"
            )
            return None
        self.notify(
            "Your Current Location:\n\n"
            f"Latitude: {format_coordinate(position.latitude)}\n"
            f"Longitude: {format_coordinate(position.longitude)}\n"
            f"Accuracy: {format_accuracy(position.accuracy_m)}"
        )
        return position

    def export_to_excel(self) -> Optional[Path]:
        records = self.pipeline.session.records
        try:
            path = self.exporter.export(records)
        except ExportPreconditionFailure as exc:
            self.notify(str(exc))
            return None
        except Exception as exc:
            LOGGER.error("Excel export failed: %s", exc, exc_info=True)
            self.notify(f"Error creating Excel file: {exc}")
            return None
        self.notify(
            "Excel file downloaded successfully!\n\n"
            f"File: {path.name}\nTotal records: {len(records)}"
        )
        return path

    def track_in_map(self) -> bool:
        """Enter the map screen and start tracking.

        Returns True when the live stream is running. Called again on the map
        screen after a failed first fix, it retries the fix.
        """

        if self.screen == "map":
            if self.pipeline.session.subscribed:
                return True
            return self._start_map_tracking()
        try:
            self.map_capability.require()
        except MapNotReady as exc:
            self.notify(str(exc))
            return False
        try:
            self.map_view = self._map_factory(output_html=self.map_output)
        except InitializationFailure as exc:
            LOGGER.error("%s", exc)
            self.notify(str(exc))
            return False
        self.screen = "map"
        self.pipeline.add_listener(self.map_view.update)
        return self._start_map_tracking()

    def _start_map_tracking(self) -> bool:
        try:
            position = self.source.get_current_position()
        except PositionError as exc:
            LOGGER.error("Geolocation error: %s", exc)
            self.notify(f"Location permission denied or error occurred: {exc}")
            return False
        self.map_view.show_position(position, zoom=TRACKING_MAP_ZOOM)
        if self.map_output is not None:
            self.map_view.save(self.map_output)
        self.pipeline.start()
        return True

    # -- map screen -------------------------------------------------------
    def toggle_recording(self) -> bool:
        if self.screen != "map":
            self.notify('Open "Track in Map" before recording a path.')
            return False
        if not self.pipeline.session.subscribed:
            self.notify("Location tracking is not running; cannot record a path.")
            return False
        recording = self.pipeline.toggle_recording()
        if recording:
            self.notify("Recording started! Your path will be tracked in orange.")
        else:
            points = len(self.pipeline.session.path)
            self.notify(
                "Recording stopped!\n\n"
                f"Total points recorded: {points}\n\n"
                'Go back to menu and click "Export to Excel" to download your data.'
            )
        return recording

    def back_to_menu(self) -> None:
        self.pipeline.stop()
        if self.map_view is not None:
            self.pipeline.remove_listener(self.map_view.update)
            self.map_view = None
        self.screen = "menu"

    def status_lines(self) -> List[str]:
        """Info box contents for the map screen."""

        session = self.pipeline.session
        position = session.current_position
        if position is None:
            return ["Waiting for location..."]
        lines = [
            f"Latitude: {format_coordinate(position.latitude)}",
            f"Longitude: {format_coordinate(position.longitude)}",
            f"Speed: {format_speed(position.speed_kmh)}",
            f"Points Recorded: {len(session.path)}",
        ]
        if session.recording:
            lines.append("RECORDING")
        return lines

    def close(self) -> None:
        if self.screen == "map":
            self.back_to_menu()
        else:
            self.pipeline.stop()


__all__ = ["LocationTrackerApp"]
