"""End-to-end tests of the application shell with fake collaborators."""

from __future__ import annotations

from pathlib import Path
from typing import List

import pandas as pd
import pytest

from conftest import FakeSource, ImmediateResolver, ManualResolver, make_position
from location_tracker.app import LocationTrackerApp
from location_tracker.capabilities import Capability
from location_tracker.errors import (
    ExportPreconditionFailure,
    InitializationFailure,
    MapNotReady,
    PermissionDenied,
    PositionTimeout,
)
from location_tracker.exporter import ExcelExporter


def _ready(name: str, error) -> Capability:
    capability = Capability(name, lambda: None, not_ready_error=error)
    capability.load_now(timeout=2)
    return capability


@pytest.fixture
def messages() -> List[str]:
    return []


@pytest.fixture
def app(fake_source: FakeSource, immediate_resolver: ImmediateResolver, fixed_clock, messages, tmp_path: Path):
    spreadsheet = _ready("Excel writer", ExportPreconditionFailure)
    application = LocationTrackerApp(
        fake_source,
        immediate_resolver,
        exporter=ExcelExporter(capability=spreadsheet, directory=tmp_path),
        map_loader=_ready("map renderer", MapNotReady),
        spreadsheet_loader=spreadsheet,
        notify=messages.append,
        map_output=tmp_path / "map.html",
        clock=fixed_clock,
    )
    yield application
    application.close()


def test_live_location_reports_coordinates(app: LocationTrackerApp, messages: List[str]) -> None:
    position = app.live_location()

    assert position is not None
    assert "Latitude: 12.971599" in messages[-1]
    assert "Longitude: 77.594566" in messages[-1]
    assert "Accuracy: 12 meters" in messages[-1]


def test_live_location_error_is_reported(
    fake_source: FakeSource, app: LocationTrackerApp, messages: List[str]
) -> None:
    fake_source.one_shot.append(PermissionDenied("User denied Geolocation"))

    assert app.live_location() is None
    assert "Please allow location permission" in messages[-1]
    assert "User denied Geolocation" in messages[-1]


def test_track_in_map_rejected_until_map_loaded(
    fake_source: FakeSource, immediate_resolver: ImmediateResolver, messages: List[str]
) -> None:
    app = LocationTrackerApp(
        fake_source,
        immediate_resolver,
        map_loader=Capability("map renderer", lambda: None, not_ready_error=MapNotReady,
                              not_ready_message="Map is still loading. Please wait a moment and try again."),
        notify=messages.append,
        map_output=None,
    )

    assert app.track_in_map() is False
    assert app.screen == "menu"
    assert "Map is still loading" in messages[-1]
    assert fake_source.handles == []


def test_map_initialization_failure_is_reported(
    fake_source: FakeSource, immediate_resolver: ImmediateResolver, messages: List[str]
) -> None:
    def broken_map(**_kwargs):
        raise InitializationFailure("Error initializing map: no surface")

    app = LocationTrackerApp(
        fake_source,
        immediate_resolver,
        map_loader=_ready("map renderer", MapNotReady),
        notify=messages.append,
        map_output=None,
        map_factory=broken_map,
    )

    assert app.track_in_map() is False
    assert app.screen == "menu"
    assert "Error initializing map" in messages[-1]


def test_track_in_map_centres_on_first_fix(app: LocationTrackerApp, tmp_path: Path) -> None:
    assert app.track_in_map() is True

    assert app.screen == "map"
    assert app.map_view is not None
    assert app.map_view.marker == (12.971599, 77.594566)
    assert app.map_view.zoom == 15
    assert app.pipeline.status == "tracking"
    assert (tmp_path / "map.html").exists()


def test_initial_fix_failure_keeps_map_without_tracking(
    fake_source: FakeSource, app: LocationTrackerApp, messages: List[str]
) -> None:
    fake_source.one_shot.append(PermissionDenied("denied"))

    assert app.track_in_map() is False
    assert app.screen == "map"
    assert "Location permission denied" in messages[-1]

    assert app.toggle_recording() is False
    assert "not running" in messages[-1]


def test_track_in_map_retries_first_fix_after_failure(
    fake_source: FakeSource, app: LocationTrackerApp, messages: List[str]
) -> None:
    fake_source.one_shot.append(PositionTimeout("no fix"))
    assert app.track_in_map() is False
    view = app.map_view

    assert app.track_in_map() is True

    assert app.screen == "map"
    assert app.map_view is view
    assert app.pipeline.status == "tracking"
    assert view.marker == (12.971599, 77.594566)
    assert app.toggle_recording() is True
    assert messages[-1].startswith("Recording started!")


def test_record_and_export_round_trip(
    fake_source: FakeSource, app: LocationTrackerApp, messages: List[str], tmp_path: Path
) -> None:
    app.track_in_map()
    assert app.toggle_recording() is True
    assert "Recording started" in messages[-1]

    fake_source.emit(make_position(12.971599, 77.594566, 10.01))
    fake_source.emit(make_position(12.971700, 77.594600, 0.0))
    assert app.status_lines()[-1] == "RECORDING"

    assert app.toggle_recording() is False
    assert "Total points recorded: 2" in messages[-1]

    app.back_to_menu()
    assert app.screen == "menu"
    assert app.map_view is None
    assert app.pipeline.session.path == ()

    path = app.export_to_excel()
    assert path is not None
    assert "Total records: 2" in messages[-1]
    df = pd.read_excel(path, dtype=str)
    assert df["speed"].tolist() == ["10.01 km/h", "0 km/h"]


def test_export_without_data_explains_how_to_record(
    app: LocationTrackerApp, messages: List[str], tmp_path: Path
) -> None:
    assert app.export_to_excel() is None
    assert "No tracking data available" in messages[-1]
    assert not any(p.suffix == ".xlsx" for p in tmp_path.iterdir())


def test_toggle_on_off_without_updates_then_export_fails(
    app: LocationTrackerApp, messages: List[str]
) -> None:
    app.track_in_map()
    app.toggle_recording()
    app.toggle_recording()
    app.back_to_menu()

    assert app.pipeline.session.records == ()
    assert app.export_to_excel() is None
    assert "No tracking data available" in messages[-1]


def test_export_waits_for_excel_library(
    fake_source: FakeSource, manual_resolver: ManualResolver, messages: List[str], tmp_path: Path
) -> None:
    pending_loader = Capability(
        "Excel writer",
        lambda: None,
        not_ready_error=ExportPreconditionFailure,
        not_ready_message="Excel library is still loading. Please wait a moment and try again.",
    )
    app = LocationTrackerApp(
        fake_source,
        manual_resolver,
        map_loader=_ready("map renderer", MapNotReady),
        spreadsheet_loader=pending_loader,
        notify=messages.append,
        map_output=None,
    )
    app.exporter = ExcelExporter(capability=pending_loader, directory=tmp_path)
    app.track_in_map()
    app.toggle_recording()
    fake_source.emit(make_position(1.0, 2.0))
    manual_resolver.resolve(0, "Somewhere")
    app.back_to_menu()

    assert app.export_to_excel() is None
    assert "Excel library is still loading" in messages[-1]
    assert len(app.pipeline.session.records) == 1


def test_toggle_outside_map_screen_is_rejected(app: LocationTrackerApp, messages: List[str]) -> None:
    assert app.toggle_recording() is False
    assert "Track in Map" in messages[-1]


def test_reentering_map_keeps_records_until_next_recording(
    fake_source: FakeSource, app: LocationTrackerApp
) -> None:
    app.track_in_map()
    app.toggle_recording()
    fake_source.emit(make_position(1.0, 2.0))
    app.back_to_menu()

    app.track_in_map()
    fake_source.emit(make_position(3.0, 4.0))
    assert len(app.pipeline.session.records) == 1

    app.toggle_recording()
    assert app.pipeline.session.records == ()
