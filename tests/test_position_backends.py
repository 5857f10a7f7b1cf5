"""Tests for the IP geolocation and replay backends."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List

import pytest
import requests

from conftest import make_fix
from location_tracker.errors import PermissionDenied, PositionTimeout, PositionUnavailable
from location_tracker.models import PositionRequest
from location_tracker.position_backends import IpGeolocationBackend, ReplayBackend


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, *responses: Any) -> None:
        self._responses: List[Any] = list(responses)
        self.calls: List[dict] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _backend(*responses: Any) -> tuple[IpGeolocationBackend, FakeSession]:
    session = FakeSession(*responses)
    return IpGeolocationBackend(url="http://geo.test/json", session=session), session


def test_ip_backend_parses_coordinates() -> None:
    backend, session = _backend(
        FakeResponse({"status": "success", "lat": 12.9716, "lon": 77.5946})
    )
    fix = backend.read(PositionRequest(timeout_s=3.0))

    assert (fix.latitude, fix.longitude) == (12.9716, 77.5946)
    assert fix.speed_mps is None
    assert fix.accuracy_m is not None
    assert session.calls[0]["timeout"] == 3.0


def test_ip_backend_fail_status_is_unavailable() -> None:
    backend, _ = _backend(FakeResponse({"status": "fail", "message": "reserved range"}))
    with pytest.raises(PositionUnavailable, match="reserved range"):
        backend.read(PositionRequest())


@pytest.mark.parametrize("status_code", [401, 403])
def test_ip_backend_refusal_is_permission_denied(status_code: int) -> None:
    backend, _ = _backend(FakeResponse({}, status_code=status_code))
    with pytest.raises(PermissionDenied):
        backend.read(PositionRequest())


def test_ip_backend_server_error_is_unavailable() -> None:
    backend, _ = _backend(FakeResponse({}, status_code=503))
    with pytest.raises(PositionUnavailable):
        backend.read(PositionRequest())


def test_ip_backend_timeout() -> None:
    backend, _ = _backend(requests.Timeout("read timed out"))
    with pytest.raises(PositionTimeout):
        backend.read(PositionRequest())


def test_ip_backend_connection_error_is_unavailable() -> None:
    backend, _ = _backend(requests.ConnectionError("no route"))
    with pytest.raises(PositionUnavailable):
        backend.read(PositionRequest())


def test_ip_backend_bad_json_is_unavailable() -> None:
    backend, _ = _backend(FakeResponse(ValueError("not json")))
    with pytest.raises(PositionUnavailable):
        backend.read(PositionRequest())


def test_ip_backend_never_reuses_fix_when_max_age_zero() -> None:
    payload = {"status": "success", "lat": 1.0, "lon": 2.0}
    backend, session = _backend(FakeResponse(payload), FakeResponse(payload))
    backend.read(PositionRequest(max_age_s=0))
    backend.read(PositionRequest(max_age_s=0))
    assert len(session.calls) == 2


def test_ip_backend_reuses_recent_fix_when_allowed() -> None:
    payload = {"status": "success", "lat": 1.0, "lon": 2.0}
    backend, session = _backend(FakeResponse(payload))
    first = backend.read(PositionRequest())
    second = backend.read(PositionRequest(max_age_s=60))
    assert second == first
    assert len(session.calls) == 1


def test_replay_backend_loops_when_asked() -> None:
    backend = ReplayBackend([make_fix(1.0, 1.0)], loop=True)
    assert backend.read(PositionRequest()).latitude == 1.0
    assert backend.read(PositionRequest()).latitude == 1.0


def test_replay_backend_from_csv(tmp_path: Path) -> None:
    csv_path = tmp_path / "fixes.csv"
    csv_path.write_text(
        "latitude,longitude,speed,accuracy\n"
        "12.971599,77.594566,2.78,5\n"
        "bad,77.6,,\n"
        "12.972000,77.595000,,\n",
        encoding="utf-8",
    )
    backend = ReplayBackend.from_csv(csv_path)

    assert backend.remaining == 2
    first = backend.read(PositionRequest())
    second = backend.read(PositionRequest())
    assert first.speed_mps == pytest.approx(2.78)
    assert first.accuracy_m == pytest.approx(5.0)
    assert second.speed_mps is None
    with pytest.raises(PositionUnavailable):
        backend.read(PositionRequest())


def test_replay_backend_requires_coordinate_columns(tmp_path: Path) -> None:
    csv_path = tmp_path / "fixes.csv"
    csv_path.write_text("lat,lng\n1,2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="latitude"):
        ReplayBackend.from_csv(csv_path)


def test_default_session_sends_user_agent() -> None:
    backend = IpGeolocationBackend()
    session = getattr(backend, "_session")
    assert "User-Agent" in session.headers
    assert isinstance(session, requests.Session)
