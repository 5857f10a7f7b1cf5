"""Positioning backends: where fixes actually come from.

A backend answers a single ``read(request)`` with a :class:`RawFix` or raises
one of the :mod:`errors` position errors. ``PositionSource`` adds timeouts,
unit conversion and the continuous stream on top.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Optional, Protocol, Union

import pandas as pd
import requests

from .config import (
    IP_GEOLOCATION_ACCURACY_M,
    IP_GEOLOCATION_URL,
    REPLAY_LOOP,
)
from .errors import PermissionDenied, PositionTimeout, PositionUnavailable
from .http_session import create_default_session
from .models import PositionRequest, RawFix

PathLike = Union[str, Path]

LOGGER = logging.getLogger(__name__)


class PositionBackend(Protocol):
    def read(self, request: PositionRequest) -> RawFix: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IpGeolocationBackend:
    """Coarse positioning from a public IP geolocation service.

    The service reports no speed, so every fix is treated as stationary.
    """

    def __init__(
        self,
        *,
        url: str = IP_GEOLOCATION_URL,
        session: requests.Session | None = None,
        accuracy_m: float = IP_GEOLOCATION_ACCURACY_M,
    ) -> None:
        self._url = url
        self._session = session or create_default_session()
        self._accuracy_m = accuracy_m
        self._last_fix: RawFix | None = None
        self._lock = threading.Lock()

    def read(self, request: PositionRequest) -> RawFix:
        cached = self._cached_fix(request.max_age_s)
        if cached is not None:
            return cached
        try:
            response = self._session.get(self._url, timeout=request.timeout_s)
        except requests.Timeout as exc:
            raise PositionTimeout(f"Geolocation request timed out: {exc}") from exc
        except requests.RequestException as exc:
            raise PositionUnavailable(f"Geolocation request failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise PermissionDenied(
                f"Geolocation service refused the request (HTTP {response.status_code})"
            )
        if response.status_code >= 400:
            raise PositionUnavailable(
                f"Geolocation service returned HTTP {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise PositionUnavailable("Geolocation response was not JSON") from exc

        fix = self._parse(payload)
        with self._lock:
            self._last_fix = fix
        return fix

    def _cached_fix(self, max_age_s: float) -> RawFix | None:
        if max_age_s <= 0:
            return None
        with self._lock:
            fix = self._last_fix
        if fix is None:
            return None
        age = (_utcnow() - fix.timestamp).total_seconds()
        return fix if age <= max_age_s else None

    def _parse(self, payload: Any) -> RawFix:
        if not isinstance(payload, dict):
            raise PositionUnavailable("Unexpected geolocation payload")
        if payload.get("status") == "fail":
            message = payload.get("message") or "lookup failed"
            raise PositionUnavailable(f"Geolocation service: {message}")
        lat = payload.get("lat", payload.get("latitude"))
        lon = payload.get("lon", payload.get("longitude"))
        try:
            latitude = float(lat)
            longitude = float(lon)
        except (TypeError, ValueError) as exc:
            raise PositionUnavailable("Geolocation payload missing coordinates") from exc
        return RawFix(
            latitude=latitude,
            longitude=longitude,
            timestamp=_utcnow(),
            speed_mps=None,
            accuracy_m=self._accuracy_m,
        )


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if result != result:  # NaN from empty CSV cells
        return None
    return result


class ReplayBackend:
    """Replay previously recorded fixes, one per read.

    Fix timestamps are re-stamped at read time so replayed fixes are always
    fresh. Once the fixes are exhausted reads raise ``PositionUnavailable``
    unless ``loop`` is set.
    """

    def __init__(self, fixes: Iterable[RawFix], *, loop: bool = REPLAY_LOOP) -> None:
        self._fixes: List[RawFix] = list(fixes)
        self._loop = loop
        self._index = 0
        self._lock = threading.Lock()

    @classmethod
    def from_csv(cls, csv_path: PathLike, *, loop: bool = REPLAY_LOOP) -> "ReplayBackend":
        """Load fixes from a CSV with ``latitude``/``longitude`` columns.

        Optional columns: ``speed`` (m/s) and ``accuracy`` (metres). Rows with
        unparseable coordinates are skipped.
        """

        df = pd.read_csv(Path(csv_path))
        missing = {"latitude", "longitude"} - set(df.columns)
        if missing:
            raise ValueError(
                f"Replay file {csv_path} is missing columns: {', '.join(sorted(missing))}"
            )
        fixes: List[RawFix] = []
        skipped = 0
        now = _utcnow()
        for row in df.to_dict(orient="records"):
            latitude = _optional_float(row.get("latitude"))
            longitude = _optional_float(row.get("longitude"))
            if latitude is None or longitude is None:
                skipped += 1
                continue
            fixes.append(
                RawFix(
                    latitude=latitude,
                    longitude=longitude,
                    timestamp=now,
                    speed_mps=_optional_float(row.get("speed")),
                    accuracy_m=_optional_float(row.get("accuracy")),
                )
            )
        if skipped:
            LOGGER.warning("Skipped %d unparseable rows in %s", skipped, csv_path)
        LOGGER.info("Loaded %d replay fixes from %s", len(fixes), csv_path)
        return cls(fixes, loop=loop)

    @property
    def remaining(self) -> int:
        with self._lock:
            return max(0, len(self._fixes) - self._index)

    def read(self, request: PositionRequest) -> RawFix:
        with self._lock:
            if self._index >= len(self._fixes):
                if not self._loop or not self._fixes:
                    raise PositionUnavailable("No more replay fixes")
                self._index = 0
            fix = self._fixes[self._index]
            self._index += 1
        return RawFix(
            latitude=fix.latitude,
            longitude=fix.longitude,
            timestamp=_utcnow(),
            speed_mps=fix.speed_mps,
            accuracy_m=fix.accuracy_m,
        )


__all__ = ["PositionBackend", "IpGeolocationBackend", "ReplayBackend"]
