"""Reverse geocoding (lat/lon -> display name) against Nominatim.

Lookups are best effort: every failure resolves to a fixed sentinel string so
callers never need to handle an exception.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import RLock
from typing import Any, Tuple

import requests
from cachetools import TTLCache

from .config import (
    ADDRESS_FETCH_FAILED,
    ADDRESS_NOT_AVAILABLE,
    GEOCODER_CACHE_ENABLED,
    GEOCODER_CACHE_PRECISION,
    GEOCODER_CACHE_SIZE,
    GEOCODER_CACHE_TTL_SECONDS,
    GEOCODER_MAX_WORKERS,
    NOMINATIM_REVERSE_URL,
    REQUEST_TIMEOUT,
)
from .errors import GeocodingFailure
from .http_session import create_default_session

_CacheKey = Tuple[float, float]


def coord_key(lat: float, lon: float, precision: int) -> _CacheKey:
    return (round(lat, precision), round(lon, precision))


class NominatimGeocoder:
    """Reverse geocoder using OpenStreetMap Nominatim."""

    def __init__(
        self,
        *,
        base_url: str = NOMINATIM_REVERSE_URL,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
        max_workers: int = GEOCODER_MAX_WORKERS,
        cache_enabled: bool = GEOCODER_CACHE_ENABLED,
        cache_precision: int = GEOCODER_CACHE_PRECISION,
    ) -> None:
        self._log = logging.getLogger(self.__class__.__name__)
        self._base_url = base_url
        self._session = session or create_default_session()
        self._timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="geocode"
        )
        self._cache: TTLCache[_CacheKey, str] | None = None
        if cache_enabled:
            self._cache = TTLCache(
                maxsize=max(1, GEOCODER_CACHE_SIZE), ttl=GEOCODER_CACHE_TTL_SECONDS
            )
        self._cache_lock = RLock()
        self._cache_precision = cache_precision

    def lookup(self, lat: float, lon: float) -> str:
        """Resolve an address, raising :class:`GeocodingFailure` on transport errors.

        Returns ``ADDRESS_NOT_AVAILABLE`` when the service answers without a
        display name.
        """

        params = {"format": "json", "lat": lat, "lon": lon}
        try:
            response = self._session.get(
                self._base_url, params=params, timeout=self._timeout
            )
            payload: Any = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise GeocodingFailure(f"Reverse geocoding failed: {exc}") from exc
        if not isinstance(payload, dict):
            return ADDRESS_NOT_AVAILABLE
        return str(payload.get("display_name") or "") or ADDRESS_NOT_AVAILABLE

    def reverse_geocode(self, lat: float, lon: float) -> str:
        """Best-effort address for a coordinate; never raises."""

        key = coord_key(lat, lon, self._cache_precision)
        if self._cache is not None:
            with self._cache_lock:
                cached = self._cache.get(key)
            if cached is not None:
                return cached
        try:
            address = self.lookup(lat, lon)
        except GeocodingFailure as exc:
            self._log.warning("Address lookup for %.6f,%.6f failed: %s", lat, lon, exc)
            return ADDRESS_FETCH_FAILED
        if self._cache is not None and address != ADDRESS_NOT_AVAILABLE:
            with self._cache_lock:
                self._cache[key] = address
        return address

    def reverse_geocode_async(self, lat: float, lon: float) -> "Future[str]":
        return self._executor.submit(self.reverse_geocode, lat, lon)

    def close(self) -> None:
        self._executor.shutdown(wait=False)


__all__ = ["NominatimGeocoder", "coord_key"]
