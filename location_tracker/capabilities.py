"""Readiness tracking for slow-to-load collaborators (map renderer, Excel writer)."""

from __future__ import annotations

import importlib
import logging
import threading
from concurrent.futures import Future
from typing import Callable, Optional, Sequence, Type

from .errors import ExportPreconditionFailure, LocationTrackerError, MapNotReady

Loader = Callable[[], object]

LOGGER = logging.getLogger(__name__)


class Capability:
    """A collaborator that must finish loading before it can be used.

    ``load()`` runs the loader once on a background thread and returns a
    future resolving to the readiness flag. ``require()`` raises
    ``not_ready_error`` until loading succeeded.
    """

    def __init__(
        self,
        name: str,
        loader: Loader,
        *,
        not_ready_error: Type[LocationTrackerError] = LocationTrackerError,
        not_ready_message: str | None = None,
    ) -> None:
        self.name = name
        self._loader = loader
        self._not_ready_error = not_ready_error
        self._not_ready_message = (
            not_ready_message or f"{name} is still loading. Please wait and try again."
        )
        self._lock = threading.Lock()
        self._future: Optional[Future[bool]] = None
        self._ready = False
        self.error: Optional[BaseException] = None

    @property
    def ready(self) -> bool:
        return self._ready

    def load(self) -> "Future[bool]":
        with self._lock:
            if self._future is not None:
                return self._future
            future: Future[bool] = Future()
            self._future = future
        thread = threading.Thread(
            target=self._run, args=(future,), name=f"load-{self.name}", daemon=True
        )
        thread.start()
        return future

    def load_now(self, timeout: float | None = None) -> bool:
        return self.load().result(timeout=timeout)

    def _run(self, future: "Future[bool]") -> None:
        try:
            self._loader()
        except Exception as exc:
            self.error = exc
            LOGGER.error("Failed to load %s: %s", self.name, exc)
            future.set_result(False)
            return
        self._ready = True
        LOGGER.debug("%s loaded", self.name)
        future.set_result(True)

    def require(self) -> None:
        if not self._ready:
            raise self._not_ready_error(self._not_ready_message)


def import_modules(names: Sequence[str]) -> Loader:
    """Loader importing (and thereby warming up) the given modules."""

    def _load() -> None:
        for name in names:
            importlib.import_module(name)

    return _load


def map_capability(loader: Loader | None = None) -> Capability:
    return Capability(
        "map renderer",
        loader or import_modules(["folium"]),
        not_ready_error=MapNotReady,
        not_ready_message="Map is still loading. Please wait a moment and try again.",
    )


def spreadsheet_capability(loader: Loader | None = None) -> Capability:
    return Capability(
        "Excel writer",
        loader or import_modules(["pandas", "openpyxl"]),
        not_ready_error=ExportPreconditionFailure,
        not_ready_message=(
            "Excel library is still loading. Please wait a moment and try again."
        ),
    )


__all__ = ["Capability", "import_modules", "map_capability", "spreadsheet_capability"]
