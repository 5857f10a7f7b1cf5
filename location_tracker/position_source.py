"""One-shot and continuous position reads on top of a positioning backend."""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, TypeVar

from .config import WATCH_POLL_INTERVAL_SECONDS
from .errors import PositionError, PositionTimeout, PositionUnavailable
from .models import ONE_SHOT_REQUEST, WATCH_REQUEST, Position, PositionRequest, RawFix
from .position_backends import PositionBackend
from .utils import speed_to_kmh

UpdateCallback = Callable[[Position], None]
ErrorCallback = Callable[[PositionError], None]
_T = TypeVar("_T")

LOGGER = logging.getLogger(__name__)

_handle_ids = itertools.count(1)


def to_position(fix: RawFix) -> Position:
    """Convert a backend fix into a Position (speed in km/h)."""

    return Position(
        latitude=fix.latitude,
        longitude=fix.longitude,
        speed_kmh=speed_to_kmh(fix.speed_mps),
        timestamp=fix.timestamp,
        accuracy_m=fix.accuracy_m,
    )


class SubscriptionHandle:
    """Opaque reference to a continuous position stream.

    Delivery of a callback and cancellation share one lock, so once
    ``cancel()`` returns no further callback can start.
    """

    def __init__(self) -> None:
        self.id = next(_handle_ids)
        self._cancelled = threading.Event()
        self._delivery_lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and not self._cancelled.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        with self._delivery_lock:
            self._cancelled.set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True when cancelled meanwhile."""

        return self._cancelled.wait(seconds)

    def deliver(self, callback: Callable[[_T], None], value: _T) -> bool:
        with self._delivery_lock:
            if self._cancelled.is_set():
                return False
            try:
                callback(value)
            except Exception as exc:
                LOGGER.error(
                    "Subscription %s callback failed: %s", self.id, exc, exc_info=True
                )
            return True

    def __repr__(self) -> str:
        state = "active" if self.active else "stopped"
        return f"SubscriptionHandle(id={self.id}, {state})"


class PositionSource:
    """Wraps a positioning backend with timeouts and a single live stream."""

    def __init__(
        self,
        backend: PositionBackend,
        *,
        poll_interval_s: float = WATCH_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._backend = backend
        self._poll_interval_s = max(0.0, poll_interval_s)
        self._executor = ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="position-read"
        )
        self._lock = threading.Lock()
        self._active: Optional[SubscriptionHandle] = None

    @property
    def active_subscription(self) -> Optional[SubscriptionHandle]:
        with self._lock:
            return self._active

    def _read(self, request: PositionRequest) -> Position:
        try:
            future = self._executor.submit(self._backend.read, request)
        except RuntimeError as exc:
            raise PositionUnavailable(f"Position source is closed: {exc}") from exc
        try:
            fix = future.result(timeout=request.timeout_s)
        except FutureTimeoutError as exc:
            future.cancel()
            raise PositionTimeout(
                f"No position fix within {request.timeout_s:g}s"
            ) from exc
        except PositionError:
            raise
        except Exception as exc:
            raise PositionUnavailable(f"Positioning backend failed: {exc}") from exc
        return to_position(fix)

    def get_current_position(
        self, request: PositionRequest = ONE_SHOT_REQUEST
    ) -> Position:
        """Read a single fresh fix.

        Raises:
            PermissionDenied: The backend refused to report a location.
            PositionTimeout: No fix arrived within ``request.timeout_s``.
            PositionUnavailable: The backend could not obtain a fix.
        """

        return self._read(request)

    def subscribe(
        self,
        on_update: UpdateCallback,
        on_error: ErrorCallback,
        request: PositionRequest = WATCH_REQUEST,
    ) -> SubscriptionHandle:
        """Start a continuous stream, stopping any stream already running.

        Read failures go to ``on_error`` and the stream keeps going.
        """

        handle = SubscriptionHandle()
        with self._lock:
            previous = self._active
            self._active = handle
        if previous is not None:
            LOGGER.info("Replacing position subscription %s", previous.id)
            previous.cancel()

        thread = threading.Thread(
            target=self._watch,
            args=(handle, on_update, on_error, request),
            name=f"position-watch-{handle.id}",
            daemon=True,
        )
        handle._thread = thread
        thread.start()
        LOGGER.debug("Started position subscription %s", handle.id)
        return handle

    def unsubscribe(self, handle: Optional[SubscriptionHandle]) -> None:
        """Stop a stream. Unknown, stopped or ``None`` handles are ignored."""

        if handle is None:
            return
        already_stopped = handle.cancelled
        handle.cancel()
        with self._lock:
            if self._active is handle:
                self._active = None
        if not already_stopped:
            LOGGER.debug("Stopped position subscription %s", handle.id)

    def _watch(
        self,
        handle: SubscriptionHandle,
        on_update: UpdateCallback,
        on_error: ErrorCallback,
        request: PositionRequest,
    ) -> None:
        while not handle.cancelled:
            try:
                position = self._read(request)
            except PositionError as exc:
                LOGGER.debug("Position read failed on subscription %s: %s", handle.id, exc)
                handle.deliver(on_error, exc)
            else:
                handle.deliver(on_update, position)
            if handle.wait(self._poll_interval_s):
                break

    def close(self) -> None:
        with self._lock:
            handle = self._active
        self.unsubscribe(handle)
        self._executor.shutdown(wait=False)

    def __enter__(self) -> "PositionSource":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


__all__ = ["PositionSource", "SubscriptionHandle", "to_position"]
