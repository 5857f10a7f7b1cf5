"""Interactive map of the current position and the recorded path (folium)."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import folium

from .config import (
    DEFAULT_MAP_CENTER,
    DEFAULT_MAP_ZOOM,
    MAP_MAX_ZOOM,
    MAP_TILES,
    PATH_COLOR,
    PATH_OPACITY,
    PATH_WEIGHT,
)
from .errors import InitializationFailure
from .models import LatLon, Position, TrackingSession

PathLike = Union[str, Path]

LOGGER = logging.getLogger(__name__)

_MARKER_HTML = (
    '<div style="background: #ff8c00; width: 20px; height: 20px; '
    "border-radius: 50%; border: 4px solid white; "
    'box-shadow: 0 4px 12px rgba(255, 140, 0, 0.8);"></div>'
)


class MapView:
    """Passive renderer for ``(current_position, path)``.

    The view keeps one marker position and one path. Every render builds a
    fresh :class:`folium.Map`, so the polyline always reflects the full path.
    """

    def __init__(
        self,
        *,
        center: LatLon = DEFAULT_MAP_CENTER,
        zoom: int = DEFAULT_MAP_ZOOM,
        tiles: str = MAP_TILES,
        output_html: Optional[PathLike] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._center: LatLon = center
        self._zoom = zoom
        self._tiles = tiles
        self._marker: LatLon = center
        self._path: Tuple[LatLon, ...] = ()
        self.output_html = Path(output_html) if output_html is not None else None
        self.renders = 0
        try:
            self.render()
        except Exception as exc:
            raise InitializationFailure(f"Error initializing map: {exc}") from exc

    @property
    def center(self) -> LatLon:
        return self._center

    @property
    def zoom(self) -> int:
        return self._zoom

    @property
    def marker(self) -> LatLon:
        return self._marker

    @property
    def path(self) -> Tuple[LatLon, ...]:
        return self._path

    def show_position(self, position: Position, *, zoom: Optional[int] = None) -> None:
        """Move the marker and re-centre the view on ``position``."""

        with self._lock:
            self._marker = position.latlon
            self._center = position.latlon
            if zoom is not None:
                self._zoom = zoom

    def set_path(self, path: Sequence[LatLon]) -> None:
        with self._lock:
            self._path = tuple(path)

    def update(self, session: TrackingSession) -> None:
        """Session listener: follow the current position and the recorded path."""

        with self._lock:
            moved = (
                session.current_position is not None
                and session.current_position.latlon != self._marker
            )
            path_changed = session.path != self._path
            if session.current_position is not None:
                self._marker = session.current_position.latlon
                self._center = session.current_position.latlon
            self._path = session.path
        if (moved or path_changed) and self.output_html is not None:
            self.save(self.output_html)

    def render(self) -> folium.Map:
        with self._lock:
            center, zoom, marker, path = (
                self._center,
                self._zoom,
                self._marker,
                self._path,
            )
        folium_map = folium.Map(
            location=center,
            zoom_start=zoom,
            tiles=self._tiles,
            max_zoom=MAP_MAX_ZOOM,
            control_scale=True,
        )
        folium.Marker(
            location=marker,
            icon=folium.DivIcon(html=_MARKER_HTML, icon_size=(20, 20)),
            tooltip="Current position",
        ).add_to(folium_map)
        if path:
            folium.PolyLine(
                list(path),
                color=PATH_COLOR,
                weight=PATH_WEIGHT,
                opacity=PATH_OPACITY,
                tooltip=f"Recorded path ({len(path)} points)",
            ).add_to(folium_map)
        self.renders += 1
        return folium_map

    def save(self, output_html: PathLike) -> Path:
        output_path = Path(output_html)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.render().save(str(output_path))
        LOGGER.debug("Map written to %s", output_path)
        return output_path


__all__ = ["MapView"]
