"""Formatting helpers shared by the pipeline, the shell and the exporter."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .config import RECORD_TIMESTAMP_FORMAT


def speed_to_kmh(speed_mps: Optional[float]) -> float:
    """Convert metres/second to km/h rounded to 2 decimals; no speed -> 0."""

    if not speed_mps:
        return 0
    return round(float(speed_mps) * 3.6, 2)


def format_speed(speed_kmh: float) -> str:
    """Return the record speed text, e.g. ``"10.01 km/h"`` or ``"0 km/h"``."""

    if not speed_kmh:
        return "0 km/h"
    return f"{speed_kmh:.2f} km/h"


def format_coordinate(value: float) -> str:
    return f"{value:.6f}"


def format_timestamp(value: datetime, fmt: str = RECORD_TIMESTAMP_FORMAT) -> str:
    return value.strftime(fmt)


def format_accuracy(accuracy_m: Optional[float]) -> str:
    if accuracy_m is None:
        return "unknown"
    return f"{accuracy_m:.0f} meters"
