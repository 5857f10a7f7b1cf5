"""Excel export of recorded track records."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from os import PathLike
from pathlib import Path
from typing import Callable, Optional, Sequence

import pandas as pd
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from .capabilities import Capability
from .config import (
    EXCEL_AUTOSIZE_COLUMNS,
    EXCEL_AUTOSIZE_MAX_ROWS,
    EXCEL_AUTOSIZE_MAX_WIDTH,
    EXCEL_AUTOSIZE_MIN_WIDTH,
    EXCEL_AUTOSIZE_PADDING,
    EXPORT_DIR,
    EXPORT_FILE_PREFIX,
    EXPORT_SHEET_NAME,
)
from .errors import ExportPreconditionFailure
from .models import TrackRecord

PathInput = str | Path | PathLike[str]

EXPORT_COLUMNS = ["timestamp", "latitude", "longitude", "address", "speed"]
NO_DATA_MESSAGE = (
    "No tracking data available!\n\n"
    "Please:\n"
    '1. Click "Track in Map"\n'
    '2. Click "Record Path"\n'
    "3. Move around to record your location\n"
    "4. Come back and export"
)

HEADER_FONT = Font(bold=True, color="FFFFFFFF")
HEADER_FILL = PatternFill(patternType="solid", fgColor="FFFF8C00")
HEADER_BORDER = Border(
    left=Side(style="thin", color="000000"),
    right=Side(style="thin", color="000000"),
    top=Side(style="thin", color="000000"),
    bottom=Side(style="thin", color="000000"),
)

LOGGER = logging.getLogger(__name__)


def build_file_name(
    now: datetime | None = None, token: int | None = None
) -> str:
    """Return ``location_tracking_<YYYY-MM-DD>_<epoch-ms>.xlsx``."""

    now = now or datetime.now()
    if token is None:
        token = int(time.time() * 1000)
    return f"{EXPORT_FILE_PREFIX}_{now.date().isoformat()}_{token}.xlsx"


def _unique_path(path: Path) -> Path:
    candidate = path
    i = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.stem}_{i}{path.suffix}")
        i += 1
    return candidate


def records_frame(records: Sequence[TrackRecord]) -> pd.DataFrame:
    return pd.DataFrame([r.to_row() for r in records], columns=EXPORT_COLUMNS)


def _autosize(ws: Worksheet) -> None:
    if not EXCEL_AUTOSIZE_COLUMNS:
        return
    try:
        if ws.max_row > EXCEL_AUTOSIZE_MAX_ROWS:
            return
        for col_cells in ws.columns:
            max_len = 0
            col_letter = getattr(col_cells[0], "column_letter", None)
            for cell in col_cells:
                if cell.value is None:
                    continue
                max_len = max(max_len, len(str(cell.value)))
            width = min(
                EXCEL_AUTOSIZE_MAX_WIDTH,
                max(EXCEL_AUTOSIZE_MIN_WIDTH, max_len + EXCEL_AUTOSIZE_PADDING),
            )
            if col_letter:
                ws.column_dimensions[col_letter].width = width
    except Exception as exc:  # pragma: no cover - autosize is best-effort
        LOGGER.debug("Autosize failed for sheet %s: %s", getattr(ws, "title", "?"), exc)


def _style_header_row(ws: Worksheet, max_col: int) -> None:
    for col_idx in range(1, max_col + 1):
        cell = ws.cell(row=1, column=col_idx)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = HEADER_BORDER


class ExcelExporter:
    """Writes track records to a timestamped workbook."""

    def __init__(
        self,
        *,
        capability: Capability | None = None,
        directory: PathInput = EXPORT_DIR,
        file_namer: Callable[[], str] = build_file_name,
    ) -> None:
        self._capability = capability
        self._directory = Path(directory)
        self._file_namer = file_namer

    def check_ready(self, records: Sequence[TrackRecord]) -> None:
        if not records:
            raise ExportPreconditionFailure(NO_DATA_MESSAGE)
        if self._capability is not None:
            self._capability.require()

    def export(
        self, records: Sequence[TrackRecord], directory: Optional[PathInput] = None
    ) -> Path:
        """Write ``records`` to a new workbook and return its path.

        Raises:
            ExportPreconditionFailure: No records, or the Excel writer is not
                loaded yet. Nothing is written in that case.

        A workbook that fails part way through writing is removed before
        the error propagates.
        """

        self.check_ready(records)
        target_dir = Path(directory) if directory is not None else self._directory
        target_dir.mkdir(parents=True, exist_ok=True)
        output_path = _unique_path(target_dir / self._file_namer())

        df = records_frame(records)
        try:
            with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
                df.to_excel(writer, sheet_name=EXPORT_SHEET_NAME, index=False)
                ws = writer.sheets[EXPORT_SHEET_NAME]
                _style_header_row(ws, len(df.columns))
                ws.freeze_panes = "A2"
                _autosize(ws)
        except Exception:
            output_path.unlink(missing_ok=True)
            raise
        LOGGER.info("Exported %d records to %s", len(records), output_path)
        return output_path


__all__ = ["EXPORT_COLUMNS", "ExcelExporter", "build_file_name", "records_frame"]
