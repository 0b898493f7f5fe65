"""Geofence workbook loader used to seed city and warehouse zones."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from ..config import settings
from ..models.domain import Geofence, GeofenceKind
from ..persistence.base import TrackingStore

REQUIRED_COLUMNS = {"City", "Type", "Latitude", "Longitude", "Radius"}

_KIND_ALIASES = {
    "city": GeofenceKind.CITY_BOUNDARY,
    "city_boundary": GeofenceKind.CITY_BOUNDARY,
    "warehouse": GeofenceKind.WAREHOUSE,
    "depot": GeofenceKind.WAREHOUSE,
}


def _parse_kind(value: Any) -> GeofenceKind:
    key = str(value or "").strip().lower().replace(" ", "_")
    if key not in _KIND_ALIASES:
        raise ValueError(f"Unknown geofence type '{value}'")
    return _KIND_ALIASES[key]


def load_geofences_from_workbook(source: Path | bytes | None = None) -> tuple[Geofence, ...]:
    """Load geofences from an Excel workbook path or its raw bytes.

    The first sheet must carry the columns City, Type, Latitude, Longitude and
    Radius (metres); Color is optional. Rows without a city are skipped.
    """
    if isinstance(source, (bytes, bytearray)):
        workbook_source: Any = io.BytesIO(source)
        label = "uploaded workbook"
    else:
        workbook_path = source or settings.geofences_file
        if not workbook_path.exists():
            raise FileNotFoundError(f"Geofence workbook not found: {workbook_path}")
        workbook_source = workbook_path
        label = str(workbook_path)

    wb = load_workbook(workbook_source, data_only=True, read_only=True)
    sheet = wb.active
    rows = sheet.iter_rows(min_row=1, values_only=True)
    header = next(rows, None)
    if header is None:
        raise ValueError(f"Geofence workbook '{label}' is empty.")

    header_map = {str(name).strip(): idx for idx, name in enumerate(header) if name is not None}
    missing_columns = REQUIRED_COLUMNS - set(header_map)
    if missing_columns:
        raise ValueError(f"Geofence workbook missing columns: {', '.join(sorted(missing_columns))}")

    geofences: list[Geofence] = []
    for line, row in enumerate(rows, start=2):
        city = row[header_map["City"]]
        if not city:
            continue
        color_idx = header_map.get("Color")
        try:
            geofences.append(
                Geofence(
                    id="",
                    city_name=str(city).strip(),
                    kind=_parse_kind(row[header_map["Type"]]),
                    latitude=float(row[header_map["Latitude"]]),
                    longitude=float(row[header_map["Longitude"]]),
                    radius=float(row[header_map["Radius"]]),
                    color=row[color_idx] if color_idx is not None and row[color_idx] else None,
                )
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid geofence on row {line} of {label}: {e}") from e
    return tuple(geofences)


def seed_geofences(store: TrackingStore, source: Path | None = None) -> int:
    """Load the workbook into ``store`` when it has no geofences yet. Returns the number added."""
    if store.list_geofences():
        return 0
    workbook_path = source or settings.geofences_file
    if not workbook_path.exists():
        logging.info(f"No geofence workbook at {workbook_path} - starting without seeded zones")
        return 0

    geofences = load_geofences_from_workbook(workbook_path)
    for geofence in geofences:
        store.add_geofence(geofence)
    logging.info(f"Seeded {len(geofences)} geofences from {workbook_path}")
    return len(geofences)
