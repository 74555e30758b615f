"""Datenmodell für Werkstätten und Bänder (Pydantic v2)."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Band(str, Enum):
    """Eines der zwei parallelen wöchentlichen Zeitfenster."""

    BAND1 = "band1"
    BAND2 = "band2"

    @property
    def label(self) -> str:
        return "Erstes Band" if self is Band.BAND1 else "Zweites Band"

    @property
    def other(self) -> "Band":
        return Band.BAND2 if self is Band.BAND1 else Band.BAND1


ALL_BANDS: list[Band] = [Band.BAND1, Band.BAND2]

# Ältere Datenstände speichern die Bänder unter ihrem deutschen Schlüssel
_LEGACY_BAND_NAMES = {
    "erstesband": Band.BAND1,
    "zweitesband": Band.BAND2,
    "band1": Band.BAND1,
    "band2": Band.BAND2,
}

UNASSIGNED = "Nicht Zugeordnet"


def parse_band(value: Any) -> Band:
    """Wandelt 'band1', 'erstesBand', Band.BAND1 usw. in ein Band um."""
    if isinstance(value, Band):
        return value
    band = _LEGACY_BAND_NAMES.get(str(value).strip().lower())
    if band is None:
        raise ValueError(f"Unbekanntes Band: {value!r}")
    return band


def is_unassigned(value: Optional[str]) -> bool:
    """True für leere Werte und alle Schreibweisen von 'Nicht Zugeordnet'.

    Alte Datenstände enthalten auch den Tippfehler 'Nicht Zugeordnen'.
    """
    if not value:
        return True
    normalized = str(value).strip().lower()
    return "nicht" in normalized and "zugeordn" in normalized


class Workshop(BaseModel):
    """Eine aktive Werkstatt."""

    name: str
    capacity: int = Field(0, ge=0)
    available_bands: list[Band] = Field(default_factory=lambda: list(ALL_BANDS))
    teacher: Optional[str] = None
    room: Optional[str] = None
    color: Optional[str] = None
    prerequisites: list[str] = []        # ALLE müssen vorher belegt sein
    cannot_be_parallel: list[str] = []   # einseitig gespeichert, beidseitig geprüft

    @model_validator(mode="before")
    @classmethod
    def _coerce_legacy(cls, data: Any) -> Any:
        # Altes Format: nur die Kapazität als Zahl → in beiden Bändern verfügbar
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            return {"name": "", "capacity": int(data)}
        if isinstance(data, dict):
            data = dict(data)
            data.setdefault("name", "")
            if "availableBands" in data and "available_bands" not in data:
                data["available_bands"] = data.pop("availableBands")
            if data.get("available_bands") is None:
                data.pop("available_bands", None)
            if data.get("capacity") is None:
                data["capacity"] = 0
        return data

    @field_validator("available_bands", mode="before")
    @classmethod
    def _normalize_bands(cls, v: Any) -> list[Band]:
        bands: list[Band] = []
        for item in v or []:
            band = parse_band(item)
            if band not in bands:
                bands.append(band)
        return bands

    def is_available_in(self, band: Band) -> bool:
        return band in self.available_bands

    def excludes(self, other: str) -> bool:
        """True wenn diese Werkstatt 'other' als nicht-parallel führt."""
        return other in self.cannot_be_parallel


class ArchivedWorkshop(BaseModel):
    """Archivierte Werkstatt: wurde schon belegt und bleibt für die Historie erhalten."""

    name: str
    capacity: int = Field(0, ge=0)
    available_bands: list[Band] = Field(default_factory=lambda: list(ALL_BANDS))
    archived_at: datetime
    teacher: Optional[str] = None
    room: Optional[str] = None
    color: Optional[str] = None
    prerequisites: list[str] = []
    cannot_be_parallel: list[str] = []

    @field_validator("available_bands", mode="before")
    @classmethod
    def _normalize_bands(cls, v: Any) -> list[Band]:
        return [parse_band(item) for item in v or []]

    @classmethod
    def from_workshop(cls, workshop: Workshop, archived_at: datetime) -> "ArchivedWorkshop":
        return cls(archived_at=archived_at, **workshop.model_dump())

    def restore(self) -> Workshop:
        """Reaktiviert die Werkstatt mit allen gespeicherten Angaben."""
        return Workshop(**self.model_dump(exclude={"archived_at"}))


def normalize_workshop_table(raw: Any) -> dict[str, Workshop]:
    """Kanonische Form der Werkstatt-Tabelle: Name → Workshop.

    Akzeptiert das alte Format {name: kapazität} und das neue Format
    {name: {capacity, availableBands}} gemischt.
    """
    table: dict[str, Workshop] = {}
    for name, value in (raw or {}).items():
        if isinstance(value, Workshop):
            table[name] = value.model_copy(update={"name": name})
            continue
        ws = Workshop.model_validate(value)
        table[name] = ws.model_copy(update={"name": name})
    return table
