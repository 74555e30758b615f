"""Schuljahr/Trimester-Schlüssel und gespeicherte Zuordnungen (Pydantic v2).

Schlüssel-Format: "YYYY-YYYY T#" (z.B. "2025-2026 T1").
Altes Format "YYYY-T#" wird beim Lesen weiterhin verstanden (Ende = Start + 1).
"""

import re
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.workshop import Band, is_unassigned

_KEY_PATTERN = re.compile(r"(\d+)-(\d+)\s+T(\d+)")
_LEGACY_KEY_PATTERN = re.compile(r"(\d+)-T(\d+)")


class SlotKey(BaseModel):
    """Schuljahr + Trimester, unveränderlich und sortierbar."""

    model_config = ConfigDict(frozen=True)

    school_year_start: int
    school_year_end: int
    trimester: int = Field(ge=1, le=3)

    def __str__(self) -> str:
        return f"{self.school_year_start}-{self.school_year_end} T{self.trimester}"

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.school_year_start, self.trimester)

    def previous(self) -> "SlotKey":
        """Vorheriges Trimester: T1 → T3 des Vorjahres, sonst T-1 im selben Jahr."""
        if self.trimester == 1:
            return SlotKey(
                school_year_start=self.school_year_start - 1,
                school_year_end=self.school_year_end - 1,
                trimester=3,
            )
        return SlotKey(
            school_year_start=self.school_year_start,
            school_year_end=self.school_year_end,
            trimester=self.trimester - 1,
        )

    @classmethod
    def parse(cls, key: str) -> Optional["SlotKey"]:
        """Parst neues und altes Schlüssel-Format; None bei unbekanntem Format."""
        m = _KEY_PATTERN.search(key)
        if m:
            return cls(
                school_year_start=int(m.group(1)),
                school_year_end=int(m.group(2)),
                trimester=int(m.group(3)),
            )
        m = _LEGACY_KEY_PATTERN.search(key)
        if m:
            year = int(m.group(1))
            return cls(school_year_start=year, school_year_end=year + 1,
                       trimester=int(m.group(2)))
        return None

    @classmethod
    def of(cls, school_year_start: int, trimester: int) -> "SlotKey":
        return cls(school_year_start=school_year_start,
                   school_year_end=school_year_start + 1, trimester=trimester)


def default_school_year(today: Optional[date] = None) -> tuple[int, int]:
    """Schuljahr zum Datum: ab September beginnt das neue Schuljahr."""
    today = today or date.today()
    if today.month >= 9:
        return today.year, today.year + 1
    return today.year - 1, today.year


def sort_slot_keys(keys: list[str], newest_first: bool = False) -> list[str]:
    """Sortiert Schlüssel chronologisch; unlesbare Schlüssel ans Ende."""
    parsed = [(SlotKey.parse(k), k) for k in keys]
    readable = [(p, k) for p, k in parsed if p is not None]
    unreadable = sorted(k for p, k in parsed if p is None)
    readable.sort(key=lambda item: item[0].sort_key, reverse=newest_first)
    return [k for _, k in readable] + unreadable


class BandAssignments(BaseModel):
    """Zuordnung Schüler → Werkstatt für beide Bänder."""

    band1: dict[str, str] = {}
    band2: dict[str, str] = {}

    def for_band(self, band: Band) -> dict[str, str]:
        return self.band1 if band is Band.BAND1 else self.band2

    def workshop_of(self, student: str, band: Band) -> Optional[str]:
        """Werkstatt des Schülers im Band, None wenn nicht zugeordnet."""
        value = self.for_band(band).get(student)
        return None if is_unassigned(value) else value

    def workshops_of(self, student: str) -> list[str]:
        return [w for w in (self.workshop_of(student, b) for b in Band) if w]

    def with_placement(self, student: str, workshop: str, band: Band) -> "BandAssignments":
        """Neue Instanz mit geänderter Zuordnung (das Original bleibt unverändert)."""
        updated = dict(self.for_band(band))
        updated[student] = workshop
        return self.model_copy(update={band.value: updated})

    def occupancy(self, band: Band, exclude: Optional[str] = None) -> dict[str, int]:
        """Anzahl Schüler je Werkstatt im Band."""
        counts: dict[str, int] = {}
        for student, workshop in self.for_band(band).items():
            if student == exclude or is_unassigned(workshop):
                continue
            counts[workshop] = counts.get(workshop, 0) + 1
        return counts

    def replace_workshop(self, name: str, replacement: str) -> "BandAssignments":
        """Ersetzt jede Zuordnung zu 'name' durch 'replacement'."""
        return self.model_copy(update={
            band.value: {
                s: (replacement if w == name else w)
                for s, w in self.for_band(band).items()
            }
            for band in Band
        })


class BandChoices(BaseModel):
    """Wahlen je Band: Schüler → geordnete Liste (Erstwunsch, Zweitwunsch)."""

    band1: dict[str, list[str]] = {}
    band2: dict[str, list[str]] = {}

    def for_band(self, band: Band) -> dict[str, list[str]]:
        return self.band1 if band is Band.BAND1 else self.band2

    def of(self, student: str, band: Band) -> list[str]:
        return list(self.for_band(band).get(student) or [])

    def without_student(self, student: str) -> "BandChoices":
        return self.model_copy(update={
            band.value: {s: c for s, c in self.for_band(band).items() if s != student}
            for band in Band
        })


class AssignmentSlot(BandAssignments):
    """Offiziell gespeicherte Zuordnung eines Schuljahr-Trimesters."""

    timestamp: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_legacy(cls, data: Any) -> Any:
        # Altes Format: {"assignments": {"erstesBand": {...}, "zweitesBand": {...}}}
        # oder {"assignments": {schüler: werkstatt}} (nur ein Band)
        if not isinstance(data, dict) or "assignments" not in data:
            return data
        inner = data.get("assignments") or {}
        result: dict[str, Any] = {"timestamp": data.get("timestamp")}
        if "erstesBand" in inner or "zweitesBand" in inner:
            result["band1"] = inner.get("erstesBand") or {}
            result["band2"] = inner.get("zweitesBand") or {}
        elif "band1" in inner or "band2" in inner:
            result["band1"] = inner.get("band1") or {}
            result["band2"] = inner.get("band2") or {}
        else:
            result["band1"] = dict(inner)
        return result


class HistoryRow(BaseModel):
    """Eine Zeile der Schüler-Historie."""

    slot_key: str
    band1: Optional[str] = None
    band2: Optional[str] = None
    timestamp: Optional[datetime] = None

    def workshops(self) -> list[str]:
        return [w for w in (self.band1, self.band2) if w]


def build_student_history(student: str, history: dict[str, AssignmentSlot],
                          newest_first: bool = True) -> list[HistoryRow]:
    """Alle gespeicherten Trimester, in denen der Schüler vorkommt."""
    rows: list[HistoryRow] = []
    for key in sort_slot_keys(list(history), newest_first=newest_first):
        slot = history[key]
        if student not in slot.band1 and student not in slot.band2:
            continue
        rows.append(HistoryRow(
            slot_key=key,
            band1=slot.workshop_of(student, Band.BAND1),
            band2=slot.workshop_of(student, Band.BAND2),
            timestamp=slot.timestamp,
        ))
    return rows
