"""JsonRepository – Datenspeicher als JSON-Dokumente pro Schlüssel.

Jeder Schlüssel liegt als eigene Datei <base_dir>/<key>.json. Beim Laden
werden ältere Ablageformen vereinheitlicht:

  - getrennte Tabellen je Schüler-Attribut (Klasse, Schulbegleitung, Score,
    Kommentar, Trimester) und je Werkstatt-Attribut (Voraussetzungen,
    Kann-nicht-parallel, Farbe, Lehrkraft, Raum)
  - Werkstatt-Kapazität als bloße Zahl
  - Band-Namen "erstesBand"/"zweitesBand", Historien-Schlüssel "2025-T1"
  - Regeln ohne "type" und Vorjahres-Zuordnungen als einzelner String
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from models.werkstatt_data import WerkstattData

logger = logging.getLogger(__name__)

DATASET_KEYS = [
    "students", "workshops", "archived_workshops", "rules", "choices",
    "current", "history", "prior_assignments", "meta",
]

# Ältere, nach Attribut getrennte Tabellen → Feld im Schüler/Werkstatt-Modell
_LEGACY_STUDENT_TABLES = {
    "student_classes": "class_label",
    "student_assistants": "needs_support",
    "student_priority_scores": "priority_score",
    "student_comments": "comment",
    "student_trimesters": "trimester",
}
_LEGACY_WORKSHOP_TABLES = {
    "prereqs": "prerequisites",
    "cannot_be_parallel": "cannot_be_parallel",
    "workshop_colors": "color",
    "workshop_teachers": "teacher",
    "workshop_rooms": "room",
}


class JsonRepository:
    """Schlüssel-Wert-Speicher auf Basis von JSON-Dateien."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        with open(path, "r", encoding="utf-8") as f:
            try:
                return json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Ungültiges JSON in {path}: {e}") from e

    def set(self, key: str, value: Any) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        with open(self._path(key), "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2, ensure_ascii=False, default=str)

    def keys(self) -> list[str]:
        if not self.base_dir.exists():
            return []
        return sorted(p.stem for p in self.base_dir.glob("*.json"))

    def exists(self) -> bool:
        return any(k in DATASET_KEYS for k in self.keys())

    # ─── Datenbestand ───

    def load_dataset(self) -> WerkstattData:
        """Lädt den kompletten Datenbestand und bringt ihn in die kanonische Form."""
        if not self.exists():
            raise FileNotFoundError(
                f"Kein Datenbestand in {self.base_dir} gefunden. "
                f"Bitte zuerst 'python main.py generate' ausführen."
            )
        meta = self.get("meta", {}) or {}
        raw: dict[str, Any] = {}
        for key in DATASET_KEYS:
            value = self.get(key)
            if key != "meta" and value is not None:
                raw[key] = value
        raw["students"] = self._merge_student_tables(raw.get("students") or {})
        raw["workshops"] = self._merge_workshop_tables(raw.get("workshops") or {})
        raw.update({k: v for k, v in meta.items() if v is not None})

        try:
            data = WerkstattData.model_validate(raw)
        except ValidationError as e:
            raise ValueError(f"Datenbestand in {self.base_dir} ist ungültig:\n{e}") from e
        logger.info(
            f"Datenbestand geladen: {len(data.students)} Schüler, "
            f"{len(data.workshops)} Werkstätten, {len(data.history)} Trimester"
        )
        return data

    def save_dataset(self, data: WerkstattData) -> None:
        """Speichert den Datenbestand, ein Dokument pro Schlüssel."""
        now = datetime.now(timezone.utc)
        updated = data.model_copy(update={
            "modified_at": now,
            "created_at": data.created_at or now,
        })
        dumped = updated.model_dump(mode="json")
        for key in DATASET_KEYS:
            if key == "meta":
                continue
            self.set(key, dumped[key])
        self.set("meta", {
            "school_year_start": dumped["school_year_start"],
            "trimester": dumped["trimester"],
            "created_at": dumped["created_at"],
            "modified_at": dumped["modified_at"],
        })
        logger.info(f"Datenbestand gespeichert: {self.base_dir}")

    def _merge_student_tables(self, students: Any) -> Any:
        tables = {field: self.get(key) for key, field in _LEGACY_STUDENT_TABLES.items()}
        if not any(tables.values()):
            return students
        if isinstance(students, list):
            students = {
                (s if isinstance(s, str) else s["name"]): ({} if isinstance(s, str) else s)
                for s in students
            }
        merged = {}
        for name, entry in students.items():
            entry = dict(entry or {})
            for field, table in tables.items():
                if table and name in table and field not in entry:
                    entry[field] = table[name]
            merged[name] = entry
        return merged

    def _merge_workshop_tables(self, workshops: Any) -> Any:
        tables = {field: self.get(key) for key, field in _LEGACY_WORKSHOP_TABLES.items()}
        if not any(tables.values()):
            return workshops
        merged = {}
        for name, entry in workshops.items():
            if isinstance(entry, (int, float)):
                entry = {"capacity": int(entry)}
            entry = dict(entry or {})
            for field, table in tables.items():
                if table and name in table and field not in entry:
                    entry[field] = table[name]
            merged[name] = entry
        return merged
