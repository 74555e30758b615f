"""WerkstattData: vollständiger Datenbestand der Werkstatt-Verwaltung (Pydantic v2).

Enthält Roster, Werkstätten (aktiv und archiviert), Regeln, Wahlen, den
aktuellen Zuteilungsstand, die offizielle Historie und den Vorjahres-Record.
Ältere Datenstände werden beim Validieren in die kanonische Form gebracht.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from analysis.priority_feedback import PriorityUpdate, update_scores
from config.schema import PriorityConfig
from models.assignment import (
    AssignmentSlot, BandAssignments, BandChoices, HistoryRow, SlotKey,
    build_student_history, default_school_year,
)
from models.rules import BelegungRule, FolgekursRule, Rule, normalize_rule_payload
from models.student import Student
from models.workshop import (
    UNASSIGNED, ArchivedWorkshop, Band, Workshop, normalize_workshop_table, parse_band,
)
from solver.constraints import ConstraintContext, workshop_has_history

_WORKSHOP_FIELDS = {
    "capacity", "available_bands", "teacher", "room", "color",
    "prerequisites", "cannot_be_parallel",
}


def _normalize_band_maps(v: Any) -> Any:
    # {"erstesBand": {...}, "zweitesBand": {...}} → {"band1": {...}, "band2": {...}}
    if not isinstance(v, dict):
        return v
    return {parse_band(k).value: m or {} for k, m in v.items()}


def _current_school_year() -> int:
    return default_school_year()[0]


class WerkstattData(BaseModel):
    """Datenbestand einer Schule für die Werkstatt-Zuteilung."""

    students: dict[str, Student] = {}
    workshops: dict[str, Workshop] = {}
    archived_workshops: dict[str, ArchivedWorkshop] = {}
    rules: list[Rule] = []
    choices: BandChoices = Field(default_factory=BandChoices)
    current: BandAssignments = Field(default_factory=BandAssignments)
    history: dict[str, AssignmentSlot] = {}
    prior_assignments: dict[str, list[str]] = {}
    school_year_start: int = Field(default_factory=_current_school_year)
    trimester: int = 1
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    # ─── Normalisierung alter Datenstände ───

    @field_validator("students", mode="before")
    @classmethod
    def _normalize_students(cls, v: Any) -> Any:
        # Liste von Namen oder Liste/Dict von Objekten
        if isinstance(v, list):
            result = {}
            for item in v:
                student = {"name": item} if isinstance(item, str) else dict(item)
                result[student["name"].strip()] = student
            return result
        if isinstance(v, dict):
            return {
                name: s if isinstance(s, Student) else {**(s or {}), "name": name}
                for name, s in v.items()
            }
        return v

    @field_validator("workshops", mode="before")
    @classmethod
    def _normalize_workshops(cls, v: Any) -> Any:
        return normalize_workshop_table(v)

    @field_validator("archived_workshops", mode="before")
    @classmethod
    def _normalize_archive(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return v
        result = {}
        for name, entry in v.items():
            if isinstance(entry, ArchivedWorkshop):
                result[name] = entry
                continue
            entry = dict(entry or {})
            entry["name"] = name
            if "availableBands" in entry:
                entry["available_bands"] = entry.pop("availableBands")
            if "archivedAt" in entry:
                entry["archived_at"] = entry.pop("archivedAt")
            entry.setdefault("archived_at", datetime.now(timezone.utc))
            result[name] = entry
        return result

    @field_validator("rules", mode="before")
    @classmethod
    def _normalize_rules(cls, v: Any) -> Any:
        return [normalize_rule_payload(r) for r in (v or [])]

    @field_validator("choices", "current", mode="before")
    @classmethod
    def _normalize_bands(cls, v: Any) -> Any:
        return _normalize_band_maps(v)

    @field_validator("history", mode="before")
    @classmethod
    def _normalize_history(cls, v: Any) -> Any:
        # Alte Schlüssel "2025-T1" → "2025-2026 T1"
        if not isinstance(v, dict):
            return v
        result = {}
        for key, slot in v.items():
            parsed = SlotKey.parse(key)
            result[str(parsed) if parsed else key] = slot
        return result

    @field_validator("prior_assignments", mode="before")
    @classmethod
    def _normalize_prior(cls, v: Any) -> Any:
        # Einzelner String → Liste mit einem Eintrag
        if not isinstance(v, dict):
            return v
        return {
            s: ([w] if isinstance(w, str) else list(w or []))
            for s, w in v.items()
        }

    # ─── Übersicht ───

    @property
    def roster(self) -> list[str]:
        return list(self.students)

    @property
    def slot_key(self) -> SlotKey:
        return SlotKey.of(self.school_year_start, self.trimester)

    def scores(self) -> dict[str, float]:
        return {name: s.priority_score for name, s in self.students.items()}

    def support_flags(self) -> dict[str, bool]:
        return {name: s.needs_support for name, s in self.students.items()}

    def constraint_context(self) -> ConstraintContext:
        """Schnappschuss für Zuteilung und Prüfung."""
        return ConstraintContext(
            workshops=dict(self.workshops),
            prior_assignments={s: list(r) for s, r in self.prior_assignments.items()},
            rules=list(self.rules),
            history=dict(self.history),
            slot_key=self.slot_key,
        )

    def summary(self) -> str:
        """Kurze Übersicht über den Datenbestand."""
        support = sum(1 for s in self.students.values() if s.needs_support)
        lines = [
            f"Trimester: {self.slot_key}",
            f"Schüler: {len(self.students)} ({support} mit Schulbegleitung)",
            f"Werkstätten: {len(self.workshops)} aktiv, "
            f"{len(self.archived_workshops)} archiviert",
            f"Regeln: {len(self.rules)}",
            f"Wahlen: {len(self.choices.band1)} (Erstes Band), "
            f"{len(self.choices.band2)} (Zweites Band)",
            f"Gespeicherte Trimester: {len(self.history)}",
        ]
        return "\n".join(lines)

    # ─── Schüler ───

    def _student(self, name: str) -> Student:
        if name not in self.students:
            raise KeyError(f"Unbekannter Schüler: {name}")
        return self.students[name]

    def add_student(self, name: str, class_label: str = "", needs_support: bool = False,
                    priority_score: float = 5.0) -> Student:
        student = Student(name=name, class_label=class_label,
                          needs_support=needs_support, priority_score=priority_score)
        if student.name in self.students:
            raise ValueError(f"Schüler existiert bereits: {student.name}")
        self.students[student.name] = student
        return student

    def delete_student(self, name: str) -> None:
        """Entfernt den Schüler samt Wahlen und aktueller Zuordnung."""
        self._student(name)
        del self.students[name]
        self.choices = self.choices.without_student(name)
        self.current = BandAssignments(**{
            band.value: {s: w for s, w in self.current.for_band(band).items() if s != name}
            for band in Band
        })

    def update_student(self, name: str, **changes: Any) -> Student:
        """Ändert Klasse, Kommentar, Trimester oder Schulbegleitung."""
        allowed = {"class_label", "comment", "trimester", "needs_support"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unbekannte Felder: {', '.join(sorted(unknown))}")
        student = self._student(name)
        updated = Student.model_validate({**student.model_dump(), **changes})
        self.students[name] = updated
        return updated

    def set_priority_score(self, name: str, score: float,
                           config: Optional[PriorityConfig] = None) -> float:
        """Manuelle Änderung des Scores, auf das gültige Intervall begrenzt."""
        config = config or PriorityConfig()
        clamped = config.clamp(score)
        student = self._student(name)
        self.students[name] = student.model_copy(update={"priority_score": clamped})
        return clamped

    def history_for(self, name: str) -> list[HistoryRow]:
        """Historie des Schülers, neueste zuerst."""
        return build_student_history(name, self.history, newest_first=True)

    # ─── Werkstätten ───

    def _workshop(self, name: str) -> Workshop:
        if name not in self.workshops:
            raise KeyError(f"Unbekannte Werkstatt: {name}")
        return self.workshops[name]

    def add_workshop(self, name: str, capacity: int,
                     available_bands: Optional[list[Band]] = None, **extra: Any) -> Workshop:
        name = name.strip()
        if not name:
            raise ValueError("Name der Werkstatt darf nicht leer sein.")
        if name in self.workshops:
            raise ValueError(f"Werkstatt existiert bereits: {name}")
        if name in self.archived_workshops:
            raise ValueError(f"Werkstatt ist archiviert, bitte reaktivieren: {name}")
        data: dict[str, Any] = {"name": name, "capacity": capacity, **extra}
        if available_bands is not None:
            data["available_bands"] = available_bands
        workshop = Workshop.model_validate(data)
        self.workshops[name] = workshop
        return workshop

    def update_workshop(self, name: str, **changes: Any) -> Workshop:
        """Ändert Kapazität, Bänder, Lehrkraft, Raum, Farbe oder Abhängigkeiten."""
        unknown = set(changes) - _WORKSHOP_FIELDS
        if unknown:
            raise ValueError(f"Unbekannte Felder: {', '.join(sorted(unknown))}")
        workshop = self._workshop(name)
        updated = Workshop.model_validate({**workshop.model_dump(), **changes})
        self.workshops[name] = updated
        return updated

    def delete_workshop(self, name: str, now: Optional[datetime] = None) -> str:
        """Archiviert die Werkstatt, wenn sie je belegt wurde, sonst endgültig löschen.

        Gibt "archived" oder "deleted" zurück.
        """
        workshop = self._workshop(name)
        del self.workshops[name]
        if workshop_has_history(name, self.history, self.prior_assignments, self.current):
            self.archived_workshops[name] = ArchivedWorkshop.from_workshop(
                workshop, now or datetime.now(timezone.utc)
            )
            return "archived"
        return "deleted"

    def reactivate_workshop(self, name: str) -> Workshop:
        if name not in self.archived_workshops:
            raise KeyError(f"Keine archivierte Werkstatt: {name}")
        workshop = self.archived_workshops.pop(name).restore()
        self.workshops[name] = workshop
        return workshop

    def purge_workshop(self, name: str) -> None:
        """Löscht eine archivierte Werkstatt endgültig, auch aus allen Historien."""
        if name not in self.archived_workshops:
            raise KeyError(f"Keine archivierte Werkstatt: {name}")
        del self.archived_workshops[name]

        self.history = {
            key: slot.replace_workshop(name, UNASSIGNED)
            for key, slot in self.history.items()
        }
        prior: dict[str, list[str]] = {}
        for student, record in self.prior_assignments.items():
            remaining = [w for w in record if w != name]
            if remaining:
                prior[student] = remaining
        self.prior_assignments = prior
        self.current = self.current.replace_workshop(name, UNASSIGNED)

    # ─── Regeln ───

    def add_rule(self, rule: Rule) -> Rule:
        if any(r.id == rule.id for r in self.rules):
            raise ValueError(f"Regel-ID existiert bereits: {rule.id}")
        self.rules.append(rule)
        return rule

    def add_belegung_rule(self, name: str, options: list[str],
                          rule_id: Optional[str] = None) -> BelegungRule:
        rule = BelegungRule(id=rule_id or self._next_rule_id(), name=name, options=options)
        self.add_rule(rule)
        return rule

    def add_folgekurs_rule(self, name: str, from_course: str, to_course: str,
                           same_band: bool = False,
                           rule_id: Optional[str] = None) -> FolgekursRule:
        rule = FolgekursRule(id=rule_id or self._next_rule_id(), name=name,
                             from_course=from_course, to_course=to_course,
                             same_band=same_band)
        self.add_rule(rule)
        return rule

    def delete_rule(self, rule_id: str) -> None:
        before = len(self.rules)
        self.rules = [r for r in self.rules if r.id != rule_id]
        if len(self.rules) == before:
            raise KeyError(f"Unbekannte Regel: {rule_id}")

    def _next_rule_id(self) -> str:
        return str(int(datetime.now(timezone.utc).timestamp() * 1000) + len(self.rules))

    # ─── Zuteilung speichern ───

    def finalize(self, assignments: Optional[BandAssignments] = None,
                 config: Optional[PriorityConfig] = None,
                 now: Optional[datetime] = None) -> PriorityUpdate:
        """Speichert den Zuteilungsstand als offiziellen Eintrag und passt die Scores an.

        Ein vorhandener Eintrag für dasselbe Trimester wird überschrieben.
        """
        assignments = assignments or self.current
        key = str(self.slot_key)
        self.history[key] = AssignmentSlot(
            band1=dict(assignments.band1),
            band2=dict(assignments.band2),
            timestamp=now or datetime.now(timezone.utc),
        )
        self.current = assignments

        update = update_scores(self.roster, assignments, self.choices,
                               self.scores(), config)
        for name, score in update.scores.items():
            if name in self.students:
                self.students[name] = self.students[name].model_copy(
                    update={"priority_score": score}
                )
        return update

    def edit_history(self, slot_key: str, student: str, workshop: str, band: Band) -> None:
        """Ändert die gespeicherte Zuordnung eines Schülers in einem Trimester."""
        parsed = SlotKey.parse(slot_key)
        key = str(parsed) if parsed else slot_key
        if key not in self.history:
            raise KeyError(f"Eintrag nicht gefunden: {slot_key}")
        slot = self.history[key]
        self.history[key] = slot.with_placement(student, workshop, band)
