"""Constraint-Prüfung: darf Schüler S in Band B in Werkstatt W?

Reine Funktionen ohne Zustandsänderung. Die Prüfungen laufen in fester
Reihenfolge, die erste Verletzung gewinnt:

  1. Werkstatt im Band angeboten
  2. Kann-nicht-parallel zur Zuordnung im anderen Band (beidseitig)
  3. Kapazität im Band
  4. Wiederholung der Werkstatt des letzten Jahres
  5. Voraussetzungen (ALLE im bisherigen Belegungs-Record)
  6. Folgekurs-Pflicht aus dem vorherigen Trimester

Wird von der automatischen Zuteilung und vom Drag-&-Drop-Validator
gleichermaßen genutzt.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from models.assignment import AssignmentSlot, BandAssignments, SlotKey
from models.rules import BelegungRule, FolgekursRule, Rule
from models.workshop import Band, Workshop, is_unassigned


# ─── Ergebnis-Modelle ─────────────────────────────────────────────────────────

class CheckCode(str, Enum):
    """Welche Prüfung fehlgeschlagen ist."""

    BAND = "band"
    PARALLEL = "parallel"
    SAME_WORKSHOP = "same_workshop"
    CAPACITY = "capacity"
    REPEAT = "repeat"
    PREREQUISITE = "prerequisite"
    FOLGEKURS = "folgekurs"


class AssignmentCheck(BaseModel):
    """Antwort von can_assign: ok oder Begründung."""

    ok: bool
    reason: Optional[str] = None
    code: Optional[CheckCode] = None

    @classmethod
    def passed(cls) -> "AssignmentCheck":
        return cls(ok=True)

    @classmethod
    def failed(cls, code: CheckCode, reason: str) -> "AssignmentCheck":
        return cls(ok=False, code=code, reason=reason)


class FolgekursRequirement(BaseModel):
    """Aktive Folgekurs-Pflicht eines Schülers im aktuellen Trimester."""

    course: str
    band: Optional[Band] = None   # None = beliebiges Band
    rule_name: str
    triggered_by: str             # Schlüssel des vorherigen Trimesters
    triggered_in: Band            # Band, in dem fromCourse belegt war

    def applies_to(self, band: Band) -> bool:
        return self.band is None or self.band is band


class ConstraintContext(BaseModel):
    """Unveränderlicher Schnappschuss der Stammdaten für einen Lauf."""

    workshops: dict[str, Workshop]
    prior_assignments: dict[str, list[str]] = {}
    rules: list[Rule] = []
    history: dict[str, AssignmentSlot] = {}
    slot_key: SlotKey


# ─── Einzel-Prädikate ─────────────────────────────────────────────────────────

def last_prior_assignment(student: str, prior_assignments: dict[str, list[str]]) -> Optional[str]:
    """Zuletzt belegte Werkstatt aus dem Vorjahres-Record (letzter Eintrag)."""
    record = prior_assignments.get(student) or []
    return record[-1] if record else None


def has_prerequisites(
    student: str,
    workshop_name: str,
    workshops: dict[str, Workshop],
    prior_assignments: dict[str, list[str]],
) -> bool:
    """Alle Voraussetzungen der Werkstatt im Belegungs-Record des Schülers?"""
    workshop = workshops.get(workshop_name)
    required = workshop.prerequisites if workshop else []
    if not required:
        return True
    taken = prior_assignments.get(student) or []
    return all(req in taken for req in required)


def excludes_each_other(a: str, b: str, workshops: dict[str, Workshop]) -> bool:
    """Kann-nicht-parallel in beide Richtungen."""
    ws_a = workshops.get(a)
    ws_b = workshops.get(b)
    return bool((ws_a and ws_a.excludes(b)) or (ws_b and ws_b.excludes(a)))


def required_folgekurs(
    student: str,
    rules: list[Rule],
    history: dict[str, AssignmentSlot],
    slot_key: SlotKey,
) -> Optional[FolgekursRequirement]:
    """Ermittelt die Folgekurs-Pflicht aus dem unmittelbar vorherigen Trimester.

    Die erste passende Regel gewinnt; innerhalb einer Regel wird das Erste
    Band vor dem Zweiten geprüft.
    """
    folgekurs_rules = [r for r in rules if _is_folgekurs(r)]
    if not folgekurs_rules:
        return None

    prev_key = str(slot_key.previous())
    prev_slot = history.get(prev_key)
    if prev_slot is None:
        return None

    for rule in folgekurs_rules:
        for band in Band:
            if prev_slot.workshop_of(student, band) == rule.from_course:
                return FolgekursRequirement(
                    course=rule.to_course,
                    band=band if rule.same_band else None,
                    rule_name=rule.name,
                    triggered_by=prev_key,
                    triggered_in=band,
                )
    return None


def _is_folgekurs(rule: Rule) -> bool:
    if isinstance(rule, FolgekursRule):
        return True
    if isinstance(rule, BelegungRule):
        return False
    raise TypeError(f"Unbekannter Regeltyp: {type(rule).__name__}")


def folgekurs_fulfilled(
    requirement: FolgekursRequirement, student: str, state: BandAssignments
) -> bool:
    """Ist die Pflicht im gegebenen Zustand bereits erfüllt?"""
    if requirement.band is not None:
        return state.workshop_of(student, requirement.band) == requirement.course
    return requirement.course in state.workshops_of(student)


def folgekurs_violation(
    requirement: FolgekursRequirement,
    student: str,
    workshop_name: str,
    band: Band,
    state: BandAssignments,
) -> Optional[str]:
    """Begründung, wenn die Platzierung die Folgekurs-Pflicht verletzt.

    'state' ist der Zustand, gegen den die Erfüllung geprüft wird; das
    Ziel-Band zählt dabei immer als mit 'workshop_name' belegt.
    """
    must_take = (
        f"Folgekurs-Regel: Schüler muss {requirement.course} belegen "
        f"(hat im vorherigen Trimester {requirement.triggered_by} einen Kurs belegt, "
        f"der diese Regel auslöst)."
    )
    if requirement.band is not None:
        if band is requirement.band:
            if workshop_name != requirement.course:
                return must_take
        elif workshop_name == requirement.course:
            return (
                f"Folgekurs-Regel: {requirement.course} muss im "
                f"{requirement.band.label} belegt werden "
                f"(gleiches Band wie im vorherigen Trimester erforderlich)."
            )
        return None

    other = state.workshop_of(student, band.other)
    if workshop_name != requirement.course and other != requirement.course:
        return must_take
    return None


# ─── can_assign ───────────────────────────────────────────────────────────────

def can_assign(
    student: str,
    workshop_name: str,
    band: Band,
    state: BandAssignments,
    ctx: ConstraintContext,
) -> AssignmentCheck:
    """Prüft eine Platzierung gegen den aktuellen Zustand.

    Die Belegung des Schülers selbst im Ziel-Band zählt nicht zur
    Auslastung, damit die Prüfung vor und nach einer Platzierung dasselbe
    Ergebnis liefert.
    """
    workshop = ctx.workshops.get(workshop_name)

    # 1. Band-Verfügbarkeit
    if workshop is None or not workshop.is_available_in(band):
        return AssignmentCheck.failed(
            CheckCode.BAND,
            f"Diese Werkstatt ist im {band.label} nicht verfügbar.",
        )

    # 2. Kann-nicht-parallel
    other = state.workshop_of(student, band.other)
    if other and excludes_each_other(other, workshop_name, ctx.workshops):
        return AssignmentCheck.failed(
            CheckCode.PARALLEL,
            f"Kann nicht parallel zu {other} ({band.other.label}) belegt werden.",
        )

    # 3. Kapazität
    occupied = state.occupancy(band, exclude=student).get(workshop_name, 0)
    if occupied >= workshop.capacity:
        return AssignmentCheck.failed(
            CheckCode.CAPACITY,
            f"Kapazität erreicht ({occupied}/{workshop.capacity})",
        )

    # 4. Wiederholung des letzten Jahres
    last = last_prior_assignment(student, ctx.prior_assignments)
    if last and last == workshop_name:
        return AssignmentCheck.failed(
            CheckCode.REPEAT,
            f"Schüler hatte diese Werkstatt bereits letztes Jahr ({last}).",
        )

    # 5. Voraussetzungen
    if not has_prerequisites(student, workshop_name, ctx.workshops, ctx.prior_assignments):
        return AssignmentCheck.failed(
            CheckCode.PREREQUISITE,
            f"Voraussetzungen für {workshop_name} nicht erfüllt.",
        )

    # 6. Folgekurs
    requirement = required_folgekurs(student, ctx.rules, ctx.history, ctx.slot_key)
    if requirement is not None:
        reason = folgekurs_violation(requirement, student, workshop_name, band, state)
        if reason:
            return AssignmentCheck.failed(CheckCode.FOLGEKURS, reason)

    return AssignmentCheck.passed()


def workshop_has_history(
    name: str,
    history: dict[str, AssignmentSlot],
    prior_assignments: dict[str, list[str]],
    current: Optional[BandAssignments] = None,
) -> bool:
    """Wurde die Werkstatt je belegt (Historie, Vorjahr oder aktuell)?

    Entscheidet für den Aufrufer zwischen Archivieren und Löschen.
    """
    for slot in history.values():
        for band in Band:
            if name in slot.for_band(band).values():
                return True
    for record in prior_assignments.values():
        if name in record:
            return True
    if current is not None:
        for band in Band:
            if any(w == name and not is_unassigned(w) for w in current.for_band(band).values()):
                return True
    return False
