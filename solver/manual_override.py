"""OverrideSession – manuelle Umsetzungen auf einem Zuteilungsvorschlag.

Eine Umsetzung wird immer ausgeführt. Danach wird die neue Platzierung gegen
den resultierenden Zustand geprüft; eine fehlgeschlagene Prüfung bleibt als
Hinweis (Werkstatt → Schüler → Begründung) gespeichert, bis der Schüler
wieder umgesetzt wird oder die Ursache entfällt.
"""

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from models.assignment import AssignmentSlot, BandAssignments
from models.workshop import UNASSIGNED, Band, is_unassigned
from solver.constraints import AssignmentCheck, CheckCode, ConstraintContext, can_assign

logger = logging.getLogger(__name__)


class Violation(BaseModel):
    """Gespeicherter Regelverstoß einer manuellen Platzierung."""

    student: str
    workshop: str
    band: Band
    reason: str
    code: Optional[CheckCode] = None


class OverrideSession:
    """Hält den aktuellen Vorschlag und die offenen Regelverstöße."""

    def __init__(self, ctx: ConstraintContext,
                 state: Optional[BandAssignments] = None) -> None:
        self.ctx = ctx
        self._state = state or BandAssignments()
        self._violations: dict[Band, dict[str, dict[str, str]]] = {b: {} for b in Band}
        self._codes: dict[tuple[Band, str], CheckCode] = {}

    @classmethod
    def from_allocation(cls, ctx: ConstraintContext, assignments: BandAssignments,
                        roster: list[str]) -> "OverrideSession":
        """Übernimmt einen automatischen Vorschlag.

        Jeder Schüler der Liste erscheint in beiden Bändern, nicht
        zugeordnete Schüler mit 'Nicht Zugeordnet'.
        """
        maps = {}
        for band in Band:
            placed = assignments.for_band(band)
            maps[band.value] = {s: placed.get(s, UNASSIGNED) for s in roster}
        return cls(ctx, BandAssignments(**maps))

    @property
    def state(self) -> BandAssignments:
        return self._state

    # ─── Umsetzen ─────────────────────────────────────────────────────────────

    def move(self, student: str, workshop: Optional[str], band: Band) -> Optional[Violation]:
        """Setzt den Schüler um und gibt einen neuen Regelverstoß zurück (oder None)."""
        target = UNASSIGNED if is_unassigned(workshop) else workshop
        self._clear(student, band)
        self._state = self._state.with_placement(student, target, band)
        logger.debug(f"Manuell: {student} → {target} ({band.label})")

        violation = self._validate(student, band)

        # Die Platzierung im anderen Band kann durch die Umsetzung gültig
        # oder ungültig geworden sein (Folgekurs, nicht-parallel, doppelt)
        self._clear(student, band.other)
        self._validate(student, band.other)

        self._recheck_open(exclude=student)
        return violation

    def revalidate(self) -> list[Violation]:
        """Prüft alle Platzierungen neu (z.B. nach dem Laden eines Vorschlags)."""
        self._violations = {b: {} for b in Band}
        self._codes = {}
        for band in Band:
            for student in list(self._state.for_band(band)):
                self._validate(student, band)
        return self.violations()

    def check(self, student: str, workshop: str, band: Band) -> AssignmentCheck:
        """Prüfung einer Platzierung im aktuellen Zustand inkl. gleicher Werkstatt."""
        other = self._state.workshop_of(student, band.other)
        if other and other == workshop:
            return AssignmentCheck.failed(
                CheckCode.SAME_WORKSHOP,
                f"Schüler ist bereits im {band.other.label} in {workshop}.",
            )
        return can_assign(student, workshop, band, self._state, self.ctx)

    def _validate(self, student: str, band: Band) -> Optional[Violation]:
        workshop = self._state.workshop_of(student, band)
        if workshop is None:
            return None
        result = self.check(student, workshop, band)
        if result.ok:
            return None
        self._violations[band].setdefault(workshop, {})[student] = result.reason
        self._codes[(band, student)] = result.code
        logger.info(f"Regelverstoß: {student} in {workshop} ({band.label}): {result.reason}")
        return Violation(student=student, workshop=workshop, band=band,
                         reason=result.reason, code=result.code)

    def _recheck_open(self, exclude: str) -> None:
        """Prüft offene Verstöße anderer Schüler neu; entfallene werden gelöscht.

        Es entstehen dabei keine neuen Einträge für bisher gültige Platzierungen.
        """
        for band in Band:
            open_students = {s for by_ws in self._violations[band].values() for s in by_ws}
            for other in sorted(open_students - {exclude}):
                self._clear(other, band)
                self._validate(other, band)

    def _clear(self, student: str, band: Band) -> None:
        by_workshop = self._violations[band]
        for workshop in list(by_workshop):
            by_workshop[workshop].pop(student, None)
            if not by_workshop[workshop]:
                del by_workshop[workshop]
        self._codes.pop((band, student), None)

    # ─── Abfragen ─────────────────────────────────────────────────────────────

    def violation_for(self, student: str, band: Band) -> Optional[str]:
        for students in self._violations[band].values():
            if student in students:
                return students[student]
        return None

    def violations(self, band: Optional[Band] = None) -> list[Violation]:
        bands = [band] if band is not None else list(Band)
        result: list[Violation] = []
        for b in bands:
            for workshop, students in sorted(self._violations[b].items()):
                for student, reason in sorted(students.items()):
                    result.append(Violation(student=student, workshop=workshop, band=b,
                                            reason=reason, code=self._codes.get((b, student))))
        return result

    def violation_map(self, band: Band) -> dict[str, dict[str, str]]:
        """Werkstatt → Schüler → Begründung (Kopie)."""
        return {w: dict(s) for w, s in self._violations[band].items()}

    def finalize(self, timestamp: Optional[datetime] = None) -> AssignmentSlot:
        """Erzeugt den zu speichernden Eintrag; Regelverstöße blockieren nicht."""
        return AssignmentSlot(
            band1=dict(self._state.band1),
            band2=dict(self._state.band2),
            timestamp=timestamp or datetime.now(),
        )

    def __len__(self) -> int:
        return sum(len(s) for by_ws in self._violations.values() for s in by_ws.values())

    def __repr__(self) -> str:
        return f"OverrideSession({len(self)} Regelverstöße)"
