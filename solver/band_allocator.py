"""Greedy-Zuteilung für ein einzelnes Band.

Ablauf:
  1. Werkstätten und Kapazitäten auf das Band einschränken
  2. Wahlen filtern (nur im Band angebotene Werkstätten)
  3. Wahlen bereinigen (doppelte Wahl, Werkstatt des Vorjahres)
  4. Schüler mit Schulbegleitung und reguläre Schüler getrennt sortieren:
     Folgekurs-Pflicht zuerst, dann absteigender Prioritäts-Score (stabil)
  5. Durchgang 1: Schüler mit Schulbegleitung, gleichmäßig verteilt
  6. Durchgang 2: reguläre Schüler, nur Erstwunsch
  7. Durchgang 3: alle noch nicht Zugeordneten, nur Zweitwunsch

Kapazität wird sofort verbraucht und innerhalb eines Laufs nie
zurückgegeben (kein Backtracking).
"""

import logging
from typing import Optional

from pydantic import BaseModel

from models.assignment import BandAssignments
from models.workshop import Band
from solver.constraints import (
    ConstraintContext,
    FolgekursRequirement,
    folgekurs_fulfilled,
    has_prerequisites,
    last_prior_assignment,
    required_folgekurs,
)

logger = logging.getLogger(__name__)


# ─── Ergebnis-Modell ──────────────────────────────────────────────────────────

class BandAllocationResult(BaseModel):
    """Ergebnis eines Zuteilungslaufs für ein Band."""

    band: Band
    assignments: dict[str, str]           # Schüler → Werkstatt
    problems: list[str]
    remaining_capacity: dict[str, int]    # Werkstatt → freie Plätze
    first_choice_count: int
    second_choice_count: int
    choice_ranks: dict[str, int] = {}     # Schüler → 1 (Erstwunsch) / 2 (Zweitwunsch)
    pool_size: int = 0                    # Schüler im Kandidaten-Pool des Bands
    roster_size: int = 0                  # alle Schüler des Laufs, auch ohne Wahl

    @property
    def first_choice_percentage(self) -> float:
        """Anteil Erstwünsche an allen Schülern des Laufs."""
        if self.roster_size == 0:
            return 0.0
        return self.first_choice_count / self.roster_size * 100

    @property
    def unassigned(self) -> int:
        return self.pool_size - len(self.assignments)


# ─── Allocator ────────────────────────────────────────────────────────────────

class BandAllocator:
    """Greedy-Zuteilung eines Bands.

    Verwendung:
        allocator = BandAllocator(ctx)
        result = allocator.allocate(students, choices, Band.BAND1,
                                    support={...}, scores={...})
    """

    def __init__(self, ctx: ConstraintContext, default_score: float = 5.0,
                 max_choices: int = 2) -> None:
        self.ctx = ctx
        self.default_score = default_score
        self.max_choices = max_choices

    def allocate(
        self,
        students: list[str],
        choices: dict[str, list[str]],
        band: Band,
        support: Optional[dict[str, bool]] = None,
        scores: Optional[dict[str, float]] = None,
        other_band: Optional[BandAssignments] = None,
    ) -> BandAllocationResult:
        """Teilt die Schüler in 'band' zu.

        'students' gibt die Grundreihenfolge vor (stabil bei gleichem Score).
        'other_band' enthält bereits feststehende Zuordnungen des anderen
        Bands; eine dort schon erfüllte Folgekurs-Pflicht wird nicht erneut
        erzwungen.
        """
        run = _BandRun(self, band, support or {}, scores or {},
                       other_band or BandAssignments())
        return run.execute(students, choices)


class _BandRun:
    """Arbeitszustand eines einzelnen allocate()-Aufrufs."""

    def __init__(self, allocator: BandAllocator, band: Band,
                 support: dict[str, bool], scores: dict[str, float],
                 other_band: BandAssignments) -> None:
        ctx = allocator.ctx
        self.ctx = ctx
        self.band = band
        self.support = support
        self.scores = scores
        self.other_band = other_band
        self.default_score = allocator.default_score
        self.max_choices = allocator.max_choices

        # 1. Nur im Band angebotene Werkstätten
        self.capacity: dict[str, int] = {
            name: ws.capacity
            for name, ws in ctx.workshops.items()
            if ws.is_available_in(band)
        }
        self.support_count: dict[str, int] = {name: 0 for name in self.capacity}

        self.assignments: dict[str, str] = {}
        self.ranks: dict[str, int] = {}
        self.first = 0
        self.second = 0

    # ─── Ablauf ───────────────────────────────────────────────────────────────

    def execute(self, students: list[str],
                raw_choices: dict[str, list[str]]) -> BandAllocationResult:
        obligations = self._obligations(students)
        working, pool, problems = self._prepare_choices(students, raw_choices, obligations)

        ordered = self._order(pool, obligations)
        support_students = [s for s in ordered if self.support.get(s)]
        regular_students = [s for s in ordered if not self.support.get(s)]

        problems += self._pass_support(support_students, working, obligations, raw_choices)
        problems += self._pass_regular(regular_students, working, obligations, raw_choices)
        problems += self._pass_second_choice(pool, working)

        result = BandAllocationResult(
            band=self.band,
            assignments=dict(self.assignments),
            problems=problems,
            remaining_capacity=dict(self.capacity),
            first_choice_count=self.first,
            second_choice_count=self.second,
            choice_ranks=dict(self.ranks),
            pool_size=len(pool),
            roster_size=len(students),
        )
        logger.info(
            f"{self.band.label}: {len(self.assignments)}/{len(pool)} zugeordnet | "
            f"Erstwunsch: {self.first} ({result.first_choice_percentage:.1f}%) | "
            f"Zweitwunsch: {self.second} | Probleme: {len(problems)}"
        )
        return result

    def _obligations(self, students: list[str]) -> dict[str, FolgekursRequirement]:
        """Aktive, noch nicht erfüllte Folgekurs-Pflichten in diesem Band."""
        active: dict[str, FolgekursRequirement] = {}
        for s in students:
            req = required_folgekurs(s, self.ctx.rules, self.ctx.history, self.ctx.slot_key)
            if req is None or not req.applies_to(self.band):
                continue
            if folgekurs_fulfilled(req, s, self.other_band):
                continue
            # Beliebiges Band: die Pflicht gilt nur dort, wo der Folgekurs angeboten wird
            if (req.band is None and req.course not in self.capacity
                    and self._offered_elsewhere(req.course)):
                continue
            active[s] = req
        return active

    def _prepare_choices(
        self,
        students: list[str],
        raw_choices: dict[str, list[str]],
        obligations: dict[str, FolgekursRequirement],
    ) -> tuple[dict[str, list[str]], list[str], list[str]]:
        """Schritte 2 und 3: filtern und bereinigen.

        Gibt (bereinigte Wahlen, Kandidaten-Pool, Probleme) zurück.
        """
        working: dict[str, list[str]] = {}
        pool: list[str] = []
        problems: list[str] = []

        for s in students:
            raw = list(raw_choices.get(s) or [])[: self.max_choices]
            ch = [c for c in raw if c in self.capacity]
            if raw and not ch:
                problems.append(
                    f"{s} hat nur Werkstätten gewählt, die im {self.band.label} "
                    f"nicht verfügbar sind."
                )
                if s not in obligations:
                    continue
            elif not raw and s not in obligations:
                continue

            if len(ch) == 2 and ch[0] == ch[1]:
                problems.append(f"{s} hat zweimal die gleiche Werkstatt {ch[0]} gewählt.")
                ch = [ch[0]]

            last = last_prior_assignment(s, self.ctx.prior_assignments)
            if last and last in ch:
                ch.remove(last)
                problems.append(
                    f"{s} hatte bereits {last} im letzten Jahr, daher entfernt aus den Wahlen."
                )

            working[s] = ch
            pool.append(s)

        return working, pool, problems

    def _order(self, students: list[str],
               obligations: dict[str, FolgekursRequirement]) -> list[str]:
        """Folgekurs-Pflicht zuerst, dann absteigender Score; sonst stabil."""
        return sorted(
            students,
            key=lambda s: (
                0 if s in obligations else 1,
                -self.scores.get(s, self.default_score),
            ),
        )

    # ─── Durchgänge ───────────────────────────────────────────────────────────

    def _pass_support(self, students: list[str], working: dict[str, list[str]],
                      obligations: dict[str, FolgekursRequirement],
                      raw_choices: dict[str, list[str]]) -> list[str]:
        """Durchgang 1: Schüler mit Schulbegleitung gleichmäßig verteilen."""
        problems: list[str] = []
        for s in students:
            req = obligations.get(s)
            if req is not None:
                placed, problem = self._force(s, req)
                if placed:
                    continue
                problems.append(problem)

            ch = working.get(s) or []
            if not ch:
                problems.append(f"{s} hat keine gültigen Wahlen.")
                continue

            best = self._least_supported(ch)
            if self._placeable(s, best):
                self._assign(s, best, self._rank(s, best, raw_choices))
                continue
            for choice in ch:
                if self._placeable(s, choice):
                    self._assign(s, choice, self._rank(s, choice, raw_choices))
                    break
        return problems

    def _pass_regular(self, students: list[str], working: dict[str, list[str]],
                      obligations: dict[str, FolgekursRequirement],
                      raw_choices: dict[str, list[str]]) -> list[str]:
        """Durchgang 2: reguläre Schüler, nur Erstwunsch."""
        problems: list[str] = []
        for s in students:
            req = obligations.get(s)
            if req is not None:
                placed, problem = self._force(s, req)
                if placed:
                    continue
                problems.append(problem)

            ch = working.get(s) or []
            if not ch:
                problems.append(f"{s} hat keine gültigen Wahlen.")
                continue

            first = ch[0]
            if not has_prerequisites(s, first, self.ctx.workshops, self.ctx.prior_assignments):
                problems.append(f"{s} erfüllt die Voraussetzungen für {first} nicht.")
                continue
            if self.capacity.get(first, 0) > 0:
                self._assign(s, first, self._rank(s, first, raw_choices))
        return problems

    def _pass_second_choice(self, students: list[str],
                            working: dict[str, list[str]]) -> list[str]:
        """Durchgang 3: Zweitwunsch für alle noch nicht Zugeordneten."""
        problems: list[str] = []
        for s in students:
            if s in self.assignments:
                continue
            ch = working.get(s) or []
            if not ch:
                continue  # bereits als "keine gültigen Wahlen" gemeldet
            if len(ch) < 2:
                problems.append(
                    f"{s} hat seine erste Wahl nicht bekommen und hat keine gültige zweite Wahl."
                )
                continue
            second = ch[1]
            if not has_prerequisites(s, second, self.ctx.workshops, self.ctx.prior_assignments):
                problems.append(f"{s} erfüllt die Voraussetzungen für {second} nicht.")
                continue
            if self.capacity.get(second, 0) > 0:
                self._assign(s, second, 2)
            else:
                problems.append(
                    f"{s} hat weder Erst- noch Zweitwahl bekommen ({second} ist voll)."
                )
        return problems

    # ─── Hilfsfunktionen ──────────────────────────────────────────────────────

    def _force(self, student: str, req: FolgekursRequirement) -> tuple[bool, str]:
        """Folgekurs-Pflicht erzwingen; (platziert, Problemtext)."""
        if req.course not in self.capacity:
            return False, (
                f"{student} muss {req.course} belegen (Folgekurs-Regel), "
                f"aber die Werkstatt wird im {self.band.label} nicht angeboten."
            )
        if self.capacity[req.course] > 0:
            self._assign(student, req.course, 1)
            logger.debug(f"  {student} → {req.course} (Folgekurs {req.rule_name})")
            return True, ""
        return False, (
            f"{student} muss {req.course} belegen (Folgekurs-Regel), "
            f"aber Kapazität ist erreicht."
        )

    def _offered_elsewhere(self, workshop: str) -> bool:
        ws = self.ctx.workshops.get(workshop)
        return ws is not None and ws.is_available_in(self.band.other)

    def _placeable(self, student: str, workshop: str) -> bool:
        return (
            self.capacity.get(workshop, 0) > 0
            and has_prerequisites(student, workshop, self.ctx.workshops,
                                  self.ctx.prior_assignments)
        )

    def _least_supported(self, choices: list[str]) -> str:
        """Wahl mit den wenigsten Schülern mit Schulbegleitung (erste bei Gleichstand)."""
        best = choices[0]
        for choice in choices[1:]:
            if self.support_count.get(choice, 0) < self.support_count.get(best, 0):
                best = choice
        return best

    @staticmethod
    def _rank(student: str, workshop: str, raw_choices: dict[str, list[str]]) -> int:
        raw = raw_choices.get(student) or []
        return 1 if raw and raw[0] == workshop else 2

    def _assign(self, student: str, workshop: str, rank: int) -> None:
        self.assignments[student] = workshop
        self.capacity[workshop] -= 1
        self.ranks[student] = rank
        if self.support.get(student):
            self.support_count[workshop] = self.support_count.get(workshop, 0) + 1
        if rank == 1:
            self.first += 1
        else:
            self.second += 1
        logger.debug(f"  {student} → {workshop} ({rank}. Wunsch)")
