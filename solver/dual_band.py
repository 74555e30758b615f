"""Zuteilung beider Bänder mit anschließendem Abgleich.

Band 1 läuft unverändert. Für Band 2 werden pro Schüler die in Band 1
erhaltene Werkstatt und alle dazu nicht-parallelen Werkstätten aus den
Wahlen entfernt. Der Abgleich danach entfernt Band-2-Zuordnungen, die trotzdem
doppelt oder nicht-parallel sind; betroffene Schüler bleiben in Band 2 ohne
Werkstatt und müssen von Hand umgesetzt werden.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from config.schema import AllocationConfig, PriorityConfig
from models.assignment import BandAssignments, BandChoices, SlotKey
from models.workshop import Band
from solver.band_allocator import BandAllocationResult, BandAllocator
from solver.constraints import ConstraintContext, excludes_each_other

logger = logging.getLogger(__name__)

BOTH_BANDS = "both"


# ─── Ergebnis-Modelle ─────────────────────────────────────────────────────────

class AllocationProblem(BaseModel):
    """Ein Datenproblem mit Herkunft ('band1', 'band2' oder 'both')."""

    band: str
    message: str

    @property
    def label(self) -> str:
        if self.band == BOTH_BANDS:
            return "Beide Bänder"
        return Band(self.band).label


class DualAllocationResult(BaseModel):
    """Zuteilungsvorschlag für ein Schuljahr-Trimester."""

    slot_key: SlotKey
    band1: BandAllocationResult
    band2: BandAllocationResult
    problems: list[AllocationProblem]
    conflicts_resolved: int = 0

    def for_band(self, band: Band) -> BandAllocationResult:
        return self.band1 if band is Band.BAND1 else self.band2

    @property
    def assignments(self) -> BandAssignments:
        return BandAssignments(
            band1=dict(self.band1.assignments), band2=dict(self.band2.assignments)
        )

    @property
    def first_choice_count(self) -> int:
        return self.band1.first_choice_count + self.band2.first_choice_count

    @property
    def second_choice_count(self) -> int:
        return self.band1.second_choice_count + self.band2.second_choice_count

    @property
    def first_choice_percentage(self) -> float:
        total = self.band1.roster_size + self.band2.roster_size
        if total == 0:
            return 0.0
        return self.first_choice_count / total * 100

    def print_rich(self) -> None:
        """Gibt Zuteilung, Kennzahlen und Probleme über Rich aus."""
        from rich import box
        from rich.console import Console
        from rich.panel import Panel
        from rich.table import Table

        console = Console()

        pct = self.first_choice_percentage
        pct_color = "green" if pct >= 80 else "yellow" if pct >= 60 else "red"
        console.print(Panel(
            f"Trimester: [bold]{self.slot_key}[/bold]\n"
            f"Erstwunsch: [bold]{self.first_choice_count}[/bold] "
            f"([{pct_color}]{pct:.1f}%[/{pct_color}]) | "
            f"Zweitwunsch: [bold]{self.second_choice_count}[/bold]\n"
            f"Probleme: [bold]{len(self.problems)}[/bold] | "
            f"Band-Konflikte aufgelöst: {self.conflicts_resolved}",
            title="Zuteilung – Übersicht",
            border_style="cyan",
        ))

        for band in Band:
            result = self.for_band(band)
            table = Table(title=band.label, box=box.ROUNDED)
            table.add_column("Werkstatt", width=20)
            table.add_column("Schüler")
            table.add_column("Frei", justify="right", width=6)
            by_workshop: dict[str, list[str]] = {}
            for student, workshop in result.assignments.items():
                by_workshop.setdefault(workshop, []).append(student)
            for workshop in sorted(result.remaining_capacity):
                members = sorted(by_workshop.get(workshop, []))
                free = result.remaining_capacity[workshop]
                free_str = f"[red]{free}[/red]" if free == 0 else str(free)
                table.add_row(workshop, ", ".join(members) or "–", free_str)
            console.print(table)

        if self.problems:
            p_table = Table(title="Probleme", box=box.SIMPLE)
            p_table.add_column("Band", width=14)
            p_table.add_column("Meldung")
            for problem in self.problems:
                p_table.add_row(problem.label, f"[yellow]{problem.message}[/yellow]")
            console.print(p_table)
        else:
            console.print("[green]Keine Probleme bei der Zuteilung.[/green]")


# ─── Allocator ────────────────────────────────────────────────────────────────

class DualBandAllocator:
    """Führt beide Band-Läufe aus und gleicht die Ergebnisse ab."""

    def __init__(
        self,
        ctx: ConstraintContext,
        priority: Optional[PriorityConfig] = None,
        allocation: Optional[AllocationConfig] = None,
    ) -> None:
        self.ctx = ctx
        self.priority = priority or PriorityConfig()
        self.allocation = allocation or AllocationConfig()

    def allocate(
        self,
        students: list[str],
        choices: BandChoices,
        support: Optional[dict[str, bool]] = None,
        scores: Optional[dict[str, float]] = None,
    ) -> DualAllocationResult:
        support = support or {}
        scores = scores or {}
        default = self.priority.default_score

        # Einmal sortieren, für beide Bänder verwenden
        roster = sorted(students, key=lambda s: -scores.get(s, default))

        allocator = BandAllocator(self.ctx, default_score=default,
                                  max_choices=self.allocation.max_choices)
        logger.info(f"Zuteilung {self.ctx.slot_key}: {len(roster)} Schüler")

        band1 = allocator.allocate(roster, choices.band1, Band.BAND1, support, scores)

        band2_choices, filter_problems = self._filter_band2_choices(
            roster, choices.band2, band1.assignments
        )
        band2 = allocator.allocate(
            roster, band2_choices, Band.BAND2, support, scores,
            other_band=BandAssignments(band1=dict(band1.assignments)),
        )

        band2, conflict_problems = self._reconcile(band1, band2)

        problems = (
            [AllocationProblem(band=Band.BAND1.value, message=p) for p in band1.problems]
            + [AllocationProblem(band=Band.BAND2.value, message=p) for p in filter_problems]
            + [AllocationProblem(band=Band.BAND2.value, message=p) for p in band2.problems]
            + [AllocationProblem(band=BOTH_BANDS, message=p) for p in conflict_problems]
        )
        result = DualAllocationResult(
            slot_key=self.ctx.slot_key,
            band1=band1,
            band2=band2,
            problems=problems,
            conflicts_resolved=len(conflict_problems),
        )
        logger.info(
            f"Zuteilung abgeschlossen: Erstwunsch {result.first_choice_count} "
            f"({result.first_choice_percentage:.1f}%), "
            f"Zweitwunsch {result.second_choice_count}, "
            f"{len(problems)} Probleme"
        )
        return result

    # ─── Band-2-Filter ────────────────────────────────────────────────────────

    def _filter_band2_choices(
        self,
        roster: list[str],
        band2_choices: dict[str, list[str]],
        band1_assignments: dict[str, str],
    ) -> tuple[dict[str, list[str]], list[str]]:
        """Entfernt die Band-1-Werkstatt und ihre nicht-parallelen Werkstätten."""
        filtered: dict[str, list[str]] = {}
        problems: list[str] = []
        for s in roster:
            original = list(band2_choices.get(s) or [])
            taken = band1_assignments.get(s)
            if not taken:
                if original:
                    filtered[s] = original
                continue
            remaining = [
                c for c in original
                if c != taken and not excludes_each_other(taken, c, self.ctx.workshops)
            ]
            if original and not remaining and self.allocation.report_unplaceable_band2:
                problems.append(
                    f"{s}: Alle Wahlen für das Zweite Band kollidieren mit "
                    f"{taken} aus dem Ersten Band."
                )
            filtered[s] = remaining
        return filtered, problems

    # ─── Abgleich ─────────────────────────────────────────────────────────────

    def _reconcile(
        self, band1: BandAllocationResult, band2: BandAllocationResult
    ) -> tuple[BandAllocationResult, list[str]]:
        """Entfernt doppelte und nicht-parallele Band-2-Zuordnungen."""
        assignments = dict(band2.assignments)
        capacity = dict(band2.remaining_capacity)
        ranks = dict(band2.choice_ranks)
        first = band2.first_choice_count
        second = band2.second_choice_count
        problems: list[str] = []

        for student, w2 in band2.assignments.items():
            w1 = band1.assignments.get(student)
            if not w1:
                continue
            if w1 == w2:
                message = (
                    f"{student} war in beiden Bändern {w2} zugeordnet. "
                    f"Zuordnung im Zweiten Band entfernt, bitte manuell neu zuordnen."
                )
            elif excludes_each_other(w1, w2, self.ctx.workshops):
                message = (
                    f"{student}: {w1} (Erstes Band) und {w2} (Zweites Band) können "
                    f"nicht parallel belegt werden. Zuordnung im Zweiten Band "
                    f"entfernt, bitte manuell neu zuordnen."
                )
            else:
                continue

            logger.warning(message)
            del assignments[student]
            capacity[w2] = capacity.get(w2, 0) + 1
            if ranks.pop(student, 1) == 1:
                first -= 1
            else:
                second -= 1
            problems.append(message)

        if not problems:
            return band2, problems

        logger.info(f"Abgleich: {len(problems)} Band-2-Zuordnungen zurückgenommen")
        return band2.model_copy(update={
            "assignments": assignments,
            "remaining_capacity": capacity,
            "choice_ranks": ranks,
            "first_choice_count": first,
            "second_choice_count": second,
        }), problems
