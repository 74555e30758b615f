"""Warnungen und Auslastung für einen (manuell angepassten) Zuteilungsstand.

Analysiert:
  - Schüler mit derselben Werkstatt in beiden Bändern
  - Schüler mit derselben Erstwahl in beiden Bändern
  - Schüler ohne abgegebene Wahlen (je Band)
  - Auslastung je Werkstatt und Band gegen die Kapazität
"""

from pydantic import BaseModel

from models.assignment import BandAssignments, BandChoices
from models.workshop import Band, Workshop


# ─── Metriken-Modelle ─────────────────────────────────────────────────────────

class StudentWorkshopPair(BaseModel):
    student: str
    workshop: str


class WorkshopOccupancy(BaseModel):
    """Belegung einer Werkstatt in einem Band."""

    workshop: str
    band: Band
    assigned: int
    capacity: int

    @property
    def free(self) -> int:
        return self.capacity - self.assigned

    @property
    def over_capacity(self) -> bool:
        return self.assigned > self.capacity


class AllocationReport(BaseModel):
    """Vollständiger Warnungs- und Auslastungsbericht."""

    same_workshop_both_bands: list[StudentWorkshopPair]
    same_first_choice_both_bands: list[StudentWorkshopPair]
    no_choices: dict[str, list[str]]          # band → Schüler
    occupancy: list[WorkshopOccupancy]

    @property
    def warning_count(self) -> int:
        return (
            len(self.same_workshop_both_bands)
            + len(self.same_first_choice_both_bands)
            + sum(len(v) for v in self.no_choices.values())
            + sum(1 for o in self.occupancy if o.over_capacity)
        )


# ─── Analyzer ─────────────────────────────────────────────────────────────────

class AllocationAnalyzer:
    """Berechnet Warnungen und Auslastung für einen Zuteilungsstand."""

    def analyze(
        self,
        students: list[str],
        workshops: dict[str, Workshop],
        assignments: BandAssignments,
        choices: BandChoices,
    ) -> AllocationReport:
        same_workshop = []
        for s in students:
            w1 = assignments.workshop_of(s, Band.BAND1)
            if w1 and w1 == assignments.workshop_of(s, Band.BAND2):
                same_workshop.append(StudentWorkshopPair(student=s, workshop=w1))

        same_first = []
        for s in students:
            c1 = choices.of(s, Band.BAND1)
            c2 = choices.of(s, Band.BAND2)
            if c1 and c2 and c1[0] == c2[0]:
                same_first.append(StudentWorkshopPair(student=s, workshop=c1[0]))

        no_choices = {
            band.value: [s for s in students if not choices.of(s, band)]
            for band in Band
        }

        occupancy: list[WorkshopOccupancy] = []
        for band in Band:
            counts = assignments.occupancy(band)
            for name, ws in workshops.items():
                if not ws.is_available_in(band):
                    continue
                occupancy.append(WorkshopOccupancy(
                    workshop=name, band=band,
                    assigned=counts.get(name, 0), capacity=ws.capacity,
                ))

        return AllocationReport(
            same_workshop_both_bands=same_workshop,
            same_first_choice_both_bands=same_first,
            no_choices=no_choices,
            occupancy=occupancy,
        )

    def print_rich(self, report: AllocationReport) -> None:
        """Gibt Warnungen und Auslastung formatiert über Rich aus."""
        from rich import box
        from rich.console import Console
        from rich.panel import Panel
        from rich.table import Table

        console = Console()

        lines: list[str] = []
        if report.same_workshop_both_bands:
            lines.append(
                f"[red]{len(report.same_workshop_both_bands)} Schüler in beiden "
                f"Bändern derselben Werkstatt zugeordnet[/red]"
            )
            lines += [f"  {p.student}: {p.workshop}" for p in report.same_workshop_both_bands]
        if report.same_first_choice_both_bands:
            lines.append(
                f"[yellow]{len(report.same_first_choice_both_bands)} Schüler mit "
                f"derselben Erstwahl in beiden Bändern[/yellow]"
            )
            lines += [f"  {p.student}: {p.workshop}"
                      for p in report.same_first_choice_both_bands]
        for band_value, names in report.no_choices.items():
            if not names:
                continue
            shown = ", ".join(names[:10])
            if len(names) > 10:
                shown += f" ... und {len(names) - 10} weitere"
            lines.append(
                f"[yellow]{len(names)} Schüler ohne Wahlen "
                f"({Band(band_value).label})[/yellow]: {shown}"
            )
        console.print(Panel(
            "\n".join(lines) or "[green]Keine Warnungen.[/green]",
            title="Warnungen",
            border_style="yellow" if lines else "green",
        ))

        table = Table(title="Auslastung", box=box.ROUNDED)
        table.add_column("Werkstatt", width=20)
        table.add_column("Band", width=14)
        table.add_column("Belegt", justify="right", width=7)
        table.add_column("Kapazität", justify="right", width=9)
        table.add_column("Status", width=10)
        for o in sorted(report.occupancy, key=lambda x: (x.workshop, x.band.value)):
            if o.over_capacity:
                status = "[red]Überbucht[/red]"
            elif o.free == 0:
                status = "[yellow]Voll[/yellow]"
            else:
                status = "[green]OK[/green]"
            table.add_row(o.workshop, o.band.label, str(o.assigned),
                          str(o.capacity), status)
        console.print(table)
