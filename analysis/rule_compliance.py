"""Regel-Prüfung über die gesamte Belegungs-Historie eines Schülers.

Belegung:  ALLE genannten Werkstätten müssen in Historie oder aktueller
           Zuordnung mindestens einmal vorkommen.
Folgekurs: für jedes chronologisch aufeinanderfolgende Paar gespeicherter
           Trimester gilt: fromCourse in i verlangt toCourse in i+1
           (bei sameBand im selben Band).
"""

from typing import Optional

from pydantic import BaseModel

from models.assignment import (
    AssignmentSlot, BandAssignments, HistoryRow, build_student_history,
)
from models.rules import BelegungRule, FolgekursRule, Rule


class RuleStatus(BaseModel):
    """Ergebnis einer Regel für einen Schüler."""

    rule_id: str
    rule_name: str
    rule_type: str
    satisfied: bool
    message: str = ""


class ComplianceReport(BaseModel):
    """Regel-Status eines Schülers."""

    student: str
    taken: list[str]
    history: list[HistoryRow]
    statuses: list[RuleStatus]

    @property
    def all_satisfied(self) -> bool:
        return all(s.satisfied for s in self.statuses)

    @property
    def violations(self) -> list[RuleStatus]:
        return [s for s in self.statuses if not s.satisfied]

    def print_rich(self) -> None:
        from rich import box
        from rich.console import Console
        from rich.table import Table

        console = Console()

        h_table = Table(title=f"Historie – {self.student}", box=box.ROUNDED)
        h_table.add_column("Trimester", width=14)
        h_table.add_column("Erstes Band", width=20)
        h_table.add_column("Zweites Band", width=20)
        h_table.add_column("Gespeichert", width=17)
        for row in self.history:
            h_table.add_row(
                row.slot_key,
                row.band1 or "–",
                row.band2 or "–",
                row.timestamp.strftime("%d.%m.%Y %H:%M") if row.timestamp else "–",
            )
        console.print(h_table)

        if not self.statuses:
            console.print("[dim]Keine Regeln definiert.[/dim]")
            return

        r_table = Table(title="Regeln", box=box.SIMPLE)
        r_table.add_column("Regel", width=24)
        r_table.add_column("Typ", width=10)
        r_table.add_column("Status", width=14)
        r_table.add_column("Hinweis")
        for status in self.statuses:
            state = ("[green]Erfüllt[/green]" if status.satisfied
                     else "[red]Nicht erfüllt[/red]")
            r_table.add_row(status.rule_name, status.rule_type.capitalize(),
                            state, status.message)
        console.print(r_table)


class RuleComplianceChecker:
    """Prüft Belegungs- und Folgekurs-Regeln gegen die Historie."""

    def __init__(self, rules: list[Rule], history: dict[str, AssignmentSlot]) -> None:
        self.rules = rules
        self.history = history

    def check_student(self, student: str,
                      current: Optional[BandAssignments] = None) -> ComplianceReport:
        rows = build_student_history(student, self.history, newest_first=True)
        taken: list[str] = []
        for row in rows:
            for w in row.workshops():
                if w not in taken:
                    taken.append(w)
        if current is not None:
            for w in current.workshops_of(student):
                if w not in taken:
                    taken.append(w)

        chronological = list(reversed(rows))
        statuses = [self._check_rule(rule, set(taken), chronological) for rule in self.rules]
        return ComplianceReport(student=student, taken=taken,
                                history=rows, statuses=statuses)

    def check_all(self, students: list[str],
                  current: Optional[BandAssignments] = None) -> list[ComplianceReport]:
        return [self.check_student(s, current) for s in students]

    def _check_rule(self, rule: Rule, taken: set[str],
                    chronological: list[HistoryRow]) -> RuleStatus:
        if isinstance(rule, BelegungRule):
            return self._check_belegung(rule, taken)
        if isinstance(rule, FolgekursRule):
            return self._check_folgekurs(rule, chronological)
        raise TypeError(f"Unbekannter Regeltyp: {type(rule).__name__}")

    @staticmethod
    def _check_belegung(rule: BelegungRule, taken: set[str]) -> RuleStatus:
        missing = rule.missing(taken)
        message = "" if not missing else f"Noch nicht belegt: {', '.join(missing)}"
        return RuleStatus(rule_id=rule.id, rule_name=rule.name, rule_type=rule.type,
                          satisfied=not missing, message=message)

    @staticmethod
    def _check_folgekurs(rule: FolgekursRule, rows: list[HistoryRow]) -> RuleStatus:
        for current, following in zip(rows, rows[1:]):
            if rule.from_course not in current.workshops():
                continue
            if rule.to_course not in following.workshops():
                return RuleStatus(
                    rule_id=rule.id, rule_name=rule.name, rule_type=rule.type,
                    satisfied=False,
                    message=(f"Nach {rule.from_course} muss {rule.to_course} "
                             f"im nächsten Trimester belegt werden."),
                )
            if rule.same_band:
                from_band = "band1" if current.band1 == rule.from_course else "band2"
                to_band = "band1" if following.band1 == rule.to_course else "band2"
                if from_band != to_band:
                    return RuleStatus(
                        rule_id=rule.id, rule_name=rule.name, rule_type=rule.type,
                        satisfied=False,
                        message=(f"Nach {rule.from_course} muss {rule.to_course} "
                                 f"im gleichen Band belegt werden."),
                    )
        return RuleStatus(rule_id=rule.id, rule_name=rule.name, rule_type=rule.type,
                          satisfied=True)
