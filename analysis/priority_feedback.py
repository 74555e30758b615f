"""Prioritäts-Rückkopplung nach einer finalen Zuteilung.

Pro Band mit abgegebenen Wahlen und echter Werkstatt:
  Erstwunsch   → delta_first_choice      (-1.0)
  Zweitwunsch  → delta_second_choice     (-0.5)
  keiner, 1 Wahl  → delta_no_choice_single (+1.0)
  keiner, 2 Wahlen → delta_no_choice_double (+1.25)

Der neue Score ist alter Score + Mittelwert der Band-Deltas, auf eine
Nachkommastelle gerundet und auf [min_score, max_score] begrenzt.
"""

import math
from typing import Optional

from pydantic import BaseModel

from config.schema import PriorityConfig
from models.assignment import BandAssignments, BandChoices
from models.workshop import Band


def round_score(value: float) -> float:
    """Rundet auf eine Nachkommastelle, .x5 immer aufwärts."""
    return math.floor(value * 10 + 0.5) / 10


class ScoreChange(BaseModel):
    """Score-Änderung eines Schülers."""

    student: str
    old_score: float
    new_score: float
    band_deltas: dict[str, float]   # band → delta, nur berücksichtigte Bänder

    @property
    def delta(self) -> float:
        return round(self.new_score - self.old_score, 2)


class PriorityUpdate(BaseModel):
    """Neue Scores aller Schüler plus die einzelnen Änderungen."""

    scores: dict[str, float]
    changes: list[ScoreChange]

    def print_rich(self) -> None:
        from rich import box
        from rich.console import Console
        from rich.table import Table

        table = Table(title="Prioritäts-Scores", box=box.ROUNDED)
        table.add_column("Schüler", width=24)
        table.add_column("Alt", justify="right", width=6)
        table.add_column("Neu", justify="right", width=6)
        table.add_column("Δ", justify="right", width=7)
        for change in sorted(self.changes, key=lambda c: c.student):
            color = "green" if change.delta < 0 else "red" if change.delta > 0 else "white"
            table.add_row(
                change.student,
                f"{change.old_score:.1f}",
                f"{change.new_score:.1f}",
                f"[{color}]{change.delta:+.2f}[/{color}]",
            )
        Console().print(table)


def band_delta(assigned: Optional[str], choices: list[str],
               config: PriorityConfig) -> Optional[float]:
    """Delta für ein Band, None wenn das Band nicht zählt."""
    if not choices or not assigned:
        return None
    if assigned == choices[0]:
        return config.delta_first_choice
    if len(choices) > 1 and assigned == choices[1]:
        return config.delta_second_choice
    if len(choices) >= 2:
        return config.delta_no_choice_double
    return config.delta_no_choice_single


def update_scores(
    students: list[str],
    assignments: BandAssignments,
    choices: BandChoices,
    current_scores: dict[str, float],
    config: Optional[PriorityConfig] = None,
) -> PriorityUpdate:
    """Berechnet die neuen Prioritäts-Scores; 'current_scores' bleibt unverändert.

    Schüler ohne Score starten mit dem Standardwert. Schüler ohne
    berücksichtigtes Band behalten ihren Score.
    """
    config = config or PriorityConfig()
    scores = dict(current_scores)
    changes: list[ScoreChange] = []

    for student in students:
        old = scores.get(student) or config.default_score
        scores[student] = old

        deltas: dict[str, float] = {}
        for band in Band:
            delta = band_delta(
                assignments.workshop_of(student, band),
                choices.of(student, band),
                config,
            )
            if delta is not None:
                deltas[band.value] = delta

        if not deltas:
            continue

        average = sum(deltas.values()) / len(deltas)
        new = config.clamp(round_score(old + average))
        scores[student] = new
        changes.append(ScoreChange(student=student, old_score=old,
                                   new_score=new, band_deltas=deltas))

    return PriorityUpdate(scores=scores, changes=changes)
