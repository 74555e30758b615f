"""Testdaten-Generator für die Werkstatt-Zuteilung.

Erzeugt einen Datenbestand mit absichtlichen Engpässen:
  1. Beliebte Werkstätten (Holz, Kochen, Fotografie) werden überdurchschnittlich
     oft als Erstwunsch gewählt
  2. Keramik/Theater nur im Ersten Band, Textil/Elektronik nur im Zweiten
  3. Kunst I im vorherigen Trimester löst die Folgekurs-Regel nach Kunst II aus
  4. Holz/Metall und Kunst I/Keramik können nicht parallel belegt werden
"""

import random
from typing import Optional

from config.defaults import DEMO_CANNOT_BE_PARALLEL, DEMO_PREREQUISITES, DEMO_WORKSHOPS
from config.schema import EngineConfig
from models.assignment import AssignmentSlot, default_school_year
from models.werkstatt_data import WerkstattData
from models.workshop import UNASSIGNED, Band

# ─── Namens-Listen ────────────────────────────────────────────────────────────

_FIRST_NAMES = [
    "Anna", "Ben", "Clara", "David", "Emma", "Finn", "Greta", "Hannah",
    "Ida", "Jonas", "Karl", "Lena", "Mia", "Noah", "Oskar", "Paula",
    "Quirin", "Rosa", "Samuel", "Tilda", "Umut", "Valentina", "Yusuf", "Zoe",
]

_LAST_NAMES = [
    "Müller", "Schmidt", "Schneider", "Fischer", "Weber", "Meyer",
    "Wagner", "Becker", "Schulz", "Hoffmann", "Schäfer", "Koch",
    "Bauer", "Richter", "Klein", "Wolf", "Schröder", "Neumann",
]

_CLASSES = ["5a", "5b", "6a", "6b", "7a", "7b"]

_POPULAR = {"Holz": 3, "Kochen": 3, "Fotografie": 2}


class FakeDataGenerator:
    """Erzeugt einen vollständigen, reproduzierbaren Demo-Datenbestand."""

    def __init__(self, config: EngineConfig, seed: Optional[int] = None,
                 num_students: int = 48) -> None:
        self.config = config
        self.rng = random.Random(seed)
        self.num_students = num_students

    def _make_names(self) -> list[str]:
        names: list[str] = []
        while len(names) < self.num_students:
            name = f"{self.rng.choice(_FIRST_NAMES)} {self.rng.choice(_LAST_NAMES)}"
            if name not in names:
                names.append(name)
        return names

    def _add_workshops(self, data: WerkstattData) -> None:
        for name, (capacity, bands, teacher, room) in DEMO_WORKSHOPS.items():
            data.add_workshop(
                name, capacity, available_bands=[Band(b) for b in bands],
                teacher=teacher, room=room,
                prerequisites=DEMO_PREREQUISITES.get(name, []),
                cannot_be_parallel=DEMO_CANNOT_BE_PARALLEL.get(name, []),
            )

    def _add_students(self, data: WerkstattData) -> None:
        default = self.config.priority.default_score
        for name in self._make_names():
            score = default + self.rng.choice([-1.0, -0.5, 0.0, 0.0, 0.5, 1.0])
            data.add_student(
                name,
                class_label=self.rng.choice(_CLASSES),
                needs_support=self.rng.random() < 0.1,
                priority_score=score,
            )

    def _pick_choices(self, data: WerkstattData, band: Band) -> list[str]:
        offered = [n for n, ws in data.workshops.items() if ws.is_available_in(band)]
        weights = [_POPULAR.get(n, 1) for n in offered]
        first = self.rng.choices(offered, weights=weights, k=1)[0]
        rest = [n for n in offered if n != first]
        return [first, self.rng.choice(rest)]

    def _previous_slot(self, data: WerkstattData) -> AssignmentSlot:
        maps: dict[str, dict[str, str]] = {b.value: {} for b in Band}
        for student in data.roster:
            taken: list[str] = []
            for band in Band:
                offered = [
                    n for n, ws in data.workshops.items()
                    if ws.is_available_in(band) and not ws.prerequisites and n not in taken
                ]
                if self.rng.random() < 0.1:
                    maps[band.value][student] = UNASSIGNED
                    continue
                workshop = self.rng.choice(offered)
                maps[band.value][student] = workshop
                taken.append(workshop)
        return AssignmentSlot(timestamp=None, **maps)

    def generate(self) -> WerkstattData:
        """Erzeugt den Datenbestand für das zweite Trimester des aktuellen Schuljahrs."""
        start, _ = default_school_year()
        data = WerkstattData(school_year_start=start, trimester=2)
        self._add_workshops(data)
        self._add_students(data)

        data.add_belegung_rule("Handwerk", ["Holz", "Metall"], rule_id="1")
        data.add_folgekurs_rule("Kunst-Aufbau", "Kunst I", "Kunst II",
                                same_band=True, rule_id="2")

        previous = self._previous_slot(data)
        data.history[str(data.slot_key.previous())] = previous

        # Vorjahres-Record: Werkstätten des letzten Trimesters
        for student in data.roster:
            record = previous.workshops_of(student)
            if record:
                data.prior_assignments[student] = record

        for band in Band:
            band_map = {}
            for student in data.roster:
                if self.rng.random() < 0.92:
                    band_map[student] = self._pick_choices(data, band)
            data.choices = data.choices.model_copy(update={band.value: band_map})
        return data

    # ─── Ausgabe ──────────────────────────────────────────────────────────────

    def print_summary(self, data: WerkstattData) -> None:
        """Gibt eine Rich-Tabelle mit Übersicht der erzeugten Daten aus."""
        from rich import box
        from rich.console import Console
        from rich.table import Table

        console = Console()
        table = Table(title="Erzeugte Testdaten", box=box.ROUNDED)
        table.add_column("Kategorie", style="bold cyan")
        table.add_column("Anzahl", justify="right")
        table.add_column("Details")

        support = sum(1 for s in data.students.values() if s.needs_support)
        table.add_row("Schüler", str(len(data.students)), f"{support} mit Schulbegleitung")
        table.add_row("Werkstätten", str(len(data.workshops)),
                      f"Kapazität gesamt {sum(w.capacity for w in data.workshops.values())}")
        table.add_row("Regeln", str(len(data.rules)), "")
        table.add_row("Historie", str(len(data.history)), ", ".join(data.history))
        table.add_row("Wahlen Erstes Band", str(len(data.choices.band1)), "")
        table.add_row("Wahlen Zweites Band", str(len(data.choices.band2)), "")

        console.print(table)
