"""Übernahme hochgeladener Wahlen in den Datenbestand.

read_rows() liest eine .xlsx- oder .csv-Datei in Tabellenzeilen
(erste Zeile = Kopfzeile), z.B.
  Name; Klasse; Übermittelt; Q1; Q2
Werte nach einem Doppelpunkt werden verworfen ("Holz: Mo 3./4. Std" → "Holz").
Werkstatt-Namen werden ohne Beachtung von Groß-/Kleinschreibung und
Leerzeichen gegen vorhandene Werkstätten abgeglichen, bevor eine neue
Werkstatt angelegt wird.
"""

import csv
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from models.werkstatt_data import WerkstattData
from models.workshop import Band

logger = logging.getLogger(__name__)


class ChoiceImportError(Exception):
    """Fehler beim Übernehmen der Wahlen."""


class ClassChange(BaseModel):
    student: str
    old: Optional[str] = None
    new: str


class UploadSummary(BaseModel):
    """Zusammenfassung eines Uploads für ein Band."""

    band: Band
    new_students: list[str] = []
    updated_classes: list[ClassChange] = []
    new_workshops: list[str] = []
    updated_choices: int = 0

    def print_rich(self) -> None:
        from rich.console import Console
        from rich.panel import Panel

        lines = []
        if self.new_students:
            lines.append(f"[green]Neue Schüler ({len(self.new_students)}):[/green] "
                         f"{', '.join(self.new_students)}")
        if self.updated_classes:
            lines.append(f"[cyan]Klassen aktualisiert:[/cyan] {len(self.updated_classes)}")
        if self.new_workshops:
            lines.append(f"[yellow]Neue Werkstätten ({len(self.new_workshops)}):[/yellow] "
                         f"{', '.join(self.new_workshops)}")
        if self.updated_choices:
            lines.append(f"Wahlen aktualisiert: {self.updated_choices} Schüler")
        Console().print(Panel(
            "\n".join(lines) or "[dim]Keine Änderungen.[/dim]",
            title=f"Upload – {self.band.label}",
            border_style="cyan",
        ))


# ─── Datei lesen ──────────────────────────────────────────────────────────────

def read_rows(path: Path) -> list[list]:
    """Liest das erste Tabellenblatt (.xlsx) bzw. die CSV-Datei in Zeilen.

    CSV-Trennzeichen ist ';', falls die Kopfzeile eines enthält, sonst ','.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        try:
            import openpyxl
            wb = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
        except FileNotFoundError:
            raise ChoiceImportError(f"Datei nicht gefunden: {path}")
        except Exception as e:
            raise ChoiceImportError(f"Fehler beim Öffnen der Excel-Datei: {e}")
        try:
            return [list(row) for row in wb.worksheets[0].iter_rows(values_only=True)]
        finally:
            wb.close()

    if suffix == ".csv":
        try:
            with open(path, encoding="utf-8-sig", newline="") as f:
                text = f.read()
        except FileNotFoundError:
            raise ChoiceImportError(f"Datei nicht gefunden: {path}")
        first_line = text.splitlines()[0] if text else ""
        delimiter = ";" if ";" in first_line else ","
        return [row for row in csv.reader(text.splitlines(), delimiter=delimiter)]

    raise ChoiceImportError(
        f"Unbekanntes Dateiformat: {path}. Erwartet: .xlsx oder .csv."
    )


# ─── Normalisierung ───────────────────────────────────────────────────────────

def parse_choice_value(value: Optional[str]) -> str:
    """Schneidet alles ab dem ersten Doppelpunkt ab."""
    if not value:
        return ""
    text = str(value).strip()
    if ":" in text:
        text = text.split(":", 1)[0].strip()
    return text


def _match_key(name: str) -> str:
    return " ".join(name.lower().split())


def match_workshop(name: str, known: list[str]) -> Optional[str]:
    """Vorhandene Werkstatt zum Namen (Groß-/Kleinschreibung, Leerzeichen egal)."""
    key = _match_key(parse_choice_value(name))
    for candidate in known:
        if _match_key(parse_choice_value(candidate)) == key:
            return candidate
    return None


def _find_column(header: list[str], *needles: str) -> int:
    for i, h in enumerate(header):
        if any(n in h for n in needles):
            return i
    return -1


# ─── Importer ─────────────────────────────────────────────────────────────────

class ChoiceImporter:
    """Übernimmt Wahl-Zeilen für ein Band in einen WerkstattData-Bestand."""

    def __init__(self, data: WerkstattData, default_capacity: int = 6) -> None:
        self.data = data
        self.default_capacity = default_capacity

    def _columns(self, header_row: list) -> tuple[int, int, int, int]:
        header = [str(h).lower().strip() for h in header_row]
        name_idx = _find_column(header, "name", "schüler", "student")
        class_idx = _find_column(header, "klasse", "class")
        q1_idx = _find_column(header, "q1")
        q2_idx = _find_column(header, "q2")

        # Ohne Q1/Q2-Überschrift: die letzten beiden Spalten
        if (q1_idx == -1 or q2_idx == -1) and class_idx != -1 and len(header) > class_idx + 3:
            q1_idx, q2_idx = len(header) - 2, len(header) - 1

        if name_idx == -1:
            raise ChoiceImportError('Spalte "Name", "Student" oder "Schüler" nicht gefunden.')
        if q1_idx == -1 or q2_idx == -1:
            raise ChoiceImportError(
                'Spalten "Q1" und "Q2" nicht gefunden. '
                'Erwartetes Format: Name; Klasse; Übermittelt; Q1; Q2'
            )
        return name_idx, class_idx, q1_idx, q2_idx

    def import_rows(self, rows: list[list], band: Band) -> UploadSummary:
        """Übernimmt die Zeilen und ersetzt die Wahlen der genannten Schüler im Band."""
        if not rows:
            raise ChoiceImportError("Die Datei enthält keine Zeilen.")
        name_idx, class_idx, q1_idx, q2_idx = self._columns(rows[0])
        summary = UploadSummary(band=band)
        band_map = dict(self.data.choices.for_band(band))

        for row in rows[1:]:
            if len(row) < 2:
                continue
            name = _cell(row, name_idx)
            if not name:
                continue
            class_label = _cell(row, class_idx)

            if name not in self.data.students:
                self.data.add_student(name, class_label=class_label)
                summary.new_students.append(name)
                if class_label:
                    summary.updated_classes.append(ClassChange(student=name, new=class_label))
            elif class_label and self.data.students[name].class_label != class_label:
                old = self.data.students[name].class_label or None
                self.data.update_student(name, class_label=class_label)
                summary.updated_classes.append(
                    ClassChange(student=name, old=old, new=class_label)
                )

            choices: list[str] = []
            for raw in (_cell(row, q1_idx), _cell(row, q2_idx)):
                value = parse_choice_value(raw)
                if not value:
                    continue
                choices.append(self._resolve_workshop(value, summary))

            if choices:
                band_map[name] = choices
                summary.updated_choices += 1

        self.data.choices = self.data.choices.model_copy(update={band.value: band_map})
        logger.info(
            f"Upload {band.label}: {summary.updated_choices} Wahlen, "
            f"{len(summary.new_students)} neue Schüler, "
            f"{len(summary.new_workshops)} neue Werkstätten"
        )
        return summary

    def _resolve_workshop(self, value: str, summary: UploadSummary) -> str:
        known = list(self.data.workshops) + list(self.data.archived_workshops)
        existing = match_workshop(value, known)
        if existing:
            return existing
        self.data.add_workshop(value, self.default_capacity)
        summary.new_workshops.append(value)
        return value


def _cell(row: list, idx: int) -> str:
    if idx < 0 or idx >= len(row) or row[idx] is None:
        return ""
    return str(row[idx]).strip()
