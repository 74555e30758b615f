"""Werkstatt-Verwaltung — Haupt-CLI.

Verwendung:
  python main.py setup                          Standard-Konfiguration anlegen
  python main.py config show                    Konfiguration anzeigen
  python main.py generate                       Demo-Datenbestand erzeugen
  python main.py import-choices <datei>        Wahlen aus .xlsx/.csv übernehmen
  python main.py assign                         Beide Bänder automatisch zuteilen
  python main.py move <schüler> <werkstatt>     Schüler manuell umsetzen
  python main.py finalize                       Zuteilung speichern + Scores anpassen
  python main.py history <schüler>              Historie und Regel-Status
  python main.py workshop delete <name>         Werkstatt löschen/archivieren
  python main.py workshop reactivate <name>     Archivierte Werkstatt reaktivieren
  python main.py workshop purge <name>          Archivierte Werkstatt endgültig löschen
  python main.py scenario save <name>           Szenario speichern
  python main.py scenario load <name>           Szenario laden
  python main.py scenario list                  Szenarien auflisten
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

console = Console()


def _load_config_or_abort():
    """Lädt die Konfiguration oder bricht mit Fehlermeldung ab."""
    from config.manager import ConfigManager
    mgr = ConfigManager()
    if mgr.first_run_check():
        console.print(
            "[red]Keine Konfiguration gefunden.[/red]\n"
            "Führen Sie zunächst [bold]python main.py setup[/bold] aus."
        )
        sys.exit(1)
    return mgr, mgr.load()


def _load_data_or_abort(config):
    """Lädt den Datenbestand aus dem konfigurierten Verzeichnis."""
    from data.repository import JsonRepository
    repo = JsonRepository(Path(config.data_dir))
    try:
        return repo, repo.load_dataset()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


# ─── SETUP ────────────────────────────────────────────────────────────────────

@click.command("setup")
@click.option("--force", is_flag=True, default=False,
              help="Vorhandene Konfiguration ohne Rückfrage überschreiben.")
def cmd_setup(force: bool):
    """Ersteinrichtung: Standard-Konfiguration anlegen."""
    from config.defaults import default_engine_config
    from config.manager import ConfigManager

    mgr = ConfigManager()
    if not mgr.first_run_check() and not force:
        console.print("[yellow]Eine Konfiguration existiert bereits.[/yellow]")
        if not click.confirm("Trotzdem neu einrichten?", default=False):
            return

    mgr.save(default_engine_config())
    console.print("[bold green]Einrichtung abgeschlossen![/bold green]")
    console.print("Führen Sie jetzt [bold]python main.py generate[/bold] aus.")


# ─── CONFIG ───────────────────────────────────────────────────────────────────

@click.group("config")
def cmd_config():
    """Konfiguration anzeigen."""


@cmd_config.command("show")
def config_show():
    """Zeigt die aktuelle Konfiguration an."""
    mgr, config = _load_config_or_abort()

    console.print(Panel(
        f"[bold]{config.school_name}[/bold]  |  Daten: {config.data_dir}  |  "
        f"Standard-Kapazität: {config.default_workshop_capacity}",
        title="Konfiguration",
        border_style="cyan",
    ))

    pc = config.priority
    table = Table(title="Prioritäts-Score", box=box.ROUNDED)
    table.add_column("Parameter")
    table.add_column("Wert", justify="right")
    table.add_row("Startwert", f"{pc.default_score:.1f}")
    table.add_row("Bereich", f"{pc.min_score:.1f} – {pc.max_score:.1f}")
    table.add_row("Erstwunsch", f"{pc.delta_first_choice:+.2f}")
    table.add_row("Zweitwunsch", f"{pc.delta_second_choice:+.2f}")
    table.add_row("Kein Wunsch (1 Wahl)", f"{pc.delta_no_choice_single:+.2f}")
    table.add_row("Kein Wunsch (2 Wahlen)", f"{pc.delta_no_choice_double:+.2f}")
    console.print(table)

    ac = config.allocation
    console.print(
        f"[bold]Zuteilung:[/bold] {ac.max_choices} Wünsche pro Band | "
        f"Leere Zweitband-Wahlen melden: {'ja' if ac.report_unplaceable_band2 else 'nein'}"
    )


# ─── GENERATE ─────────────────────────────────────────────────────────────────

@click.command("generate")
@click.option("--seed", default=42, help="Zufalls-Seed für reproduzierbare Daten.")
@click.option("--students", "num_students", default=48, help="Anzahl Schüler.")
def cmd_generate(seed: int, num_students: int):
    """Erzeugt einen Demo-Datenbestand (Schüler, Werkstätten, Regeln, Wahlen)."""
    mgr, config = _load_config_or_abort()
    from data.fake_data import FakeDataGenerator
    from data.repository import JsonRepository

    console.print("[bold]Testdaten werden generiert...[/bold]")
    gen = FakeDataGenerator(config, seed=seed, num_students=num_students)
    data = gen.generate()
    gen.print_summary(data)

    repo = JsonRepository(Path(config.data_dir))
    repo.save_dataset(data)
    console.print(f"\n[dim]{data.summary()}[/dim]")
    console.print(f"[green]✓[/green] Datenbestand gespeichert: {config.data_dir}")


# ─── IMPORT-CHOICES ───────────────────────────────────────────────────────────

@click.command("import-choices")
@click.argument("datei", type=click.Path(exists=True, path_type=Path))
@click.option("--band", type=click.Choice(["band1", "band2"]), default="band1",
              help="Band, für das die Wahlen gelten.")
def cmd_import_choices(datei: Path, band: str):
    """Übernimmt Wahlen aus einer Excel- oder CSV-Datei (Name; Klasse; …; Q1; Q2)."""
    mgr, config = _load_config_or_abort()
    repo, data = _load_data_or_abort(config)
    from data.choice_import import ChoiceImporter, ChoiceImportError, read_rows
    from models.workshop import Band

    console.print(f"[bold]Importiere:[/bold] {datei}")
    importer = ChoiceImporter(data, default_capacity=config.default_workshop_capacity)
    try:
        summary = importer.import_rows(read_rows(datei), Band(band))
    except ChoiceImportError as e:
        console.print(f"[red bold]Import fehlgeschlagen:[/red bold]\n{e}")
        sys.exit(1)

    summary.print_rich()
    repo.save_dataset(data)
    console.print(f"[green]✓[/green] Wahlen für das {Band(band).label} gespeichert.")


# ─── ASSIGN ───────────────────────────────────────────────────────────────────

@click.command("assign")
@click.option("--save/--no-save", default=True,
              help="Vorschlag als aktuellen Zuteilungsstand speichern.")
def cmd_assign(save: bool):
    """Teilt beide Bänder automatisch zu."""
    mgr, config = _load_config_or_abort()
    repo, data = _load_data_or_abort(config)
    from analysis.allocation_report import AllocationAnalyzer
    from solver.dual_band import DualBandAllocator
    from solver.manual_override import OverrideSession

    ctx = data.constraint_context()
    allocator = DualBandAllocator(ctx, config.priority, config.allocation)
    result = allocator.allocate(data.roster, data.choices,
                                data.support_flags(), data.scores())
    result.print_rich()

    session = OverrideSession.from_allocation(ctx, result.assignments, data.roster)
    violations = session.revalidate()
    if violations:
        console.print(f"[yellow]{len(violations)} Regelverstöße im Vorschlag.[/yellow]")

    analyzer = AllocationAnalyzer()
    analyzer.print_rich(analyzer.analyze(data.roster, data.workshops,
                                         session.state, data.choices))

    if save:
        data.current = session.state
        repo.save_dataset(data)
        console.print("[green]✓[/green] Vorschlag gespeichert. "
                      "Anpassen mit [bold]python main.py move[/bold].")


# ─── MOVE ─────────────────────────────────────────────────────────────────────

@click.command("move")
@click.argument("student")
@click.argument("workshop")
@click.option("--band", type=click.Choice(["band1", "band2"]), default="band1",
              help="Band der Umsetzung.")
def cmd_move(student: str, workshop: str, band: str):
    """Setzt einen Schüler manuell um (WORKSHOP '-' = nicht zugeordnet)."""
    mgr, config = _load_config_or_abort()
    repo, data = _load_data_or_abort(config)
    from models.workshop import UNASSIGNED, Band
    from solver.manual_override import OverrideSession

    if student not in data.students:
        console.print(f"[red]Unbekannter Schüler: {student}[/red]")
        sys.exit(1)
    target = UNASSIGNED if workshop == "-" else workshop
    if target != UNASSIGNED and target not in data.workshops:
        console.print(f"[red]Unbekannte Werkstatt: {workshop}[/red]")
        sys.exit(1)

    session = OverrideSession(data.constraint_context(), data.current)
    session.revalidate()
    violation = session.move(student, target, Band(band))
    data.current = session.state
    repo.save_dataset(data)

    console.print(f"[green]✓[/green] {student} → {target} ({Band(band).label})")
    if violation:
        console.print(f"[yellow]Regelverstoß:[/yellow] {violation.reason}")

    open_violations = session.violations()
    if open_violations:
        table = Table(title="Offene Regelverstöße", box=box.SIMPLE)
        table.add_column("Band", width=14)
        table.add_column("Werkstatt", width=18)
        table.add_column("Schüler", width=22)
        table.add_column("Grund")
        for v in open_violations:
            table.add_row(v.band.label, v.workshop, v.student, v.reason)
        console.print(table)


# ─── FINALIZE ─────────────────────────────────────────────────────────────────

@click.command("finalize")
def cmd_finalize():
    """Speichert den aktuellen Stand als offizielle Zuteilung und passt die Scores an."""
    mgr, config = _load_config_or_abort()
    repo, data = _load_data_or_abort(config)

    if not data.current.band1 and not data.current.band2:
        console.print("[red]Kein Zuteilungsstand vorhanden.[/red] "
                      "Führen Sie zuerst [bold]python main.py assign[/bold] aus.")
        sys.exit(1)

    key = str(data.slot_key)
    overwrite = key in data.history
    update = data.finalize(config=config.priority)
    repo.save_dataset(data)

    update.print_rich()
    verb = "überschrieben" if overwrite else "gespeichert"
    console.print(f"[green]✓[/green] Zuteilung für {key} {verb}.")


# ─── HISTORY ──────────────────────────────────────────────────────────────────

@click.command("history")
@click.argument("student")
def cmd_history(student: str):
    """Zeigt Historie und Regel-Status eines Schülers."""
    mgr, config = _load_config_or_abort()
    repo, data = _load_data_or_abort(config)
    from analysis.rule_compliance import RuleComplianceChecker

    if student not in data.students:
        console.print(f"[red]Unbekannter Schüler: {student}[/red]")
        sys.exit(1)

    s = data.students[student]
    console.print(Panel(
        f"Klasse: {s.class_label or '–'} | Score: {s.priority_score:.1f} | "
        f"Schulbegleitung: {'ja' if s.needs_support else 'nein'}"
        + (f"\n{s.comment}" if s.comment else ""),
        title=student,
        border_style="cyan",
    ))
    checker = RuleComplianceChecker(data.rules, data.history)
    checker.check_student(student, data.current).print_rich()


# ─── WORKSHOP ─────────────────────────────────────────────────────────────────

@click.group("workshop")
def cmd_workshop():
    """Werkstätten löschen, archivieren und reaktivieren."""


@cmd_workshop.command("delete")
@click.argument("name")
def workshop_delete(name: str):
    """Archiviert die Werkstatt, falls sie je belegt wurde, sonst endgültig löschen."""
    mgr, config = _load_config_or_abort()
    repo, data = _load_data_or_abort(config)
    try:
        outcome = data.delete_workshop(name)
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        sys.exit(1)
    repo.save_dataset(data)
    if outcome == "archived":
        console.print(f"[yellow]Werkstatt '{name}' wurde bereits belegt und archiviert.[/yellow]")
    else:
        console.print(f"[green]✓[/green] Werkstatt '{name}' gelöscht.")


@cmd_workshop.command("reactivate")
@click.argument("name")
def workshop_reactivate(name: str):
    """Holt eine archivierte Werkstatt zurück."""
    mgr, config = _load_config_or_abort()
    repo, data = _load_data_or_abort(config)
    try:
        data.reactivate_workshop(name)
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        sys.exit(1)
    repo.save_dataset(data)
    console.print(f"[green]✓[/green] Werkstatt '{name}' reaktiviert.")


@cmd_workshop.command("purge")
@click.argument("name")
@click.option("--yes", is_flag=True, default=False, help="Ohne Rückfrage löschen.")
def workshop_purge(name: str, yes: bool):
    """Löscht eine archivierte Werkstatt endgültig, auch aus allen Historien."""
    mgr, config = _load_config_or_abort()
    repo, data = _load_data_or_abort(config)
    if not yes and not click.confirm(
        f"Werkstatt '{name}' endgültig löschen? "
        f"Sie wird auch aus allen Schüler-Historien entfernt.", default=False
    ):
        return
    try:
        data.purge_workshop(name)
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        sys.exit(1)
    repo.save_dataset(data)
    console.print(f"[green]✓[/green] Werkstatt '{name}' endgültig gelöscht.")


# ─── SCENARIO ─────────────────────────────────────────────────────────────────

@click.group("scenario")
def cmd_scenario():
    """Szenarien verwalten (speichern, laden, auflisten)."""


@cmd_scenario.command("save")
@click.argument("name")
@click.option("--description", "-d", default="", help="Beschreibung des Szenarios.")
def scenario_save(name: str, description: str):
    """Speichert Score-Parameter und Zuteilungs-Einstellungen als Szenario."""
    mgr, config = _load_config_or_abort()
    try:
        mgr.save_scenario(config, name, description)
    except FileExistsError:
        if not click.confirm(f"Szenario '{name}' existiert bereits. Überschreiben?",
                             default=False):
            console.print("[yellow]Abgebrochen.[/yellow]")
            return
        mgr.save_scenario(config, name, description, overwrite=True)


@cmd_scenario.command("load")
@click.argument("name")
def scenario_load(name: str):
    """Übernimmt Score-Parameter und Zuteilungs-Einstellungen eines Szenarios."""
    mgr, config = _load_config_or_abort()
    try:
        scenario = mgr.load_scenario(name)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    mgr.save(scenario.apply_to(config))
    console.print(f"[green]✓[/green] Szenario '{name}' in die aktive Config übernommen.")


@cmd_scenario.command("list")
def scenario_list():
    """Listet alle gespeicherten Szenarien mit ihren Score-Änderungen auf."""
    from config.manager import ConfigManager
    mgr = ConfigManager()
    scenarios = mgr.list_scenarios()

    if not scenarios:
        console.print("[dim]Keine Szenarien vorhanden.[/dim]")
        return

    table = Table(title="Gespeicherte Szenarien", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Erstellt")
    table.add_column("Erstwunsch", justify="right")
    table.add_column("Zweitwunsch", justify="right")
    table.add_column("Kein Wunsch 1/2", justify="right")
    table.add_column("Beschreibung")
    for s in scenarios:
        pc = s.priority
        table.add_row(
            s.name, str(s.created or ""),
            f"{pc.delta_first_choice:+.2f}", f"{pc.delta_second_choice:+.2f}",
            f"{pc.delta_no_choice_single:+.2f} / {pc.delta_no_choice_double:+.2f}",
            s.description,
        )
    console.print(table)


# ─── HAUPT-CLI ────────────────────────────────────────────────────────────────

@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False,
              help="Ausführliche Protokollausgabe.")
def cli(verbose: bool):
    """Werkstatt-Verwaltung: Zuteilung von Schülern zu Werkstätten in zwei Bändern.

    Starten Sie mit: python main.py setup
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def main():
    """Einstiegspunkt. Legt beim ersten Aufruf die Standard-Konfiguration an."""
    from config.manager import ConfigManager
    mgr = ConfigManager()

    if len(sys.argv) == 1 and mgr.first_run_check():
        console.print(Panel(
            "[bold]Willkommen bei der Werkstatt-Verwaltung![/bold]\n\n"
            "Keine Konfiguration gefunden.\n"
            "Die Standard-Konfiguration wird jetzt angelegt...",
            border_style="cyan",
        ))
        sys.argv.append("setup")

    cli()


# Befehle registrieren
cli.add_command(cmd_setup)
cli.add_command(cmd_config)
cli.add_command(cmd_generate)
cli.add_command(cmd_import_choices)
cli.add_command(cmd_assign)
cli.add_command(cmd_move)
cli.add_command(cmd_finalize)
cli.add_command(cmd_history)
cli.add_command(cmd_workshop)
cli.add_command(cmd_scenario)


if __name__ == "__main__":
    main()
