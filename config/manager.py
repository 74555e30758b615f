"""Konfigurationsmanager: Laden, Speichern, Validieren und Szenarien.

Nutzt ruamel.yaml für YAML-Serialisierung mit Kommentaren.
"""

import json
from datetime import date
from pathlib import Path
from typing import Optional

from rich.console import Console
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from config.schema import EngineConfig, PriorityScenario

console = Console()
yaml = YAML()
yaml.default_flow_style = False
yaml.width = 120


# ─── YAML-KOMMENTAR-AUFBAU ───

_YAML_HEADER = f"""\
# ============================================
# Werkstatt-Verwaltung — Konfiguration
# Version: 1.0
# Erstellt: {date.today().isoformat()}
# ============================================
"""

_SECTION_COMMENTS = {
    "default_workshop_capacity": (
        "Werkstätten",
        "Kapazität für Werkstätten, die beim Wahl-Upload neu angelegt werden.",
    ),
    "data_dir": (
        "Datenspeicher",
        None,
    ),
    "priority": (
        "Prioritäts-Score",
        "Höher = wird früher zugeteilt. Erstwunsch senkt, kein Wunsch erhöht.",
    ),
    "allocation": (
        "Zuteilung",
        None,
    ),
}


class ConfigManager:
    CONFIG_DIR = Path("config")
    DEFAULT_CONFIG = CONFIG_DIR / "werkstatt_config.yaml"
    SCENARIOS_DIR = Path("scenarios")

    def first_run_check(self) -> bool:
        """Gibt True zurück wenn noch keine Config existiert (Erstaufruf)."""
        return not self.DEFAULT_CONFIG.exists()

    # ─── Laden ───

    def load(self, path: Optional[Path] = None) -> EngineConfig:
        """Lade Config aus YAML. Validiert automatisch via Pydantic."""
        target = path or self.DEFAULT_CONFIG
        if not target.exists():
            raise FileNotFoundError(
                f"Konfigurationsdatei nicht gefunden: {target}\n"
                f"Führen Sie 'python main.py setup' aus, um die Konfiguration anzulegen."
            )
        with open(target, "r", encoding="utf-8") as f:
            raw = yaml.load(f)
        try:
            return EngineConfig.model_validate(dict(raw or {}))
        except Exception as e:
            raise ValueError(
                f"Konfigurationsdatei ungültig: {target}\n"
                f"Pydantic-Fehler: {e}"
            ) from e

    # ─── Speichern ───

    def save(self, config: EngineConfig, path: Optional[Path] = None) -> None:
        """Speichere Config als YAML mit deutschen Kommentaren."""
        target = path or self.DEFAULT_CONFIG
        target.parent.mkdir(parents=True, exist_ok=True)

        data = self._build_commented_yaml(config)

        with open(target, "w", encoding="utf-8") as f:
            f.write(_YAML_HEADER + "\n")
            yaml.dump(data, f)

        console.print(f"[green]✓[/green] Konfiguration gespeichert: {target}")

    def _build_commented_yaml(self, config: EngineConfig) -> CommentedMap:
        """Baut die YAML-Struktur mit Kommentaren auf."""
        raw = json.loads(config.model_dump_json())
        cm = CommentedMap(raw)

        for field, (label, comment) in _SECTION_COMMENTS.items():
            cm.yaml_set_comment_before_after_key(
                field,
                before=f"\n─── {label} ───" + (f"\n{comment}" if comment else ""),
            )

        if "priority" in cm:
            priority_map = CommentedMap(cm["priority"])
            priority_map.yaml_add_eol_comment("Grenzen inklusive", "min_score")
            cm["priority"] = priority_map

        return cm

    # ─── Szenarios ───

    def _scenario_path(self, name: str) -> Path:
        return self.SCENARIOS_DIR / f"{name}.yaml"

    def save_scenario(self, config: EngineConfig, name: str,
                      description: str = "", overwrite: bool = False) -> Path:
        """Speichert Score-Parameter und Zuteilungs-Einstellungen als Szenario."""
        path = self._scenario_path(name)
        if path.exists() and not overwrite:
            raise FileExistsError(f"Szenario '{name}' existiert bereits: {path}")
        scenario = PriorityScenario(
            name=name,
            description=description,
            created=date.today(),
            priority=config.priority,
            allocation=config.allocation,
        )
        self.SCENARIOS_DIR.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(json.loads(scenario.model_dump_json()), f)
        console.print(f"[green]✓[/green] Szenario '{name}' gespeichert.")
        return path

    def load_scenario(self, name: str) -> PriorityScenario:
        """Lädt ein gespeichertes Szenario."""
        path = self._scenario_path(name)
        if not path.exists():
            raise FileNotFoundError(
                f"Szenario '{name}' nicht gefunden. "
                f"Verfügbar: {[s.name for s in self.list_scenarios()]}"
            )
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.load(f)
        try:
            return PriorityScenario.model_validate({**dict(raw or {}), "name": name})
        except Exception as e:
            raise ValueError(
                f"Szenario-Datei ungültig: {path}\n"
                f"Pydantic-Fehler: {e}"
            ) from e

    def list_scenarios(self) -> list[PriorityScenario]:
        """Alle gültigen Szenarien, nach Namen sortiert."""
        if not self.SCENARIOS_DIR.exists():
            return []
        scenarios = []
        for p in sorted(self.SCENARIOS_DIR.glob("*.yaml")):
            try:
                scenarios.append(self.load_scenario(p.stem))
            except ValueError as e:
                console.print(f"[yellow]Übersprungen:[/yellow] {e}")
        return scenarios
