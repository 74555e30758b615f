from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, model_validator


# ─── PRIORITÄTS-RÜCKKOPPLUNG ───

class PriorityConfig(BaseModel):
    """Parameter des Prioritäts-Scores (Fairness-Gewicht je Schüler).

    Höherer Score = wird früher zugeteilt. Nach jeder finalen Zuteilung
    sinkt der Score bei Erfüllung der Wünsche und steigt bei Enttäuschung.
    """
    # Startwert für neue Schüler
    default_score: float = Field(5.0,
        description="Startwert für neue Schüler")
    # Untere Grenze des Scores
    min_score: float = Field(1.0,
        description="Minimaler Score")
    # Obere Grenze des Scores
    max_score: float = Field(10.0,
        description="Maximaler Score")
    # Erstwunsch erhalten
    delta_first_choice: float = Field(-1.0,
        description="Änderung bei Erstwunsch")
    # Zweitwunsch erhalten
    delta_second_choice: float = Field(-0.5,
        description="Änderung bei Zweitwunsch")
    # Keinen Wunsch erhalten, nur ein Wunsch abgegeben
    delta_no_choice_single: float = Field(1.0,
        description="Änderung ohne Wunsch (ein Wunsch abgegeben)")
    # Keinen Wunsch erhalten, obwohl zwei Wünsche abgegeben
    delta_no_choice_double: float = Field(1.25,
        description="Änderung ohne Wunsch (zwei Wünsche abgegeben)")

    @model_validator(mode='after')
    def validate_bounds(self):
        """Prüfe dass min < max und der Startwert im Intervall liegt."""
        if self.min_score >= self.max_score:
            raise ValueError(
                f"min_score ({self.min_score}) muss kleiner als "
                f"max_score ({self.max_score}) sein")
        if not self.min_score <= self.default_score <= self.max_score:
            raise ValueError(
                f"default_score ({self.default_score}) liegt nicht in "
                f"[{self.min_score}, {self.max_score}]")
        return self

    def clamp(self, score: float) -> float:
        """Begrenzt einen Score auf [min_score, max_score]."""
        return max(self.min_score, min(self.max_score, score))


# ─── AUTOMATISCHE ZUTEILUNG ───

class AllocationConfig(BaseModel):
    """Einstellungen der automatischen Zuteilung."""
    # Maximale Anzahl Wünsche pro Band (Erst- und Zweitwunsch)
    max_choices: int = Field(2, ge=1, le=2,
        description="Wünsche pro Band")
    # Problem melden, wenn im Zweiten Band durch die Filterung keine Wahl übrig bleibt
    report_unplaceable_band2: bool = Field(True,
        description="Leere Zweitband-Wahlen als Problem melden")


# ─── GESAMT-CONFIG ───

class EngineConfig(BaseModel):
    """Gesamtkonfiguration der Werkstatt-Verwaltung."""
    # Name der Schule
    school_name: str = Field("Muster-Schule",
        description="Name der Schule")
    # Kapazität für Werkstätten, die beim Wahl-Upload neu angelegt werden
    default_workshop_capacity: int = Field(6, ge=0,
        description="Standard-Kapazität neuer Werkstätten")
    # Verzeichnis des JSON-Datenspeichers
    data_dir: str = Field("daten",
        description="Verzeichnis des Datenspeichers")
    # Prioritäts-Rückkopplung
    priority: PriorityConfig = Field(default_factory=PriorityConfig)
    # Automatische Zuteilung
    allocation: AllocationConfig = Field(default_factory=AllocationConfig)


# ─── SZENARIO ───

class PriorityScenario(BaseModel):
    """Benannter Satz aus Score-Parametern und Zuteilungs-Einstellungen.

    Schulname, Datenverzeichnis und Standard-Kapazität gehören nicht dazu;
    ein Szenario ersetzt beim Laden nur 'priority' und 'allocation'.
    """
    name: str
    description: str = ""
    created: Optional[date] = None
    priority: PriorityConfig = Field(default_factory=PriorityConfig)
    allocation: AllocationConfig = Field(default_factory=AllocationConfig)

    def apply_to(self, config: EngineConfig) -> EngineConfig:
        return config.model_copy(update={
            "priority": self.priority, "allocation": self.allocation,
        })
