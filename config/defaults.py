from config.schema import AllocationConfig, EngineConfig, PriorityConfig


# Werkstatt-Katalog für Demo-Daten:
# Name → (Kapazität, Bänder, Lehrkraft, Raum)
DEMO_WORKSHOPS: dict[str, tuple[int, list[str], str, str]] = {
    "Holz":        (8, ["band1", "band2"], "Becker",  "W01"),
    "Metall":      (6, ["band1", "band2"], "Wagner",  "W02"),
    "Kunst I":     (8, ["band1", "band2"], "Koch",    "K11"),
    "Kunst II":    (6, ["band1", "band2"], "Koch",    "K11"),
    "Keramik":     (6, ["band1"],          "Braun",   "K12"),
    "Textil":      (6, ["band2"],          "Weber",   "T03"),
    "Kochen":      (8, ["band1", "band2"], "Schulz",  "KÜ1"),
    "Garten":      (10, ["band1", "band2"], "Wolf",   "AUS"),
    "Theater":     (12, ["band1"],         "Neumann", "AULA"),
    "Elektronik":  (6, ["band2"],          "Schmidt", "P02"),
    "Robotik":     (6, ["band1", "band2"], "Schmidt", "P02"),
    "Fotografie":  (8, ["band1", "band2"], "Müller",  "M01"),
}

# Voraussetzungen: Werkstatt → Werkstätten, die vorher belegt sein müssen (ALLE)
DEMO_PREREQUISITES: dict[str, list[str]] = {
    "Kunst II": ["Kunst I"],
    "Robotik": ["Elektronik"],
}

# Kann-nicht-parallel: einseitig gespeichert, beidseitig geprüft
DEMO_CANNOT_BE_PARALLEL: dict[str, list[str]] = {
    "Holz": ["Metall"],
    "Kunst I": ["Keramik"],
}


def default_priority_config() -> PriorityConfig:
    """Symmetrisches Rückkopplungssystem: −1 / −0,5 / +1 / +1,25."""
    return PriorityConfig(
        default_score=5.0,
        min_score=1.0,
        max_score=10.0,
        delta_first_choice=-1.0,
        delta_second_choice=-0.5,
        delta_no_choice_single=1.0,
        delta_no_choice_double=1.25,
    )


def default_engine_config() -> EngineConfig:
    """Vollständige Standard-Konfiguration."""
    return EngineConfig(
        school_name="Muster-Schule",
        default_workshop_capacity=6,
        data_dir="daten",
        priority=default_priority_config(),
        allocation=AllocationConfig(),
    )
