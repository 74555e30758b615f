"""Belegungs-Regeln als getaggte Union (Pydantic v2).

Zwei Varianten:
  - BelegungRule:  Schüler muss ALLE genannten Werkstätten irgendwann belegt haben.
  - FolgekursRule: Wer fromCourse im vorherigen Trimester hatte, muss im
                   aktuellen Trimester toCourse belegen (optional im selben Band).
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class BelegungRule(BaseModel):
    """Abdeckungs-Regel.

    Die Felder heißen historisch 'options', geprüft wird aber UND über alle
    Einträge, nicht ODER.
    """

    type: Literal["belegung"] = "belegung"
    id: str
    name: str
    options: list[str] = []

    def is_satisfied(self, taken: set[str]) -> bool:
        return all(opt in taken for opt in self.options)

    def missing(self, taken: set[str]) -> list[str]:
        return [opt for opt in self.options if opt not in taken]


class FolgekursRule(BaseModel):
    """Nachfolge-Regel: fromCourse in T verpflichtet zu toCourse in T+1."""

    type: Literal["folgekurs"] = "folgekurs"
    id: str
    name: str
    from_course: str
    to_course: str
    same_band: bool = False


Rule = Annotated[Union[BelegungRule, FolgekursRule], Field(discriminator="type")]

_CAMEL_FIELDS = {
    "fromCourse": "from_course",
    "toCourse": "to_course",
    "sameBand": "same_band",
}


def normalize_rule_payload(raw: Any) -> Any:
    """Bereitet gespeicherte Regeln für die Validierung auf.

    Alte Einträge haben kein 'type'-Feld (→ Belegung), Folgekurs-Felder
    liegen in camelCase vor und IDs sind Zeitstempel-Zahlen.
    """
    if not isinstance(raw, dict):
        return raw
    data = dict(raw)
    data["type"] = str(data.get("type") or "belegung").lower()
    for camel, snake in _CAMEL_FIELDS.items():
        if camel in data and snake not in data:
            data[snake] = data.pop(camel)
    if "id" in data:
        data["id"] = str(data["id"])
    else:
        data["id"] = data.get("name", "")
    return data
