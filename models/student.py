"""Datenmodell für einen Schüler (Pydantic v2)."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Student(BaseModel):
    """Repräsentiert einen einzelnen Schüler im Roster."""

    name: str                          # eindeutiger Bezeichner
    class_label: str = ""              # "7b"
    needs_support: bool = False        # benötigt eine Schulbegleitung
    priority_score: float = Field(5.0, ge=1.0, le=10.0)
    comment: str = ""
    trimester: Optional[str] = None    # aktuelles Trimester-Label

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name darf nicht leer sein.")
        return v
