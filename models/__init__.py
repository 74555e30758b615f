from models.workshop import Band, Workshop, ArchivedWorkshop, UNASSIGNED
from models.student import Student
from models.rules import BelegungRule, FolgekursRule, Rule
from models.assignment import SlotKey, BandAssignments, BandChoices, AssignmentSlot

__all__ = [
    "Band",
    "Workshop",
    "ArchivedWorkshop",
    "UNASSIGNED",
    "Student",
    "BelegungRule",
    "FolgekursRule",
    "Rule",
    "SlotKey",
    "BandAssignments",
    "BandChoices",
    "AssignmentSlot",
]
