"""Solver-Modul: Constraint-Prüfung, Greedy-Zuteilung und manuelle Umsetzungen."""

from .constraints import AssignmentCheck, CheckCode, ConstraintContext, can_assign
from .band_allocator import BandAllocationResult, BandAllocator
from .dual_band import AllocationProblem, DualAllocationResult, DualBandAllocator
from .manual_override import OverrideSession, Violation

__all__ = [
    "AssignmentCheck",
    "CheckCode",
    "ConstraintContext",
    "can_assign",
    "BandAllocationResult",
    "BandAllocator",
    "AllocationProblem",
    "DualAllocationResult",
    "DualBandAllocator",
    "OverrideSession",
    "Violation",
]
