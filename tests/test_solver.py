"""Tests für Constraint-Prüfung, Band-Zuteilung und manuelle Umsetzungen."""

from datetime import datetime

import pytest

from config.defaults import default_engine_config
from config.schema import AllocationConfig
from data.fake_data import FakeDataGenerator
from models.assignment import AssignmentSlot, BandAssignments, BandChoices, SlotKey
from models.rules import BelegungRule, FolgekursRule
from models.workshop import UNASSIGNED, Band, Workshop
from solver.band_allocator import BandAllocationResult, BandAllocator
from solver.constraints import (
    CheckCode,
    ConstraintContext,
    can_assign,
    excludes_each_other,
    required_folgekurs,
    workshop_has_history,
)
from solver.dual_band import BOTH_BANDS, DualBandAllocator
from solver.manual_override import OverrideSession


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

CURRENT = SlotKey.of(2025, 2)
PREVIOUS_KEY = "2025-2026 T1"


def ws(name: str, capacity: int = 6, bands=("band1", "band2"),
       prerequisites=None, cannot_be_parallel=None) -> Workshop:
    return Workshop(
        name=name,
        capacity=capacity,
        available_bands=list(bands),
        prerequisites=prerequisites or [],
        cannot_be_parallel=cannot_be_parallel or [],
    )


def make_ctx(*workshops: Workshop, prior=None, rules=None, history=None,
             slot_key: SlotKey = CURRENT) -> ConstraintContext:
    return ConstraintContext(
        workshops={w.name: w for w in workshops},
        prior_assignments=prior or {},
        rules=rules or [],
        history=history or {},
        slot_key=slot_key,
    )


def kunst_rule(same_band: bool = True) -> FolgekursRule:
    return FolgekursRule(id="r1", name="Kunst-Aufbau", from_course="Kunst I",
                         to_course="Kunst II", same_band=same_band)


def kunst_history(band: str = "band1") -> dict[str, AssignmentSlot]:
    return {PREVIOUS_KEY: AssignmentSlot(**{band: {"Anna": "Kunst I"}})}


@pytest.fixture(scope="module")
def fake_data():
    return FakeDataGenerator(default_engine_config(), seed=7).generate()


@pytest.fixture(scope="module")
def fake_result(fake_data):
    allocator = DualBandAllocator(fake_data.constraint_context())
    return allocator.allocate(fake_data.roster, fake_data.choices,
                              fake_data.support_flags(), fake_data.scores())


# ─── CONSTRAINT-PRÜFUNG ───────────────────────────────────────────────────────

class TestCanAssign:
    def test_all_checks_pass(self):
        """Freie Werkstatt ohne Einschränkungen ist zulässig."""
        ctx = make_ctx(ws("Holz"))
        result = can_assign("Anna", "Holz", Band.BAND1, BandAssignments(), ctx)
        assert result.ok
        assert result.reason is None

    def test_workshop_not_offered_in_band(self):
        """Werkstatt nur im Ersten Band → im Zweiten Band unzulässig."""
        ctx = make_ctx(ws("Keramik", bands=["band1"]))
        result = can_assign("Anna", "Keramik", Band.BAND2, BandAssignments(), ctx)
        assert not result.ok
        assert result.code == CheckCode.BAND

    def test_unknown_workshop_fails_band_check(self):
        ctx = make_ctx(ws("Holz"))
        result = can_assign("Anna", "Zirkus", Band.BAND1, BandAssignments(), ctx)
        assert result.code == CheckCode.BAND

    def test_cannot_be_parallel_other_side(self):
        """Ausschluss steht bei der Werkstatt im anderen Band."""
        ctx = make_ctx(ws("Holz", cannot_be_parallel=["Metall"]), ws("Metall"))
        state = BandAssignments(band1={"Anna": "Holz"})
        result = can_assign("Anna", "Metall", Band.BAND2, state, ctx)
        assert result.code == CheckCode.PARALLEL
        assert "Holz" in result.reason

    def test_cannot_be_parallel_candidate_side(self):
        """Ausschluss steht bei der Kandidaten-Werkstatt."""
        ctx = make_ctx(ws("Kunst I", cannot_be_parallel=["Keramik"]),
                       ws("Keramik", bands=["band1"]))
        state = BandAssignments(band1={"Anna": "Keramik"})
        result = can_assign("Anna", "Kunst I", Band.BAND2, state, ctx)
        assert result.code == CheckCode.PARALLEL

    def test_excludes_each_other_is_symmetric(self):
        workshops = {"Holz": ws("Holz", cannot_be_parallel=["Metall"]), "Metall": ws("Metall")}
        assert excludes_each_other("Holz", "Metall", workshops)
        assert excludes_each_other("Metall", "Holz", workshops)
        assert not excludes_each_other("Holz", "Kochen", workshops)

    def test_capacity_reached(self):
        ctx = make_ctx(ws("Holz", capacity=1))
        state = BandAssignments(band1={"Ben": "Holz"})
        result = can_assign("Anna", "Holz", Band.BAND1, state, ctx)
        assert result.code == CheckCode.CAPACITY
        assert "1/1" in result.reason

    def test_own_placement_not_counted(self):
        """Der Schüler selbst zählt nicht zur Auslastung."""
        ctx = make_ctx(ws("Holz", capacity=1))
        state = BandAssignments(band1={"Ben": "Holz"})
        assert can_assign("Ben", "Holz", Band.BAND1, state, ctx).ok

    def test_unassigned_entries_not_counted(self):
        ctx = make_ctx(ws("Holz", capacity=1))
        state = BandAssignments(band1={"Ben": UNASSIGNED, "Clara": "Nicht Zugeordnen"})
        assert can_assign("Anna", "Holz", Band.BAND1, state, ctx).ok

    def test_repeat_of_last_year(self):
        ctx = make_ctx(ws("Holz"), prior={"Anna": ["Holz"]})
        result = can_assign("Anna", "Holz", Band.BAND1, BandAssignments(), ctx)
        assert result.code == CheckCode.REPEAT

    def test_repeat_uses_most_recent_entry(self):
        ctx = make_ctx(ws("Holz"), ws("Metall"), prior={"Anna": ["Holz", "Metall"]})
        assert can_assign("Anna", "Holz", Band.BAND1, BandAssignments(), ctx).ok
        assert not can_assign("Anna", "Metall", Band.BAND1, BandAssignments(), ctx).ok

    def test_prerequisites_missing(self):
        ctx = make_ctx(ws("Kunst II", prerequisites=["Kunst I"]))
        result = can_assign("Anna", "Kunst II", Band.BAND1, BandAssignments(), ctx)
        assert result.code == CheckCode.PREREQUISITE

    def test_prerequisites_all_required(self):
        ctx = make_ctx(ws("Robotik", prerequisites=["Elektronik", "Holz"]),
                       prior={"Anna": ["Elektronik"], "Ben": ["Holz", "Elektronik"]})
        assert not can_assign("Anna", "Robotik", Band.BAND1, BandAssignments(), ctx).ok
        assert can_assign("Ben", "Robotik", Band.BAND1, BandAssignments(), ctx).ok

    def test_first_failure_wins(self):
        """Band-Prüfung kommt vor Kapazität."""
        ctx = make_ctx(ws("Keramik", capacity=0, bands=["band1"]))
        result = can_assign("Anna", "Keramik", Band.BAND2, BandAssignments(), ctx)
        assert result.code == CheckCode.BAND


class TestFolgekurs:
    def test_previous_key_of_first_trimester(self):
        assert str(SlotKey.of(2025, 1).previous()) == "2024-2025 T3"
        assert str(SlotKey.of(2025, 3).previous()) == "2025-2026 T2"

    def test_requirement_resolved_from_previous_slot(self):
        req = required_folgekurs("Anna", [kunst_rule()], kunst_history("band2"), CURRENT)
        assert req is not None
        assert req.course == "Kunst II"
        assert req.band == Band.BAND2
        assert req.triggered_by == PREVIOUS_KEY

    def test_no_requirement_without_trigger(self):
        assert required_folgekurs("Ben", [kunst_rule()], kunst_history(), CURRENT) is None

    def test_older_slots_do_not_trigger(self):
        history = {"2024-2025 T3": AssignmentSlot(band1={"Anna": "Kunst I"})}
        assert required_folgekurs("Anna", [kunst_rule()], history, CURRENT) is None

    def test_belegung_rules_ignored(self):
        rules = [BelegungRule(id="b", name="Handwerk", options=["Kunst I"])]
        assert required_folgekurs("Anna", rules, kunst_history(), CURRENT) is None

    def test_same_band_forces_course(self):
        """Kunst I im Ersten Band → Kunst II im Ersten Band Pflicht."""
        ctx = make_ctx(ws("Kunst II"), ws("Holz"), rules=[kunst_rule()],
                       history=kunst_history("band1"))
        state = BandAssignments()
        assert can_assign("Anna", "Kunst II", Band.BAND1, state, ctx).ok

        other = can_assign("Anna", "Holz", Band.BAND1, state, ctx)
        assert other.code == CheckCode.FOLGEKURS
        assert "Kunst II" in other.reason
        assert PREVIOUS_KEY in other.reason

        assert can_assign("Anna", "Holz", Band.BAND2, state, ctx).ok

    def test_same_band_wrong_band(self):
        ctx = make_ctx(ws("Kunst II"), rules=[kunst_rule()], history=kunst_history("band1"))
        result = can_assign("Anna", "Kunst II", Band.BAND2, BandAssignments(), ctx)
        assert result.code == CheckCode.FOLGEKURS
        assert "Erstes Band" in result.reason

    def test_any_band_fulfilled_in_other_band(self):
        ctx = make_ctx(ws("Kunst II"), ws("Holz"), rules=[kunst_rule(same_band=False)],
                       history=kunst_history())
        assert not can_assign("Anna", "Holz", Band.BAND1, BandAssignments(), ctx).ok
        state = BandAssignments(band2={"Anna": "Kunst II"})
        assert can_assign("Anna", "Holz", Band.BAND1, state, ctx).ok


class TestWorkshopHistory:
    def test_history_prior_and_current(self):
        history = {PREVIOUS_KEY: AssignmentSlot(band2={"Anna": "Holz"})}
        assert workshop_has_history("Holz", history, {})
        assert workshop_has_history("Metall", {}, {"Ben": ["Metall"]})
        assert workshop_has_history("Kochen", {}, {},
                                    BandAssignments(band1={"Clara": "Kochen"}))
        assert not workshop_has_history("Garten", history, {"Ben": ["Metall"]})


# ─── EINZEL-BAND ──────────────────────────────────────────────────────────────

class TestBandAllocator:
    def test_basic_first_choice(self):
        """Anna wählt Holz/Metall, Holz hat einen freien Platz."""
        ctx = make_ctx(ws("Holz", capacity=1), ws("Metall"))
        result = BandAllocator(ctx).allocate(
            ["Anna"], {"Anna": ["Holz", "Metall"]}, Band.BAND1
        )
        assert result.assignments == {"Anna": "Holz"}
        assert result.first_choice_count == 1
        assert result.second_choice_count == 0
        assert result.remaining_capacity["Holz"] == 0
        assert result.first_choice_percentage == pytest.approx(100.0)

    def test_overflow_to_second_choice(self):
        """Höherer Score bekommt Holz, der andere fällt auf Metall."""
        ctx = make_ctx(ws("Holz", capacity=1), ws("Metall", capacity=1))
        choices = {"Ben": ["Holz", "Metall"], "Anna": ["Holz", "Metall"]}
        result = BandAllocator(ctx).allocate(
            ["Ben", "Anna"], choices, Band.BAND1, scores={"Anna": 6.0, "Ben": 5.0}
        )
        assert result.assignments == {"Anna": "Holz", "Ben": "Metall"}
        assert result.first_choice_count == 1
        assert result.second_choice_count == 1
        assert result.choice_ranks == {"Anna": 1, "Ben": 2}

    def test_overflow_without_second_capacity(self):
        ctx = make_ctx(ws("Holz", capacity=1), ws("Metall", capacity=0))
        choices = {"Ben": ["Holz", "Metall"], "Anna": ["Holz", "Metall"]}
        result = BandAllocator(ctx).allocate(
            ["Ben", "Anna"], choices, Band.BAND1, scores={"Anna": 6.0, "Ben": 5.0}
        )
        assert "Ben" not in result.assignments
        assert any("Ben" in p and "weder" in p for p in result.problems)

    def test_equal_scores_keep_roster_order(self):
        ctx = make_ctx(ws("Holz", capacity=1))
        choices = {"Ben": ["Holz"], "Anna": ["Holz"]}
        result = BandAllocator(ctx).allocate(["Ben", "Anna"], choices, Band.BAND1)
        assert result.assignments == {"Ben": "Holz"}
        assert any("Anna" in p and "keine gültige zweite Wahl" in p for p in result.problems)

    def test_repeat_of_last_year_stripped(self):
        ctx = make_ctx(ws("Holz"), ws("Metall"), prior={"Anna": ["Holz"]})
        result = BandAllocator(ctx).allocate(
            ["Anna"], {"Anna": ["Holz", "Metall"]}, Band.BAND1
        )
        assert result.assignments == {"Anna": "Metall"}
        assert any("Holz" in p and "Anna" in p for p in result.problems)
        assert not can_assign("Anna", "Holz", Band.BAND1, BandAssignments(), ctx).ok

    def test_duplicate_choice_collapsed(self):
        ctx = make_ctx(ws("Holz"))
        result = BandAllocator(ctx).allocate(["Anna"], {"Anna": ["Holz", "Holz"]}, Band.BAND1)
        assert result.assignments == {"Anna": "Holz"}
        assert any("zweimal" in p for p in result.problems)

    def test_choices_unavailable_in_band(self):
        """Nur Werkstätten anderer Bänder gewählt → Problem, nicht im Pool."""
        ctx = make_ctx(ws("Keramik", bands=["band1"]), ws("Holz"))
        result = BandAllocator(ctx).allocate(["Anna"], {"Anna": ["Keramik"]}, Band.BAND2)
        assert result.assignments == {}
        assert result.pool_size == 0
        assert any("nicht verfügbar" in p for p in result.problems)

    def test_unavailable_choice_filtered(self):
        ctx = make_ctx(ws("Keramik", bands=["band1"]), ws("Holz"))
        result = BandAllocator(ctx).allocate(
            ["Anna"], {"Anna": ["Keramik", "Holz"]}, Band.BAND2
        )
        assert result.assignments == {"Anna": "Holz"}
        assert result.second_choice_count == 1

    def test_students_without_choices_not_in_pool(self):
        ctx = make_ctx(ws("Holz"))
        result = BandAllocator(ctx).allocate(["Anna", "Ben"], {"Anna": ["Holz"]}, Band.BAND1)
        assert result.pool_size == 1
        assert result.problems == []

    def test_percentage_counts_students_without_choices(self):
        """Schüler ohne Wahl zählen im Nenner des Erstwunsch-Anteils mit."""
        ctx = make_ctx(ws("Holz"))
        result = BandAllocator(ctx).allocate(["Anna", "Ben"], {"Anna": ["Holz"]}, Band.BAND1)
        assert result.roster_size == 2
        assert result.first_choice_percentage == pytest.approx(50.0)

    def test_prerequisite_failure_then_second_choice(self):
        ctx = make_ctx(ws("Kunst II", prerequisites=["Kunst I"]), ws("Holz"))
        result = BandAllocator(ctx).allocate(
            ["Anna"], {"Anna": ["Kunst II", "Holz"]}, Band.BAND1
        )
        assert result.assignments == {"Anna": "Holz"}
        assert any("Voraussetzungen" in p for p in result.problems)

    def test_support_students_spread_evenly(self):
        ctx = make_ctx(ws("Holz", capacity=5), ws("Metall", capacity=5))
        students = ["S1", "S2", "S3"]
        choices = {s: ["Holz", "Metall"] for s in students}
        support = {s: True for s in students}
        result = BandAllocator(ctx).allocate(students, choices, Band.BAND1, support=support)
        assert result.assignments == {"S1": "Holz", "S2": "Metall", "S3": "Holz"}

    def test_support_students_before_regular(self):
        ctx = make_ctx(ws("Holz", capacity=1), ws("Metall", capacity=1))
        choices = {"Anna": ["Holz", "Metall"], "Ben": ["Holz", "Metall"]}
        result = BandAllocator(ctx).allocate(
            ["Anna", "Ben"], choices, Band.BAND1,
            support={"Ben": True}, scores={"Anna": 9.0, "Ben": 1.0},
        )
        assert result.assignments["Ben"] == "Holz"
        assert result.assignments["Anna"] == "Metall"

    def test_support_fallback_scan(self):
        ctx = make_ctx(ws("Holz", capacity=0), ws("Metall", capacity=2))
        result = BandAllocator(ctx).allocate(
            ["Anna"], {"Anna": ["Holz", "Metall"]}, Band.BAND1, support={"Anna": True}
        )
        assert result.assignments == {"Anna": "Metall"}

    def test_folgekurs_forced_and_prioritized(self):
        """Folgekurs-Pflicht geht vor höherem Score."""
        ctx = make_ctx(ws("Kunst II", capacity=1), ws("Holz"),
                       rules=[kunst_rule()], history=kunst_history("band1"))
        choices = {"Ben": ["Kunst II"], "Anna": ["Holz"]}
        result = BandAllocator(ctx).allocate(
            ["Ben", "Anna"], choices, Band.BAND1, scores={"Ben": 9.0, "Anna": 1.0}
        )
        assert result.assignments == {"Anna": "Kunst II"}
        assert result.choice_ranks["Anna"] == 1

    def test_folgekurs_only_in_constrained_band(self):
        ctx = make_ctx(ws("Kunst II"), ws("Holz"),
                       rules=[kunst_rule()], history=kunst_history("band1"))
        result = BandAllocator(ctx).allocate(["Anna"], {"Anna": ["Holz"]}, Band.BAND2)
        assert result.assignments == {"Anna": "Holz"}

    def test_folgekurs_capacity_conflict_falls_through(self):
        ctx = make_ctx(ws("Kunst II", capacity=0), ws("Holz"),
                       rules=[kunst_rule()], history=kunst_history("band1"))
        result = BandAllocator(ctx).allocate(["Anna"], {"Anna": ["Holz"]}, Band.BAND1)
        assert result.assignments == {"Anna": "Holz"}
        assert any("Kapazität ist erreicht" in p for p in result.problems)

    def test_folgekurs_without_choices_still_forced(self):
        ctx = make_ctx(ws("Kunst II"), rules=[kunst_rule()], history=kunst_history("band1"))
        result = BandAllocator(ctx).allocate(["Anna"], {}, Band.BAND1)
        assert result.assignments == {"Anna": "Kunst II"}
        assert result.pool_size == 1

    def test_folgekurs_fulfilled_in_other_band(self):
        ctx = make_ctx(ws("Kunst II"), ws("Holz"),
                       rules=[kunst_rule(same_band=False)], history=kunst_history())
        other = BandAssignments(band1={"Anna": "Kunst II"})
        result = BandAllocator(ctx).allocate(
            ["Anna"], {"Anna": ["Holz"]}, Band.BAND2, other_band=other
        )
        assert result.assignments == {"Anna": "Holz"}

    def test_either_band_folgekurs_not_offered_in_band(self):
        """Folgekurs nur im Zweiten Band angeboten → im Ersten Band weder Zwang noch Problem."""
        ctx = make_ctx(ws("Kunst II", bands=["band2"]), ws("Holz"),
                       rules=[kunst_rule(same_band=False)], history=kunst_history())
        result = BandAllocator(ctx).allocate(["Anna"], {"Anna": ["Holz"]}, Band.BAND1)
        assert result.assignments == {"Anna": "Holz"}
        assert result.problems == []

    def test_folgekurs_offered_nowhere_reported(self):
        ctx = make_ctx(ws("Holz"), rules=[kunst_rule(same_band=False)],
                       history=kunst_history())
        result = BandAllocator(ctx).allocate(["Anna"], {"Anna": ["Holz"]}, Band.BAND1)
        assert result.assignments == {"Anna": "Holz"}
        assert any("nicht angeboten" in p for p in result.problems)

    def test_input_choices_not_mutated(self):
        ctx = make_ctx(ws("Holz"), ws("Metall"), prior={"Anna": ["Holz"]})
        choices = {"Anna": ["Holz", "Metall"]}
        BandAllocator(ctx).allocate(["Anna"], choices, Band.BAND1)
        assert choices == {"Anna": ["Holz", "Metall"]}


# ─── BEIDE BÄNDER ─────────────────────────────────────────────────────────────

class TestDualBandAllocator:
    def test_either_band_folgekurs_placed_where_offered(self):
        ctx = make_ctx(ws("Kunst II", bands=["band2"]), ws("Holz"),
                       rules=[kunst_rule(same_band=False)], history=kunst_history())
        choices = BandChoices(band1={"Anna": ["Holz"]}, band2={})
        result = DualBandAllocator(ctx).allocate(["Anna"], choices)
        assert result.assignments.band1 == {"Anna": "Holz"}
        assert result.assignments.band2 == {"Anna": "Kunst II"}
        assert result.band1.problems == []

    def test_band1_workshop_removed_from_band2(self):
        ctx = make_ctx(ws("Holz"), ws("Kochen"))
        choices = BandChoices(band1={"Anna": ["Holz"]}, band2={"Anna": ["Holz", "Kochen"]})
        result = DualBandAllocator(ctx).allocate(["Anna"], choices)
        assert result.assignments.band1 == {"Anna": "Holz"}
        assert result.assignments.band2 == {"Anna": "Kochen"}

    def test_exclusions_removed_from_band2(self):
        ctx = make_ctx(ws("Holz", cannot_be_parallel=["Metall"]), ws("Metall"), ws("Kochen"))
        choices = BandChoices(band1={"Anna": ["Holz"]}, band2={"Anna": ["Metall", "Kochen"]})
        result = DualBandAllocator(ctx).allocate(["Anna"], choices)
        assert result.assignments.band2 == {"Anna": "Kochen"}

    def test_band2_emptied_by_filter(self):
        ctx = make_ctx(ws("Holz", cannot_be_parallel=["Metall"]), ws("Metall"))
        choices = BandChoices(band1={"Anna": ["Holz"]}, band2={"Anna": ["Metall"]})
        result = DualBandAllocator(ctx).allocate(["Anna"], choices)
        assert "Anna" not in result.band2.assignments
        band2_problems = [p for p in result.problems if p.band == "band2"]
        assert any("kollidieren" in p.message for p in band2_problems)

    def test_band2_emptied_without_report(self):
        ctx = make_ctx(ws("Holz"))
        choices = BandChoices(band1={"Anna": ["Holz"]}, band2={"Anna": ["Holz"]})
        allocator = DualBandAllocator(
            ctx, allocation=AllocationConfig(report_unplaceable_band2=False)
        )
        result = allocator.allocate(["Anna"], choices)
        assert result.problems == []

    def test_unassigned_in_band1_keeps_band2_choices(self):
        ctx = make_ctx(ws("Holz", capacity=0), ws("Metall"))
        choices = BandChoices(band1={"Anna": ["Holz"]}, band2={"Anna": ["Metall"]})
        result = DualBandAllocator(ctx).allocate(["Anna"], choices)
        assert result.band1.assignments == {}
        assert result.band2.assignments == {"Anna": "Metall"}

    def test_problems_tagged_with_band(self):
        ctx = make_ctx(ws("Holz"), prior={"Anna": ["Holz"]})
        choices = BandChoices(band1={"Anna": ["Holz"]}, band2={"Anna": ["Holz"]})
        result = DualBandAllocator(ctx).allocate(["Anna"], choices)
        assert {p.band for p in result.problems} == {"band1", "band2"}

    def test_combined_percentage(self):
        ctx = make_ctx(ws("Holz", capacity=1), ws("Metall", capacity=1))
        choices = BandChoices(
            band1={"Anna": ["Holz"], "Ben": ["Holz", "Metall"]},
            band2={"Anna": ["Metall"], "Ben": ["Metall"]},
        )
        result = DualBandAllocator(ctx).allocate(
            ["Anna", "Ben"], choices, scores={"Anna": 8.0, "Ben": 4.0}
        )
        # Band 1: Anna Holz (1.), Ben Metall (2.); Band 2: Anna Metall (1.),
        # Bens einzige Wahl kollidiert → nicht im Pool, zählt aber im Nenner
        assert result.first_choice_count == 2
        assert result.second_choice_count == 1
        assert result.band2.pool_size == 1
        assert result.first_choice_percentage == pytest.approx(50.0)

    def test_reconcile_same_workshop(self):
        ctx = make_ctx(ws("Holz"), ws("Metall"))
        band1 = BandAllocationResult(
            band=Band.BAND1, assignments={"Anna": "Holz"}, problems=[],
            remaining_capacity={"Holz": 5}, first_choice_count=1,
            second_choice_count=0, choice_ranks={"Anna": 1}, pool_size=1,
        )
        band2 = BandAllocationResult(
            band=Band.BAND2, assignments={"Anna": "Holz", "Ben": "Metall"}, problems=[],
            remaining_capacity={"Holz": 5, "Metall": 5}, first_choice_count=1,
            second_choice_count=1, choice_ranks={"Anna": 1, "Ben": 2}, pool_size=2,
        )
        fixed, problems = DualBandAllocator(ctx)._reconcile(band1, band2)
        assert fixed.assignments == {"Ben": "Metall"}
        assert fixed.remaining_capacity["Holz"] == 6
        assert fixed.first_choice_count == 0
        assert fixed.second_choice_count == 1
        assert len(problems) == 1 and "Anna" in problems[0]

    def test_reconcile_exclusion_decrements_matching_tally(self):
        ctx = make_ctx(ws("Holz", cannot_be_parallel=["Metall"]), ws("Metall"))
        band1 = BandAllocationResult(
            band=Band.BAND1, assignments={"Anna": "Holz"}, problems=[],
            remaining_capacity={"Holz": 5}, first_choice_count=1,
            second_choice_count=0, choice_ranks={"Anna": 1}, pool_size=1,
        )
        band2 = BandAllocationResult(
            band=Band.BAND2, assignments={"Anna": "Metall"}, problems=[],
            remaining_capacity={"Metall": 5}, first_choice_count=0,
            second_choice_count=1, choice_ranks={"Anna": 2}, pool_size=1,
        )
        fixed, problems = DualBandAllocator(ctx)._reconcile(band1, band2)
        assert fixed.assignments == {}
        assert fixed.first_choice_count == 0
        assert fixed.second_choice_count == 0
        assert "nicht parallel" in problems[0]

    def test_reconcile_without_conflicts_returns_same_result(self):
        ctx = make_ctx(ws("Holz"), ws("Metall"))
        band1 = BandAllocationResult(
            band=Band.BAND1, assignments={"Anna": "Holz"}, problems=[],
            remaining_capacity={}, first_choice_count=1, second_choice_count=0,
        )
        band2 = BandAllocationResult(
            band=Band.BAND2, assignments={"Anna": "Metall"}, problems=[],
            remaining_capacity={}, first_choice_count=1, second_choice_count=0,
        )
        fixed, problems = DualBandAllocator(ctx)._reconcile(band1, band2)
        assert fixed is band2
        assert problems == []

    def test_both_tag_label(self):
        from solver.dual_band import AllocationProblem
        assert AllocationProblem(band=BOTH_BANDS, message="x").label == "Beide Bänder"
        assert AllocationProblem(band="band2", message="x").label == "Zweites Band"


# ─── EIGENSCHAFTEN AUF DEMO-DATEN ─────────────────────────────────────────────

class TestAllocationProperties:
    def test_capacity_invariant(self, fake_data, fake_result):
        for band in Band:
            counts = fake_result.assignments.occupancy(band)
            for name, count in counts.items():
                assert count <= fake_data.workshops[name].capacity, (name, band)

    def test_remaining_capacity_consistent(self, fake_data, fake_result):
        for band in Band:
            result = fake_result.for_band(band)
            counts = fake_result.assignments.occupancy(band)
            for name, free in result.remaining_capacity.items():
                assert free == fake_data.workshops[name].capacity - counts.get(name, 0)

    def test_no_duplicate_cross_band(self, fake_result):
        a = fake_result.assignments
        for student, w1 in a.band1.items():
            assert a.band2.get(student) != w1

    def test_mutual_exclusion_invariant(self, fake_data, fake_result):
        a = fake_result.assignments
        for student, w1 in a.band1.items():
            w2 = a.band2.get(student)
            if w2:
                assert not excludes_each_other(w1, w2, fake_data.workshops)

    def test_prerequisite_invariant(self, fake_data, fake_result):
        a = fake_result.assignments
        for band in Band:
            for student, workshop in a.for_band(band).items():
                taken = fake_data.prior_assignments.get(student, [])
                for req in fake_data.workshops[workshop].prerequisites:
                    assert req in taken, (student, workshop)

    def test_band_availability_invariant(self, fake_data, fake_result):
        for band in Band:
            for workshop in fake_result.assignments.for_band(band).values():
                assert fake_data.workshops[workshop].is_available_in(band)

    def test_deterministic_rerun(self, fake_data, fake_result):
        again = DualBandAllocator(fake_data.constraint_context()).allocate(
            fake_data.roster, fake_data.choices,
            fake_data.support_flags(), fake_data.scores(),
        )
        assert again.assignments == fake_result.assignments
        assert [p.message for p in again.problems] == [p.message for p in fake_result.problems]

    def test_counts_match_ranks(self, fake_result):
        for band in Band:
            result = fake_result.for_band(band)
            ranks = list(result.choice_ranks.values())
            assert result.first_choice_count == ranks.count(1)
            assert result.second_choice_count == ranks.count(2)
            assert set(result.choice_ranks) == set(result.assignments)


# ─── MANUELLE UMSETZUNG ───────────────────────────────────────────────────────

class TestOverrideSession:
    def test_placement_applied_despite_violation(self):
        ctx = make_ctx(ws("Holz", capacity=1), ws("Metall"))
        session = OverrideSession(ctx, BandAssignments(band1={"Ben": "Holz"}))
        violation = session.move("Anna", "Holz", Band.BAND1)
        assert violation is not None
        assert violation.code == CheckCode.CAPACITY
        assert session.state.band1["Anna"] == "Holz"
        assert "Anna" in session.violation_map(Band.BAND1)["Holz"]

    def test_moving_away_clears_violation(self):
        ctx = make_ctx(ws("Holz", capacity=1), ws("Metall"))
        session = OverrideSession(ctx, BandAssignments(band1={"Ben": "Holz"}))
        session.move("Anna", "Holz", Band.BAND1)
        assert session.move("Anna", "Metall", Band.BAND1) is None
        assert session.violation_map(Band.BAND1) == {}
        assert len(session) == 0

    def test_violation_of_other_student_clears_when_cause_moves(self):
        """Ben verlässt die volle Werkstatt → Annas Kapazitätsverstoß entfällt."""
        ctx = make_ctx(ws("Holz", capacity=1), ws("Metall"))
        session = OverrideSession(ctx, BandAssignments(band1={"Ben": "Holz"}))
        assert session.move("Anna", "Holz", Band.BAND1) is not None

        assert session.move("Ben", "Metall", Band.BAND1) is None
        assert session.violations() == []
        assert session.violation_for("Anna", Band.BAND1) is None

    def test_other_open_violation_keeps_current_reason(self):
        ctx = make_ctx(ws("Holz", capacity=1), ws("Metall"), ws("Garten"))
        session = OverrideSession(ctx, BandAssignments(band1={"Ben": "Holz"}))
        session.move("Anna", "Holz", Band.BAND1)

        session.move("Clara", "Garten", Band.BAND1)
        assert [v.student for v in session.violations()] == ["Anna"]
        assert session.violations()[0].code == CheckCode.CAPACITY

    def test_same_workshop_both_bands(self):
        ctx = make_ctx(ws("Holz"))
        session = OverrideSession(ctx, BandAssignments(band1={"Anna": "Holz"}))
        violation = session.move("Anna", "Holz", Band.BAND2)
        assert violation.code == CheckCode.SAME_WORKSHOP

    def test_drop_on_unassigned(self):
        ctx = make_ctx(ws("Holz", capacity=0))
        session = OverrideSession(ctx, BandAssignments(band1={"Anna": "Holz"}))
        assert len(session.revalidate()) == 1
        assert session.move("Anna", None, Band.BAND1) is None
        assert session.state.band1["Anna"] == UNASSIGNED
        assert session.violations() == []

    def test_folgekurs_fulfilled_clears_other_band(self):
        """Kunst II im Zweiten Band erfüllt die Pflicht → Verstoß im Ersten Band entfällt."""
        ctx = make_ctx(ws("Kunst II"), ws("Holz"),
                       rules=[kunst_rule(same_band=False)], history=kunst_history())
        session = OverrideSession(ctx, BandAssignments(band1={"Anna": "Holz"}))
        violations = session.revalidate()
        assert [v.code for v in violations] == [CheckCode.FOLGEKURS]

        assert session.move("Anna", "Kunst II", Band.BAND2) is None
        assert session.violations() == []

    def test_violation_for(self):
        ctx = make_ctx(ws("Holz"), prior={"Anna": ["Holz"]})
        session = OverrideSession(ctx)
        session.move("Anna", "Holz", Band.BAND1)
        assert "letztes Jahr" in session.violation_for("Anna", Band.BAND1)
        assert session.violation_for("Anna", Band.BAND2) is None

    def test_from_allocation_includes_all_students(self):
        ctx = make_ctx(ws("Holz"))
        session = OverrideSession.from_allocation(
            ctx, BandAssignments(band1={"Anna": "Holz"}), ["Anna", "Ben"]
        )
        assert session.state.band1 == {"Anna": "Holz", "Ben": UNASSIGNED}
        assert session.state.band2 == {"Anna": UNASSIGNED, "Ben": UNASSIGNED}

    def test_finalize_returns_slot(self):
        ctx = make_ctx(ws("Holz"), prior={"Anna": ["Holz"]})
        session = OverrideSession(ctx)
        session.move("Anna", "Holz", Band.BAND1)
        ts = datetime(2025, 11, 3, 10, 0)
        slot = session.finalize(ts)
        assert slot.band1 == {"Anna": "Holz"}
        assert slot.timestamp == ts
