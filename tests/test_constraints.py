"""Tests for the constraint model and incremental scoring."""

import random

import pytest

from dutyroster.domain.models import (
    Assignment,
    AvailabilityStatus,
    DutySlot,
    HardSoftScore,
    PeriodKey,
    SlotKind,
    StaffConstraints,
    StaffMember,
)
from dutyroster.scheduling.constraints import (
    CONSULTATION_SHORTFALL,
    DOUBLE_BOOKING,
    INELIGIBLE_STAFF,
    MIN_SLOTS_SHORTFALL,
    MISSING_SKILL,
    ON_CALL_INELIGIBLE,
    OVER_MAX_SLOTS,
    REGULAR_REQUIRES_CYCLING,
    UNASSIGNED_SLOT,
    WORKLOAD_IMBALANCE,
    ConstraintModel,
    ConstraintWeights,
    IncrementalScoreCalculator,
    imbalance_penalty,
)

KEY = PeriodKey(2, 2026)


def _member(staff_id, **constraint_args) -> StaffMember:
    return StaffMember(
        id=staff_id,
        first_name=f"Doc{staff_id}",
        constraints=StaffConstraints(staff_id=staff_id, **constraint_args),
    )


def _assignment(assignment_id, day, kind=SlotKind.REGULAR, staff_id=None, skill=None):
    slot = DutySlot(id=assignment_id, day=day, period=KEY, kind=kind, required_skill=skill)
    return Assignment(id=assignment_id, slot=slot, period=KEY, staff_id=staff_id)


class TestConstraintWeights:
    """Tests for ConstraintWeights."""

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError):
            ConstraintWeights(min_slots_shortfall=-1)

    def test_from_dict(self):
        weights = ConstraintWeights.from_dict({"unassigned_slot": 5, "unassigned_is_hard": True})
        assert weights.unassigned_slot == 5
        assert weights.is_hard(UNASSIGNED_SLOT)

    def test_from_dict_rejects_unknown(self):
        with pytest.raises(ValueError, match="bogus"):
            ConstraintWeights.from_dict({"bogus": 1})

    def test_default_classification(self):
        weights = ConstraintWeights()
        assert weights.is_hard(DOUBLE_BOOKING)
        assert not weights.is_hard(UNASSIGNED_SLOT)
        assert not weights.is_hard(MIN_SLOTS_SHORTFALL)


class TestConstraintModel:
    """Tests for ConstraintModel rules."""

    def test_empty_solution_scores_zero(self):
        assert ConstraintModel([]).calculate([]) == HardSoftScore(0, 0)

    def test_double_booking(self):
        staff = [_member(1, max_slots=10)]
        assignments = [_assignment(1, 2, staff_id=1), _assignment(2, 2, staff_id=1)]
        counts = ConstraintModel(staff).violation_counts(assignments)
        assert counts[DOUBLE_BOOKING] == 1

    def test_over_max_slots(self):
        staff = [_member(1, max_slots=1)]
        assignments = [_assignment(1, 2, staff_id=1), _assignment(2, 3, staff_id=1)]
        assert ConstraintModel(staff).violation_counts(assignments)[OVER_MAX_SLOTS] == 1

    def test_uncapped_member_never_over_max(self):
        staff = [_member(1, max_slots=0)]
        assignments = [_assignment(i, i + 1, staff_id=1) for i in range(1, 6)]
        assert ConstraintModel(staff).violation_counts(assignments)[OVER_MAX_SLOTS] == 0

    def test_slot_level_hard_rules(self):
        staff = [
            _member(1, eligible_for_on_call=False),
            _member(2, eligible_for_on_call=True, on_call_only_if_cycling=False),
            _member(3, on_call_only_if_cycling=True),
        ]
        assignments = [
            _assignment(1, 2, kind=SlotKind.ON_CALL, staff_id=1),
            _assignment(2, 3, staff_id=2, skill="icu"),
            _assignment(3, 4, staff_id=3),
        ]
        counts = ConstraintModel(staff).violation_counts(assignments)
        assert counts[ON_CALL_INELIGIBLE] == 1
        assert counts[MISSING_SKILL] == 1
        assert counts[REGULAR_REQUIRES_CYCLING] == 1

    def test_ineligible_staff(self):
        """Unknown, unavailable and unconfigured staff are outside the pool."""
        unavailable = _member(2)
        unavailable.availability_status = AvailabilityStatus.UNAVAILABLE
        staff = [_member(1), unavailable, StaffMember(id=3, first_name="New")]
        assignments = [
            _assignment(1, 2, staff_id=2),
            _assignment(2, 3, staff_id=3),
            _assignment(3, 4, staff_id=99),
        ]
        model = ConstraintModel(staff)
        assert model.violation_counts(assignments)[INELIGIBLE_STAFF] == 3
        assert model.calculate(assignments).hard == -3

    def test_min_slots_counts_regular_only(self):
        staff = [_member(1, min_slots=2)]
        assignments = [_assignment(1, 2, kind=SlotKind.ON_CALL, staff_id=1)]
        weights = ConstraintWeights(on_call_ineligible=0)
        explanation = ConstraintModel(staff, weights).explain(assignments)
        assert explanation[MIN_SLOTS_SHORTFALL] == HardSoftScore(0, -20)

    def test_consultation_shortfall(self):
        staff = [_member(1, target_consultations=2)]
        assignments = [_assignment(1, 2, kind=SlotKind.CONSULTATION, staff_id=1)]
        explanation = ConstraintModel(staff).explain(assignments)
        assert explanation[CONSULTATION_SHORTFALL] == HardSoftScore(0, -10)

    def test_unassigned_soft_by_default(self):
        staff = [_member(1, min_slots=2)]
        score = ConstraintModel(staff).calculate([_assignment(1, 2)])
        assert score == HardSoftScore(0, -120)

    def test_unassigned_can_be_hard(self):
        weights = ConstraintWeights(unassigned_is_hard=True, unassigned_slot=1)
        score = ConstraintModel([], weights).calculate([_assignment(1, 2), _assignment(2, 3)])
        assert score == HardSoftScore(-2, 0)

    def test_workload_imbalance(self):
        """Loads [2, 0] give n*sum(x^2) - sum(x)^2 = 4, divided by n = 2."""
        staff = [_member(1), _member(2)]
        assignments = [_assignment(1, 2, staff_id=1), _assignment(2, 3, staff_id=1)]
        explanation = ConstraintModel(staff).explain(assignments)
        assert explanation[WORKLOAD_IMBALANCE] == HardSoftScore(0, -2)

    def test_balanced_loads_have_no_imbalance(self):
        assert imbalance_penalty([3, 3, 3], 5) == 0
        assert imbalance_penalty([], 5) == 0

    def test_explain_sums_to_calculate(self):
        staff = [_member(1, min_slots=3, max_slots=1), _member(2, eligible_for_on_call=True)]
        assignments = [
            _assignment(1, 2, staff_id=1),
            _assignment(2, 2, staff_id=1),
            _assignment(3, 2, kind=SlotKind.ON_CALL, staff_id=1),
            _assignment(4, 3),
        ]
        model = ConstraintModel(staff)
        total = HardSoftScore()
        for score in model.explain(assignments).values():
            total = total + score
        assert total == model.calculate(assignments)


class TestIncrementalScoreCalculator:
    """Tests for IncrementalScoreCalculator."""

    @pytest.fixture
    def staff(self):
        rng = random.Random(5)
        members = [
            StaffMember(
                id=i,
                first_name=f"Doc{i}",
                constraints=StaffConstraints(
                    staff_id=i,
                    min_slots=rng.randint(0, 4),
                    max_slots=rng.choice([0, 2, 4, 6]),
                    target_consultations=rng.randint(0, 2),
                    eligible_for_on_call=rng.random() < 0.5,
                    on_call_only_if_cycling=rng.random() < 0.2,
                ),
                skills=frozenset({"icu"}) if rng.random() < 0.5 else frozenset(),
            )
            for i in range(1, 7)
        ]
        members.append(StaffMember(id=7, first_name="Unconfigured"))
        return members

    @pytest.fixture
    def slots(self):
        rng = random.Random(11)
        kinds = list(SlotKind)
        return [
            DutySlot(
                id=i,
                day=rng.randint(1, 8),
                period=KEY,
                kind=rng.choice(kinds),
                required_skill="icu" if rng.random() < 0.2 else None,
            )
            for i in range(1, 31)
        ]

    def test_reset_matches_full_calculation(self, staff, slots):
        rng = random.Random(3)
        values = {slot.id: rng.choice([None, 1, 2, 3, 4, 5, 6, 7, 42]) for slot in slots}
        calculator = IncrementalScoreCalculator(staff)
        score = calculator.reset([(slot, values[slot.id]) for slot in slots])

        assignments = [
            Assignment(id=slot.id, slot=slot, period=KEY, staff_id=values[slot.id])
            for slot in slots
        ]
        assert score == ConstraintModel(staff).calculate(assignments)

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_random_moves_match_full_calculation(self, staff, slots, seed):
        """Every retract/insert keeps the running score equal to a rescore."""
        rng = random.Random(seed)
        weights = ConstraintWeights(workload_imbalance=3, unassigned_is_hard=seed == 2)
        values = {slot.id: None for slot in slots}
        calculator = IncrementalScoreCalculator(staff, weights)
        calculator.reset([(slot, None) for slot in slots])
        model = ConstraintModel(staff, weights)

        for _ in range(300):
            slot = rng.choice(slots)
            new_value = rng.choice([None, 1, 2, 3, 4, 5, 6, 7])
            calculator.retract(slot, values[slot.id])
            calculator.insert(slot, new_value)
            values[slot.id] = new_value

            assignments = [
                Assignment(id=s.id, slot=s, period=KEY, staff_id=values[s.id]) for s in slots
            ]
            assert calculator.score == model.calculate(assignments)

    def test_load_queries(self, staff, slots):
        calculator = IncrementalScoreCalculator(staff)
        same_day = [s for s in slots if s.day == slots[0].day][:2]
        for slot in same_day:
            calculator.insert(slot, 1)
        assert calculator.staff_load(1) == len(same_day)
        assert calculator.day_count(1, slots[0].day) == len(same_day)
        assert calculator.staff_load(99) == 0
