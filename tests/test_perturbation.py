# Copyright (c) Syntropy Systems
"""Tests for the perturbation set."""

import pytest

from sensa.errors import SensaValidationError
from sensa.ledger import RunLedger
from sensa.models.session import PerturbationSettings
from sensa.perturbation import STALE_NOTICE, Direction, PerturbationSet


@pytest.fixture
def ledger() -> RunLedger:
    return RunLedger()


@pytest.fixture
def perturbations(plant_model, ledger: RunLedger) -> PerturbationSet:
    pset = PerturbationSet(plant_model, ledger=ledger)
    for ref in ["CapacityA|UB", "Price", "Demand"]:
        _ = pset.add_parameter(ref)
    for ref in ["ProfitTotal", "Balance"]:
        _ = pset.add_outcome(ref)
    return pset


def names(items) -> list[str]:
    return [item.name for item in items]


def record_baseline(ledger: RunLedger) -> None:
    _ = ledger.record(None, 0.0, [], {"Balance": [150.0]}, started_at="", finished_at="")


class TestMembership:
    """Tests for adding and removing variables."""

    def test_add_keeps_order(self, perturbations: PerturbationSet) -> None:
        assert names(perturbations.parameters) == ["CapacityA|UB", "Price", "Demand"]
        assert names(perturbations.outcomes) == ["ProfitTotal", "Balance"]

    def test_add_normalizes_reference(self, plant_model) -> None:
        pset = PerturbationSet(plant_model)
        param = pset.add_parameter("  CapacityB | Cost ")

        assert param.name == "CapacityB|Cost"
        assert param.entity == "CapacityB"

    def test_duplicate_rejected(self, perturbations: PerturbationSet) -> None:
        with pytest.raises(SensaValidationError, match="already in the list"):
            _ = perturbations.add_parameter("CapacityA | UB")

        assert len(perturbations.parameters) == 3

    def test_unresolvable_rejected_without_change(self, perturbations: PerturbationSet) -> None:
        with pytest.raises(SensaValidationError):
            _ = perturbations.add_parameter("ProfitTotal")
        with pytest.raises(SensaValidationError):
            _ = perturbations.add_outcome("Nowhere|X")

        assert len(perturbations.parameters) == 3
        assert len(perturbations.outcomes) == 2

    def test_same_variable_in_both_lists(self, perturbations: PerturbationSet) -> None:
        outcome = perturbations.add_outcome("CapacityA|UB")

        assert outcome.name == "CapacityA|UB"

    def test_remove(self, perturbations: PerturbationSet) -> None:
        removed = perturbations.remove_parameter(1)

        assert removed.name == "Price"
        assert names(perturbations.parameters) == ["CapacityA|UB", "Demand"]

    def test_remove_out_of_range(self, perturbations: PerturbationSet) -> None:
        with pytest.raises(SensaValidationError, match="No outcome at position 5"):
            _ = perturbations.remove_outcome(5)

    def test_remove_drops_exclusion(self, perturbations: PerturbationSet) -> None:
        perturbations.exclude_parameter("Price")
        _ = perturbations.remove_parameter(1)

        assert perturbations.excluded_parameters == frozenset()

    def test_remove_adjusts_selection(self, perturbations: PerturbationSet) -> None:
        perturbations.select_parameter(2)
        _ = perturbations.remove_parameter(0)
        assert perturbations.selected_parameter == 1

        _ = perturbations.remove_parameter(1)
        assert perturbations.selected_parameter is None


class TestOrdering:
    """Tests for moving entries."""

    def test_move_up_and_down(self, perturbations: PerturbationSet) -> None:
        assert perturbations.move_parameter(2, Direction.UP) == 1
        assert names(perturbations.parameters) == ["CapacityA|UB", "Demand", "Price"]

        assert perturbations.move_parameter(0, "down") == 1
        assert names(perturbations.parameters) == ["Demand", "CapacityA|UB", "Price"]

    def test_move_past_end_is_noop(self, perturbations: PerturbationSet) -> None:
        assert perturbations.move_outcome(0, Direction.UP) == 0
        assert perturbations.move_outcome(1, Direction.DOWN) == 1
        assert names(perturbations.outcomes) == ["ProfitTotal", "Balance"]

    def test_selection_follows_move(self, perturbations: PerturbationSet) -> None:
        perturbations.select_outcome(0)
        _ = perturbations.move_outcome(0, Direction.DOWN)

        assert perturbations.selected_outcome == 1

    def test_bad_direction(self, perturbations: PerturbationSet) -> None:
        with pytest.raises(SensaValidationError, match="Direction"):
            _ = perturbations.move_parameter(0, "sideways")


class TestChecklist:
    """Tests for excluding entries without removing them."""

    def test_exclude_and_include(self, perturbations: PerturbationSet) -> None:
        perturbations.exclude_parameter("Price")

        assert names(perturbations.enabled_parameters()) == ["CapacityA|UB", "Demand"]
        assert names(perturbations.parameters) == ["CapacityA|UB", "Price", "Demand"]

        perturbations.exclude_parameter("Price", excluded=False)
        assert len(perturbations.enabled_parameters()) == 3

    def test_toggle(self, perturbations: PerturbationSet) -> None:
        assert perturbations.toggle_outcome(1) is True
        assert names(perturbations.enabled_outcomes()) == ["ProfitTotal"]
        assert perturbations.toggle_outcome(1) is False
        assert names(perturbations.enabled_outcomes()) == ["ProfitTotal", "Balance"]

    def test_exclude_unknown(self, perturbations: PerturbationSet) -> None:
        with pytest.raises(SensaValidationError, match="Unknown outcome"):
            perturbations.exclude_outcome("Emissions")


class TestSettings:
    """Tests for delta and base case selectors."""

    def test_set_delta(self, perturbations: PerturbationSet) -> None:
        assert perturbations.set_delta("-5%") == -5.0
        assert perturbations.delta == -5.0

    def test_bad_delta_keeps_old_value(self, perturbations: PerturbationSet) -> None:
        with pytest.raises(SensaValidationError):
            _ = perturbations.set_delta("ten")

        assert perturbations.delta == 10.0

    def test_set_selectors(self, perturbations: PerturbationSet) -> None:
        assert perturbations.set_base_case_selectors("high; high") == ["high"]
        assert perturbations.base_case_selectors == ("high",)

    def test_unknown_selector(self, perturbations: PerturbationSet) -> None:
        _ = perturbations.set_base_case_selectors(["low"])

        with pytest.raises(SensaValidationError, match="Unknown scenario selector"):
            _ = perturbations.set_base_case_selectors("high extreme")

        assert perturbations.base_case_selectors == ("low",)

    def test_clear_selectors(self, perturbations: PerturbationSet) -> None:
        _ = perturbations.set_base_case_selectors("high")

        assert perturbations.set_base_case_selectors("") == []
        assert perturbations.base_case_selectors == ()

    def test_settings_round_trip(self, plant_model, perturbations: PerturbationSet) -> None:
        perturbations.exclude_outcome("Balance")
        _ = perturbations.set_delta(5)
        _ = perturbations.set_base_case_selectors("low")

        settings = PerturbationSettings.model_validate_json(
            perturbations.settings.model_dump_json()
        )
        copy = PerturbationSet(plant_model, settings)

        assert names(copy.parameters) == names(perturbations.parameters)
        assert copy.excluded_outcomes == frozenset({"Balance"})
        assert copy.delta == 5.0
        assert copy.base_case_selectors == ("low",)


class TestStaleNotice:
    """Tests for notices raised by edits after runs were recorded."""

    def test_no_notice_without_runs(self, perturbations: PerturbationSet) -> None:
        _ = perturbations.set_delta(20)
        _ = perturbations.remove_parameter(0)

        assert perturbations.stale is False
        assert perturbations.notices == []

    def test_edit_after_runs(self, perturbations: PerturbationSet, ledger: RunLedger) -> None:
        received: list[str] = []
        perturbations.subscribe(received.append)
        record_baseline(ledger)

        _ = perturbations.remove_parameter(0)

        assert perturbations.stale is True
        assert received == [STALE_NOTICE]
        # The ledger is never touched by edits
        assert len(ledger) == 1

    @pytest.mark.parametrize(
        "edit",
        [
            lambda p: p.add_parameter("CapacityB|UB"),
            lambda p: p.move_outcome(0, "down"),
            lambda p: p.exclude_parameter("Demand"),
            lambda p: p.set_delta(15),
            lambda p: p.set_base_case_selectors("high"),
        ],
    )
    def test_every_kind_of_edit(self, perturbations: PerturbationSet, ledger: RunLedger, edit) -> None:
        record_baseline(ledger)
        _ = edit(perturbations)

        assert perturbations.notices == [STALE_NOTICE]

    def test_unchanged_value_no_notice(self, perturbations: PerturbationSet, ledger: RunLedger) -> None:
        record_baseline(ledger)
        _ = perturbations.set_delta(10)
        _ = perturbations.move_parameter(0, "up")
        perturbations.exclude_outcome("Balance", excluded=False)

        assert perturbations.stale is False

    def test_failing_listener_does_not_block(self, perturbations: PerturbationSet, ledger: RunLedger) -> None:
        received: list[str] = []

        def broken(_text: str) -> None:
            raise RuntimeError("listener bug")

        perturbations.subscribe(broken)
        perturbations.subscribe(received.append)
        record_baseline(ledger)
        _ = perturbations.set_delta(1)

        assert received == [STALE_NOTICE]

    def test_clear_notices(self, perturbations: PerturbationSet, ledger: RunLedger) -> None:
        record_baseline(ledger)
        _ = perturbations.set_delta(1)
        perturbations.clear_notices()

        assert perturbations.stale is False
        assert perturbations.notices == []


class TestRename:
    """Tests for following renamed model variables."""

    def test_rename_entity(self, perturbations: PerturbationSet) -> None:
        _ = perturbations.add_outcome("CapacityA|Flow")
        perturbations.exclude_parameter("CapacityA|UB")

        changed = perturbations.rename("CapacityA", "PlantA")

        assert changed == 2
        assert names(perturbations.parameters)[0] == "PlantA|UB"
        assert perturbations.parameters[0].entity == "PlantA"
        assert "PlantA|Flow" in names(perturbations.outcomes)
        assert perturbations.excluded_parameters == frozenset({"PlantA|UB"})

    def test_rename_full_name(self, perturbations: PerturbationSet) -> None:
        assert perturbations.rename("ProfitTotal", "Profit") == 1
        assert names(perturbations.outcomes) == ["Profit", "Balance"]

    def test_rename_prefix_only_matches_entity(self, perturbations: PerturbationSet) -> None:
        assert perturbations.rename("Capacity", "Plant") == 0

    def test_rename_raises_no_notice(self, perturbations: PerturbationSet, ledger: RunLedger) -> None:
        record_baseline(ledger)
        _ = perturbations.rename("Price", "UnitPrice")

        assert perturbations.stale is False

    def test_rename_onto_existing_entry_rejected(self, perturbations: PerturbationSet) -> None:
        _ = perturbations.add_parameter("CapacityB|UB")

        with pytest.raises(SensaValidationError, match="duplicate"):
            _ = perturbations.rename("CapacityA", "CapacityB")

        assert names(perturbations.parameters) == ["CapacityA|UB", "Price", "Demand", "CapacityB|UB"]

    def test_rename_relabels_ledger(self, perturbations: PerturbationSet, ledger: RunLedger) -> None:
        record_baseline(ledger)

        _ = perturbations.rename("Balance", "Capacity")

        assert ledger[0].series == {"Capacity": [150.0]}
        assert ledger[0].statistics["Capacity"].mean == 150.0
