"""
Revenue splitting tests.
"""

from decimal import Decimal

import pytest

from fieldgate.engine.revenue import revenue_split, split_amount
from fieldgate.models import CompletedTaskRow


def _task(revenue, assignees):
    return CompletedTaskRow(
        task_id=1,
        expected_revenue=None if revenue is None else Decimal(revenue),
        assignee_ids=tuple(assignees),
    )


def test_two_workers_split_one_million():
    split = revenue_split(_task("1000000", ["W1", "W2"]))
    assert split.shares == {"W1": Decimal("500000"), "W2": Decimal("500000")}
    assert split.residual == 0


@pytest.mark.parametrize(
    "amount", ["0", "0.01", "1", "10.00", "100.01", "333.33", "1000000", "999999.99"]
)
@pytest.mark.parametrize("crew", [1, 2, 3, 4, 7])
def test_shares_add_up_to_amount(amount, crew):
    assignees = [f"W{i}" for i in range(crew)]
    split = split_amount(Decimal(amount), assignees)
    assert split.total == Decimal(amount)
    assert split.residual == 0


def test_leftover_units_go_to_lowest_ids_first():
    split = split_amount(Decimal("100.00"), ["c", "a", "b"])
    assert split.shares == {
        "a": Decimal("33.34"),
        "b": Decimal("33.33"),
        "c": Decimal("33.33"),
    }


def test_whole_unit_currency():
    split = split_amount(Decimal("100"), ["a", "b", "c"], minor_unit=Decimal("1"))
    assert split.shares == {"a": Decimal("34"), "b": Decimal("33"), "c": Decimal("33")}


def test_sub_unit_amount_is_reported_as_residual():
    split = split_amount(Decimal("10.005"), ["a", "b"])
    assert split.total == Decimal("10.00")
    assert split.residual == Decimal("0.005")
    assert split.total + split.residual == Decimal("10.005")


def test_no_expected_revenue_gives_zero_to_everyone():
    split = revenue_split(_task(None, ["W1", "W2"]))
    assert split.shares == {"W1": 0, "W2": 0}
    assert split.total == 0


def test_no_assignees_keeps_everything_as_residual():
    split = split_amount(Decimal("50"), [])
    assert split.shares == {}
    assert split.residual == Decimal("50")
