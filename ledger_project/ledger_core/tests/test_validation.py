import datetime
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.utils import timezone

from ledger_core.exceptions import UnbalancedVoucherError
from ledger_core.services.validation import (coerce_amount, coerce_date,
                                             validate_entries)

from .factories import credit, debit


def test_balanced_entries_return_total():
    total = validate_entries([debit("Cash", "500"), credit("Sales", 500)])
    assert total == Decimal("500.00")


def test_split_entries_are_summed():
    total = validate_entries([
        debit("Cash", "300.50"),
        debit("Bank", "199.50"),
        credit("Sales", "500.00"),
    ])
    assert total == Decimal("500.00")


@pytest.mark.parametrize("entries", [[], [debit("Cash", 100)], None])
def test_fewer_than_two_entries_rejected(entries):
    with pytest.raises(ValidationError):
        validate_entries(entries)


def test_unbalanced_entries_raise_unbalanced_error():
    with pytest.raises(UnbalancedVoucherError) as excinfo:
        validate_entries([debit("Cash", 100), credit("Sales", 90)])
    # still a ValidationError for callers catching the general case
    assert isinstance(excinfo.value, ValidationError)


def test_amounts_are_compared_after_rounding_to_cents():
    # 33.335 rounds half up to 33.34
    total = validate_entries([debit("Cash", "33.335"), credit("Sales", "33.34")])
    assert total == Decimal("33.34")


@pytest.mark.parametrize("bad_entry", [
    debit("", 100),
    debit("   ", 100),
    debit("Cash", 0),
    debit("Cash", -5),
    debit("Cash", "abc"),
    debit("Cash", None),
    {"ledger_name": "Cash", "entry_type": "SIDEWAYS", "amount": 100},
])
def test_malformed_entries_rejected(bad_entry):
    with pytest.raises(ValidationError):
        validate_entries([bad_entry, credit("Sales", 100)])


def test_coerce_amount_handles_floats_and_strings():
    assert coerce_amount(0.1) == Decimal("0.10")
    assert coerce_amount(" 12.345 ") == Decimal("12.35")
    assert coerce_amount(7) == Decimal("7.00")


@pytest.mark.parametrize("value", ["NaN", "Infinity", True, "1,000"])
def test_coerce_amount_rejects_non_numbers(value):
    with pytest.raises(ValidationError):
        coerce_amount(value)


def test_coerce_date_accepts_common_inputs():
    assert coerce_date("2024-04-01") == datetime.date(2024, 4, 1)
    assert coerce_date("2024-04-01T10:30:00Z") == datetime.date(2024, 4, 1)
    assert coerce_date(datetime.date(2024, 4, 1)) == datetime.date(2024, 4, 1)
    assert coerce_date(datetime.datetime(2024, 4, 1, 23, 59)) == datetime.date(2024, 4, 1)
    assert coerce_date(None) == timezone.localdate()


@pytest.mark.parametrize("value", ["2024-02-30", "yesterday", "01/04/2024", 20240401])
def test_coerce_date_rejects_unparsable_values(value):
    with pytest.raises(ValidationError):
        coerce_date(value)
