"""
Unit tests for value normalization.
"""
import math
from datetime import date

import pytest

from core.normalize import (
    clean_description,
    determine_debit_credit,
    is_canonical_date,
    normalize_candidate,
    normalize_candidates,
    parse_amount,
    parse_date,
)


@pytest.mark.parametrize("raw,expected", [
    ("2024-06-15", "2024-06-15"),
    ("15/06/2024", "2024-06-15"),
    ("15-06-2024", "2024-06-15"),
    ("15.06.2024", "2024-06-15"),
    ("5/6/2024", "2024-06-05"),
    ("15/06/24", "2024-06-15"),
    ("15/06/49", "2049-06-15"),
    ("15/06/50", "1950-06-15"),
    ("15/06/99", "1999-06-15"),
    ("  15/06/2024 ", "2024-06-15"),
    ("2024-06-15T10:30:00", "2024-06-15"),
    ("15 Jun 2024", "2024-06-15"),
    ("15-Jun-2024", "2024-06-15"),
])
def test_parse_date_formats(raw, expected):
    assert parse_date(raw) == expected


def test_parse_date_date_objects():
    assert parse_date(date(2024, 1, 2)) == "2024-01-02"


@pytest.mark.parametrize("raw", [
    "yesterday",
    "today",
    "now",
    "15 Jun",
    "Jun 15",
    "31/02/2024",
    "Q2 FY24",
    "2024/13",
])
def test_parse_date_unrecognized_passes_through(raw):
    """Unrecognized or impossible dates are returned unchanged, never raised."""
    assert parse_date(raw) == raw


def test_parse_date_empty():
    assert parse_date(None) == ""
    assert parse_date("   ") == ""


@pytest.mark.parametrize("raw", ["15/06/2024", "15-06-24", "2024-06-15", "15 Jun 2024", "garbage"])
def test_parse_date_idempotent(raw):
    once = parse_date(raw)
    assert parse_date(once) == once


def test_slash_and_dash_forms_agree():
    assert parse_date("01/02/2024") == parse_date("01-02-2024") == "2024-02-01"


def test_is_canonical_date():
    assert is_canonical_date("2024-02-29")
    assert not is_canonical_date("2023-02-29")
    assert not is_canonical_date("15/06/2024")
    assert not is_canonical_date(None)


@pytest.mark.parametrize("raw,expected", [
    ("1,00,000", 100000.0),
    ("100,000.50", 100000.5),
    ("-5000", 5000.0),
    ("5000 Cr", 5000.0),
    ("5,000.00Dr", 5000.0),
    ("₹ 1,234.56", 1234.56),
    ("Rs. 250", 250.0),
    ("INR 99", 99.0),
    ("$12.5", 12.5),
    (-42, 42.0),
    (3.5, 3.5),
    ("abc", 0.0),
    ("", 0.0),
    (None, 0.0),
    (float("nan"), 0.0),
])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


def test_parse_amount_is_never_negative():
    for raw in ["-1", "-0.5", -7, "-1,00,000 Dr"]:
        assert parse_amount(raw) >= 0


@pytest.mark.parametrize("amount,hint,expected", [
    ("500", "Dr", (500.0, 0.0)),
    ("500", "DEBIT", (500.0, 0.0)),
    ("500", "Withdrawal", (500.0, 0.0)),
    ("500", "Cr", (0.0, 500.0)),
    ("500", "Deposit", (0.0, 500.0)),
    ("500 Dr", None, (500.0, 0.0)),
    ("500 Cr", None, (0.0, 500.0)),
    ("-500", None, (500.0, 0.0)),
    (-500, None, (500.0, 0.0)),
])
def test_determine_debit_credit(amount, hint, expected):
    assert determine_debit_credit(amount, hint) == expected


def test_unknown_direction_defaults_to_credit():
    """No indicator at all: the documented heuristic puts the amount on credit."""
    assert determine_debit_credit("500") == (0.0, 500.0)


def test_unknown_direction_default_is_configurable():
    assert determine_debit_credit("500", default_to_credit=False) == (500.0, 0.0)


def test_clean_description():
    raw = "  **NEFT**  transfer<br/>to\tJohn\u200b  Doe\x00 "
    assert clean_description(raw) == "NEFT transfer to John Doe"
    assert clean_description(None) == ""


def test_normalize_candidate_separate_columns():
    txn = normalize_candidate({
        "date": "15/06/2024",
        "narration": "  Salary   June ",
        "txn_no": "UTR123",
        "debit": 0,
        "credit": "50,000",
        "balance": "1,25,000",
    }, bank_name="HDFC Bank")

    assert txn.date == "2024-06-15"
    assert txn.description == "Salary June"
    assert txn.reference == "UTR123"
    assert txn.debit == 0.0
    assert txn.credit == 50000.0
    assert txn.balance == 125000.0
    assert txn.currency == "INR"
    assert txn.bank_name == "HDFC Bank"
    assert txn.is_well_formed


def test_normalize_candidate_field_fallbacks():
    txn = normalize_candidate({
        "txn_date": "01-02-2024",
        "particulars": "ATM withdrawal",
        "ref_no": "CHQ9",
        "withdrawal": "2,000",
    })
    assert txn.date == "2024-02-01"
    assert txn.description == "ATM withdrawal"
    assert txn.reference == "CHQ9"
    assert txn.debit == 2000.0


def test_normalize_candidate_amount_with_type():
    txn = normalize_candidate({"date": "2024-01-01", "description": "Fee", "amount": "150", "type": "DR"})
    assert (txn.debit, txn.credit) == (150.0, 0.0)


def test_normalize_candidate_missing_balance_is_absent():
    txn = normalize_candidate({"date": "2024-01-01", "description": "x", "credit": 10, "balance": ""})
    assert txn.balance is None
    assert txn.reference is None


def test_normalize_candidate_zero_amounts_dropped():
    assert normalize_candidate({"date": "2024-01-01", "description": "Opening", "debit": 0, "credit": "0"}) is None


def test_normalize_candidate_both_sides_kept_but_flagged():
    """Both amounts non-zero is a data-quality anomaly: kept, not well-formed."""
    txn = normalize_candidate({"date": "2024-01-01", "description": "odd", "debit": 10, "credit": 20})
    assert txn is not None
    assert not txn.is_well_formed


def test_normalize_candidates_counts():
    result = normalize_candidates([
        {"date": "2024-01-01", "description": "a", "credit": 1},
        {"date": "2024-01-02", "description": "b", "debit": 0, "credit": 0},
        {"date": "sometime", "description": "c", "debit": 3},
    ])
    assert [t.description for t in result.transactions] == ["a", "c"]
    assert result.dropped == 1
    assert result.unrecognized_dates == 1
    assert result.transactions[1].date == "sometime"


def test_ids_are_unique():
    result = normalize_candidates([{"date": "2024-01-01", "description": "a", "credit": 1}] * 3)
    assert len({t.id for t in result.transactions}) == 3
    assert not math.isnan(result.transactions[0].credit)
