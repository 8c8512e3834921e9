"""
Unit tests for tabular statement parsing.
"""
import io

import pandas as pd
import pytest

from core.exceptions import ParsingError
from core.parsing import detect_header_row, map_columns, parse_rows, parse_tabular


def test_map_columns_exact():
    mapping = map_columns(["Txn Date", "Narration", "Chq No", "Withdrawal", "Deposit", "Balance"])
    assert mapping == {"date": 0, "description": 1, "reference": 2, "debit": 3, "credit": 4, "balance": 5}


def test_map_columns_does_not_confuse_substrings():
    """'cr' inside 'description' and a Dr/Cr type column must not be taken for amounts."""
    mapping = map_columns(["Date", "Description", "Amount", "Dr/Cr"])
    assert mapping == {"date": 0, "description": 1, "amount": 2, "type": 3}


def test_map_columns_fuzzy_misspelling():
    mapping = map_columns(["Dtae", "Particulers", "Withdrawl", "Deposits"])
    assert mapping["description"] == 1
    assert mapping["debit"] == 2
    assert mapping["credit"] == 3


def test_detect_header_row_skips_preamble():
    rows = [["HDFC BANK LTD"], ["Statement of account"], ["Date", "Narration", "Debit", "Credit"], ["01/01/2024", "x", "1", ""]]
    idx, headers, detected = detect_header_row(rows)
    assert (idx, detected) == (2, True)
    assert headers[0] == "Date"


def test_parse_rows_separate_columns():
    rows = [
        ["Date", "Narration", "Ref No", "Debit", "Credit", "Balance"],
        ["15/06/2024", "Salary  June", "UTR1", "", "50,000.00", "1,25,000.00"],
        ["16/06/2024", "Rent", "", "20,000", "", "1,05,000"],
        ["", "continued narration", "", "", "", ""],
        ["Total", "", "", "20,000", "50,000", ""],
        ["Opening Balance", "", "", "", "", "75,000"],
        ["17/06/2024", "Zero row", "", "0", "0", ""],
        ["not a date", "junk", "", "1", "", ""],
    ]

    result = parse_rows(rows)

    assert [t.description for t in result.transactions] == ["Salary June", "Rent"]
    salary, rent = result.transactions
    assert (salary.date, salary.credit, salary.balance, salary.reference) == ("2024-06-15", 50000.0, 125000.0, "UTR1")
    assert (rent.debit, rent.credit, rent.reference) == (20000.0, 0.0, None)
    assert result.warnings == []


def test_parse_rows_amount_and_type():
    rows = [
        ["Date", "Description", "Amount", "Dr/Cr"],
        ["2024-01-01", "Fee", "100", "DR"],
        ["2024-01-02", "Refund", "40", "CR"],
        ["2024-01-03", "Interest", "5", ""],
    ]

    credits = [(t.debit, t.credit) for t in parse_rows(rows).transactions]
    assert credits == [(100.0, 0.0), (0.0, 40.0), (0.0, 5.0)]

    debits = [(t.debit, t.credit) for t in parse_rows(rows, default_to_credit=False).transactions]
    assert debits[2] == (5.0, 0.0)


def test_parse_rows_warnings():
    assert parse_rows([["Date", "Narration"]]).warnings == ["No data rows found"]

    result = parse_rows([["a", "b"], ["c", "d"]])
    assert "Could not detect headers, using first row" in result.warnings
    assert "Could not find date column" in result.warnings
    assert "Could not find description column" in result.warnings
    assert "No valid transactions found" in result.warnings


def test_parse_tabular_csv():
    content = (
        "Account statement\n"
        "Date,Description,Debit,Credit,Balance\n"
        '01/02/2024,"NEFT, Acme Corp",,"1,000.00",5000\n'
        "02/02/2024,ATM,500,,4500\n"
    ).encode("utf-8")

    result = parse_tabular(content, "statement.csv", currency="USD")

    assert len(result.transactions) == 2
    assert result.transactions[0].description == "NEFT, Acme Corp"
    assert result.transactions[0].credit == 1000.0
    assert result.transactions[1].debit == 500.0
    assert all(t.currency == "USD" for t in result.transactions)


def test_parse_tabular_xlsx():
    df = pd.DataFrame([
        ["Value Date", "Particulars", "Withdrawals", "Deposits"],
        ["05-03-2024", "UPI grocery", "250", ""],
    ])
    buffer = io.BytesIO()
    df.to_excel(buffer, header=False, index=False, engine="openpyxl")

    result = parse_tabular(buffer.getvalue(), "statement.xlsx")

    assert len(result.transactions) == 1
    assert result.transactions[0].date == "2024-03-05"
    assert result.transactions[0].debit == 250.0


def test_parse_tabular_rejects_unknown_type():
    with pytest.raises(ParsingError):
        parse_tabular(b"whatever", "statement.pdf")


def test_parse_tabular_invalid_excel():
    with pytest.raises(ParsingError):
        parse_tabular(b"not really a workbook", "statement.xlsx")


def test_parse_tabular_empty_csv():
    result = parse_tabular(b"", "empty.csv")
    assert result.warnings == ["No data rows found"]
