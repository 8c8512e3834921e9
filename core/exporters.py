"""
Tabular exports of normalized transactions: CSV, JSON and Excel.
"""
import csv
import io
import json
from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd

from core.exceptions import ExportError, ValidationError
from core.logger import setup_logger
from core.schema import DEFAULT_CURRENCY, Transaction

logger = setup_logger(__name__)

CSV_HEADERS = ["Date", "Description", "Reference", "Debit", "Credit", "Balance", "Currency"]
SHEET_NAME = "Transactions"


def format_amount_cell(value: Optional[float]) -> str:
    """Blank for zero/absent, otherwise the shortest 2-dp representation."""
    if not value:
        return ""
    return f"{value:.2f}".rstrip("0").rstrip(".")


def require_transactions(transactions: Sequence[Transaction]) -> None:
    """Raise ValidationError when there is nothing to export."""
    if not transactions:
        raise ValidationError("No transactions to export", details={"count": 0})


def transactions_to_csv(transactions: Sequence[Transaction]) -> str:
    """
    Render transactions as CSV.

    Every field is quoted with embedded quotes doubled, so commas in
    descriptions, references or currency labels never shift columns.
    Zero or absent amounts are blank.
    """
    rows = [
        [
            txn.date,
            txn.description,
            txn.reference or "",
            format_amount_cell(txn.debit),
            format_amount_cell(txn.credit),
            format_amount_cell(txn.balance),
            txn.currency or DEFAULT_CURRENCY,
        ]
        for txn in transactions
    ]
    df = pd.DataFrame(rows, columns=CSV_HEADERS, dtype=str)
    return df.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")


def transactions_to_json(transactions: Sequence[Transaction]) -> str:
    """Pretty-printed JSON array of camelCase records."""
    return json.dumps([txn.to_wire() for txn in transactions], indent=2, ensure_ascii=False)


def transactions_to_dataframe(transactions: Sequence[Transaction]) -> pd.DataFrame:
    rows: List[dict] = [
        {
            "Date": txn.date,
            "Description": txn.description,
            "Reference": txn.reference or "",
            "Debit": txn.debit or None,
            "Credit": txn.credit or None,
            "Balance": txn.balance,
            "Currency": txn.currency or DEFAULT_CURRENCY,
        }
        for txn in transactions
    ]
    return pd.DataFrame(rows, columns=CSV_HEADERS)


def export_to_excel(transactions: Sequence[Transaction], sheet_name: str = SHEET_NAME) -> bytes:
    """
    Export transactions to an XLSX workbook.

    Args:
        transactions: Transactions to export
        sheet_name: Worksheet name

    Returns:
        Workbook bytes

    Raises:
        ExportError: If the workbook cannot be written
    """
    logger.info(f"Exporting {len(transactions)} transactions to Excel")
    output_df = transactions_to_dataframe(transactions)
    buffer = io.BytesIO()

    try:
        with pd.ExcelWriter(buffer, engine="xlsxwriter") as writer:
            output_df.to_excel(writer, sheet_name=sheet_name, index=False)

            workbook = writer.book
            worksheet = writer.sheets[sheet_name]

            # Description wraps; other columns sized to content
            wrap_format = workbook.add_format({"text_wrap": True, "valign": "top"})
            money_format = workbook.add_format({"num_format": "#,##0.00"})
            for idx, col in enumerate(output_df.columns):
                if col == "Description":
                    worksheet.set_column(idx, idx, 60, wrap_format)
                    continue
                max_len = max(
                    [len(str(col))] + [len(str(v)) for v in output_df[col] if v is not None and not pd.isna(v)]
                )
                cell_format = money_format if col in ("Debit", "Credit", "Balance") else None
                worksheet.set_column(idx, idx, min(max_len + 2, 40), cell_format)

        return buffer.getvalue()

    except Exception as e:
        logger.error(f"Failed to export Excel: {e}")
        raise ExportError("Failed to export to Excel", details={"error": str(e)})


def create_output_filename(kind: str, extension: str) -> str:
    """Timestamped download filename, e.g. ``tally_vouchers_2024-06-15T10-00-00.xml``."""
    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    return f"{kind}_{timestamp}.{extension}"
