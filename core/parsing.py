"""
Tabular statement parsing (CSV, XLS, XLSX).
Maps a detected header row onto known column synonyms and emits the same
normalized transactions as the extraction pipeline.
"""
import io
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import Levenshtein
import pandas as pd

from core.exceptions import ParsingError
from core.logger import setup_logger
from core.normalize import clean_description, determine_debit_credit, is_canonical_date, parse_amount, parse_date
from core.schema import DEFAULT_CURRENCY, ParseResult, Transaction

logger = setup_logger(__name__)

COLUMN_SYNONYMS: Dict[str, List[str]] = {
    "date": ["date", "txn date", "transaction date", "value date", "posting date", "txn_date", "valuedate"],
    "description": ["description", "particulars", "narration", "details", "remarks", "transaction details", "txn particulars"],
    "reference": ["reference", "ref", "ref no", "chq no", "cheque no", "utr", "txn no", "transaction id", "ref_no", "chq_no"],
    "debit": ["debit", "withdrawal", "dr", "debit amount", "withdrawals", "debit(dr)", "dr_amount"],
    "credit": ["credit", "deposit", "cr", "credit amount", "deposits", "credit(cr)", "cr_amount"],
    "amount": ["amount", "transaction amount", "txn amount"],
    "type": ["type", "dr/cr", "drcr", "transaction type", "txn type", "cr/dr"],
    "balance": ["balance", "closing balance", "running balance", "available balance"],
}

# Resolution order: more specific columns claim their header first
FIELD_ORDER = ["date", "type", "balance", "debit", "credit", "amount", "reference", "description"]

HEADER_HINTS = ("date", "description", "narration", "debit", "credit", "amount")
HEADER_SCAN_ROWS = 5
FUZZY_HEADER_THRESHOLD = 0.85
SKIP_DATE_WORDS = ("total", "balance")
MAX_CSV_COLUMNS = 64

EXCEL_ENGINES = {".xlsx": "openpyxl", ".xls": "xlrd"}
TABULAR_EXTENSIONS = (".csv",) + tuple(EXCEL_ENGINES)


def _contains_word(haystack: str, needle: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(needle)}(?![a-z0-9])", haystack) is not None


def map_columns(headers: Sequence[str]) -> Dict[str, int]:
    """
    Map known fields to column indices.

    Exact synonym matches are resolved for every field first, then
    whole-word substring matches, then Levenshtein similarity for misspelt
    headers. A column is claimed by at most one field.
    """
    lowered = [str(h).lower().strip() for h in headers]
    mapping: Dict[str, int] = {}

    def claim(field: str, predicate) -> None:
        if field in mapping:
            return
        for idx, header in enumerate(lowered):
            if not header or idx in mapping.values():
                continue
            if predicate(header, COLUMN_SYNONYMS[field]):
                mapping[field] = idx
                return

    for field in FIELD_ORDER:
        claim(field, lambda header, aliases: header in aliases)

    for field in FIELD_ORDER:
        claim(field, lambda header, aliases: any(
            _contains_word(header, alias) or (len(header) >= 3 and _contains_word(alias, header))
            for alias in aliases
        ))

    for field in FIELD_ORDER:
        if field in mapping:
            continue
        best_idx, best_score = -1, 0.0
        for idx, header in enumerate(lowered):
            if not header or idx in mapping.values():
                continue
            score = max(Levenshtein.ratio(header, alias) for alias in COLUMN_SYNONYMS[field])
            if score >= FUZZY_HEADER_THRESHOLD and score > best_score:
                best_idx, best_score = idx, score
        if best_idx != -1:
            logger.debug(f"Fuzzy matched '{headers[best_idx]}' to {field} (score={best_score:.2f})")
            mapping[field] = best_idx

    return mapping


def _read_csv(content: bytes) -> pd.DataFrame:
    for encoding in ("utf-8-sig", "latin-1"):
        try:
            return pd.read_csv(
                io.BytesIO(content),
                header=None,
                names=list(range(MAX_CSV_COLUMNS)),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                encoding=encoding,
                engine="python",
                on_bad_lines="skip",
            )
        except UnicodeDecodeError:
            continue
    raise ParsingError("Could not decode CSV file")


def read_rows(content: bytes, filename: str) -> List[List[str]]:
    """
    Read a CSV or Excel file into rows of trimmed strings.

    Raises:
        ParsingError: If the file type is unsupported or the file is unreadable
    """
    suffix = Path(filename or "").suffix.lower()
    if suffix not in TABULAR_EXTENSIONS:
        raise ParsingError(
            f"Unsupported tabular file type: {filename}",
            details={"supported": list(TABULAR_EXTENSIONS)},
        )

    try:
        if suffix == ".csv":
            df = _read_csv(content)
        else:
            # First sheet only
            df = pd.read_excel(io.BytesIO(content), header=None, dtype=str, engine=EXCEL_ENGINES[suffix])
    except pd.errors.EmptyDataError:
        return []
    except ParsingError:
        raise
    except Exception as e:
        logger.error(f"Failed to read {filename}: {e}")
        raise ParsingError(f"Invalid {suffix.lstrip('.').upper()} file", details={"file": filename, "error": str(e)})

    df = df.dropna(axis=1, how="all").fillna("")
    rows = [[str(cell).strip() for cell in row] for row in df.itertuples(index=False, name=None)]
    return [row for row in rows if any(row)]


def detect_header_row(rows: Sequence[Sequence[str]]) -> Tuple[int, List[str], bool]:
    """Return (index, headers, detected) for the first row that looks like a header."""
    for idx, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        cells = [cell.lower() for cell in row]
        if any(hint in cell for cell in cells for hint in HEADER_HINTS):
            return idx, list(row), True
    return 0, list(rows[0]) if rows else [], False


def _cell(row: Sequence[str], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    return row[idx]


def parse_rows(
    rows: Sequence[Sequence[str]],
    currency: str = DEFAULT_CURRENCY,
    default_to_credit: bool = True,
) -> ParseResult:
    """
    Convert tabular rows into transactions.

    Args:
        rows: Rows of cell strings, header included
        currency: Currency for every transaction
        default_to_credit: Side for unsigned single-amount rows

    Returns:
        ParseResult with transactions and warnings
    """
    warnings: List[str] = []
    if len(rows) < 2:
        return ParseResult(warnings=["No data rows found"])

    header_idx, headers, detected = detect_header_row(rows)
    if not detected:
        warnings.append("Could not detect headers, using first row")

    columns = map_columns(headers)
    logger.info(f"Column mapping: { {field: headers[idx] for field, idx in columns.items()} }")

    if "date" not in columns:
        warnings.append("Could not find date column")
    if "description" not in columns:
        warnings.append("Could not find description column")

    transactions: List[Transaction] = []
    for row in rows[header_idx + 1:]:
        date_value = _cell(row, columns.get("date"))
        if not date_value or any(word in date_value.lower() for word in SKIP_DATE_WORDS):
            continue

        date = parse_date(date_value)
        if not is_canonical_date(date):
            continue

        if "debit" in columns and "credit" in columns:
            debit = parse_amount(_cell(row, columns["debit"]))
            credit = parse_amount(_cell(row, columns["credit"]))
        elif "amount" in columns:
            debit, credit = determine_debit_credit(
                _cell(row, columns["amount"]),
                _cell(row, columns.get("type")),
                default_to_credit=default_to_credit,
            )
        else:
            debit = credit = 0.0

        if debit == 0 and credit == 0:
            continue

        balance_value = _cell(row, columns.get("balance"))
        reference = _cell(row, columns.get("reference"))

        transactions.append(Transaction(
            date=date,
            description=clean_description(_cell(row, columns.get("description"))),
            reference=reference or None,
            debit=debit,
            credit=credit,
            balance=parse_amount(balance_value) if balance_value else None,
            currency=currency,
        ))

    if not transactions:
        warnings.append("No valid transactions found")

    logger.info(f"Parsed {len(transactions)} transactions from {len(rows)} rows")
    return ParseResult(transactions=transactions, warnings=warnings)


def parse_tabular(
    content: bytes,
    filename: str,
    currency: str = DEFAULT_CURRENCY,
    default_to_credit: bool = True,
) -> ParseResult:
    """Parse a CSV/XLS/XLSX statement file into a ParseResult."""
    logger.info(f"Parsing tabular statement {filename}")
    rows = read_rows(content, filename)
    return parse_rows(rows, currency=currency, default_to_credit=default_to_credit)
