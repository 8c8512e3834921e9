"""
Normalization of loosely-typed statement values.
Converts raw date, amount and text tokens into canonical transaction fields.
"""
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from core.logger import setup_logger
from core.schema import DEFAULT_CURRENCY, Transaction

logger = setup_logger(__name__)

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ISO_DATETIME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T]\d{1,2}:\d{2}")
DAY_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})$")
DAY_MONTH_SHORT_YEAR_RE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2})$")
MONTH_NAME_RE = re.compile(r"[A-Za-z]{3,}")
DIGIT_GROUP_RE = re.compile(r"\d+")
RELATIVE_DATE_WORDS = ("today", "now", "yesterday", "tomorrow")

# Two-digit years below this become 20xx, the rest 19xx
CENTURY_SPLIT = 50

CURRENCY_SYMBOLS_RE = re.compile("[\u20b9$\u20ac\u00a3\u00a5\\s]")
CURRENCY_CODE_PREFIX_RE = re.compile(r"^(rs\.?|inr)", re.IGNORECASE)
DR_CR_SUFFIX_RE = re.compile(r"(dr|cr)\.?$", re.IGNORECASE)
LEADING_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)")

CONTROL_CHARS_RE = re.compile("[\x00-\x1f\x7f\u200b-\u200f\u2028\u2029\ufeff]")
LINE_BREAK_TAG_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
MARKDOWN_RE = re.compile(r"\*\*|__|`+")
WHITESPACE_RE = re.compile(r"\s+")

DEBIT_HINTS = ("dr", "debit", "withdrawal")
CREDIT_HINTS = ("cr", "credit", "deposit")

DESCRIPTION_KEYS = ("narration", "description", "particulars", "details", "remarks")
REFERENCE_KEYS = ("txn_no", "reference", "ref_no", "ref", "cheque_no", "chq_no", "utr")
DATE_KEYS = ("date", "txn_date", "transaction_date", "value_date")
DEBIT_KEYS = ("debit", "withdrawal", "withdrawals", "debit_amount")
CREDIT_KEYS = ("credit", "deposit", "deposits", "credit_amount")
AMOUNT_KEYS = ("amount", "transaction_amount")
TYPE_KEYS = ("type", "txn_type", "dr_cr", "transaction_type")


def _compose_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _has_explicit_year(token: str) -> bool:
    if any(word in token.lower().split() for word in RELATIVE_DATE_WORDS):
        return False
    groups = DIGIT_GROUP_RE.findall(token)
    if any(len(group) == 4 for group in groups):
        return True
    return len(groups) >= 2 and len(groups[-1]) == 2


def parse_date(value: Any) -> str:
    """
    Parse a statement date into YYYY-MM-DD.

    Day/month order is assumed for numeric triples. Two-digit years below
    50 map to the 2000s, the rest to the 1900s. Anything unrecognized is
    returned trimmed and otherwise unchanged.

    Args:
        value: Raw date token (string, date or datetime)

    Returns:
        Canonical date string or the best-effort original
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    cleaned = str(value).strip()
    if not cleaned:
        return ""

    if ISO_DATE_RE.match(cleaned):
        return cleaned

    match = ISO_DATETIME_RE.match(cleaned)
    if match:
        return match.group(1)

    match = DAY_MONTH_YEAR_RE.match(cleaned)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return _compose_date(year, month, day) or cleaned

    match = DAY_MONTH_SHORT_YEAR_RE.match(cleaned)
    if match:
        day, month, short_year = (int(part) for part in match.groups())
        year = 2000 + short_year if short_year < CENTURY_SPLIT else 1900 + short_year
        return _compose_date(year, month, day) or cleaned

    # Month names ("15 Jun 2024", "15-Jun-24"); a year must be present
    if MONTH_NAME_RE.search(cleaned) and _has_explicit_year(cleaned):
        try:
            parsed = pd.to_datetime(cleaned, dayfirst=True, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            parsed = None
        if parsed is not None and not pd.isna(parsed):
            return parsed.date().isoformat()

    return cleaned


def is_canonical_date(value: Optional[str]) -> bool:
    """True for a YYYY-MM-DD string naming a real calendar day."""
    if not value or not ISO_DATE_RE.match(value):
        return False
    year, month, day = (int(part) for part in value.split("-"))
    return _compose_date(year, month, day) is not None


def parse_amount(value: Any) -> float:
    """
    Parse a statement amount into a non-negative float.

    Strips currency symbols, Western and Indian thousands separators and a
    trailing Dr/Cr marker. Non-numeric input yields 0.

    Args:
        value: Raw amount (string or number)

    Returns:
        Absolute amount
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return 0.0
        return abs(float(value))

    cleaned = CURRENCY_SYMBOLS_RE.sub("", str(value))
    cleaned = CURRENCY_CODE_PREFIX_RE.sub("", cleaned)
    cleaned = cleaned.replace(",", "")
    cleaned = DR_CR_SUFFIX_RE.sub("", cleaned)

    match = LEADING_NUMBER_RE.match(cleaned)
    if not match:
        return 0.0

    try:
        return abs(float(match.group(0)))
    except ValueError:
        return 0.0


def determine_debit_credit(
    amount: Any,
    type_hint: Optional[str] = None,
    default_to_credit: bool = True,
) -> Tuple[float, float]:
    """
    Split a single signed/annotated amount into (debit, credit).

    Explicit hint tokens win, then Dr/Cr markers or a leading minus in the
    amount itself, then the sign of a numeric value. With no indicator the
    amount goes to credit unless default_to_credit is False.

    Args:
        amount: Raw amount value
        type_hint: Optional column text such as "Dr", "CREDIT", "Withdrawal"
        default_to_credit: Side used when nothing indicates direction

    Returns:
        Tuple of (debit, credit)
    """
    value = parse_amount(amount)
    amount_text = str(amount).strip().lower() if amount is not None else ""
    hint = (type_hint or "").lower()

    if any(token in hint for token in DEBIT_HINTS):
        return value, 0.0
    if any(token in hint for token in CREDIT_HINTS):
        return 0.0, value

    if "dr" in amount_text or amount_text.startswith("-"):
        return value, 0.0
    if "cr" in amount_text:
        return 0.0, value

    if isinstance(amount, (int, float)) and not isinstance(amount, bool) and amount < 0:
        return value, 0.0

    if default_to_credit:
        return 0.0, value
    return value, 0.0


def clean_description(text: Any) -> str:
    """Collapse whitespace and strip control characters and stray markup."""
    if text is None:
        return ""
    cleaned = str(text)
    cleaned = LINE_BREAK_TAG_RE.sub(" ", cleaned)
    cleaned = CONTROL_CHARS_RE.sub(" ", cleaned)
    cleaned = MARKDOWN_RE.sub("", cleaned)
    return WHITESPACE_RE.sub(" ", cleaned).strip()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def first_present(candidate: Dict[str, Any], keys: Sequence[str]) -> Any:
    """Return the first non-blank value among keys, or None."""
    for key in keys:
        value = candidate.get(key)
        if not _is_blank(value):
            return value
    return None


def normalize_candidate(
    candidate: Dict[str, Any],
    bank_name: Optional[str] = None,
    currency: str = DEFAULT_CURRENCY,
    default_to_credit: bool = True,
) -> Optional[Transaction]:
    """
    Convert one raw extracted record into a Transaction.

    Args:
        candidate: Loosely-typed record from the extraction service
        bank_name: Bank detected for the document, if any
        currency: Currency used when the record carries none
        default_to_credit: Side for unsigned single amounts

    Returns:
        Transaction, or None when both amounts are zero
    """
    raw_debit = first_present(candidate, DEBIT_KEYS)
    raw_credit = first_present(candidate, CREDIT_KEYS)

    if raw_debit is None and raw_credit is None and first_present(candidate, AMOUNT_KEYS) is not None:
        type_hint = first_present(candidate, TYPE_KEYS)
        debit, credit = determine_debit_credit(
            first_present(candidate, AMOUNT_KEYS),
            str(type_hint) if type_hint is not None else None,
            default_to_credit=default_to_credit,
        )
    else:
        debit = parse_amount(raw_debit)
        credit = parse_amount(raw_credit)

    if debit == 0 and credit == 0:
        return None

    raw_balance = candidate.get("balance")
    balance = None if _is_blank(raw_balance) else parse_amount(raw_balance)

    reference = first_present(candidate, REFERENCE_KEYS)
    reference_text = clean_description(reference) if reference is not None else ""

    raw_currency = candidate.get("currency")
    currency_text = str(raw_currency).strip().upper() if not _is_blank(raw_currency) else currency

    return Transaction(
        date=parse_date(first_present(candidate, DATE_KEYS)),
        description=clean_description(first_present(candidate, DESCRIPTION_KEYS)),
        reference=reference_text or None,
        debit=debit,
        credit=credit,
        balance=balance,
        currency=currency_text,
        bank_name=bank_name,
    )


@dataclass
class NormalizationResult:
    """Transactions built from a batch of candidates plus what was set aside."""
    transactions: List[Transaction] = field(default_factory=list)
    dropped: int = 0
    unrecognized_dates: int = 0


def normalize_candidates(
    candidates: Iterable[Dict[str, Any]],
    bank_name: Optional[str] = None,
    currency: str = DEFAULT_CURRENCY,
    default_to_credit: bool = True,
) -> NormalizationResult:
    """
    Normalize a batch of candidates, preserving order.

    Records with both amounts zero are dropped. Records whose date could not
    be canonicalized are kept and counted.
    """
    result = NormalizationResult()
    for candidate in candidates:
        txn = normalize_candidate(
            candidate,
            bank_name=bank_name,
            currency=currency,
            default_to_credit=default_to_credit,
        )
        if txn is None:
            result.dropped += 1
            continue
        if not is_canonical_date(txn.date):
            result.unrecognized_dates += 1
        result.transactions.append(txn)

    if result.dropped:
        logger.debug(f"Dropped {result.dropped} candidate(s) with no debit or credit amount")
    return result
