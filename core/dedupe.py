"""
Duplicate detection for normalized transactions.

Two transactions are duplicates when date, description (case- and
whitespace-insensitive), debit, credit and reference all match. Every
member of a colliding group is reported; disposition is up to the caller.
"""
from collections import OrderedDict
from typing import Dict, List, Sequence, Set

from core.logger import setup_logger
from core.schema import DuplicateGroup, DuplicateReport, Transaction

logger = setup_logger(__name__)


def duplicate_key(txn: Transaction) -> str:
    """Composite key: date|description|debit|credit|reference."""
    return "|".join([
        txn.date,
        txn.description.lower().strip(),
        f"{txn.debit:.2f}",
        f"{txn.credit:.2f}",
        txn.reference or "",
    ])


def group_by_key(transactions: Sequence[Transaction]) -> "OrderedDict[str, List[Transaction]]":
    groups: "OrderedDict[str, List[Transaction]]" = OrderedDict()
    for txn in transactions:
        groups.setdefault(duplicate_key(txn), []).append(txn)
    return groups


def find_duplicates(transactions: Sequence[Transaction]) -> Set[str]:
    """
    Return the ids of every transaction whose key collides with another's.

    Args:
        transactions: Normalized transactions in display order

    Returns:
        Set of transaction ids; never includes a transaction with a unique key
    """
    duplicate_ids: Set[str] = set()
    for members in group_by_key(transactions).values():
        if len(members) > 1:
            duplicate_ids.update(txn.id for txn in members)
    return duplicate_ids


def build_duplicate_report(transactions: Sequence[Transaction]) -> DuplicateReport:
    """Duplicate ids plus the colliding groups, in first-seen order."""
    groups = [
        DuplicateGroup(key=key, ids=[txn.id for txn in members])
        for key, members in group_by_key(transactions).items()
        if len(members) > 1
    ]
    duplicate_ids = [txn_id for group in groups for txn_id in group.ids]
    if groups:
        logger.info(f"Found {len(groups)} duplicate group(s) covering {len(duplicate_ids)} transactions")
    return DuplicateReport(duplicate_ids=duplicate_ids, groups=groups)


def collapse_duplicates(transactions: Sequence[Transaction]) -> List[Transaction]:
    """Keep the first transaction of each duplicate group, preserving order."""
    seen: Dict[str, str] = {}
    kept: List[Transaction] = []
    for txn in transactions:
        key = duplicate_key(txn)
        if key in seen:
            continue
        seen[key] = txn.id
        kept.append(txn)
    removed = len(transactions) - len(kept)
    if removed:
        logger.info(f"Collapsed {removed} duplicate transaction(s)")
    return kept
