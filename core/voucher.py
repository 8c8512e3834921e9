"""
Tally voucher XML generation.

Each transaction becomes one double-entry voucher. The envelope layout,
tag names and the sign convention (debited ledger negative, credited
ledger positive) are fixed by the importing accounting system and must
not change.
"""
from typing import Optional, Sequence

from core.exceptions import ExportError
from core.logger import setup_logger
from core.schema import ExportOptions, LedgerRule, Transaction, VoucherType

logger = setup_logger(__name__)

XML_ENTITIES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)

VOUCHER_TEMPLATE = """
    <VOUCHER REMOTEID="{remote_id}" VCHTYPE="{voucher_type}" ACTION="Create">
      <DATE>{date}</DATE>
      <VOUCHERTYPENAME>{voucher_type}</VOUCHERTYPENAME>
      <VOUCHERNUMBER>{number}</VOUCHERNUMBER>
      <NARRATION>{narration}</NARRATION>
      <ALLLEDGERENTRIES.LIST>
        <LEDGERNAME>{debit_ledger}</LEDGERNAME>
        <ISDEEMEDPOSITIVE>Yes</ISDEEMEDPOSITIVE>
        <AMOUNT>-{amount}</AMOUNT>
      </ALLLEDGERENTRIES.LIST>
      <ALLLEDGERENTRIES.LIST>
        <LEDGERNAME>{credit_ledger}</LEDGERNAME>
        <ISDEEMEDPOSITIVE>No</ISDEEMEDPOSITIVE>
        <AMOUNT>{amount}</AMOUNT>
      </ALLLEDGERENTRIES.LIST>
    </VOUCHER>"""

ENVELOPE_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<ENVELOPE>
  <HEADER>
    <TALLYREQUEST>Import Data</TALLYREQUEST>
  </HEADER>
  <BODY>
    <IMPORTDATA>
      <REQUESTDESC>
        <REPORTNAME>Vouchers</REPORTNAME>
        <STATICVARIABLES>
          <SVCURRENTCOMPANY>{company}</SVCURRENTCOMPANY>
        </STATICVARIABLES>
      </REQUESTDESC>
      <REQUESTDATA>
        <TALLYMESSAGE xmlns:UDF="TallyUDF">
{vouchers}
        </TALLYMESSAGE>
      </REQUESTDATA>
    </IMPORTDATA>
  </BODY>
</ENVELOPE>"""


def escape_xml(text: Optional[str]) -> str:
    """Escape & < > " ' for use in element text and attribute values."""
    if not text:
        return ""
    for raw, entity in XML_ENTITIES:
        text = text.replace(raw, entity)
    return text


def format_tally_date(iso_date: str) -> str:
    """YYYY-MM-DD -> YYYYMMDD."""
    return iso_date.replace("-", "")


def infer_voucher_type(txn: Transaction) -> VoucherType:
    """Contra for self/own-account transfers, Payment for money out, else Receipt."""
    desc = txn.description.lower()
    if "transfer" in desc and ("self" in desc or "own" in desc):
        return "Contra"
    if txn.debit > 0:
        return "Payment"
    return "Receipt"


def find_matching_rule(txn: Transaction, rules: Sequence[LedgerRule]) -> Optional[LedgerRule]:
    """First rule with any keyword contained in the description (case-insensitive)."""
    desc = txn.description.lower()
    for rule in rules:
        if any(keyword.lower() in desc for keyword in rule.keywords):
            return rule
    return None


def build_narration(txn: Transaction) -> str:
    if txn.reference:
        return f"{txn.description} | Ref: {txn.reference}"
    return txn.description


def generate_voucher_xml(txn: Transaction, options: ExportOptions, voucher_number: int) -> str:
    """
    Render one voucher fragment.

    Args:
        txn: Normalized transaction
        options: Export options (bank ledger, suspense ledger, rules)
        voucher_number: 1-based sequence number

    Returns:
        Voucher XML fragment (leading newline included)
    """
    rule = find_matching_rule(txn, options.ledger_rules)
    counterparty = rule.ledger_name if rule else options.suspense_ledger
    voucher_type = (rule.voucher_type if rule and rule.voucher_type else None) or infer_voucher_type(txn)

    if txn.debit > 0:
        # Money out: counterparty debited, bank credited
        debit_ledger, credit_ledger = counterparty, options.bank_name
    else:
        debit_ledger, credit_ledger = options.bank_name, counterparty

    return VOUCHER_TEMPLATE.format(
        remote_id=escape_xml(txn.id),
        voucher_type=escape_xml(voucher_type),
        date=format_tally_date(txn.date),
        number=voucher_number,
        narration=escape_xml(build_narration(txn)),
        debit_ledger=escape_xml(debit_ledger),
        credit_ledger=escape_xml(credit_ledger),
        amount=f"{txn.amount:.2f}",
    )


def generate_tally_xml(
    transactions: Sequence[Transaction],
    options: Optional[ExportOptions] = None,
) -> str:
    """
    Render the full Tally import document.

    Args:
        transactions: Transactions in voucher order
        options: Export options; defaults apply when omitted

    Returns:
        XML document string

    Raises:
        ExportError: If a voucher cannot be rendered
    """
    options = options or ExportOptions()
    logger.info(f"Generating Tally XML for {len(transactions)} transactions (company={options.company_name})")

    try:
        vouchers = "".join(
            generate_voucher_xml(txn, options, number)
            for number, txn in enumerate(transactions, start=1)
        )
    except (AttributeError, TypeError, ValueError) as e:
        logger.error(f"Failed to render vouchers: {e}")
        raise ExportError("Failed to generate Tally XML", details={"error": str(e)})

    return ENVELOPE_TEMPLATE.format(company=escape_xml(options.company_name), vouchers=vouchers)
