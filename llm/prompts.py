"""
Prompt builders for bank statement extraction.
"""
from typing import Optional

OUTPUT_CONTRACT = """Return ONLY a JSON object of this shape, with no prose and no markdown:
{
  "transactions": [
    {"date": "dd/mm/yyyy", "narration": "full description", "txn_no": "reference", "debit": 0, "credit": 50000, "balance": 125000}
  ],
  "bankName": "bank name if visible"
}"""

EXTRACTION_RULES = """Rules:
- Extract EVERY transaction row. Do not skip, merge or summarize rows.
- Exactly one of debit/credit is non-zero for each row; debit is money out, credit is money in.
- Amounts are plain numbers without currency symbols or thousands separators.
- Ignore opening/closing balance summary lines.
- Use an empty string or 0 for missing fields."""


def build_system_prompt() -> str:
    """System instruction shared by every extraction call."""
    return (
        "You are a bank statement extraction engine. You read statement pages "
        "and output their transaction rows as structured JSON.\n\n"
        f"{EXTRACTION_RULES}\n\n{OUTPUT_CONTRACT}"
    )


def build_user_message(chunk_index: int, total_chunks: int, text: Optional[str] = None, is_image: bool = False) -> str:
    """
    Build the per-call user message.

    Args:
        chunk_index: 1-based chunk position
        total_chunks: Number of chunks in the document
        text: Extracted page text when the document is sent as text
        is_image: True when the attachment is a single statement image

    Returns:
        User message string
    """
    if is_image:
        header = "The attached image is a bank statement. Extract all transactions."
    else:
        header = (
            f"This is chunk {chunk_index} of {total_chunks} from a bank statement. "
            "Extract all transactions on these pages."
        )

    if text is None:
        return header
    return f"{header}\n\nSTATEMENT TEXT:\n{text}"
