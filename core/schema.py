"""
Pydantic schemas for transactions, export options and the progress stream.
Wire format uses camelCase keys; Python code uses snake_case attributes.
"""
import uuid
from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)
from pydantic.alias_generators import to_camel

VoucherType = Literal["Payment", "Receipt", "Contra"]

DEFAULT_CURRENCY = "INR"
DEFAULT_BANK_LEDGER = "Bank Account"
DEFAULT_COMPANY_NAME = "My Company"
DEFAULT_SUSPENSE_LEDGER = "Suspense - Bank Import"


def generate_id() -> str:
    """Generate a unique transaction identifier."""
    return str(uuid.uuid4())


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Transaction(CamelModel):
    """One ledger-relevant bank statement line."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=generate_id)
    date: str = Field(..., description="Canonical YYYY-MM-DD date (best-effort pass-through if unrecognized)")
    description: str = ""
    reference: Optional[str] = None
    debit: float = Field(default=0.0, ge=0.0)
    credit: float = Field(default=0.0, ge=0.0)
    balance: Optional[float] = Field(default=None, description="Running balance, informational only")
    currency: str = DEFAULT_CURRENCY
    bank_name: Optional[str] = None

    @property
    def amount(self) -> float:
        """The moved amount: debit when money went out, else credit."""
        return self.debit if self.debit > 0 else self.credit

    @property
    def is_well_formed(self) -> bool:
        """Exactly one of debit/credit is non-zero."""
        return (self.debit > 0) != (self.credit > 0)


class LedgerRule(CamelModel):
    """Keyword rule mapping matching descriptions to a ledger."""
    keywords: List[str] = Field(..., min_length=1)
    ledger_name: str = Field(..., min_length=1)
    voucher_type: Optional[VoucherType] = None


class ExportOptions(CamelModel):
    """Per-call options for voucher export; never persisted."""
    bank_name: str = DEFAULT_BANK_LEDGER
    company_name: str = DEFAULT_COMPANY_NAME
    suspense_ledger: str = DEFAULT_SUSPENSE_LEDGER
    ledger_rules: List[LedgerRule] = Field(default_factory=list)

    @field_validator("bank_name", "company_name", "suspense_ledger", mode="before")
    @classmethod
    def blank_to_default(cls, v, info):
        """Blank names fall back to the field default."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return cls.model_fields[info.field_name].default
        return v


class ParseResult(CamelModel):
    """Result of any ingestion path."""
    transactions: List[Transaction] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Untrusted extraction output
# ---------------------------------------------------------------------------

def normalize_candidate_list(v):
    """Keep only dict items; anything that is not a list becomes empty."""
    if not isinstance(v, list):
        return []
    return [item for item in v if isinstance(item, dict)]


def normalize_optional_text(v):
    """Non-empty text or None (models sometimes return numbers or null)."""
    if v is None or isinstance(v, (dict, list)):
        return None
    text = str(v).strip()
    return text or None


def normalize_confidence(v):
    """Confidence as float in [0, 1] or None."""
    if isinstance(v, bool):
        return None
    try:
        value = float(v)
    except (TypeError, ValueError):
        return None
    if not 0.0 <= value <= 1.0:
        return None
    return value


class ExtractionPayload(BaseModel):
    """
    Declared shape of the extraction service's reply.
    Every field has a fallback so validation of a parsed object never fails.
    """
    model_config = ConfigDict(extra="ignore")

    transactions: Annotated[List[Dict[str, Any]], BeforeValidator(normalize_candidate_list)] = Field(
        default_factory=list
    )
    bank_name: Annotated[Optional[str], BeforeValidator(normalize_optional_text)] = Field(
        default=None, validation_alias=AliasChoices("bankName", "bank_name")
    )
    account_number: Annotated[Optional[str], BeforeValidator(normalize_optional_text)] = Field(
        default=None, validation_alias=AliasChoices("accountNumber", "account_number")
    )
    confidence: Annotated[Optional[float], BeforeValidator(normalize_confidence)] = None


@dataclass(frozen=True)
class ChunkPayload:
    """What the extraction capability receives for one unit of work."""
    mime_type: str
    data: Optional[bytes] = None
    text: Optional[str] = None
    filename: Optional[str] = None

    @property
    def is_binary(self) -> bool:
        return self.data is not None


# ---------------------------------------------------------------------------
# Progress stream events
# ---------------------------------------------------------------------------

class ProgressEvent(CamelModel):
    type: Literal["progress"] = "progress"
    message: str
    chunk: int = 0
    total_chunks: int = 0


class TransactionsEvent(CamelModel):
    type: Literal["transactions"] = "transactions"
    chunk: int
    data: List[Transaction]


class CompleteEvent(CamelModel):
    type: Literal["complete"] = "complete"
    warnings: List[str] = Field(default_factory=list)
    bank_name: Optional[str] = None


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    message: str


StreamEvent = Annotated[
    Union[ProgressEvent, TransactionsEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]

STREAM_EVENT_ADAPTER: TypeAdapter = TypeAdapter(StreamEvent)


class DuplicateGroup(CamelModel):
    key: str
    ids: List[str]


class DuplicateReport(CamelModel):
    duplicate_ids: List[str] = Field(default_factory=list)
    groups: List[DuplicateGroup] = Field(default_factory=list)


class ExportRequest(CamelModel):
    transactions: List[Transaction]
    options: ExportOptions = Field(default_factory=ExportOptions)
