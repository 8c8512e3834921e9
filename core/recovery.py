"""
Recovery of structured extraction output from untrusted model text.

The model is asked for a JSON object ``{"transactions": [...], "bankName": ...}``
but may wrap it in prose or code fences, or truncate it. Recovery tries a
fixed sequence of named strategies and returns the first fully parsed
result, or an explicit empty result. It never raises.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from core.logger import setup_logger
from core.schema import ExtractionPayload

logger = setup_logger(__name__)

CODE_FENCE_RE = re.compile(r"```(?:[A-Za-z]+)?\s*([\s\S]*?)```")
TRANSACTIONS_KEY_RE = re.compile(r'"transactions"\s*:\s*\[')


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of recovery: a validated payload and the strategy that produced it."""
    payload: ExtractionPayload = field(default_factory=ExtractionPayload)
    strategy: Optional[str] = None

    @property
    def recovered(self) -> bool:
        return self.strategy is not None

    @property
    def transactions(self) -> List[Dict[str, Any]]:
        return self.payload.transactions

    @property
    def bank_name(self) -> Optional[str]:
        return self.payload.bank_name


def strip_code_fence(text: str) -> str:
    """Return the interior of the first fenced code block, or the text unchanged."""
    match = CODE_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def find_balanced_span(text: str, open_char: str, close_char: str, start: int = 0) -> Optional[Tuple[int, int]]:
    """
    Locate the first balanced open_char..close_char span at or after start.

    Depth counting skips characters inside JSON string literals so braces
    in descriptions do not end the span early.

    Returns:
        (begin, end) slice bounds, or None if no complete span exists
    """
    begin = text.find(open_char, start)
    if begin == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for idx in range(begin, len(text)):
        char = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return begin, idx + 1
    return None


def _loads(fragment: str) -> Any:
    try:
        return json.loads(fragment)
    except (json.JSONDecodeError, ValueError):
        return None


def balanced_object(text: str) -> Optional[Dict[str, Any]]:
    """
    First top-level {...} in the (fence-stripped) text.

    A body that opens with an array, or an object without a "transactions"
    key, is left to the later strategies.
    """
    body = strip_code_fence(text)
    if body.lstrip().startswith("["):
        return None
    span = find_balanced_span(body, "{", "}")
    if span is None:
        return None
    parsed = _loads(body[span[0]:span[1]])
    if not isinstance(parsed, dict) or "transactions" not in parsed:
        return None
    return parsed


def transactions_array(text: str) -> Optional[Dict[str, Any]]:
    """The array value of the "transactions" key, parsed on its own."""
    for source in (strip_code_fence(text), text):
        match = TRANSACTIONS_KEY_RE.search(source)
        if not match:
            continue
        span = find_balanced_span(source, "[", "]", start=match.end() - 1)
        if span is None:
            continue
        parsed = _loads(source[span[0]:span[1]])
        if isinstance(parsed, list):
            return {"transactions": parsed}
    return None


def bare_array(text: str) -> Optional[Dict[str, Any]]:
    """A top-level array of transaction objects with no wrapper object."""
    body = strip_code_fence(text)
    span = find_balanced_span(body, "[", "]")
    if span is None:
        return None
    parsed = _loads(body[span[0]:span[1]])
    if isinstance(parsed, list) and parsed and all(isinstance(item, dict) for item in parsed):
        return {"transactions": parsed}
    return None


RECOVERY_STRATEGIES: List[Tuple[str, Callable[[str], Optional[Dict[str, Any]]]]] = [
    ("balanced_object", balanced_object),
    ("transactions_array", transactions_array),
    ("bare_array", bare_array),
]


def recover_extraction(text: Optional[str]) -> RecoveryResult:
    """
    Recover the extraction payload from raw model output.

    Args:
        text: Raw reply text (may be empty, prose, fenced, or truncated)

    Returns:
        RecoveryResult; ``recovered`` is False and transactions empty when
        no strategy succeeded
    """
    if not text or not text.strip():
        return RecoveryResult()

    for name, strategy in RECOVERY_STRATEGIES:
        try:
            candidate = strategy(text)
        except RecursionError:
            logger.warning(f"Recovery strategy '{name}' hit recursion limit")
            continue
        if candidate is None:
            continue
        try:
            payload = ExtractionPayload.model_validate(candidate)
        except PydanticValidationError as e:
            logger.warning(f"Recovery strategy '{name}' produced an invalid payload: {e}")
            continue
        logger.debug(f"Recovered {len(payload.transactions)} candidate(s) via '{name}'")
        return RecoveryResult(payload=payload, strategy=name)

    logger.warning("Could not recover JSON from extraction response; treating as zero transactions")
    logger.debug(f"Unrecoverable response: {text[:2000]}")
    return RecoveryResult()
