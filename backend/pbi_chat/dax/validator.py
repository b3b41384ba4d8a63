"""
DAX query validation and repair

Structural checks on generated DAX text before it is sent to the dataset:
lead keyword, parenthesis balance, quote balance and a non-empty body.
Two defects are repaired mechanically (missing EVALUATE, text before EVALUATE);
everything else is reported without a fix so the caller can regenerate.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)

LEAD_KEYWORD = "EVALUATE"

_LEAD_KEYWORD_PATTERN = re.compile(LEAD_KEYWORD, re.IGNORECASE)


class DaxErrorKind(str, Enum):
    """Failure categories for validation and visualization synthesis"""
    EMPTY_INPUT = "empty_input"
    MISSING_LEAD_KEYWORD = "missing_lead_keyword"
    MISPLACED_LEAD_KEYWORD = "misplaced_lead_keyword"
    UNBALANCED_PARENTHESES = "unbalanced_parentheses"
    UNBALANCED_QUOTES = "unbalanced_quotes"
    EMPTY_BODY = "empty_body"
    MISSING_DATA_ROLE = "missing_data_role"
    SYNTHESIS_ERROR = "synthesis_error"


@dataclass(frozen=True)
class ValidQuery:
    """The query passed every structural check"""
    query: str

    valid = True


@dataclass(frozen=True)
class InvalidQuery:
    """The query failed a check; fixed_query is set only for mechanical repairs"""
    error: str
    kind: DaxErrorKind
    fixed_query: Optional[str] = None

    valid = False

    @property
    def is_fixable(self) -> bool:
        return self.fixed_query is not None


ValidationResult = Union[ValidQuery, InvalidQuery]


class QuoteState(Enum):
    """Position of the scanner relative to quoted runs"""
    OUTSIDE = "outside"
    IN_SINGLE = "in_single"
    IN_DOUBLE = "in_double"


# A quote only opens or closes its own kind of run; the other kind is inert inside it.
_QUOTE_TRANSITIONS: Dict[Tuple[QuoteState, str], QuoteState] = {
    (QuoteState.OUTSIDE, "'"): QuoteState.IN_SINGLE,
    (QuoteState.OUTSIDE, '"'): QuoteState.IN_DOUBLE,
    (QuoteState.IN_SINGLE, "'"): QuoteState.OUTSIDE,
    (QuoteState.IN_SINGLE, '"'): QuoteState.IN_SINGLE,
    (QuoteState.IN_DOUBLE, '"'): QuoteState.OUTSIDE,
    (QuoteState.IN_DOUBLE, "'"): QuoteState.IN_DOUBLE,
}


def scan_quotes(text: str) -> QuoteState:
    """
    Run the quote automaton over the text

    Args:
        text: DAX text

    Returns:
        The state after the last character; anything but OUTSIDE means an unclosed run
    """
    state = QuoteState.OUTSIDE
    for char in text:
        if char in ("'", '"'):
            state = _QUOTE_TRANSITIONS[(state, char)]
    return state


def _check_parentheses(text: str) -> Optional[InvalidQuery]:
    depth = 0
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return InvalidQuery(
                    error="Unbalanced parentheses: too many closing parentheses",
                    kind=DaxErrorKind.UNBALANCED_PARENTHESES
                )

    if depth > 0:
        return InvalidQuery(
            error="Unbalanced parentheses: missing closing parentheses",
            kind=DaxErrorKind.UNBALANCED_PARENTHESES
        )
    return None


def _check_quotes(text: str) -> Optional[InvalidQuery]:
    state = scan_quotes(text)
    if state is QuoteState.IN_SINGLE:
        return InvalidQuery(
            error="Unbalanced quotes: missing closing single quote",
            kind=DaxErrorKind.UNBALANCED_QUOTES
        )
    if state is QuoteState.IN_DOUBLE:
        return InvalidQuery(
            error="Unbalanced quotes: missing closing double quote",
            kind=DaxErrorKind.UNBALANCED_QUOTES
        )
    return None


def validate_dax_query(query) -> ValidationResult:
    """
    Validate a generated DAX query and propose a fix where one is mechanical

    Checks run in order and stop at the first failure:
    1. non-empty string
    2. EVALUATE present and leading (fixable)
    3. balanced parentheses
    4. balanced single/double quotes
    5. something after EVALUATE

    Only the first EVALUATE occurrence is considered; a second occurrence later
    in the text is left for the query engine to reject.

    Args:
        query: Candidate DAX text

    Returns:
        ValidQuery with the trimmed text, or InvalidQuery
    """
    if not isinstance(query, str) or not query.strip():
        return InvalidQuery(
            error="Query is empty or not a string",
            kind=DaxErrorKind.EMPTY_INPUT
        )

    cleaned = query.strip()

    match = _LEAD_KEYWORD_PATTERN.search(cleaned)
    if match is None:
        logger.debug(f"DAX query is missing {LEAD_KEYWORD}: {cleaned}")
        return InvalidQuery(
            error=f"DAX query must begin with {LEAD_KEYWORD}",
            kind=DaxErrorKind.MISSING_LEAD_KEYWORD,
            fixed_query=f"{LEAD_KEYWORD} {cleaned}"
        )
    if match.start() > 0:
        logger.debug(f"DAX query has content before {LEAD_KEYWORD}: {cleaned}")
        return InvalidQuery(
            error=f"{LEAD_KEYWORD} should be at the beginning of the query",
            kind=DaxErrorKind.MISPLACED_LEAD_KEYWORD,
            fixed_query=cleaned[match.start():]
        )

    failure = _check_parentheses(cleaned) or _check_quotes(cleaned)
    if failure is not None:
        return failure

    if cleaned.upper() == LEAD_KEYWORD:
        return InvalidQuery(
            error=f"Query contains only {LEAD_KEYWORD} keyword with no expression",
            kind=DaxErrorKind.EMPTY_BODY
        )

    return ValidQuery(query=cleaned)
