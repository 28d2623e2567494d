"""
Line codec primitives for the flat-file store.

Grammar (record format 2):

    line     := field ("|" field)*
    list     := "" | item (";" item)*
    item     := subfield (":" subfield)*

Every scalar field and every list sub-field is escaped before it is
joined, so free text may contain any delimiter:

    \\  ->  \\\\        |  ->  \\|        ;  ->  \\;
    :   ->  \\:         newline -> \\n     carriage return -> \\r

Splitting never breaks on an escaped delimiter and keeps escapes intact,
so a list field can be split out of a line first and split into items
and sub-fields afterwards. Each piece is unescaped exactly once, at the
level where it becomes a value.
"""
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Type, TypeVar

from pharmacy.core.exceptions import BusinessError, ReferenceFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

ESCAPE = "\\"
FIELD_DELIMITER = "|"
ITEM_DELIMITER = ";"
PART_DELIMITER = ":"

_ESCAPES = {
    ESCAPE: ESCAPE,
    FIELD_DELIMITER: FIELD_DELIMITER,
    ITEM_DELIMITER: ITEM_DELIMITER,
    PART_DELIMITER: PART_DELIMITER,
    "\n": "n",
    "\r": "r",
}
_UNESCAPES = {v: k for k, v in _ESCAPES.items()}


class Raw(str):
    """Already-encoded text (a nested list); inserted into a line as is."""


# ==============================================================================
# ESCAPING
# ==============================================================================

def escape(value: str) -> str:
    if value is None:
        return ""
    return "".join(ESCAPE + _ESCAPES[ch] if ch in _ESCAPES else ch for ch in value)


def unescape(text: str) -> str:
    out = []
    chars = iter(text)
    for ch in chars:
        if ch != ESCAPE:
            out.append(ch)
            continue
        nxt = next(chars, None)
        if nxt is None:
            raise BusinessError.parse_failure("dangling escape at end of field")
        if nxt not in _UNESCAPES:
            raise BusinessError.parse_failure(f"unknown escape sequence \\{nxt}")
        out.append(_UNESCAPES[nxt])
    return "".join(out)


def split_escaped(text: str, delimiter: str) -> List[str]:
    """Split on unescaped delimiters. Escape sequences are kept as is."""
    parts = []
    current = []
    escaped = False
    for ch in text:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == ESCAPE:
            current.append(ch)
            escaped = True
        elif ch == delimiter:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return parts


# ==============================================================================
# LINES AND NESTED LISTS
# ==============================================================================

def join_fields(fields: Iterable) -> str:
    """Escape each field (unless Raw) and join with the field delimiter."""
    return FIELD_DELIMITER.join(f if isinstance(f, Raw) else escape(str(f)) for f in fields)


def split_fields(line: str) -> List[str]:
    """Split a line into raw (still escaped) fields."""
    return split_escaped(line.rstrip("\r\n"), FIELD_DELIMITER)


def encode_list(items: Iterable[T], item_formatter: Callable[[T], Sequence]) -> Raw:
    """
    Encode a nested collection as one field.

    item_formatter returns the item's sub-fields; each is escaped, then
    joined with ":" and the items with ";".

    Example:
        encode_list(order.items, lambda i: [i.medicine_id, i.quantity, format_money(i.unit_price)])
        -> "1:2:15.75;4:1:80.00"
    """
    encoded = []
    for item in items:
        parts = [escape("" if p is None else str(p)) for p in item_formatter(item)]
        encoded.append(PART_DELIMITER.join(parts))
    return Raw(ITEM_DELIMITER.join(encoded))


def decode_list(raw: str, item_parser: Callable[[List[str]], T], owner: str = "") -> List[T]:
    """
    Decode a field written by encode_list.

    item_parser receives the unescaped sub-fields of one item. If it raises
    ReferenceFailure only that item is dropped; ParseFailure propagates and
    fails the whole record.
    """
    if raw == "":
        return []

    items = []
    for raw_item in split_escaped(raw, ITEM_DELIMITER):
        parts = [unescape(p) for p in split_escaped(raw_item, PART_DELIMITER)]
        try:
            items.append(item_parser(parts))
        except ReferenceFailure as e:
            logger.debug(f"Skipped line item{' in ' + owner if owner else ''}: {e}")
    return items


# ==============================================================================
# SCALARS
# ==============================================================================

DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def format_money(value: Decimal) -> str:
    return f"{value:.2f}"


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def format_bool(value: bool) -> str:
    return "true" if value else "false"


def format_optional_int(value: Optional[int]) -> str:
    return "" if value is None else str(value)


def parse_int(text: str, name: str = "field") -> int:
    try:
        return int(text.strip())
    except ValueError:
        raise BusinessError.parse_failure(f"{name}: not an integer: {text!r}")


def parse_optional_int(text: str, name: str = "field") -> Optional[int]:
    if text.strip() == "":
        return None
    return parse_int(text, name)


def parse_money(text: str, name: str = "amount") -> Decimal:
    try:
        value = Decimal(text.strip())
    except InvalidOperation:
        raise BusinessError.parse_failure(f"{name}: not a decimal: {text!r}")
    if not value.is_finite():
        raise BusinessError.parse_failure(f"{name}: not a finite decimal: {text!r}")
    return value.quantize(Decimal("0.01"))


def parse_bool(text: str, name: str = "flag") -> bool:
    value = text.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    raise BusinessError.parse_failure(f"{name}: not a boolean: {text!r}")


def parse_date(text: str, name: str = "date") -> date:
    try:
        return datetime.strptime(text.strip(), DATE_FORMAT).date()
    except ValueError:
        raise BusinessError.parse_failure(f"{name}: not an ISO date: {text!r}")


def parse_timestamp(text: str, name: str = "timestamp") -> datetime:
    """ISO date-time. The legacy space-separated form is accepted on read."""
    value = text.strip()
    for fmt in (TIMESTAMP_FORMAT, "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise BusinessError.parse_failure(f"{name}: not an ISO timestamp: {text!r}")


def parse_enum(enum_cls: Type[E], text: str) -> E:
    try:
        return enum_cls(text.strip())
    except ValueError:
        raise BusinessError.parse_failure(f"{enum_cls.__name__}: unknown value {text!r}")


def parse_optional_enum(enum_cls: Type[E], text: str) -> Optional[E]:
    if text.strip() == "":
        return None
    return parse_enum(enum_cls, text)
