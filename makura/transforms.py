"""
Transform expressions applied to field values during mapping.

An expression is a single function call such as::

    concat(source.InstitutionCode, formatDateTime(now(), 'yyyyMMddHHmmss'), substring(value, -15))

The vocabulary is closed. Functions are recognised by their leading keyword,
tested in declaration order of :class:`TransformFunction`; an expression that
starts with none of them leaves the value untouched.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from makura.document import ParsedInput
from makura.paths import SOURCE_PREFIX, PathResolver, stringify

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

STATUS_CODES: Dict[str, str] = {
    "ACSC": "25",  # Accepted, settlement completed
    "ACCP": "00",  # Accepted, customer profile
    "ACSP": "01",  # Accepted, settlement in process
    "RJCT": "99",  # Rejected
    "CANC": "98",  # Cancelled
    "PDNG": "02",  # Pending
}
UNKNOWN_STATUS_CODE = "99"

COMPACT_TIMESTAMP = "yyyyMMddHHmmss"
ISO_INSTANT = "yyyy-MM-dd'T'HH:mm:ss.SSS'Z'"

_INTEGER = re.compile(r"-?\d+\Z")
_NON_NEGATIVE_INTEGER = re.compile(r"\d+\Z")


class TransformFunction(Enum):
    """Known transform functions, in matching priority order."""

    FORMAT_DATE_TIME = "formatDateTime"
    CONCAT = "concat"
    SUBSTRING = "substring"
    SUBTRACT_DAYS = "subtractDays"
    MAP_STATUS_TO_RESPONSE_CODE = "mapStatusToResponseCode"
    EXTRACT_SESSION_ID = "extractSessionId"

    @classmethod
    def match(cls, expression: str) -> Optional["TransformFunction"]:
        """Returns the function ``expression`` starts with, or None for pass-through."""
        for function in cls:
            if expression.startswith(function.value):
                return function
        return None


def _is_quoted(token: str) -> bool:
    return len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"')


def call_arguments(expression: str, name: str) -> Optional[List[str]]:
    """
    Splits the arguments of the leading ``name(...)`` call at top-level
    commas. Quoted strings and nested parentheses are kept intact.

    Returns:
        The stripped argument strings, or None when the call is malformed.
    """
    rest = expression[len(name):].lstrip()
    if not rest.startswith("("):
        return None

    args: List[str] = []
    current: List[str] = []
    depth = 0
    quote: Optional[str] = None

    for index, char in enumerate(rest):
        if quote:
            current.append(char)
            if char == quote and rest[index - 1] != "\\":
                quote = None
            continue

        if char in ("'", '"'):
            quote = char
        elif char == "(":
            depth += 1
            if depth == 1:
                continue
        elif char == ")":
            depth -= 1
            if depth == 0:
                args.append("".join(current).strip())
                return [] if args == [""] else args
        elif char == "," and depth == 1:
            args.append("".join(current).strip())
            current = []
            continue
        current.append(char)

    return None


def _tokenize_pattern(pattern: str) -> List[Tuple[bool, str]]:
    """Splits a date pattern into ``(is_field, text)`` tokens."""
    tokens: List[Tuple[bool, str]] = []
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if char == "'":
            end = index + 1
            literal: List[str] = []
            while True:
                if end >= len(pattern):
                    raise ValueError(f"Unterminated quote in date pattern: {pattern}")
                if pattern[end] == "'":
                    if end + 1 < len(pattern) and pattern[end + 1] == "'":
                        literal.append("'")
                        end += 2
                        continue
                    break
                literal.append(pattern[end])
                end += 1
            # '' on its own is an escaped quote
            tokens.append((False, "".join(literal) if end > index + 1 else "'"))
            index = end + 1
        elif char.isascii() and char.isalpha():
            end = index
            while end < len(pattern) and pattern[end] == char:
                end += 1
            tokens.append((True, pattern[index:end]))
            index = end
        else:
            tokens.append((False, char))
            index += 1
    return tokens


def _render_field(letters: str, instant: datetime) -> str:
    letter, width = letters[0], len(letters)

    if letter in ("y", "u", "Y"):
        year = instant.isocalendar()[0] if letter == "Y" else instant.year
        if width == 2:
            return f"{year % 100:02d}"
        return str(year).zfill(width)
    if letter == "G":
        return "Anno Domini" if width == 4 else "AD"
    if letter == "M":
        if width >= 4:
            return instant.strftime("%B")
        if width == 3:
            return instant.strftime("%b")
        return str(instant.month).zfill(width)
    if letter == "d":
        return str(instant.day).zfill(width)
    if letter == "D":
        return str(instant.timetuple().tm_yday).zfill(width)
    if letter == "H":
        return str(instant.hour).zfill(width)
    if letter == "h":
        return str(instant.hour % 12 or 12).zfill(width)
    if letter == "k":
        return str(instant.hour or 24).zfill(width)
    if letter == "K":
        return str(instant.hour % 12).zfill(width)
    if letter == "m":
        return str(instant.minute).zfill(width)
    if letter == "s":
        return str(instant.second).zfill(width)
    if letter == "S":
        return f"{instant.microsecond:06d}".ljust(width, "0")[:width]
    if letter == "n":
        return str(instant.microsecond * 1000).zfill(width)
    if letter == "a":
        return "AM" if instant.hour < 12 else "PM"
    if letter == "E":
        return instant.strftime("%A" if width >= 4 else "%a")
    # Instants are always UTC, so every offset renders as zero.
    if letter == "X":
        return "Z"
    if letter == "x":
        return {1: "+00", 2: "+0000"}.get(width, "+00:00")
    if letter == "Z":
        return {4: "GMT", 5: "Z"}.get(width, "+0000")
    if letter == "z":
        return "Coordinated Universal Time" if width >= 4 else "UTC"
    raise ValueError(f"Unknown pattern letter: {letter}")


def render_date_pattern(pattern: str, instant: datetime) -> str:
    """
    Formats ``instant`` with a Java-style date pattern (``yyyy-MM-dd``,
    ``HH:mm:ss.SSS``, quoted literals, ...).

    Supported letters: ``G y u Y M d D E a H k K h m s S n X x Z z``. Zone
    letters always render UTC, the only zone instants are kept in.

    Raises:
        ValueError: On unknown pattern letters or an unterminated quote.
    """
    return "".join(
        _render_field(text, instant) if is_field else text
        for is_field, text in _tokenize_pattern(pattern)
    )


def normalize_date_pattern(pattern: str) -> str:
    """
    Quotes the literal ``T`` of ``...THH``/``Tmm``/``Tss`` patterns and a
    trailing ``Z``/``z`` (rendered as ``Z``), so they print as-is.
    """
    normalized = pattern
    if "THH" in normalized or "Tmm" in normalized or "Tss" in normalized:
        normalized = normalized.replace("T", "'T'")
    if normalized.endswith(("Z", "z")) and not normalized.endswith(("'Z'", "'z'")):
        normalized = normalized[:-1] + "'Z'"
    return normalized


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransformationEngine:
    """
    Evaluates transform expressions over a field value.

    Args:
        clock: Returns the current instant. Defaults to the system clock in
            UTC; inject a fixed clock for reproducible output.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or _utc_now
        self._handlers = {
            TransformFunction.FORMAT_DATE_TIME: self._format_date_time,
            TransformFunction.CONCAT: self._concat,
            TransformFunction.SUBSTRING: self._substring,
            TransformFunction.SUBTRACT_DAYS: self._subtract_days,
            TransformFunction.MAP_STATUS_TO_RESPONSE_CODE: self._map_status,
            TransformFunction.EXTRACT_SESSION_ID: self._extract_session_id,
        }

    def now(self) -> datetime:
        instant = self._clock()
        if instant.tzinfo is None:
            return instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(timezone.utc)

    def apply(
        self,
        value: Optional[str],
        expression: Optional[str],
        context: Optional[ParsedInput] = None,
    ) -> Optional[str]:
        """
        Applies ``expression`` to ``value``.

        Args:
            value: The resolved field value; may be None for functions that
                need no input (``now()`` based ones).
            expression: The transform expression. Blank or unrecognised
                expressions return ``value`` unchanged.
            context: The parsed source, used to resolve ``source.``
                references inside the expression.
        """
        if expression is None or not expression.strip():
            return value

        expression = expression.strip()
        function = TransformFunction.match(expression)
        if function is None:
            logger.debug("Unrecognised transform '%s', passing value through", expression)
            return value
        return self._handlers[function](value, expression, context)

    def resolve_reference(
        self, reference: Optional[str], value: Optional[str], context: Optional[ParsedInput]
    ) -> Optional[str]:
        """
        Resolves one argument token: ``value`` is the current value,
        ``source.X`` reads from ``context``, quoted tokens are literals and
        anything else stands for itself.
        """
        if reference is None or not reference.strip():
            return value

        reference = reference.strip()
        if reference == "value":
            return value
        if reference.startswith(SOURCE_PREFIX):
            if context is None:
                return None
            resolved = PathResolver.resolve_from_source(context, reference)
            return stringify(resolved) if resolved is not None else None
        if _is_quoted(reference):
            return reference[1:-1]
        return reference

    def _format_date_time(
        self, value: Optional[str], expression: str, context: Optional[ParsedInput]
    ) -> str:
        args = call_arguments(expression, TransformFunction.FORMAT_DATE_TIME.value)
        if not args or len(args) != 2 or not _is_quoted(args[1]) or not args[0]:
            return value if value is not None else ""

        # Only the current instant is supported as a date source.
        instant = self.now()
        pattern = args[1][1:-1]
        return render_date_pattern(normalize_date_pattern(pattern), instant)

    def _concat(
        self, value: Optional[str], expression: str, context: Optional[ParsedInput]
    ) -> Optional[str]:
        args = call_arguments(expression, TransformFunction.CONCAT.value)
        if not args:
            return value

        result = []
        for arg in args:
            if _is_quoted(arg):
                result.append(arg[1:-1])
            elif arg == "now()":
                result.append(render_date_pattern(COMPACT_TIMESTAMP, self.now()))
            elif arg.startswith(TransformFunction.FORMAT_DATE_TIME.value):
                result.append(self._format_date_time(value, arg, context))
            elif arg.startswith(TransformFunction.SUBSTRING.value):
                part = self._substring(value, arg, context)
                if part is not None:
                    result.append(part)
            else:
                resolved = self.resolve_reference(arg, value, context)
                if resolved is not None:
                    result.append(resolved)
        return "".join(result)

    def _substring(
        self, value: Optional[str], expression: str, context: Optional[ParsedInput]
    ) -> Optional[str]:
        args = call_arguments(expression, TransformFunction.SUBSTRING.value)
        if not args or len(args) != 2 or not args[0] or not _INTEGER.match(args[1]):
            return value

        text = self.resolve_reference(args[0], value, context)
        if text is None:
            return value

        index = int(args[1])
        if index < 0:
            return text[index:] if len(text) > -index else text
        return text[index:] if len(text) > index else text

    def _subtract_days(
        self, value: Optional[str], expression: str, context: Optional[ParsedInput]
    ) -> str:
        args = call_arguments(expression, TransformFunction.SUBTRACT_DAYS.value)
        if not args or len(args) != 2 or not args[0] or not _NON_NEGATIVE_INTEGER.match(args[1]):
            return value if value is not None else ""

        # The first argument is accepted but always stands for the current instant.
        instant = self.now() - timedelta(days=int(args[1]))
        return render_date_pattern(ISO_INSTANT, instant)

    def _map_status(
        self, value: Optional[str], expression: str, context: Optional[ParsedInput]
    ) -> str:
        if value is None:
            return UNKNOWN_STATUS_CODE
        return STATUS_CODES.get(value, UNKNOWN_STATUS_CODE)

    def _extract_session_id(
        self, value: Optional[str], expression: str, context: Optional[ParsedInput]
    ) -> Optional[str]:
        # Identity for now; reserved for extracting the session part of a message id.
        return value
