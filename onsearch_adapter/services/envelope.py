# =============================================================================
# On-Search Adapter - Envelope Reader
# =============================================================================
"""
Partial JSON reader for the payload's routing context.

Walks the top-level object with a cursor and decodes only the ``context``
member. Every other member is skipped by scanning for its end, so no
objects are built for the (potentially very large) catalog body. Full
structural parsing happens later, during schema validation.
"""

import json
import re
from json.decoder import scanstring
from typing import Any, Optional, Tuple

from ..errors import EnvelopeError, ErrorKind
from ..models import IngestionContext


CONTEXT_KEY = "context"
REQUIRED_FIELDS = ("domain", "action", "transaction_id", "message_id")

_WHITESPACE = " \t\n\r"
_decoder = json.JSONDecoder()

# A complete string literal, escapes included.
_STRING = re.compile(r'"[^"\\]*(?:\\.[^"\\]*)*"', re.DOTALL)
_SCALAR = re.compile(r"[^,}\]\s]*")

# On masked text: outside runs and whole string literals that hold no bracket.
_PLAIN_RUN = re.compile(r'(?:[^"]*"[^"{}\[\]]*")*')
_BRACKET = re.compile(r"[{}\[\]]")
_BLOCK_SIZE = 1 << 16


class _Malformed(ValueError):
    pass


class EnvelopeReader:
    """
    Cursor over the decoded payload text.

    Only the members of the outermost object are visited; nested values
    are skipped with bracket counting that is aware of string literals.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self._masked: Optional[str] = None
        if text.startswith("\ufeff"):
            self.pos = 1

    @property
    def masked(self) -> str:
        """The text with escaped backslashes and quotes blanked out.

        Offsets match ``text``; every quote left opens or closes a string.
        """
        if self._masked is None:
            self._masked = self.text.replace("\\\\", "__").replace('\\"', "__")
        return self._masked

    def find_member(self, name: str) -> Optional[Any]:
        """
        Decode the value of a top-level member.

        Returns:
            The decoded value, or None when the object has no such member.

        Raises:
            _Malformed: If the text is not a JSON object up to that point.
        """
        self._expect("{")
        self._skip_whitespace()
        if self._peek() == "}":
            return None

        while True:
            key = self._read_key()
            self._expect(":")
            self._skip_whitespace()
            if key == name:
                try:
                    value, self.pos = _decoder.raw_decode(self.text, self.pos)
                except json.JSONDecodeError as e:
                    raise _Malformed(str(e)) from e
                except RecursionError as e:
                    raise _Malformed("context nested too deeply") from e
                return value

            self._skip_value()
            self._skip_whitespace()
            separator = self._peek()
            self.pos += 1
            if separator == "}":
                return None
            if separator != ",":
                raise _Malformed(f"expected ',' or '}}' at offset {self.pos - 1}")
            self._skip_whitespace()

    def _peek(self) -> str:
        if self.pos >= len(self.text):
            raise _Malformed("unexpected end of payload")
        return self.text[self.pos]

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in _WHITESPACE:
            self.pos += 1

    def _expect(self, char: str) -> None:
        self._skip_whitespace()
        if self._peek() != char:
            raise _Malformed(f"expected {char!r} at offset {self.pos}")
        self.pos += 1

    def _read_key(self) -> str:
        self._expect('"')
        try:
            key, self.pos = scanstring(self.text, self.pos, True)
        except json.JSONDecodeError as e:
            raise _Malformed(str(e)) from e
        return key

    def _skip_value(self) -> None:
        char = self._peek()
        if char == '"':
            self._skip_string()
        elif char in "{[":
            self._skip_container()
        else:
            start = self.pos
            self.pos = _SCALAR.match(self.text, start).end()
            if self.pos == start:
                raise _Malformed(f"expected a value at offset {start}")

    def _skip_string(self) -> None:
        # cursor is on the opening quote
        match = _STRING.match(self.text, self.pos)
        if match is None:
            raise _Malformed("unterminated string")
        self.pos = match.end()

    def _skip_container(self) -> None:
        # cursor is on the opening bracket. Each block is counted with
        # str.count up to the first string literal holding a bracket; only
        # a stretch where the depth can reach zero is walked per bracket.
        text = self.masked
        end = len(text)
        pos = self.pos + 1
        depth = 1
        while True:
            stop = min(pos + _BLOCK_SIZE, end)
            plain_end = _PLAIN_RUN.match(text, pos, stop).end()
            quote = text.find('"', plain_end, stop)
            depth, close = _balance(text, pos, stop if quote == -1 else quote, depth)
            if close is not None:
                self.pos = close
                return
            if quote == -1:
                if stop == end:
                    raise _Malformed("unterminated object or array")
                pos = stop
                continue
            # a literal that holds a bracket or runs past the block
            closing = text.find('"', quote + 1)
            if closing == -1:
                raise _Malformed(f"unterminated string at offset {quote}")
            pos = closing + 1


def _balance(text: str, start: int, end: int, depth: int) -> Tuple[int, Optional[int]]:
    """
    Apply the brackets of ``text[start:end]`` to a nesting depth.

    The range must hold no string literal with a bracket in it.

    Returns:
        The new depth, and the offset just past the bracket that brought
        it to zero (None if it never got there).
    """
    closes = text.count("}", start, end) + text.count("]", start, end)
    if closes < depth:
        opens = text.count("{", start, end) + text.count("[", start, end)
        return depth + opens - closes, None

    for match in _BRACKET.finditer(text, start, end):
        if match.group() in "{[":
            depth += 1
        else:
            depth -= 1
            if depth == 0:
                return 0, match.end()
    return depth, None


def extract_context(payload: bytes) -> IngestionContext:
    """
    Read the routing context from a raw payload.

    Args:
        payload: Raw request body

    Returns:
        IngestionContext: The four routing fields

    Raises:
        EnvelopeError: MALFORMED_PAYLOAD if the envelope cannot be read,
            MISSING_REQUIRED_FIELD if ``context`` or one of its fields is
            absent, empty or not a string
    """
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EnvelopeError(
            ErrorKind.MALFORMED_PAYLOAD,
            "payload is not valid UTF-8",
            str(e),
        ) from e

    try:
        context = EnvelopeReader(text).find_member(CONTEXT_KEY)
    except _Malformed as e:
        raise EnvelopeError(
            ErrorKind.MALFORMED_PAYLOAD,
            "failed to parse ONDC payload",
            str(e),
        ) from e

    if not isinstance(context, dict):
        raise EnvelopeError(
            ErrorKind.MISSING_REQUIRED_FIELD,
            "missing required field",
            {"missing": [CONTEXT_KEY]},
        )

    missing = [
        field for field in REQUIRED_FIELDS
        if not isinstance(context.get(field), str) or not context[field]
    ]
    if missing:
        raise EnvelopeError(
            ErrorKind.MISSING_REQUIRED_FIELD,
            "missing required field",
            {"missing": [f"{CONTEXT_KEY}.{field}" for field in missing]},
        )

    return IngestionContext(**{field: context[field] for field in REQUIRED_FIELDS})
