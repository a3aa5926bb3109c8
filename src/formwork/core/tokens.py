"""
Token encoding for values that are only known at synthesis or deploy time.

A token is an object implementing IResolvable. Because configuration is
usually typed as plain strings, numbers and lists, tokens are encoded into
those types and registered in a process-wide TokenMap:

- strings:  ``${Token[<hint>.<n>]}``, which may be concatenated freely
- lists:    a one-element list ``["#{Token[<hint>.<n>]}"]``
- numbers:  a float whose top 16 bits are 0xFBFF and whose low 48 bits
            carry the token counter

Resolution (see resolve.py) reverses the encoding.
"""

from __future__ import annotations

import re
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import TokenResolutionError, ValidationError

if TYPE_CHECKING:
    from .resolve import ResolveContext


# =============================================================================
# Encoding Constants
# =============================================================================

BEGIN_STRING_TOKEN_MARKER = "${Token["
BEGIN_LIST_TOKEN_MARKER = "#{Token["
END_TOKEN_MARKER = "]}"

_KEY_PATTERN = r"[A-Za-z0-9_-]*\.\d+"
STRING_TOKEN_REGEX = re.compile(r"\$\{Token\[(" + _KEY_PATTERN + r")\]\}")
LIST_TOKEN_REGEX = re.compile(r"#\{Token\[(" + _KEY_PATTERN + r")\]\}")

DOUBLE_TOKEN_MARKER = 0xFBFF
_DOUBLE_COUNTER_MASK = (1 << 48) - 1

_HINT_SANITIZER = re.compile(r"[^A-Za-z0-9_-]")


def _create_token_double(counter: int) -> float:
    bits = (DOUBLE_TOKEN_MARKER << 48) | (counter & _DOUBLE_COUNTER_MASK)
    return float(struct.unpack("<d", struct.pack("<Q", bits))[0])


def _extract_token_double(value: float) -> int | None:
    bits = struct.unpack("<Q", struct.pack("<d", value))[0]
    if bits >> 48 != DOUBLE_TOKEN_MARKER:
        return None
    return int(bits & _DOUBLE_COUNTER_MASK)


# =============================================================================
# Resolvables
# =============================================================================


class IResolvable(ABC):
    """
    Interface for values that are resolved during synthesis.

    ``str(resolvable)`` returns the string encoding, so resolvables can be
    embedded in f-strings.
    """

    creation_stack: list[str] = []

    @abstractmethod
    def resolve(self, context: ResolveContext) -> Any:
        """Produce the value for this token. The result is resolved again."""

    def __str__(self) -> str:
        return Token.as_string(self)


class Intrinsic(IResolvable):
    """
    Token that resolves to a fixed template value.

    Used for deploy-time functions such as ``{"Ref": "AWS::Region"}``.
    """

    def __init__(self, value: Any, display_hint: str | None = None):
        if callable(value) and not isinstance(value, IResolvable):
            raise ValidationError("Argument to Intrinsic must be a plain value object")
        self._value = value
        self.display_hint = display_hint

    def resolve(self, context: ResolveContext) -> Any:
        return self._value

    def __repr__(self) -> str:
        return f"Intrinsic({self._value!r})"


# =============================================================================
# Token Map
# =============================================================================


@dataclass(frozen=True)
class TokenFragment:
    """One fragment of a tokenized string: either literal text or a token."""

    literal: str | None = None
    token: IResolvable | None = None

    @property
    def is_token(self) -> bool:
        return self.token is not None


class TokenizedString:
    """A string split into literal and token fragments."""

    def __init__(self, fragments: list[TokenFragment]):
        self.fragments = fragments

    @property
    def tokens(self) -> list[IResolvable]:
        return [f.token for f in self.fragments if f.token is not None]

    @property
    def literals(self) -> list[str]:
        return [f.literal for f in self.fragments if f.literal is not None]

    @property
    def is_single_token(self) -> bool:
        """True when the string is exactly one token and nothing else."""
        return len(self.fragments) == 1 and self.fragments[0].is_token

    @property
    def first_token(self) -> IResolvable | None:
        tokens = self.tokens
        return tokens[0] if tokens else None

    def __len__(self) -> int:
        return len(self.fragments)


class TokenMap:
    """
    Process-wide registry of encoded tokens.

    The same resolvable always gets the same encoding.
    """

    _instance: TokenMap | None = None

    def __init__(self) -> None:
        self._counter = 0
        self._string_tokens: dict[str, IResolvable] = {}
        self._number_tokens: dict[int, IResolvable] = {}
        self._string_keys: dict[int, str] = {}
        self._number_keys: dict[int, float] = {}

    @classmethod
    def instance(cls) -> TokenMap:
        """Return the global token map."""
        if cls._instance is None:
            cls._instance = TokenMap()
        return cls._instance

    def _next_counter(self) -> int:
        self._counter += 1
        return self._counter

    def _register_key(self, token: IResolvable, display_hint: str | None) -> str:
        existing = self._string_keys.get(id(token))
        if existing is not None:
            return existing
        hint = _HINT_SANITIZER.sub("", display_hint or "TOKEN") or "TOKEN"
        key = f"{hint}.{self._next_counter()}"
        self._string_tokens[key] = token
        self._string_keys[id(token)] = key
        return key

    def register_string(self, token: IResolvable, display_hint: str | None = None) -> str:
        """Encode a token as a string."""
        key = self._register_key(token, display_hint)
        return f"{BEGIN_STRING_TOKEN_MARKER}{key}{END_TOKEN_MARKER}"

    def register_list(self, token: IResolvable, display_hint: str | None = None) -> list[str]:
        """Encode a token as a list of strings."""
        key = self._register_key(token, display_hint)
        return [f"{BEGIN_LIST_TOKEN_MARKER}{key}{END_TOKEN_MARKER}"]

    def register_number(self, token: IResolvable) -> float:
        """Encode a token as a number."""
        existing = self._number_keys.get(id(token))
        if existing is not None:
            return existing
        counter = self._next_counter()
        encoded = _create_token_double(counter)
        self._number_tokens[counter] = token
        self._number_keys[id(token)] = encoded
        return encoded

    def lookup_token(self, key: str) -> IResolvable:
        """Look up a token by its key, e.g. ``Bucket.Arn.12``."""
        token = self._string_tokens.get(key)
        if token is None:
            raise TokenResolutionError(f"Unrecognized token key: {key}")
        return token

    def lookup_string(self, value: str) -> IResolvable | None:
        """Return the token when the string is exactly one encoded token."""
        fragments = self.split_string(value)
        if fragments.is_single_token:
            return fragments.first_token
        return None

    def lookup_list(self, value: list[Any]) -> IResolvable | None:
        """Return the token behind an encoded list, if any."""
        if len(value) != 1 or not isinstance(value[0], str):
            return None
        match = LIST_TOKEN_REGEX.fullmatch(value[0])
        if match is None:
            return None
        return self.lookup_token(match.group(1))

    def lookup_number_token(self, value: float) -> IResolvable | None:
        """Return the token behind an encoded number, if any."""
        counter = _extract_token_double(value)
        if counter is None:
            return None
        token = self._number_tokens.get(counter)
        if token is None:
            raise TokenResolutionError(f"Unrecognized token number: {value!r}")
        return token

    def split_string(self, value: str) -> TokenizedString:
        """Split a string into literal and token fragments."""
        fragments: list[TokenFragment] = []
        position = 0
        for match in STRING_TOKEN_REGEX.finditer(value):
            if match.start() > position:
                fragments.append(TokenFragment(literal=value[position : match.start()]))
            fragments.append(TokenFragment(token=self.lookup_token(match.group(1))))
            position = match.end()
        if position < len(value):
            fragments.append(TokenFragment(literal=value[position:]))
        return TokenizedString(fragments)


# =============================================================================
# Token Helpers
# =============================================================================


class TokenComparison(str, Enum):
    """Result of comparing two possibly-unresolved strings."""

    SAME = "same"
    DIFFERENT = "different"
    ONE_UNRESOLVED = "one_unresolved"
    BOTH_UNRESOLVED = "both_unresolved"


class Token:
    """Static helpers for creating and inspecting tokens."""

    @staticmethod
    def is_unresolved(obj: Any) -> bool:
        """Return True if the value is, or contains, an encoded token."""
        if isinstance(obj, IResolvable):
            return True
        if isinstance(obj, str):
            return bool(STRING_TOKEN_REGEX.search(obj) or LIST_TOKEN_REGEX.search(obj))
        if isinstance(obj, float):
            return _extract_token_double(obj) is not None
        if isinstance(obj, list):
            return (
                len(obj) == 1
                and isinstance(obj[0], str)
                and LIST_TOKEN_REGEX.fullmatch(obj[0]) is not None
            )
        return False

    @staticmethod
    def as_any(value: Any) -> IResolvable:
        """Wrap a value in a resolvable, unless it already is one."""
        if isinstance(value, IResolvable):
            return value
        return Intrinsic(value)

    @staticmethod
    def as_string(value: Any, display_hint: str | None = None) -> str:
        """Return a string that resolves to the given value."""
        if isinstance(value, str):
            return value
        return TokenMap.instance().register_string(Token.as_any(value), display_hint)

    @staticmethod
    def as_number(value: Any) -> float:
        """Return a number that resolves to the given value."""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        return TokenMap.instance().register_number(Token.as_any(value))

    @staticmethod
    def as_list(value: Any, display_hint: str | None = None) -> list[str]:
        """Return a list that resolves to the given value."""
        if isinstance(value, list):
            return value
        return TokenMap.instance().register_list(Token.as_any(value), display_hint)

    @staticmethod
    def compare_strings(a: str, b: str) -> TokenComparison:
        """Compare two strings that may contain tokens."""
        a_unresolved = Token.is_unresolved(a)
        b_unresolved = Token.is_unresolved(b)
        if a_unresolved and b_unresolved:
            return TokenComparison.BOTH_UNRESOLVED
        if a_unresolved or b_unresolved:
            return TokenComparison.ONE_UNRESOLVED
        return TokenComparison.SAME if a == b else TokenComparison.DIFFERENT
