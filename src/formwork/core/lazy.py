"""
Lazily produced values.

A lazy value wraps a producer function that is only called when the value
is resolved. This allows constructs to expose values such as logical ids or
lists of attached policies that are not final until synthesis.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

from .errors import TokenResolutionError
from .resolve import ResolveContext
from .tokens import IResolvable, Token

_UNSET = object()

Producer = Callable[..., Any]


def _call_producer(producer: Producer, context: ResolveContext) -> Any:
    try:
        parameters = inspect.signature(producer).parameters
    except (TypeError, ValueError):
        return producer(context)
    if not parameters:
        return producer()
    return producer(context)


class LazyBase(IResolvable):
    """
    Resolvable backed by a producer function.

    Cached lazies call the producer once outside of the prepare phase and
    reuse the value afterwards.
    """

    def __init__(self, producer: Producer, cache: bool = True, display_hint: str | None = None):
        if not callable(producer):
            raise TypeError(f"Lazy producer must be callable, got {type(producer).__name__}")
        self._producer = producer
        self._cache = cache
        self._cached: Any = _UNSET
        self._producing = False
        self.display_hint = display_hint

    def resolve(self, context: ResolveContext) -> Any:
        if self._cached is not _UNSET:
            return self._cached
        if self._producing:
            raise TokenResolutionError(
                f"Cycle detected: lazy value '{self.display_hint or 'Lazy'}' depends on itself"
            )
        self._producing = True
        try:
            value = self._produce(context)
        finally:
            self._producing = False
        if self._cache and not context.preparing:
            self._cached = value
        return value

    def _produce(self, context: ResolveContext) -> Any:
        return _call_producer(self._producer, context)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.display_hint or ''})"


class LazyList(LazyBase):
    """Lazy value that becomes ``None`` when empty and ``omit_empty`` is set."""

    def __init__(
        self,
        producer: Producer,
        cache: bool = True,
        display_hint: str | None = None,
        omit_empty: bool = False,
    ):
        super().__init__(producer, cache=cache, display_hint=display_hint)
        self._omit_empty = omit_empty

    def _produce(self, context: ResolveContext) -> Any:
        value = super()._produce(context)
        if self._omit_empty and isinstance(value, list) and not value:
            return None
        return value


class Lazy:
    """Factory for lazily produced strings, numbers, lists and objects."""

    @staticmethod
    def string(producer: Producer, display_hint: str | None = None, cache: bool = True) -> str:
        """Return a string token produced at resolution time."""
        return Token.as_string(LazyBase(producer, cache, display_hint), display_hint)

    @staticmethod
    def number(producer: Producer, cache: bool = True) -> float:
        """Return a number token produced at resolution time."""
        return Token.as_number(LazyBase(producer, cache))

    @staticmethod
    def list(
        producer: Producer,
        display_hint: str | None = None,
        omit_empty: bool = False,
        cache: bool = True,
    ) -> list[str]:
        """Return a list token produced at resolution time."""
        return Token.as_list(LazyList(producer, cache, display_hint, omit_empty), display_hint)

    @staticmethod
    def any(
        producer: Producer,
        display_hint: str | None = None,
        omit_empty_array: bool = False,
        cache: bool = True,
    ) -> IResolvable:
        """Return a resolvable for any value produced at resolution time."""
        return LazyList(producer, cache, display_hint, omit_empty_array)
