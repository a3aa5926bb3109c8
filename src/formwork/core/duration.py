"""
Durations of time, for properties such as timeouts and session lengths.
"""

from __future__ import annotations

import math
import re
from enum import Enum
from functools import total_ordering
from typing import Any

from .errors import ValidationError
from .tokens import Token


class TimeUnit(Enum):
    """Units of time with their length in milliseconds."""

    MILLISECONDS = ("millis", "ms", 1)
    SECONDS = ("seconds", "s", 1000)
    MINUTES = ("minutes", "m", 60_000)
    HOURS = ("hours", "h", 3_600_000)
    DAYS = ("days", "d", 86_400_000)

    def __init__(self, label: str, iso_label: str, in_millis: int):
        self.label = label
        self.iso_label = iso_label
        self.in_millis = in_millis


_ISO_DURATION = re.compile(
    r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
)


def _convert(amount: float, from_unit: TimeUnit, to_unit: TimeUnit, integral: bool) -> float:
    if from_unit is to_unit:
        return amount
    value = amount * from_unit.in_millis / to_unit.in_millis
    if integral and not float(value).is_integer():
        raise ValidationError(
            f"'{amount} {from_unit.label}' cannot be converted into a whole number "
            f"of {to_unit.label}."
        )
    return int(value) if integral else value


@total_ordering
class Duration:
    """
    A length of time.

    Amounts may be number tokens, in which case the duration can only be
    read back in its own unit.
    """

    def __init__(self, amount: float, unit: TimeUnit):
        if not Token.is_unresolved(amount) and amount < 0:
            raise ValidationError(
                f"Duration amounts cannot be negative. Received: {amount}"
            )
        self.amount = amount
        self.unit = unit

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @staticmethod
    def millis(amount: float) -> Duration:
        return Duration(amount, TimeUnit.MILLISECONDS)

    @staticmethod
    def seconds(amount: float) -> Duration:
        return Duration(amount, TimeUnit.SECONDS)

    @staticmethod
    def minutes(amount: float) -> Duration:
        return Duration(amount, TimeUnit.MINUTES)

    @staticmethod
    def hours(amount: float) -> Duration:
        return Duration(amount, TimeUnit.HOURS)

    @staticmethod
    def days(amount: float) -> Duration:
        return Duration(amount, TimeUnit.DAYS)

    @staticmethod
    def parse(duration: str) -> Duration:
        """
        Parse an ISO 8601 duration such as ``PT1H30M`` or ``P1DT2H``.

        Raises:
            ValidationError: If the string is not a supported ISO 8601 duration
        """
        match = _ISO_DURATION.match(duration)
        # Days come before the T, time parts after it; a bare T is invalid.
        if match is None or duration.endswith("T") or not any(match.groups()):
            raise ValidationError(f"Not a valid ISO duration: {duration}")
        days, hours, minutes, seconds = match.groups()
        total = (
            int(days or 0) * TimeUnit.DAYS.in_millis
            + int(hours or 0) * TimeUnit.HOURS.in_millis
            + int(minutes or 0) * TimeUnit.MINUTES.in_millis
            + float(seconds or 0) * TimeUnit.SECONDS.in_millis
        )
        return Duration.millis(int(total) if float(total).is_integer() else total)

    # -------------------------------------------------------------------------
    # Conversions
    # -------------------------------------------------------------------------

    def _to(self, unit: TimeUnit, integral: bool) -> float:
        if Token.is_unresolved(self.amount):
            if unit is not self.unit:
                raise ValidationError(
                    f"Duration must be specified as 'Duration.{unit.label}()' here since its "
                    f"value comes from a token and cannot be converted "
                    f"(got Duration.{self.unit.label})"
                )
            return self.amount
        return _convert(self.amount, self.unit, unit, integral)

    def to_milliseconds(self, integral: bool = True) -> float:
        return self._to(TimeUnit.MILLISECONDS, integral)

    def to_seconds(self, integral: bool = True) -> float:
        return self._to(TimeUnit.SECONDS, integral)

    def to_minutes(self, integral: bool = True) -> float:
        return self._to(TimeUnit.MINUTES, integral)

    def to_hours(self, integral: bool = True) -> float:
        return self._to(TimeUnit.HOURS, integral)

    def to_days(self, integral: bool = True) -> float:
        return self._to(TimeUnit.DAYS, integral)

    def _components(self) -> list[tuple[int, TimeUnit]]:
        millis = self.to_milliseconds(integral=False)
        parts: list[tuple[int, TimeUnit]] = []
        for unit in (TimeUnit.DAYS, TimeUnit.HOURS, TimeUnit.MINUTES, TimeUnit.SECONDS):
            count = math.floor(millis / unit.in_millis)
            if count:
                parts.append((count, unit))
                millis -= count * unit.in_millis
        if millis:
            parts.append((int(millis) if float(millis).is_integer() else millis, TimeUnit.MILLISECONDS))
        return parts

    def to_iso_string(self) -> str:
        """Render as an ISO 8601 duration, e.g. ``PT1H30M``."""
        if self.amount == 0:
            return "PT0S"
        days = ""
        time = ""
        seconds_millis = 0.0
        for count, unit in self._components():
            if unit is TimeUnit.DAYS:
                days = f"{count}D"
            elif unit in (TimeUnit.SECONDS, TimeUnit.MILLISECONDS):
                seconds_millis += count * unit.in_millis
            else:
                time += f"{count}{unit.iso_label.upper()}"
        if seconds_millis:
            seconds = seconds_millis / 1000
            time += f"{int(seconds) if seconds.is_integer() else seconds}S"
        return "P" + days + ("T" + time if time else "")

    def to_human_string(self) -> str:
        """Render as e.g. ``1 hour 30 minutes``."""
        if self.amount == 0:
            return f"0 {self.unit.label}"
        if Token.is_unresolved(self.amount):
            return f"<token> {self.unit.label}"
        words = []
        for count, unit in self._components():
            label = unit.label
            if unit is TimeUnit.MILLISECONDS:
                label = "millis"
            elif count == 1:
                label = label[:-1]
            words.append(f"{count} {label}")
        return " ".join(words)

    # -------------------------------------------------------------------------
    # Arithmetic and comparison
    # -------------------------------------------------------------------------

    def _finest_unit(self, other: Duration) -> TimeUnit:
        return self.unit if self.unit.in_millis <= other.unit.in_millis else other.unit

    def plus(self, other: Duration) -> Duration:
        unit = self._finest_unit(other)
        total = _convert(self.amount, self.unit, unit, False) + _convert(
            other.amount, other.unit, unit, False
        )
        return Duration(total, unit)

    def minus(self, other: Duration) -> Duration:
        unit = self._finest_unit(other)
        total = _convert(self.amount, self.unit, unit, False) - _convert(
            other.amount, other.unit, unit, False
        )
        return Duration(total, unit)

    def is_unresolved(self) -> bool:
        return Token.is_unresolved(self.amount)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.to_milliseconds(integral=False) == other.to_milliseconds(integral=False)

    def __lt__(self, other: Duration) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.to_milliseconds(integral=False) < other.to_milliseconds(integral=False)

    def __hash__(self) -> int:
        return hash(self.to_milliseconds(integral=False))

    def __repr__(self) -> str:
        return f"Duration({self.amount} {self.unit.label})"
