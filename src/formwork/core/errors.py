"""
Error types for construct definition, token resolution, and synthesis.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional


class FormworkError(Exception):
    """Base exception for all formwork errors."""

    def __init__(self, message: str, context: Optional["ErrorContext"] = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            return f"{self.context.format()} {self.message}"
        return self.message


class ValidationError(FormworkError):
    """
    Raised when a construct or a combination of inputs is invalid.

    Examples:
    - Construct ids containing the path separator
    - Malformed ARNs or IAM actions
    - Deferred node validations failing at synthesis time
    """

    pass


class SynthesisError(FormworkError):
    """
    Raised when the construct tree cannot be synthesized.

    Examples:
    - Two elements claiming the same logical id
    - Aspects that keep adding constructs forever
    - Children added while the tree is locked
    """

    pass


class DependencyCycleError(SynthesisError):
    """
    Raised when stacks, or resources within one template, depend on each other.

    Attributes:
        cycle: Names along the cycle, first name repeated at the end
    """

    def __init__(
        self,
        message: str,
        cycle: list[str] | None = None,
        context: Optional["ErrorContext"] = None,
    ):
        self.cycle = cycle or []
        super().__init__(message, context)


class TokenResolutionError(SynthesisError):
    """
    Raised when a token cannot be resolved.

    Examples:
    - A lazy value whose producer depends on itself
    - A list token concatenated into a string
    - An object that has no template representation
    """

    pass


@dataclass
class ErrorContext:
    """
    Location of an error in the construct tree.

    Attributes:
        path: Construct path where the error occurred
        construct_type: Optional class name of the construct
    """

    path: str
    construct_type: str | None = None

    def format(self) -> str:
        """
        Format error context as a human-readable prefix.

        Returns:
            Formatted string like: "[MyStack/Bucket/Resource]"
        """
        if self.construct_type:
            return f"[{self.path or '<root>'} ({self.construct_type})]"
        return f"[{self.path or '<root>'}]"


def make_validation_error(errors: Iterable[tuple[str, str]]) -> ValidationError:
    """
    Combine deferred validation failures into a single error.

    Args:
        errors: (construct path, message) pairs in tree order

    Returns:
        ValidationError listing every failure
    """
    lines = [f"  - {ErrorContext(path).format()} {message}" for path, message in errors]
    count = len(lines)
    noun = "error" if count == 1 else "errors"
    return ValidationError(f"Validation failed with the following {noun}:\n" + "\n".join(lines))
