"""
Feature flags.

Behaviour changes that would alter existing templates are introduced behind
flags. Flags are read from the construct context, so they can be set in
``formwork.toml`` under ``[feature_flags]`` or on any scope.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import ValidationError

if TYPE_CHECKING:
    from .construct import Construct

ENABLE_PARTITION_LITERALS = "@formwork/core:enablePartitionLiterals"
VALIDATE_SNAPSHOT_REMOVAL_POLICY = "@formwork/core:validateSnapshotRemovalPolicy"
IAM_MINIMIZE_POLICIES = "@formwork/iam:minimizePolicies"
INCLUDE_PREFIX_IN_UNIQUE_NAME_GENERATION = "@formwork/core:includePrefixInUniqueNameGeneration"


@dataclass(frozen=True)
class FlagInfo:
    """Description of a feature flag."""

    name: str
    summary: str
    recommended_value: bool
    default_value: bool = False
    introduced_in: str = "0.1.0"


FLAGS: dict[str, FlagInfo] = {
    flag.name: flag
    for flag in [
        FlagInfo(
            name=ENABLE_PARTITION_LITERALS,
            summary="Use a literal partition in ARNs when the stack region is known",
            recommended_value=True,
        ),
        FlagInfo(
            name=VALIDATE_SNAPSHOT_REMOVAL_POLICY,
            summary="Reject the SNAPSHOT removal policy on resources that cannot snapshot",
            recommended_value=True,
        ),
        FlagInfo(
            name=IAM_MINIMIZE_POLICIES,
            summary="Merge IAM policy statements that differ only in actions or resources",
            recommended_value=True,
        ),
        FlagInfo(
            name=INCLUDE_PREFIX_IN_UNIQUE_NAME_GENERATION,
            summary="Keep the stack name prefix when generating unique resource names",
            recommended_value=True,
        ),
    ]
}


def parse_bool(name: str, value: Any) -> bool:
    """
    Read a boolean context value.

    Accepts ``True``/``False`` and the strings ``"true"``/``"false"`` in any
    case, since values from the command line or the environment arrive as text.

    Raises:
        ValidationError: For any other value
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValidationError(f"Context value '{name}' must be a boolean, got {value!r}")


class FeatureFlags:
    """Feature flag lookup for a scope."""

    def __init__(self, scope: Construct):
        self._scope = scope

    @staticmethod
    def of(scope: Construct) -> FeatureFlags:
        return FeatureFlags(scope)

    def is_enabled(self, flag: str) -> bool:
        """
        Return the effective value of a flag.

        Raises:
            ValidationError: If the flag is unknown or its context value is not boolean
        """
        info = FLAGS.get(flag)
        if info is None:
            raise ValidationError(f"Unknown feature flag: {flag}")
        value = self._scope.node.try_get_context(flag)
        if value is None:
            return info.default_value
        return parse_bool(flag, value)


def recommended_flags() -> dict[str, bool]:
    """Every flag at its recommended value."""
    return {name: info.recommended_value for name, info in FLAGS.items()}
