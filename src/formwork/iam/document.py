"""
IAM policy documents.

A document is a resolvable: it renders when the template is synthesized,
so statements can be added to it until then.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from formwork.core.feature_flags import IAM_MINIMIZE_POLICIES, FeatureFlags
from formwork.core.tokens import IResolvable

from .statement import PolicyStatement

if TYPE_CHECKING:
    from formwork.core.resolve import ResolveContext

logger = logging.getLogger(__name__)

POLICY_VERSION = "2012-10-17"


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value]


def _key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _merged_values(a: Any, b: Any) -> Any:
    values: list[Any] = []
    for value in [*_as_list(a), *_as_list(b)]:
        if value not in values:
            values.append(value)
    if all(isinstance(v, str) for v in values):
        values.sort()
    return values[0] if len(values) == 1 else values


def _try_merge(a: dict[str, Any], b: dict[str, Any]) -> dict[str, Any] | None:
    """Merge two rendered statements that differ only in actions or only in resources."""
    if "Sid" in a or "Sid" in b:
        return None
    if any(key in s for s in (a, b) for key in ("NotAction", "NotResource", "NotPrincipal")):
        return None
    if set(a) != set(b):
        return None

    differing = [key for key in a if _key(a[key]) != _key(b[key])]
    if not differing:
        return dict(a)
    if len(differing) == 1 and differing[0] in ("Action", "Resource"):
        merged = dict(a)
        merged[differing[0]] = _merged_values(a[differing[0]], b[differing[0]])
        return merged
    return None


def merge_statements(statements: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Combine rendered statements until no pair can be merged.

    Statements with a ``Sid`` are left as they are. The first statement of
    a merged pair keeps its position.
    """
    result = list(statements)
    merged_any = True
    while merged_any:
        merged_any = False
        for i in range(len(result)):
            for j in range(i + 1, len(result)):
                merged = _try_merge(result[i], result[j])
                if merged is not None:
                    result[i] = merged
                    del result[j]
                    merged_any = True
                    break
            if merged_any:
                break
    return result


class PolicyDocument(IResolvable):
    """
    A policy document.

    Args:
        statements: Initial statements
        assign_sids: Give every rendered statement a sequential ``Sid``
        minimize: Merge compatible statements. ``None`` follows the
            ``@formwork/iam:minimizePolicies`` feature flag.
    """

    display_hint = "PolicyDocument"

    def __init__(
        self,
        statements: Iterable[PolicyStatement] = (),
        assign_sids: bool = False,
        minimize: bool | None = None,
    ):
        self._statements: list[PolicyStatement] = []
        self.assign_sids = assign_sids
        self.minimize = minimize
        self.add_statements(*statements)

    @staticmethod
    def from_json(obj: dict[str, Any]) -> PolicyDocument:
        statements = obj.get("Statement", [])
        if isinstance(statements, dict):
            statements = [statements]
        return PolicyDocument([PolicyStatement.from_json(s) for s in statements])

    def add_statements(self, *statements: PolicyStatement) -> None:
        self._statements.extend(statements)

    @property
    def statements(self) -> list[PolicyStatement]:
        return list(self._statements)

    @property
    def is_empty(self) -> bool:
        return not self._statements

    @property
    def statement_count(self) -> int:
        return len(self._statements)

    def validate_for_any_policy(self) -> list[str]:
        return [error for s in self._statements for error in s.validate_for_any_policy()]

    def validate_for_resource_policy(self) -> list[str]:
        return [error for s in self._statements for error in s.validate_for_resource_policy()]

    def validate_for_identity_policy(self) -> list[str]:
        return [error for s in self._statements for error in s.validate_for_identity_policy()]

    def resolve(self, context: ResolveContext) -> Any:
        if self.is_empty:
            return None
        for statement in self._statements:
            statement.freeze()

        rendered: list[dict[str, Any]] = []
        seen: set[str] = set()
        for statement in self._statements:
            value = context.resolve(statement.to_statement_json())
            key = _key(value)
            if key not in seen:
                seen.add(key)
                rendered.append(value)

        minimize = self.minimize
        if minimize is None:
            minimize = FeatureFlags.of(context.scope).is_enabled(IAM_MINIMIZE_POLICIES)
        if minimize:
            before = len(rendered)
            rendered = merge_statements(rendered)
            if len(rendered) != before:
                logger.debug("Merged %d policy statements into %d", before, len(rendered))

        if self.assign_sids:
            rendered = [
                {"Sid": str(i), **{k: v for k, v in s.items() if k != "Sid"}}
                for i, s in enumerate(rendered)
            ]
        return {"Version": POLICY_VERSION, "Statement": rendered}

    def to_json(self) -> dict[str, Any]:
        """The document without resolving tokens or merging."""
        return {
            "Version": POLICY_VERSION,
            "Statement": [s.to_statement_json() for s in self._statements],
        }

    def __repr__(self) -> str:
        return f"PolicyDocument({len(self._statements)} statement(s))"
