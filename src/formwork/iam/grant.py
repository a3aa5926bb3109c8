"""
Grants: the result of giving a principal permissions on a resource.

A permission can land in the principal's identity policy, in the
resource's resource policy, or both. ``Grant`` records where it went and
lets constructs depend on the policies that carry it.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Protocol

from formwork.core.construct import Construct, Dependable, DependencyGroup
from formwork.core.errors import ValidationError

from .principals import AddToPrincipalPolicyResult, IPrincipal
from .statement import PolicyStatement


class IResourceWithPolicy(Protocol):
    """A resource with a resource policy."""

    def add_to_resource_policy(self, statement: PolicyStatement) -> AddToPrincipalPolicyResult: ...


class Grant:
    """
    Result of a grant.

    Use the static constructors rather than building a Grant directly.
    """

    def __init__(
        self,
        grantee: IPrincipal,
        actions: Sequence[str] = (),
        resource_arns: Sequence[str] = (),
        principal_statements: Iterable[PolicyStatement] = (),
        resource_statements: Iterable[PolicyStatement] = (),
        policy_dependables: Iterable[Any] = (),
    ):
        self.grantee = grantee
        self.actions = list(actions)
        self.resource_arns = list(resource_arns)
        self.principal_statements = list(principal_statements)
        self.resource_statements = list(resource_statements)
        self._dependables = DependencyGroup(*policy_dependables)
        Dependable.implement(self, [self._dependables])

    @staticmethod
    def add_to_principal(
        grantee: IPrincipal,
        actions: Sequence[str],
        resource_arns: Sequence[str],
        conditions: dict[str, Any] | None = None,
    ) -> Grant:
        """
        Add a statement to the grantee's identity policy.

        The grant is unsuccessful when the grantee has no policy of its own.

        Raises:
            ValidationError: If the principal claims it added the statement
                but offers nothing to depend on
        """
        statement = PolicyStatement(
            actions=actions, resources=resource_arns, conditions=conditions
        )
        result = grantee.grant_principal.add_to_principal_policy(statement)
        if not result.statement_added:
            return Grant(grantee, actions, resource_arns)
        if result.policy_dependable is None:
            raise ValidationError(
                "Contract violation: when Principal returns statement_added=True, "
                "it should return a dependable"
            )
        return Grant(
            grantee,
            actions,
            resource_arns,
            principal_statements=[statement],
            policy_dependables=[result.policy_dependable],
        )

    @staticmethod
    def add_to_principal_or_resource(
        grantee: IPrincipal,
        actions: Sequence[str],
        resource_arns: Sequence[str],
        resource: IResourceWithPolicy,
        resource_self_arns: Sequence[str] | None = None,
        conditions: dict[str, Any] | None = None,
    ) -> Grant:
        """Try the identity policy first, falling back to the resource policy."""
        grant = Grant.add_to_principal(grantee, actions, resource_arns, conditions)
        if grant.success:
            return grant

        statement = PolicyStatement(
            actions=actions,
            resources=resource_self_arns or ["*"],
            principals=[grantee.grant_principal],
            conditions=conditions,
        )
        result = resource.add_to_resource_policy(statement)
        if not result.statement_added:
            return Grant(grantee, actions, resource_arns)
        return Grant(
            grantee,
            actions,
            resource_arns,
            resource_statements=[statement],
            policy_dependables=[result.policy_dependable] if result.policy_dependable else [],
        )

    @staticmethod
    def add_to_principal_and_resource(
        grantee: IPrincipal,
        actions: Sequence[str],
        resource_arns: Sequence[str],
        resource: IResourceWithPolicy,
        resource_policy_principal: IPrincipal | None = None,
        resource_self_arns: Sequence[str] | None = None,
        conditions: dict[str, Any] | None = None,
    ) -> Grant:
        """Add the permission to both the identity and the resource policy."""
        grant = Grant.add_to_principal(grantee, actions, resource_arns, conditions)

        statement = PolicyStatement(
            actions=actions,
            resources=resource_self_arns or resource_arns,
            principals=[resource_policy_principal or grantee.grant_principal],
            conditions=conditions,
        )
        result = resource.add_to_resource_policy(statement)
        resource_grant = Grant(
            grantee,
            actions,
            resource_arns,
            resource_statements=[statement] if result.statement_added else [],
            policy_dependables=[result.policy_dependable] if result.policy_dependable else [],
        )
        return grant.combine(resource_grant)

    @staticmethod
    def drop(grantee: IPrincipal, intent: str) -> Grant:
        """A grant that deliberately adds nothing, e.g. for imported resources."""
        return Grant(grantee)

    @property
    def success(self) -> bool:
        return bool(self.principal_statements or self.resource_statements)

    @property
    def principal_statement(self) -> PolicyStatement | None:
        return self.principal_statements[0] if self.principal_statements else None

    @property
    def resource_statement(self) -> PolicyStatement | None:
        return self.resource_statements[0] if self.resource_statements else None

    def assert_success(self) -> None:
        """
        Raises:
            ValidationError: If the permission was added nowhere
        """
        if not self.success:
            raise ValidationError(
                f"Permissions for '{self.grantee!r}' to call "
                f"'{', '.join(self.actions)}' on '{', '.join(map(str, self.resource_arns))}' "
                f"could not be added on either identity or resource policy."
            )

    def apply_before(self, *constructs: Construct) -> None:
        """Make ``constructs`` depend on the policies that carry this grant."""
        for construct in constructs:
            construct.node.add_dependency(self)

    def combine(self, other: Grant) -> Grant:
        return Grant(
            self.grantee,
            self.actions,
            self.resource_arns,
            principal_statements=[*self.principal_statements, *other.principal_statements],
            resource_statements=[*self.resource_statements, *other.resource_statements],
            policy_dependables=[self._dependables, other._dependables],
        )
