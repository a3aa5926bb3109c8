"""
IAM roles: defined, imported and immutable.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from collections.abc import Iterable
from typing import Any

from formwork.core.arn import Arn
from formwork.core.cfn import CfnResource
from formwork.core.construct import Construct, Dependable, DependencyGroup
from formwork.core.duration import Duration
from formwork.core.errors import ValidationError
from formwork.core.lazy import Lazy
from formwork.core.resource import Resource
from formwork.core.stack import Stack
from formwork.core.tags import TagType
from formwork.core.tokens import Token, TokenComparison

from .document import PolicyDocument
from .grant import Grant
from .managed_policy import IManagedPolicy
from .policy import Policy
from .principals import (
    AddToPrincipalPolicyResult,
    ArnPrincipal,
    IPrincipal,
    PrincipalBase,
    PrincipalPolicyFragment,
    ServicePrincipal,
)
from .statement import PolicyStatement

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 1000
MIN_SESSION_SECONDS = 3600
MAX_SESSION_SECONDS = 43200


class IRole(IPrincipal):
    """A role: a principal with an ARN and a name that policies attach to."""

    role_arn: str
    role_name: str

    @abstractmethod
    def attach_inline_policy(self, policy: Policy) -> None: ...

    @abstractmethod
    def add_managed_policy(self, policy: IManagedPolicy) -> None: ...

    def add_to_policy(self, statement: PolicyStatement) -> bool:
        return self.add_to_principal_policy(statement).statement_added

    def grant(self, grantee: IPrincipal, *actions: str) -> Grant:
        """Let ``grantee`` perform ``actions`` on this role."""
        return Grant.add_to_principal(grantee, actions, [self.role_arn])

    def grant_pass_role(self, grantee: IPrincipal) -> Grant:
        return self.grant(grantee, "iam:PassRole")

    def grant_assume_role(self, grantee: IPrincipal) -> Grant:
        """
        Raises:
            ValidationError: For service principals, which must be named in the
                trust policy instead
        """
        if isinstance(grantee, ServicePrincipal):
            raise ValidationError(
                "Cannot use a service principal with grant_assume_role, "
                "use assumed_by instead."
            )
        return self.grant(grantee, "sts:AssumeRole")

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        return ArnPrincipal(self.role_arn).policy_fragment


def _create_assume_role_policy(
    principal: IPrincipal, external_ids: list[str]
) -> PolicyDocument:
    document = PolicyDocument()
    if isinstance(principal, PrincipalBase):
        principal.add_to_assume_role_policy(document)
    else:
        document.add_statements(
            PolicyStatement(actions=[principal.assume_role_action], principals=[principal])
        )
    if external_ids:
        for statement in document.statements:
            statement.add_condition(
                "StringEquals",
                {"sts:ExternalId": external_ids[0] if len(external_ids) == 1 else external_ids},
            )
    return document


class Role(Resource, IRole):
    """
    An IAM role, ``AWS::IAM::Role``.

    Args:
        scope: Parent construct
        id: Construct id
        assumed_by: Principal allowed to assume the role
        role_name: Role name; the deployment engine picks one when omitted
        managed_policies: Managed policies to attach
        inline_policies: Named policy documents embedded in the role
        path: IAM path
        description: Up to 1000 characters
        max_session_duration: Between 1 and 12 hours
        permissions_boundary: Managed policy used as permissions boundary
        external_ids: Values required in ``sts:ExternalId`` to assume the role
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        assumed_by: IPrincipal,
        role_name: str | None = None,
        managed_policies: Iterable[IManagedPolicy] = (),
        inline_policies: dict[str, PolicyDocument] | None = None,
        path: str | None = None,
        description: str | None = None,
        max_session_duration: Duration | None = None,
        permissions_boundary: IManagedPolicy | None = None,
        external_ids: Iterable[str] = (),
    ):
        super().__init__(scope, id, physical_name=role_name)

        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Role description must be no longer than {MAX_DESCRIPTION_LENGTH} "
                f"characters, got {len(description)}"
            )

        max_session_seconds = None
        if max_session_duration is not None:
            max_session_seconds = max_session_duration.to_seconds()
            if not Token.is_unresolved(max_session_seconds) and not (
                MIN_SESSION_SECONDS <= max_session_seconds <= MAX_SESSION_SECONDS
            ):
                raise ValidationError(
                    f"max_session_duration is set to {max_session_seconds:g}, but must be >= "
                    f"{MIN_SESSION_SECONDS}sec (1hr) and <= {MAX_SESSION_SECONDS}sec (12hrs)"
                )

        self.assumed_by = assumed_by
        self.assume_role_action = assumed_by.assume_role_action
        self.assume_role_policy = _create_assume_role_policy(assumed_by, list(external_ids))
        self.managed_policies: list[IManagedPolicy] = []
        self.permissions_boundary = permissions_boundary
        self._inline_policies = dict(inline_policies or {})
        self._attached_policies: list[Policy] = []
        self._default_policy: Policy | None = None
        self._immutable_role: ImmutableRole | None = None

        for policy in managed_policies:
            self.add_managed_policy(policy)

        resource = CfnResource(
            self,
            "Resource",
            type="AWS::IAM::Role",
            properties={
                "AssumeRolePolicyDocument": self.assume_role_policy,
                "ManagedPolicyArns": Lazy.list(
                    lambda: [p.managed_policy_arn for p in self.managed_policies],
                    omit_empty=True,
                ),
                "Policies": Lazy.any(self._render_inline_policies, omit_empty_array=True),
                "Path": path,
                "PermissionsBoundary": (
                    permissions_boundary.managed_policy_arn if permissions_boundary else None
                ),
                "RoleName": self.physical_name,
                "MaxSessionDuration": max_session_seconds,
                "Description": description,
            },
            tag_format=TagType.STANDARD,
        )
        self.role_id = resource.get_att("RoleId")
        self.role_arn = resource.get_att("Arn")
        self.role_name = resource.ref

        self.node.add_validation(self._validate_role)

    @property
    def principal_account(self) -> str | None:
        return self.env.account

    def _render_inline_policies(self) -> list[dict[str, Any]]:
        return [
            {"PolicyName": name, "PolicyDocument": document}
            for name, document in self._inline_policies.items()
        ]

    @property
    def default_policy(self) -> Policy | None:
        return self._default_policy

    def add_to_principal_policy(self, statement: PolicyStatement) -> AddToPrincipalPolicyResult:
        """Add a statement to the role's default policy, creating it on first use."""
        if self._default_policy is None:
            self._default_policy = Policy(self, "DefaultPolicy")
            self.attach_inline_policy(self._default_policy)
        self._default_policy.add_statements(statement)
        return AddToPrincipalPolicyResult(
            statement_added=True, policy_dependable=self._default_policy
        )

    def attach_inline_policy(self, policy: Policy) -> None:
        if any(existing is policy for existing in self._attached_policies):
            return
        self._attached_policies.append(policy)
        policy.attach_to_role(self)

    def add_managed_policy(self, policy: IManagedPolicy) -> None:
        if any(existing is policy for existing in self.managed_policies):
            return
        self.managed_policies.append(policy)

    def without_policy_updates(self, add_grants_to_resources: bool = False) -> ImmutableRole:
        """Return a wrapper of this role that ignores policy changes."""
        if self._immutable_role is None:
            self._immutable_role = ImmutableRole(
                self.node.scope,
                f"ImmutableRole{self.node.id}",
                self,
                add_grants_to_resources,
            )
        return self._immutable_role

    def _validate_role(self) -> list[str]:
        errors = self.assume_role_policy.validate_for_resource_policy()
        for document in self._inline_policies.values():
            errors.extend(document.validate_for_identity_policy())
        return errors

    # -------------------------------------------------------------------------
    # Imports
    # -------------------------------------------------------------------------

    @staticmethod
    def from_role_arn(
        scope: Construct,
        id: str,
        role_arn: str,
        mutable: bool = True,
        add_grants_to_resources: bool = False,
        default_policy_name: str | None = None,
    ) -> IRole:
        """
        Reference a role defined elsewhere.

        With ``mutable=False`` the result ignores every attempt to change
        the role's policies.
        """
        imported = _ImportedRole(scope, id, role_arn, default_policy_name)
        if mutable:
            return imported
        return ImmutableRole(scope, f"ImmutableRole{id}", imported, add_grants_to_resources)

    @staticmethod
    def from_role_name(
        scope: Construct,
        id: str,
        role_name: str,
        mutable: bool = True,
        add_grants_to_resources: bool = False,
        default_policy_name: str | None = None,
    ) -> IRole:
        """Reference a role in the scope's account by name."""
        role_arn = Stack.of(scope).format_arn(
            service="iam", region="", resource="role", resource_name=role_name
        )
        return Role.from_role_arn(
            scope, id, role_arn, mutable, add_grants_to_resources, default_policy_name
        )


class _ImportedRole(Resource, IRole):
    """A role defined outside this app, identified by ARN."""

    def __init__(
        self,
        scope: Construct,
        id: str,
        role_arn: str,
        default_policy_name: str | None = None,
    ):
        super().__init__(scope, id, environment_from_arn=role_arn)
        self.role_arn = role_arn
        resource_name = Arn.extract_resource_name(role_arn, "role")
        # Role paths are part of the ARN but not of the name.
        self.role_name = (
            resource_name if Token.is_unresolved(resource_name) else resource_name.split("/")[-1]
        )
        self.assume_role_action = "sts:AssumeRole"
        self._default_policy_name = default_policy_name
        self._default_policy: Policy | None = None
        self._attached_policies: list[Policy] = []

    @property
    def principal_account(self) -> str | None:
        return self.env.account

    def add_to_principal_policy(self, statement: PolicyStatement) -> AddToPrincipalPolicyResult:
        if self._default_policy is None:
            self._default_policy = Policy(self, "Policy", policy_name=self._default_policy_name)
            self.attach_inline_policy(self._default_policy)
        self._default_policy.add_statements(statement)
        return AddToPrincipalPolicyResult(
            statement_added=True, policy_dependable=self._default_policy
        )

    def attach_inline_policy(self, policy: Policy) -> None:
        comparison = Token.compare_strings(self.env.account, policy.env.account)
        if comparison == TokenComparison.DIFFERENT:
            logger.debug(
                "Not attaching %s to imported role %s: different account",
                policy.node.path,
                self.node.path,
            )
            return
        if any(existing is policy for existing in self._attached_policies):
            return
        self._attached_policies.append(policy)
        policy.attach_to_role(self)

    def add_managed_policy(self, policy: IManagedPolicy) -> None:
        logger.debug(
            "Ignoring managed policy added to imported role %s", self.node.path
        )


class ImmutableRole(Resource, IRole):
    """
    Wraps a role and ignores every change to its policies.

    Grants on other resources still see the wrapped role's identity, so
    resource policies can name it. ``add_grants_to_resources`` decides
    whether identity-policy grants report success (and so are dropped) or
    fail (and so fall back to the resource policy).
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        role: IRole,
        add_grants_to_resources: bool = False,
    ):
        account = role.env.account if isinstance(role, Resource) else None
        region = role.env.region if isinstance(role, Resource) else None
        super().__init__(scope, id, account=account, region=region)
        self.role = role
        self.add_grants_to_resources = add_grants_to_resources
        if isinstance(role, Construct):
            self.stack = Stack.of(role)
            self.node.default_child = role.node.default_child
        self.role_arn = role.role_arn
        self.role_name = role.role_name
        self.assume_role_action = role.assume_role_action
        Dependable.implement(self, [role])

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        return self.role.policy_fragment

    @property
    def principal_account(self) -> str | None:
        return self.role.principal_account

    def attach_inline_policy(self, policy: Policy) -> None:
        pass

    def add_managed_policy(self, policy: IManagedPolicy) -> None:
        pass

    def add_to_principal_policy(self, statement: PolicyStatement) -> AddToPrincipalPolicyResult:
        # Reporting success drops the statement; reporting failure sends
        # grants to the resource policy instead.
        return AddToPrincipalPolicyResult(
            statement_added=not self.add_grants_to_resources,
            policy_dependable=DependencyGroup(),
        )

    def grant(self, grantee: IPrincipal, *actions: str) -> Grant:
        return self.role.grant(grantee, *actions)

    def grant_pass_role(self, grantee: IPrincipal) -> Grant:
        return self.role.grant_pass_role(grantee)

    def grant_assume_role(self, grantee: IPrincipal) -> Grant:
        return self.role.grant_assume_role(grantee)
