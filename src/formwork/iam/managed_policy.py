"""
Managed IAM policies.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from formwork.core.arn import ArnFormat
from formwork.core.cfn import CfnResource
from formwork.core.construct import Construct
from formwork.core.lazy import Lazy
from formwork.core.resolve import ResolveContext
from formwork.core.resource import Resource
from formwork.core.stack import Stack

from .document import PolicyDocument
from .statement import PolicyStatement

if TYPE_CHECKING:
    from .role import IRole


class IManagedPolicy:
    """Anything with a managed policy ARN."""

    managed_policy_arn: str


class _AwsManagedPolicy(IManagedPolicy):
    def __init__(self, managed_policy_name: str):
        self.managed_policy_name = managed_policy_name

        def produce(context: ResolveContext) -> str:
            return Stack.of(context.scope).format_arn(
                service="iam",
                region="",
                account="aws",
                resource="policy",
                resource_name=managed_policy_name,
            )

        self.managed_policy_arn = Lazy.string(produce, display_hint=managed_policy_name, cache=False)

    def __repr__(self) -> str:
        return f"AwsManagedPolicy({self.managed_policy_name!r})"


class _ImportedManagedPolicy(Resource, IManagedPolicy):
    def __init__(self, scope: Construct, id: str, managed_policy_arn: str):
        super().__init__(scope, id)
        self.managed_policy_arn = managed_policy_arn


class ManagedPolicy(Resource, IManagedPolicy):
    """
    A customer-managed policy, ``AWS::IAM::ManagedPolicy``.

    Args:
        scope: Parent construct
        id: Construct id
        managed_policy_name: Name of the policy; generated when omitted
        description: Policy description
        path: IAM path, defaults to ``/``
        roles: Roles to attach the policy to
        statements: Initial statements
        document: Initial document, instead of an empty one
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        managed_policy_name: str | None = None,
        description: str | None = None,
        path: str | None = None,
        roles: Iterable[IRole] = (),
        statements: Iterable[PolicyStatement] = (),
        document: PolicyDocument | None = None,
    ):
        super().__init__(scope, id, physical_name=managed_policy_name)
        self.document = document or PolicyDocument()
        self.description = description
        self.path = path
        self._roles: list[IRole] = []

        resource = CfnResource(
            self,
            "Resource",
            type="AWS::IAM::ManagedPolicy",
            properties={
                "PolicyDocument": self.document,
                "ManagedPolicyName": managed_policy_name,
                "Description": description,
                "Path": path,
                "Roles": Lazy.list(lambda: [r.role_name for r in self._roles], omit_empty=True),
            },
        )
        self.managed_policy_arn = resource.ref

        for role in roles:
            self.attach_to_role(role)
        self.add_statements(*statements)
        self.node.add_validation(self._validate_policy)

    @staticmethod
    def from_aws_managed_policy_name(managed_policy_name: str) -> IManagedPolicy:
        """Reference a policy managed by the cloud provider, e.g. ``ReadOnlyAccess``."""
        return _AwsManagedPolicy(managed_policy_name)

    @staticmethod
    def from_managed_policy_arn(scope: Construct, id: str, managed_policy_arn: str) -> IManagedPolicy:
        return _ImportedManagedPolicy(scope, id, managed_policy_arn)

    @staticmethod
    def from_managed_policy_name(scope: Construct, id: str, managed_policy_name: str) -> IManagedPolicy:
        """Reference a customer-managed policy in the scope's account."""
        arn = Stack.of(scope).format_arn(
            service="iam",
            region="",
            resource="policy",
            resource_name=managed_policy_name,
            arn_format=ArnFormat.SLASH_RESOURCE_NAME,
        )
        return _ImportedManagedPolicy(scope, id, arn)

    def add_statements(self, *statements: PolicyStatement) -> None:
        self.document.add_statements(*statements)

    def attach_to_role(self, role: IRole) -> None:
        """Attach through this policy's ``Roles`` property."""
        if not any(existing is role for existing in self._roles):
            self._roles.append(role)

    def _validate_policy(self) -> list[str]:
        errors: list[str] = []
        if self.document.is_empty:
            errors.append("Managed Policy is empty. You must add statements to the policy")
        errors.extend(self.document.validate_for_identity_policy())
        return errors
