"""
Inline IAM policies attached to roles.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from formwork.core.cfn import CfnResource
from formwork.core.construct import Construct
from formwork.core.lazy import Lazy
from formwork.core.resolve import ResolveContext
from formwork.core.resource import Resource

from .document import PolicyDocument
from .statement import PolicyStatement

if TYPE_CHECKING:
    from .role import IRole

MAX_POLICY_NAME_LENGTH = 128


class _CfnPolicy(CfnResource):
    """``AWS::IAM::Policy``, rendered only while the policy has something to say."""

    def __init__(self, policy: Policy, id: str, properties: dict[str, Any]):
        super().__init__(policy, id, type="AWS::IAM::Policy", properties=properties)
        self._policy = policy

    def _should_synthesize(self) -> bool:
        policy = self._policy
        return (
            policy.force
            or policy.referenced
            or (not policy.document.is_empty and policy.is_attached)
        )


class Policy(Resource):
    """
    An inline policy, attached to one or more roles.

    A policy with no statements, or attached to nothing, is left out of
    the template unless ``force`` is set or its name has been referenced.

    Args:
        scope: Parent construct
        id: Construct id
        policy_name: Name of the policy. Defaults to the last 128
            characters of its logical id.
        roles: Roles to attach to
        statements: Initial statements
        document: Initial document, instead of an empty one
        force: Always render the policy, and fail validation when it is empty
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        policy_name: str | None = None,
        roles: Iterable[IRole] = (),
        statements: Iterable[PolicyStatement] = (),
        document: PolicyDocument | None = None,
        force: bool = False,
    ):
        super().__init__(scope, id, physical_name=policy_name)
        self.document = document or PolicyDocument()
        self.force = force
        self.referenced = False
        self._roles: list[IRole] = []

        self._resource = _CfnPolicy(
            self,
            "Resource",
            properties={
                "PolicyDocument": self.document,
                "PolicyName": policy_name or Lazy.string(self._generate_name),
                "Roles": Lazy.list(lambda: [r.role_name for r in self._roles], omit_empty=True),
            },
        )
        self._policy_name = self._resource.cfn_properties["PolicyName"]

        for role in roles:
            self.attach_to_role(role)
        self.add_statements(*statements)
        self.node.add_validation(self._validate_policy)

    def _generate_name(self, context: ResolveContext) -> str:
        logical_id = context.resolve(self._resource.logical_id)
        return logical_id[-MAX_POLICY_NAME_LENGTH:]

    @property
    def policy_name(self) -> str:
        """The policy name. Reading it forces the policy into the template."""
        self.referenced = True
        return self._policy_name

    @property
    def roles(self) -> list[IRole]:
        return list(self._roles)

    @property
    def is_attached(self) -> bool:
        return bool(self._roles)

    def add_statements(self, *statements: PolicyStatement) -> None:
        self.document.add_statements(*statements)

    def attach_to_role(self, role: IRole) -> None:
        if any(existing is role for existing in self._roles):
            return
        self._roles.append(role)
        role.attach_inline_policy(self)

    def _validate_policy(self) -> list[str]:
        errors: list[str] = []
        if self.document.is_empty:
            if self.force:
                errors.append(
                    "Policy created with force=True is empty. You must add statements to the policy"
                )
            elif self.referenced:
                errors.append(
                    "This Policy has been referenced by a resource, so it must contain at least one statement."
                )
        if not self.is_attached:
            if self.force:
                errors.append(
                    "Policy created with force=True must be attached to at least one principal: role"
                )
            elif self.referenced:
                errors.append(
                    "This Policy has been referenced by a resource, so it must be attached to at least one role."
                )
        errors.extend(self.document.validate_for_identity_policy())
        return errors
