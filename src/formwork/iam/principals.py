"""
IAM principals: the identities a policy statement can name.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from formwork.core.errors import ValidationError
from formwork.core.intrinsics import Aws
from formwork.core.tokens import Token

from .statement import PolicyStatement, merge_principals

if TYPE_CHECKING:
    from .document import PolicyDocument


@dataclass
class PrincipalPolicyFragment:
    """The ``Principal`` JSON of a principal plus the conditions it requires."""

    principal_json: dict[str, list[str]]
    conditions: dict[str, Any] = field(default_factory=dict)


@dataclass
class AddToPrincipalPolicyResult:
    """Outcome of adding a statement to a principal's own policy."""

    statement_added: bool
    policy_dependable: Any = None


class IPrincipal(ABC):
    """Something that can be named in a policy statement."""

    assume_role_action: str = "sts:AssumeRole"

    @property
    @abstractmethod
    def policy_fragment(self) -> PrincipalPolicyFragment: ...

    @property
    def grant_principal(self) -> IPrincipal:
        return self

    @property
    def principal_account(self) -> str | None:
        return None

    @abstractmethod
    def add_to_principal_policy(self, statement: PolicyStatement) -> AddToPrincipalPolicyResult: ...


class PrincipalBase(IPrincipal):
    """
    Base for principals that have no policy of their own.

    Statements added to them are not stored anywhere, so
    ``add_to_principal_policy`` always reports ``statement_added=False``.
    """

    def add_to_principal_policy(self, statement: PolicyStatement) -> AddToPrincipalPolicyResult:
        return AddToPrincipalPolicyResult(statement_added=False)

    def add_to_policy(self, statement: PolicyStatement) -> bool:
        return self.add_to_principal_policy(statement).statement_added

    def add_to_assume_role_policy(self, document: PolicyDocument) -> None:
        """Add a statement allowing this principal to assume a role."""
        document.add_statements(
            PolicyStatement(actions=[self.assume_role_action], principals=[self])
        )

    def with_conditions(self, conditions: dict[str, Any]) -> PrincipalWithConditions:
        return PrincipalWithConditions(self, conditions)

    def dedupe_string(self) -> str:
        fragment = self.policy_fragment
        return json.dumps(
            {"principal": fragment.principal_json, "conditions": fragment.conditions},
            sort_keys=True,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.policy_fragment.principal_json!r})"


class ArnPrincipal(PrincipalBase):
    """A principal identified by ARN."""

    def __init__(self, arn: str):
        self.arn = arn

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        return PrincipalPolicyFragment({"AWS": [self.arn]})

    @property
    def principal_account(self) -> str | None:
        if Token.is_unresolved(self.arn) or not self.arn.startswith("arn:"):
            return None
        parts = self.arn.split(":")
        return parts[4] if len(parts) > 4 and parts[4] else None


class AccountPrincipal(ArnPrincipal):
    """The root user of an account."""

    def __init__(self, account_id: Any):
        if not isinstance(account_id, str):
            raise ValidationError(
                f"AccountPrincipal expects a string account id, got {type(account_id).__name__}"
            )
        if not Token.is_unresolved(account_id) and not account_id.isdigit():
            raise ValidationError(f"Account id must be a 12-digit string, got '{account_id}'")
        super().__init__(f"arn:{Aws.PARTITION}:iam::{account_id}:root")
        self.account_id = account_id

    @property
    def principal_account(self) -> str | None:
        return self.account_id


class AccountRootPrincipal(AccountPrincipal):
    """The root user of the account being deployed to."""

    def __init__(self) -> None:
        super().__init__(Aws.ACCOUNT_ID)


class AnyPrincipal(ArnPrincipal):
    """Every identity, ``"*"``."""

    def __init__(self) -> None:
        super().__init__("*")


class ServicePrincipal(PrincipalBase):
    """A cloud service, e.g. ``lambda.amazonaws.com``."""

    def __init__(self, service: str, conditions: dict[str, Any] | None = None):
        self.service = service
        self.conditions = dict(conditions or {})

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        return PrincipalPolicyFragment({"Service": [self.service]}, dict(self.conditions))


class FederatedPrincipal(PrincipalBase):
    """An identity from a federated identity provider."""

    def __init__(
        self,
        federated: str,
        conditions: dict[str, Any] | None = None,
        assume_role_action: str = "sts:AssumeRole",
    ):
        self.federated = federated
        self.conditions = dict(conditions or {})
        self.assume_role_action = assume_role_action

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        return PrincipalPolicyFragment({"Federated": [self.federated]}, dict(self.conditions))


class PrincipalWithConditions(PrincipalBase):
    """Wraps a principal and adds conditions to its fragment."""

    def __init__(self, principal: IPrincipal, conditions: dict[str, Any]):
        self.principal = principal
        self._conditions: dict[str, Any] = {}
        self.add_conditions(conditions)

    @property
    def assume_role_action(self) -> str:  # type: ignore[override]
        return self.principal.assume_role_action

    @property
    def principal_account(self) -> str | None:
        return self.principal.principal_account

    def add_condition(self, key: str, value: Any) -> None:
        existing = self._conditions.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            self._conditions[key] = {**existing, **value}
        else:
            self._conditions[key] = value

    def add_conditions(self, conditions: dict[str, Any]) -> None:
        for key, value in conditions.items():
            self.add_condition(key, value)

    @property
    def conditions(self) -> dict[str, Any]:
        merged = dict(self.principal.policy_fragment.conditions)
        for key, value in self._conditions.items():
            existing = merged.get(key)
            if isinstance(existing, dict) and isinstance(value, dict):
                merged[key] = {**existing, **value}
            else:
                merged[key] = value
        return merged

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        return PrincipalPolicyFragment(self.principal.policy_fragment.principal_json, self.conditions)

    def add_to_principal_policy(self, statement: PolicyStatement) -> AddToPrincipalPolicyResult:
        return self.principal.add_to_principal_policy(statement)


class CompositePrincipal(PrincipalBase):
    """
    Several principals treated as one.

    All members must share the same assume-role action and none may carry
    conditions.
    """

    def __init__(self, *principals: IPrincipal):
        if not principals:
            raise ValidationError("CompositePrincipals must be constructed with at least 1 Principal")
        self.principals: list[IPrincipal] = []
        self.assume_role_action = principals[0].assume_role_action
        self.add_principals(*principals)

    def add_principals(self, *principals: IPrincipal) -> CompositePrincipal:
        for principal in principals:
            if principal.assume_role_action != self.assume_role_action:
                raise ValidationError(
                    "Cannot add multiple principals with different 'assumeRoleAction'. "
                    f"Expecting '{self.assume_role_action}', got '{principal.assume_role_action}'"
                )
            if principal.policy_fragment.conditions:
                raise ValidationError(
                    "Components of a CompositePrincipal must not have conditions. "
                    f"Tried to add the following fragment: {principal.policy_fragment}"
                )
            self.principals.append(principal)
        return self

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        principal_json: dict[str, list[str]] = {}
        for principal in self.principals:
            merge_principals(principal_json, principal.policy_fragment.principal_json)
        return PrincipalPolicyFragment(principal_json)

    def add_to_assume_role_policy(self, document: PolicyDocument) -> None:
        for principal in self.principals:
            if isinstance(principal, PrincipalBase):
                principal.add_to_assume_role_policy(document)
            else:
                document.add_statements(
                    PolicyStatement(actions=[principal.assume_role_action], principals=[principal])
                )
