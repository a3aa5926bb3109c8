"""
IAM policy statements.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING, Any

from formwork.core.errors import ValidationError
from formwork.core.tokens import Token

if TYPE_CHECKING:
    from .principals import IPrincipal

ACTION_REGEX = re.compile(r"^(\*|[a-zA-Z0-9-]+:[a-zA-Z0-9*]+)$")

STATEMENT_KEY_ORDER = (
    "Sid",
    "Effect",
    "Action",
    "NotAction",
    "Principal",
    "NotPrincipal",
    "Resource",
    "NotResource",
    "Condition",
)


class Effect(str, Enum):
    """Whether a statement allows or denies."""

    ALLOW = "Allow"
    DENY = "Deny"


def _unique(values: Iterable[Any]) -> list[Any]:
    result: list[Any] = []
    for value in values:
        if value not in result:
            result.append(value)
    return result


def _norm(values: list[Any]) -> Any:
    """Deduplicate, and turn a one-element list into a scalar."""
    values = _unique(values)
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return values


def _norm_principal(principal: dict[str, list[str]]) -> Any:
    if not principal:
        return None
    result = {key: _norm(values) for key, values in sorted(principal.items())}
    result = {key: value for key, value in result.items() if value is not None}
    if list(result) == ["AWS"] and result["AWS"] == "*":
        return "*"
    return result or None


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value]


def merge_principals(target: dict[str, list[str]], source: dict[str, list[str]]) -> None:
    """Add every principal of ``source`` to ``target``."""
    for key, values in source.items():
        existing = target.setdefault(key, [])
        for value in values:
            if value not in existing:
                existing.append(value)


class PolicyStatement:
    """
    A statement in an IAM policy document.

    Args:
        sid: Statement id
        effect: Allow or Deny
        actions: Actions, e.g. ``s3:GetObject``
        not_actions: Actions this statement does not apply to
        principals: Principals (resource policies only)
        not_principals: Principals this statement does not apply to
        resources: Resource ARNs
        not_resources: Resource ARNs this statement does not apply to
        conditions: Conditions as ``{operator: {key: value}}``
    """

    def __init__(
        self,
        sid: str | None = None,
        effect: Effect = Effect.ALLOW,
        actions: Iterable[str] = (),
        not_actions: Iterable[str] = (),
        principals: Iterable[IPrincipal] = (),
        not_principals: Iterable[IPrincipal] = (),
        resources: Iterable[str] = (),
        not_resources: Iterable[str] = (),
        conditions: dict[str, Any] | None = None,
    ):
        self._sid = sid
        self._effect = Effect(effect)
        self._actions: list[str] = []
        self._not_actions: list[str] = []
        self._principal: dict[str, list[str]] = {}
        self._not_principal: dict[str, list[str]] = {}
        self._principals: list[IPrincipal] = []
        self._not_principals: list[IPrincipal] = []
        self._resources: list[str] = []
        self._not_resources: list[str] = []
        self._condition: dict[str, Any] = {}
        self._frozen = False

        self.add_actions(*actions)
        self.add_not_actions(*not_actions)
        self.add_principals(*principals)
        self.add_not_principals(*not_principals)
        self.add_resources(*resources)
        self.add_not_resources(*not_resources)
        if conditions:
            self.add_conditions(conditions)

    @staticmethod
    def from_json(obj: dict[str, Any]) -> PolicyStatement:
        """Build a statement from its JSON form."""
        from .principals import ArnPrincipal, FederatedPrincipal, ServicePrincipal

        def principals_of(value: Any) -> list[IPrincipal]:
            if value is None:
                return []
            if value == "*":
                value = {"AWS": "*"}
            result: list[IPrincipal] = []
            for kind, entries in value.items():
                for entry in _as_list(entries):
                    if kind == "Service":
                        result.append(ServicePrincipal(entry))
                    elif kind == "Federated":
                        result.append(FederatedPrincipal(entry))
                    else:
                        result.append(ArnPrincipal(entry))
            return result

        return PolicyStatement(
            sid=obj.get("Sid"),
            effect=Effect(obj.get("Effect", "Allow")),
            actions=_as_list(obj.get("Action")),
            not_actions=_as_list(obj.get("NotAction")),
            principals=principals_of(obj.get("Principal")),
            not_principals=principals_of(obj.get("NotPrincipal")),
            resources=_as_list(obj.get("Resource")),
            not_resources=_as_list(obj.get("NotResource")),
            conditions=obj.get("Condition"),
        )

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def _assert_not_frozen(self, method: str) -> None:
        if self._frozen:
            raise ValidationError(
                f"PolicyStatement.{method}(): the statement is frozen and can no longer be modified"
            )

    @staticmethod
    def _validate_actions(actions: Iterable[str]) -> None:
        for action in actions:
            if not Token.is_unresolved(action) and not ACTION_REGEX.match(action):
                raise ValidationError(
                    f"Action '{action}' is invalid. An action string consists of a service "
                    f"namespace, a colon, and the name of an action. Action names can include "
                    f"wildcards."
                )

    def add_actions(self, *actions: str) -> None:
        self._assert_not_frozen("add_actions")
        if actions and self._not_actions:
            raise ValidationError("Cannot add 'Actions' to policy statement if 'NotActions' have been added")
        self._validate_actions(actions)
        self._actions.extend(actions)

    def add_not_actions(self, *not_actions: str) -> None:
        self._assert_not_frozen("add_not_actions")
        if not_actions and self._actions:
            raise ValidationError("Cannot add 'NotActions' to policy statement if 'Actions' have been added")
        self._validate_actions(not_actions)
        self._not_actions.extend(not_actions)

    # -------------------------------------------------------------------------
    # Principals
    # -------------------------------------------------------------------------

    def add_principals(self, *principals: IPrincipal) -> None:
        self._assert_not_frozen("add_principals")
        if principals and self._not_principals:
            raise ValidationError(
                "Cannot add 'Principals' to policy statement if 'NotPrincipals' have been added"
            )
        for principal in principals:
            self._principals.append(principal)
            fragment = principal.policy_fragment
            merge_principals(self._principal, fragment.principal_json)
            self.add_conditions(fragment.conditions)

    def add_not_principals(self, *not_principals: IPrincipal) -> None:
        self._assert_not_frozen("add_not_principals")
        if not_principals and self._principals:
            raise ValidationError(
                "Cannot add 'NotPrincipals' to policy statement if 'Principals' have been added"
            )
        for principal in not_principals:
            self._not_principals.append(principal)
            fragment = principal.policy_fragment
            merge_principals(self._not_principal, fragment.principal_json)
            self.add_conditions(fragment.conditions)

    def add_any_principal(self) -> None:
        from .principals import AnyPrincipal

        self.add_principals(AnyPrincipal())

    def add_account_root_principal(self) -> None:
        from .principals import AccountRootPrincipal

        self.add_principals(AccountRootPrincipal())

    def add_aws_account_principal(self, account_id: str) -> None:
        from .principals import AccountPrincipal

        self.add_principals(AccountPrincipal(account_id))

    def add_arn_principal(self, arn: str) -> None:
        from .principals import ArnPrincipal

        self.add_principals(ArnPrincipal(arn))

    def add_service_principal(self, service: str, conditions: dict[str, Any] | None = None) -> None:
        from .principals import ServicePrincipal

        self.add_principals(ServicePrincipal(service, conditions=conditions))

    def add_federated_principal(self, federated: str, conditions: dict[str, Any] | None = None) -> None:
        from .principals import FederatedPrincipal

        self.add_principals(FederatedPrincipal(federated, conditions=conditions))

    # -------------------------------------------------------------------------
    # Resources
    # -------------------------------------------------------------------------

    def add_resources(self, *arns: str) -> None:
        self._assert_not_frozen("add_resources")
        if arns and self._not_resources:
            raise ValidationError(
                "Cannot add 'Resources' to policy statement if 'NotResources' have been added"
            )
        self._resources.extend(arns)

    def add_not_resources(self, *arns: str) -> None:
        self._assert_not_frozen("add_not_resources")
        if arns and self._resources:
            raise ValidationError(
                "Cannot add 'NotResources' to policy statement if 'Resources' have been added"
            )
        self._not_resources.extend(arns)

    def add_all_resources(self) -> None:
        self.add_resources("*")

    # -------------------------------------------------------------------------
    # Conditions
    # -------------------------------------------------------------------------

    def add_condition(self, key: str, value: Any) -> None:
        """Add a condition. Values under the same operator are merged."""
        self._assert_not_frozen("add_condition")
        existing = self._condition.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            self._condition[key] = {**existing, **value}
        else:
            self._condition[key] = value

    def add_conditions(self, conditions: dict[str, Any]) -> None:
        for key, value in conditions.items():
            self.add_condition(key, value)

    def add_account_condition(self, account_id: str) -> None:
        self.add_condition("StringEquals", {"sts:ExternalId": account_id})

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def sid(self) -> str | None:
        return self._sid

    @sid.setter
    def sid(self, value: str | None) -> None:
        self._assert_not_frozen("sid")
        self._sid = value

    @property
    def effect(self) -> Effect:
        return self._effect

    @effect.setter
    def effect(self, value: Effect) -> None:
        self._assert_not_frozen("effect")
        self._effect = Effect(value)

    @property
    def actions(self) -> list[str]:
        return list(self._actions)

    @property
    def not_actions(self) -> list[str]:
        return list(self._not_actions)

    @property
    def principals(self) -> list[IPrincipal]:
        return list(self._principals)

    @property
    def not_principals(self) -> list[IPrincipal]:
        return list(self._not_principals)

    @property
    def resources(self) -> list[str]:
        return list(self._resources)

    @property
    def not_resources(self) -> list[str]:
        return list(self._not_resources)

    @property
    def conditions(self) -> dict[str, Any]:
        return dict(self._condition)

    @property
    def has_principal(self) -> bool:
        return bool(self._principals or self._not_principals)

    @property
    def has_resource(self) -> bool:
        return bool(self._resources or self._not_resources)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> PolicyStatement:
        """Make the statement immutable. Returns the statement itself."""
        self._frozen = True
        return self

    def copy(self, **overrides: Any) -> PolicyStatement:
        """Return an unfrozen copy, with any constructor argument overridden."""
        arguments: dict[str, Any] = {
            "sid": self._sid,
            "effect": self._effect,
            "actions": self._actions,
            "not_actions": self._not_actions,
            "principals": self._principals,
            "not_principals": self._not_principals,
            "resources": self._resources,
            "not_resources": self._not_resources,
            "conditions": self._condition,
        }
        arguments.update(overrides)
        return PolicyStatement(**arguments)

    # -------------------------------------------------------------------------
    # Rendering and validation
    # -------------------------------------------------------------------------

    def to_statement_json(self) -> dict[str, Any]:
        """The statement as it appears in a policy document."""
        rendered = {
            "Sid": self._sid,
            "Effect": self._effect.value,
            "Action": _norm(self._actions),
            "NotAction": _norm(self._not_actions),
            "Principal": _norm_principal(self._principal),
            "NotPrincipal": _norm_principal(self._not_principal),
            "Resource": _norm(self._resources),
            "NotResource": _norm(self._not_resources),
            "Condition": self._condition or None,
        }
        return {key: rendered[key] for key in STATEMENT_KEY_ORDER if rendered[key] is not None}

    def validate_for_any_policy(self) -> list[str]:
        errors = []
        if not self._actions and not self._not_actions:
            errors.append("A PolicyStatement must specify at least one 'action' or 'notAction'.")
        return errors

    def validate_for_resource_policy(self) -> list[str]:
        errors = self.validate_for_any_policy()
        if not self._principals and not self._not_principals:
            errors.append(
                "A PolicyStatement used in a resource-based policy must specify at least one IAM principal."
            )
        return errors

    def validate_for_identity_policy(self) -> list[str]:
        errors = self.validate_for_any_policy()
        if self._principals or self._not_principals:
            errors.append(
                "A PolicyStatement used in an identity-based policy cannot specify any IAM principals."
            )
        if not self._resources and not self._not_resources:
            errors.append(
                "A PolicyStatement used in an identity-based policy must specify at least one resource."
            )
        return errors

    def __repr__(self) -> str:
        return f"PolicyStatement({self.to_statement_json()!r})"
