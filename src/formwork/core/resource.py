"""
Base class for typed resource wrappers.
"""

from __future__ import annotations

from dataclasses import dataclass

from .arn import Arn, ArnFormat
from .cfn import CfnResource, RemovalPolicy
from .construct import Construct
from .errors import ValidationError
from .lazy import Lazy
from .names import generate_physical_name
from .stack import Stack
from .tokens import Token


class PhysicalName:
    """Special values for ``physical_name``."""

    GENERATE: str = "formwork:physical-name:generate"


@dataclass(frozen=True)
class ResourceEnvironment:
    """Account and region a resource lives in."""

    account: str
    region: str


class Resource(Construct):
    """
    A construct that represents one cloud resource.

    Args:
        scope: Parent construct
        id: Construct id
        physical_name: Deployed name. ``PhysicalName.GENERATE`` generates a
            deterministic name; ``None`` lets the deployment engine choose.
        account: Account of an imported resource, defaults to the stack's
        region: Region of an imported resource, defaults to the stack's
        environment_from_arn: ARN to take the account and region from
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        physical_name: str | None = None,
        account: str | None = None,
        region: str | None = None,
        environment_from_arn: str | None = None,
    ):
        if (account is not None or region is not None) and environment_from_arn is not None:
            raise ValidationError(
                "Supply at most one of 'account'/'region' and 'environment_from_arn'"
            )
        super().__init__(scope, id)
        self.stack = Stack.of(self)

        if environment_from_arn is not None and not Token.is_unresolved(environment_from_arn):
            parsed = Arn.split(environment_from_arn, ArnFormat.NO_RESOURCE_NAME)
            account = parsed.account or None
            region = parsed.region or None

        self.env = ResourceEnvironment(
            account=account or self.stack.account,
            region=region or self.stack.region,
        )

        self._physical_name: str | None
        if physical_name == PhysicalName.GENERATE:
            self._physical_name = Lazy.string(
                lambda: generate_physical_name(self), display_hint="PhysicalName"
            )
        else:
            self._physical_name = physical_name

    @property
    def physical_name(self) -> str | None:
        return self._physical_name

    def apply_removal_policy(self, policy: RemovalPolicy) -> None:
        """
        Apply a removal policy to the primary resource.

        Raises:
            ValidationError: If this construct has no default child resource
        """
        child = self.node.default_child
        if not isinstance(child, CfnResource):
            raise ValidationError(
                "Cannot apply RemovalPolicy: no child or not a CfnResource. "
                "Apply the removal policy on the CfnResource directly."
            )
        child.apply_removal_policy(policy)
