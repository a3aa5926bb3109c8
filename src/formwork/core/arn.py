"""
Amazon Resource Names.

ARNs are built by string concatenation, so they may contain tokens. Splitting
a concrete ARN happens in Python. Splitting a token ARN yields
``Fn::Select``/``Fn::Split`` expressions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .errors import ValidationError
from .intrinsics import Fn
from .tokens import Token

if TYPE_CHECKING:
    from .stack import Stack


class ArnFormat(str, Enum):
    """Where the resource name sits in an ARN."""

    NO_RESOURCE_NAME = "arn:aws:service:region:account:resource"
    COLON_RESOURCE_NAME = "arn:aws:service:region:account:resource:resourceName"
    SLASH_RESOURCE_NAME = "arn:aws:service:region:account:resource/resourceName"
    SLASH_RESOURCE_SLASH_RESOURCE_NAME = "arn:aws:service:region:account:/resource/resourceName"


@dataclass
class ArnComponents:
    """
    The parts of an ARN.

    ``partition``, ``region`` and ``account`` default to the stack's values
    when formatted with a stack. An empty string leaves the part empty.
    """

    service: str
    resource: str
    partition: str | None = None
    region: str | None = None
    account: str | None = None
    resource_name: str | None = None
    arn_format: ArnFormat | None = None


def _separator(arn_format: ArnFormat) -> str:
    if arn_format == ArnFormat.COLON_RESOURCE_NAME:
        return ":"
    return "/"


class Arn:
    """Build and parse ARNs."""

    @staticmethod
    def format(components: ArnComponents, stack: Stack | None = None) -> str:
        """
        Build an ARN string.

        Raises:
            ValidationError: If a part is missing and there is no stack to
                take it from
        """
        partition = components.partition
        region = components.region
        account = components.account
        if stack is not None:
            partition = stack.partition if partition is None else partition
            region = stack.region if region is None else region
            account = stack.account if account is None else account
        elif partition is None or region is None or account is None:
            raise ValidationError(
                "Arn.format: partition, region and account are required when no stack is given"
            )

        if not components.service:
            raise ValidationError("Arn.format: service is required")

        arn_format = components.arn_format
        if arn_format is None:
            arn_format = (
                ArnFormat.SLASH_RESOURCE_NAME
                if components.resource_name is not None
                else ArnFormat.NO_RESOURCE_NAME
            )

        values = ["arn", ":", partition, ":", components.service, ":", region, ":", account, ":"]
        if arn_format == ArnFormat.SLASH_RESOURCE_SLASH_RESOURCE_NAME:
            values.append("/")
        values.append(components.resource)
        if arn_format != ArnFormat.NO_RESOURCE_NAME and components.resource_name is not None:
            values.append(_separator(arn_format))
            values.append(components.resource_name)
        return "".join(values)

    @staticmethod
    def split(arn: str, arn_format: ArnFormat) -> ArnComponents:
        """
        Split an ARN into its components.

        Raises:
            ValidationError: If a concrete ARN is malformed
        """
        if Token.is_unresolved(arn):
            return _split_token_arn(arn, arn_format)

        parts = arn.split(":")
        if len(parts) < 6:
            raise ValidationError(f"ARNs must have at least 6 components: {arn}")
        prefix, partition, service, region, account = parts[:5]
        resource_part = ":".join(parts[5:])
        if prefix != "arn":
            raise ValidationError(f"ARNs must start with 'arn:': {arn}")
        if not service:
            raise ValidationError(f"The `service` component (3rd component) of an ARN is required: {arn}")
        if not resource_part:
            raise ValidationError(f"The `resource` component (6th component) of an ARN is required: {arn}")

        resource_name: str | None
        if arn_format == ArnFormat.NO_RESOURCE_NAME:
            resource, resource_name = resource_part, None
        else:
            if arn_format == ArnFormat.SLASH_RESOURCE_SLASH_RESOURCE_NAME:
                resource_part = resource_part.lstrip("/")
            resource, sep, name = resource_part.partition(_separator(arn_format))
            resource_name = name if sep else None

        return ArnComponents(
            service=service,
            resource=resource,
            partition=partition,
            region=region,
            account=account,
            resource_name=resource_name,
            arn_format=arn_format,
        )

    @staticmethod
    def extract_resource_name(arn: str, resource_type: str) -> str:
        """
        Return the resource name of a ``<type>/<name>`` ARN.

        Raises:
            ValidationError: If the ARN's resource type is concrete and differs
        """
        components = Arn.split(arn, ArnFormat.SLASH_RESOURCE_NAME)
        if not Token.is_unresolved(components.resource) and components.resource != resource_type:
            raise ValidationError(
                f"Expected resource type '{resource_type}' in ARN, got "
                f"'{components.resource}' in '{arn}'"
            )
        if components.resource_name is None:
            raise ValidationError(f"Expected a resource name in ARN: {arn}")
        return components.resource_name


def _split_token_arn(arn: str, arn_format: ArnFormat) -> ArnComponents:
    parts = Fn.split(":", arn)
    resource_name: str | None = None

    if arn_format == ArnFormat.NO_RESOURCE_NAME:
        resource = Fn.select(5, parts)
    elif arn_format == ArnFormat.COLON_RESOURCE_NAME:
        resource = Fn.select(5, parts)
        resource_name = Fn.select(6, parts)
    else:
        resource_parts = Fn.split("/", Fn.select(5, parts))
        offset = 1 if arn_format == ArnFormat.SLASH_RESOURCE_SLASH_RESOURCE_NAME else 0
        resource = Fn.select(offset, resource_parts)
        resource_name = Fn.select(offset + 1, resource_parts)

    return ArnComponents(
        service=Fn.select(2, parts),
        resource=resource,
        partition=Fn.select(1, parts),
        region=Fn.select(3, parts),
        account=Fn.select(4, parts),
        resource_name=resource_name,
        arn_format=arn_format,
    )
