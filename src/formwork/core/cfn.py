"""
Template elements.

A CfnElement is a construct that contributes an entry to its stack's
template: a resource, an output, a parameter, a condition or a mapping.
Logical ids are lazy, so they follow renames made up to synthesis.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .construct import Construct
from .errors import SynthesisError, ValidationError
from .feature_flags import VALIDATE_SNAPSHOT_REMOVAL_POLICY, FeatureFlags
from .intrinsics import Fn
from .lazy import Lazy
from .references import CfnReference
from .resolve import ResolveContext
from .stack import Stack
from .tags import TagManager, TagType
from .tokens import IResolvable, Token

logger = logging.getLogger(__name__)

PATH_METADATA_CONTEXT = "formwork:pathMetadata"
PATH_METADATA_KEY = "formwork:path"

_LOGICAL_ID_REGEX = re.compile(r"^[A-Za-z][A-Za-z0-9]{0,254}$")


# =============================================================================
# Removal Policy
# =============================================================================


class RemovalPolicy(str, Enum):
    """What happens to a resource when it leaves the stack."""

    DESTROY = "destroy"
    RETAIN = "retain"
    SNAPSHOT = "snapshot"
    RETAIN_ON_UPDATE_OR_DELETE = "retain-on-update-or-delete"


_DELETION_POLICY = {
    RemovalPolicy.DESTROY: "Delete",
    RemovalPolicy.RETAIN: "Retain",
    RemovalPolicy.SNAPSHOT: "Snapshot",
    RemovalPolicy.RETAIN_ON_UPDATE_OR_DELETE: "RetainExceptOnCreate",
}

_UPDATE_REPLACE_POLICY = {
    RemovalPolicy.DESTROY: "Delete",
    RemovalPolicy.RETAIN: "Retain",
    RemovalPolicy.SNAPSHOT: "Snapshot",
    RemovalPolicy.RETAIN_ON_UPDATE_OR_DELETE: "Retain",
}

SNAPSHOT_SUPPORTED_TYPES = frozenset(
    {
        "AWS::DocDB::DBCluster",
        "AWS::EC2::Volume",
        "AWS::ElastiCache::CacheCluster",
        "AWS::ElastiCache::ReplicationGroup",
        "AWS::Neptune::DBCluster",
        "AWS::RDS::DBCluster",
        "AWS::RDS::DBInstance",
        "AWS::Redshift::Cluster",
    }
)


# =============================================================================
# Elements
# =============================================================================


class CfnElement(Construct):
    """Base class for everything that renders into a template section."""

    def __init__(self, scope: Construct, id: str):
        super().__init__(scope, id)
        self.stack = Stack.of(self)
        self._logical_id_override: str | None = None
        self._logical_id_locked = False
        self.logical_id = Lazy.string(
            self._synthesize_logical_id,
            display_hint=f"{_not_too_long(self.node.path)}.LogicalID",
            cache=False,
        )

    @staticmethod
    def is_cfn_element(x: Any) -> bool:
        return isinstance(x, CfnElement)

    def _synthesize_logical_id(self) -> str:
        if self._logical_id_override is not None:
            return self._logical_id_override
        return self.stack.get_logical_id(self)

    def override_logical_id(self, new_logical_id: str) -> None:
        """
        Replace the generated logical id.

        Raises:
            SynthesisError: If the logical id is already frozen by synthesis
            ValidationError: If the id is not alphanumeric
        """
        if self._logical_id_locked:
            raise SynthesisError(
                f"The logicalId for resource at path {self.node.path} has been locked and "
                f"cannot be overridden. Make sure you are calling override_logical_id "
                f"before Stack.export_value"
            )
        if not _LOGICAL_ID_REGEX.match(new_logical_id):
            raise ValidationError(
                f"Invalid logical id '{new_logical_id}': must start with a letter and "
                f"contain only alphanumeric characters"
            )
        self._logical_id_override = new_logical_id

    def _lock_logical_id(self) -> None:
        self._logical_id_locked = True

    def _to_template(self) -> dict[str, Any]:
        """Template fragment as ``{section: {logical_id: body}}``."""
        raise NotImplementedError


def _not_too_long(path: str) -> str:
    if len(path) > 100:
        return path[:50] + "..." + path[-49:]
    return path


class CfnRefElement(CfnElement):
    """An element that can be referenced with ``Ref``."""

    @property
    def ref(self) -> str:
        return Token.as_string(CfnReference.for_(self, "Ref"))


# =============================================================================
# Overrides
# =============================================================================


_DELETE: Any = object()


def _split_on_periods(path: str) -> list[str]:
    parts = re.split(r"(?<!\\)\.", path)
    return [part.replace("\\.", ".") for part in parts]


def _deep_merge(target: dict[str, Any], source: dict[str, Any]) -> None:
    for key, value in source.items():
        if value is _DELETE:
            target.pop(key, None)
        elif isinstance(value, dict):
            if not isinstance(target.get(key), dict):
                target[key] = {}
            _deep_merge(target[key], value)
            if not target[key]:
                del target[key]
        else:
            target[key] = value


@dataclass
class CfnOptions:
    """Resource attributes other than properties."""

    condition: CfnCondition | None = None
    creation_policy: dict[str, Any] | None = None
    update_policy: dict[str, Any] | None = None
    deletion_policy: str | None = None
    update_replace_policy: str | None = None
    version: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class _RenderedResource(IResolvable):
    """Resolves a resource body, then applies its raw overrides."""

    def __init__(self, resource: CfnResource):
        self._resource = resource

    @property
    def display_hint(self) -> str:
        return self._resource.node.path

    def resolve(self, context: ResolveContext) -> Any:
        context.register_post_processor(self._post_process)
        return self._resource._render()

    def _post_process(self, resolved: Any, context: ResolveContext) -> Any:
        _deep_merge(resolved, self._resource._raw_overrides)
        resolved = context.resolve(resolved)
        for key in ("Properties", "Metadata"):
            if key in resolved and not resolved[key]:
                del resolved[key]
        return resolved


class CfnResource(CfnRefElement):
    """
    A template resource.

    Args:
        scope: Parent construct
        id: Construct id
        type: Resource type, e.g. ``AWS::S3::Bucket``
        properties: Resource properties, may contain tokens
        tag_format: Shape of the tags property; taggable resources own a TagManager
        tags_property: Name of the tags property
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        type: str,
        properties: dict[str, Any] | None = None,
        tag_format: TagType | None = None,
        tags_property: str = "Tags",
    ):
        super().__init__(scope, id)
        if not type:
            raise ValidationError("The `type` property is required")

        self.cfn_resource_type = type
        self.cfn_options = CfnOptions()
        self._properties: dict[str, Any] = dict(properties or {})
        self._depends_on: list[CfnResource] = []
        self._raw_overrides: dict[str, Any] = {}
        self._tags_property = tags_property

        self.tags: TagManager | None = None
        if tag_format is not None and tag_format != TagType.NOT_TAGGABLE:
            self.tags = TagManager(tag_format, type, self._properties.pop(tags_property, None))

        if self.node.try_get_context(PATH_METADATA_CONTEXT):
            self.add_metadata(PATH_METADATA_KEY, self.node.path)

    @staticmethod
    def is_cfn_resource(x: Any) -> bool:
        return isinstance(x, CfnResource)

    @property
    def cfn_properties(self) -> dict[str, Any]:
        return self._properties

    def add_metadata(self, key: str, value: Any) -> None:
        self.cfn_options.metadata[key] = value

    def get_metadata(self, key: str) -> Any:
        return self.cfn_options.metadata.get(key)

    def get_att(self, attribute_name: str) -> str:
        """``Fn::GetAtt`` of an attribute, as a string token."""
        return Token.as_string(CfnReference.for_(self, attribute_name))

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def add_depends_on(self, target: CfnResource) -> None:
        """
        Deploy ``target`` before this resource.

        A target in another stack becomes a dependency between the stacks.
        """
        if target is self:
            raise ValidationError(f"Resource {self.node.path} cannot depend on itself")
        if target.stack is self.stack:
            if not any(dep is target for dep in self._depends_on):
                self._depends_on.append(target)
            return
        self.stack.add_dependency(
            target.stack, f"{self.node.path} -> {target.node.path}"
        )

    def remove_depends_on(self, target: CfnResource) -> None:
        if target.stack is self.stack:
            self._depends_on = [dep for dep in self._depends_on if dep is not target]
            return
        self.stack.remove_dependency(target.stack)

    def obtain_dependencies(self) -> list[CfnResource]:
        return list(self._depends_on)

    # -------------------------------------------------------------------------
    # Removal policy
    # -------------------------------------------------------------------------

    def apply_removal_policy(
        self,
        policy: RemovalPolicy | None = None,
        apply_to_update_replace_policy: bool = True,
        default: RemovalPolicy | None = None,
    ) -> None:
        """
        Set ``DeletionPolicy`` and, by default, ``UpdateReplacePolicy``.

        Raises:
            ValidationError: If SNAPSHOT is requested for a type without snapshots
                while snapshot validation is enabled
        """
        policy = RemovalPolicy(policy or default or RemovalPolicy.RETAIN)
        if (
            policy == RemovalPolicy.SNAPSHOT
            and FeatureFlags.of(self).is_enabled(VALIDATE_SNAPSHOT_REMOVAL_POLICY)
            and self.cfn_resource_type not in SNAPSHOT_SUPPORTED_TYPES
        ):
            raise ValidationError(
                f"{self.cfn_resource_type} does not support snapshot removal policy"
            )
        self.cfn_options.deletion_policy = _DELETION_POLICY[policy]
        if apply_to_update_replace_policy:
            self.cfn_options.update_replace_policy = _UPDATE_REPLACE_POLICY[policy]

    # -------------------------------------------------------------------------
    # Overrides
    # -------------------------------------------------------------------------

    def add_override(self, path: str, value: Any) -> None:
        """
        Override a value in the rendered resource.

        ``path`` is dot-separated; use ``\\.`` for a literal dot.
        """
        parts = _split_on_periods(path)
        current = self._raw_overrides
        while len(parts) > 1:
            key = parts.pop(0)
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[parts[0]] = value

    def add_deletion_override(self, path: str) -> None:
        self.add_override(path, _DELETE)

    def add_property_override(self, property_path: str, value: Any) -> None:
        self.add_override(f"Properties.{property_path}", value)

    def add_property_deletion_override(self, property_path: str) -> None:
        self.add_override(f"Properties.{property_path}", _DELETE)

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _should_synthesize(self) -> bool:
        """Return False to leave this resource out of the template."""
        return True

    def _render_properties(self) -> dict[str, Any]:
        properties = dict(self._properties)
        if self.tags is not None:
            rendered = self.tags.render_tags()
            if rendered is not None:
                properties[self._tags_property] = rendered
        return properties

    def _render_depends_on(self) -> list[str] | None:
        targets = [dep for dep in self._depends_on if dep._should_synthesize()]
        targets.sort(key=lambda dep: dep.node.path)
        return [dep.logical_id for dep in targets] or None

    def _render(self) -> dict[str, Any]:
        options = self.cfn_options
        return {
            "Type": self.cfn_resource_type,
            "Properties": self._render_properties(),
            "DependsOn": self._render_depends_on(),
            "CreationPolicy": options.creation_policy,
            "UpdatePolicy": options.update_policy,
            "UpdateReplacePolicy": options.update_replace_policy,
            "DeletionPolicy": options.deletion_policy,
            "Version": options.version,
            "Description": options.description,
            "Metadata": options.metadata,
            "Condition": options.condition.logical_id if options.condition else None,
        }

    def _to_template(self) -> dict[str, Any]:
        if not self._should_synthesize():
            return {}
        return {"Resources": {self.logical_id: _RenderedResource(self)}}


# =============================================================================
# Outputs, parameters, conditions, mappings
# =============================================================================


class CfnOutput(CfnElement):
    """A stack output, optionally exported for other stacks."""

    def __init__(
        self,
        scope: Construct,
        id: str,
        value: Any,
        description: str | None = None,
        export_name: str | None = None,
        condition: CfnCondition | None = None,
    ):
        super().__init__(scope, id)
        if value is None:
            raise ValidationError(f"CfnOutput.value is required for output '{id}'")
        self.value = value
        self.description = description
        self.export_name = export_name
        self.condition = condition

    @property
    def import_value(self) -> str:
        """``Fn::ImportValue`` of this output, for use in other stacks."""
        if not self.export_name:
            raise ValidationError(
                f"Add an export_name to the CfnOutput at '{self.node.path}' "
                f"in order to use 'output.import_value'"
            )
        return Fn.import_value(self.export_name)

    def _to_template(self) -> dict[str, Any]:
        return {
            "Outputs": {
                self.logical_id: {
                    "Description": self.description,
                    "Value": self.value,
                    "Export": {"Name": self.export_name} if self.export_name else None,
                    "Condition": self.condition.logical_id if self.condition else None,
                }
            }
        }


class CfnParameter(CfnElement):
    """A template parameter, supplied at deploy time."""

    def __init__(
        self,
        scope: Construct,
        id: str,
        type: str = "String",
        default: Any = None,
        allowed_values: Iterable[str] | None = None,
        allowed_pattern: str | None = None,
        constraint_description: str | None = None,
        description: str | None = None,
        max_length: int | None = None,
        max_value: float | None = None,
        min_length: int | None = None,
        min_value: float | None = None,
        no_echo: bool | None = None,
    ):
        super().__init__(scope, id)
        self.type = type
        self.default = default
        self.allowed_values = list(allowed_values) if allowed_values is not None else None
        self.allowed_pattern = allowed_pattern
        self.constraint_description = constraint_description
        self.description = description
        self.max_length = max_length
        self.max_value = max_value
        self.min_length = min_length
        self.min_value = min_value
        self.no_echo = no_echo

    def _is_number_type(self) -> bool:
        return self.type == "Number"

    def _is_list_type(self) -> bool:
        return self.type.startswith("List<") or self.type == "CommaDelimitedList"

    @property
    def value(self) -> IResolvable:
        return CfnReference.for_(self, "Ref")

    @property
    def value_as_string(self) -> str:
        if self._is_list_type():
            raise ValidationError(
                f"Parameter type ({self.type}) is not a string type"
            )
        return Token.as_string(self.value)

    @property
    def value_as_number(self) -> float:
        if not self._is_number_type():
            raise ValidationError(f"Parameter type ({self.type}) is not a number type")
        return Token.as_number(self.value)

    @property
    def value_as_list(self) -> list[str]:
        if not self._is_list_type():
            raise ValidationError(f"Parameter type ({self.type}) is not a list type")
        return Token.as_list(self.value)

    def _to_template(self) -> dict[str, Any]:
        return {
            "Parameters": {
                self.logical_id: {
                    "Type": self.type,
                    "Default": self.default,
                    "AllowedPattern": self.allowed_pattern,
                    "AllowedValues": self.allowed_values,
                    "ConstraintDescription": self.constraint_description,
                    "Description": self.description,
                    "MaxLength": self.max_length,
                    "MaxValue": self.max_value,
                    "MinLength": self.min_length,
                    "MinValue": self.min_value,
                    "NoEcho": self.no_echo,
                }
            }
        }


class CfnCondition(CfnElement, IResolvable):
    """A template condition. Resolves to ``{"Condition": logical_id}``."""

    def __init__(self, scope: Construct, id: str, expression: Any = None):
        super().__init__(scope, id)
        self.expression = expression

    def resolve(self, context: ResolveContext) -> Any:
        return {"Condition": self.logical_id}

    def _to_template(self) -> dict[str, Any]:
        if self.expression is None:
            return {}
        return {"Conditions": {self.logical_id: self.expression}}


class CfnMapping(CfnElement):
    """
    A two-level lookup table.

    With ``lazy=True`` concrete lookups are answered in Python and the
    mapping is only rendered if some lookup needs ``Fn::FindInMap``.
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        mapping: dict[str, dict[str, Any]] | None = None,
        lazy: bool = False,
    ):
        super().__init__(scope, id)
        self._mapping: dict[str, dict[str, Any]] = {k: dict(v) for k, v in (mapping or {}).items()}
        self._lazy = lazy
        self._lazy_render = not lazy

    def set_value(self, key1: str, key2: str, value: Any) -> None:
        self._mapping.setdefault(key1, {})[key2] = value

    def find_in_map(self, key1: str, key2: str) -> Any:
        """
        Look up a value.

        Raises:
            ValidationError: If a concrete key is not in the mapping
        """
        if not Token.is_unresolved(key1):
            if key1 not in self._mapping:
                raise ValidationError(
                    f"Mapping doesn't contain top-level key '{key1}'"
                )
            if not Token.is_unresolved(key2) and key2 not in self._mapping[key1]:
                raise ValidationError(
                    f"Mapping doesn't contain second-level key '{key2}'"
                )
            if self._lazy and not Token.is_unresolved(key2):
                return self._mapping[key1][key2]
        self._lazy_render = True
        return Fn.find_in_map(self.logical_id, key1, key2)

    def _to_template(self) -> dict[str, Any]:
        if not self._lazy_render:
            return {}
        return {"Mappings": {self.logical_id: self._mapping}}
