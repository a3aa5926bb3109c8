"""
Stacks: the unit of deployment.

Each stack synthesizes to one template. Stacks carry their environment
(account and region), their dependencies on other stacks and the logical id
allocation for every element they contain.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from . import cfn_lang
from .arn import Arn, ArnComponents, ArnFormat
from .construct import Construct
from .errors import DependencyCycleError, ErrorContext, SynthesisError, ValidationError
from .feature_flags import ENABLE_PARTITION_LITERALS, FeatureFlags
from .graph import topological_sort
from .intrinsics import Aws
from .lazy import Lazy
from .names import make_unique_id, make_unique_resource_name
from .resolve import ResolveContext, resolve
from .tags import TagManager, TagType
from .tokens import Token

if TYPE_CHECKING:
    from .cfn import CfnElement

logger = logging.getLogger(__name__)

VALID_STACK_NAME_REGEX = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")
MAX_STACK_NAME_LENGTH = 128

STACK_RESOURCE_TYPE = "formwork:stack"

TEMPLATE_SECTIONS = (
    "AWSTemplateFormatVersion",
    "Description",
    "Transform",
    "Metadata",
    "Parameters",
    "Mappings",
    "Conditions",
    "Resources",
    "Outputs",
)

_ELEMENT_SECTIONS = ("Parameters", "Mappings", "Conditions", "Resources", "Outputs")


@dataclass
class Environment:
    """Target account and region. ``None`` means environment-agnostic."""

    account: str | None = None
    region: str | None = None


@dataclass
class TemplateOptions:
    """Template-level settings."""

    description: str | None = None
    template_format_version: str | None = None
    transforms: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


def partition_for_region(region: str) -> str:
    """The partition a concrete region belongs to."""
    if region.startswith("cn-"):
        return "aws-cn"
    if region.startswith("us-gov-"):
        return "aws-us-gov"
    if region.startswith("us-isob-"):
        return "aws-iso-b"
    if region.startswith("us-iso-"):
        return "aws-iso"
    if region.startswith("eu-isoe-"):
        return "aws-iso-e"
    return "aws"


def _url_suffix_for_partition(partition: str) -> str:
    return "amazonaws.com.cn" if partition == "aws-cn" else "amazonaws.com"


class Stack(Construct):
    """
    A deployable unit that synthesizes to one template.

    Args:
        scope: Parent construct, usually the App. A new App is created if omitted.
        id: Construct id, also the default stack name for top-level stacks
        env: Target environment
        stack_name: Explicit deployed stack name
        description: Template description
        tags: Stack-level tags
        termination_protection: Whether the deployed stack is protected
    """

    def __init__(
        self,
        scope: Construct | None = None,
        id: str | None = None,
        env: Environment | None = None,
        stack_name: str | None = None,
        description: str | None = None,
        tags: dict[str, str] | None = None,
        termination_protection: bool = False,
    ):
        if scope is None:
            from .app import App

            scope = App()
        id = id or "Default"
        super().__init__(scope, id)

        env = env or Environment()
        self.account: str = env.account or Aws.ACCOUNT_ID
        self.region: str = env.region or Aws.REGION
        self.environment = (
            f"aws://{'unknown-account' if Token.is_unresolved(self.account) else self.account}"
            f"/{'unknown-region' if Token.is_unresolved(self.region) else self.region}"
        )

        self.termination_protection = termination_protection
        self.template_options = TemplateOptions(description=description)
        if description is not None and len(description) > 1024:
            raise ValidationError(
                f"Stack description must be <= 1024 bytes. Received description: '{description}'"
            )

        self.tags = TagManager(TagType.MAP, STACK_RESOURCE_TYPE, tags)

        self._stack_dependencies: dict[Stack, set[str]] = {}
        self._logical_id_renames: dict[str, str] = {}
        self._used_renames: set[str] = set()

        self.stack_name = stack_name or self._generate_stack_name()
        self._validate_stack_name(self.stack_name)

        self.node.add_validation(self._validate_renames)

    @staticmethod
    def is_stack(x: Any) -> bool:
        return isinstance(x, Stack)

    @staticmethod
    def of(construct: Construct) -> Stack:
        """
        Return the stack that contains ``construct``.

        Raises:
            ValidationError: If the construct is not inside a stack
        """
        for scope in reversed(construct.node.scopes):
            if isinstance(scope, Stack):
                return scope
        raise ValidationError(
            "should be created in the scope of a Stack, but no Stack found",
            context=ErrorContext(construct.node.path, type(construct).__name__),
        )

    # -------------------------------------------------------------------------
    # Naming
    # -------------------------------------------------------------------------

    def _generate_stack_name(self) -> str:
        scopes = self.node.scopes
        components = [c.node.id for c in scopes[1:]]
        if len(components) == 1:
            return components[0][:MAX_STACK_NAME_LENGTH]
        return make_unique_resource_name(
            components, max_length=MAX_STACK_NAME_LENGTH, allowed_special_characters="-"
        )

    @staticmethod
    def _validate_stack_name(name: str) -> None:
        if Token.is_unresolved(name):
            return
        if len(name) > MAX_STACK_NAME_LENGTH:
            raise ValidationError(
                f"Stack name must be <= {MAX_STACK_NAME_LENGTH} characters. Stack name: '{name}'"
            )
        if not VALID_STACK_NAME_REGEX.match(name):
            raise ValidationError(
                f"Stack name must match the regular expression: "
                f"{VALID_STACK_NAME_REGEX.pattern}, got '{name}'"
            )

    @property
    def artifact_id(self) -> str:
        """Id of this stack's artifact in the cloud assembly."""
        components = [c.node.id for c in self.node.scopes[1:]]
        if components == ["Default"]:
            return "Default"
        return make_unique_id(components)

    @property
    def template_file(self) -> str:
        return f"{self.artifact_id}.template.json"

    @property
    def partition(self) -> str:
        if not Token.is_unresolved(self.region) and FeatureFlags.of(self).is_enabled(
            ENABLE_PARTITION_LITERALS
        ):
            return partition_for_region(self.region)
        return Aws.PARTITION

    @property
    def url_suffix(self) -> str:
        partition = self.partition
        if Token.is_unresolved(partition):
            return Aws.URL_SUFFIX
        return _url_suffix_for_partition(partition)

    # -------------------------------------------------------------------------
    # Logical ids
    # -------------------------------------------------------------------------

    def get_logical_id(self, element: CfnElement) -> str:
        """Logical id of an element, after renames."""
        new_id = self.allocate_logical_id(element)
        if new_id in self._logical_id_renames:
            self._used_renames.add(new_id)
            return self._logical_id_renames[new_id]
        return new_id

    def allocate_logical_id(self, element: CfnElement) -> str:
        """Generate the logical id of an element from its path below this stack."""
        scopes = element.node.scopes
        index = next(i for i, scope in enumerate(scopes) if scope is self)
        return make_unique_id([c.node.id for c in scopes[index + 1 :]])

    def rename_logical_id(self, old_id: str, new_id: str) -> None:
        """Rename a generated logical id."""
        self._logical_id_renames[old_id] = new_id

    def _validate_renames(self) -> list[str]:
        unused = sorted(set(self._logical_id_renames) - self._used_renames)
        if not unused:
            return []
        return [f"The following logical IDs were attempted to be renamed, but not found: {', '.join(unused)}"]

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def add_dependency(self, target: Stack, reason: str | None = None) -> None:
        """
        Deploy ``target`` before this stack.

        Raises:
            ValidationError: If the target is this stack or belongs to another app
            DependencyCycleError: If ``target`` already depends on this stack
        """
        reason = reason or "(no reason given)"
        if target is self:
            raise ValidationError(f"Stack '{self.node.path}' cannot depend on itself")
        if target.node.root is not self.node.root:
            raise ValidationError(
                f"Stack '{self.node.path}' cannot depend on stack '{target.node.path}' "
                f"because they belong to different apps"
            )

        back_path = target._dependency_path_to(self)
        if back_path:
            cycle = [self.node.path, *(s.node.path for s in back_path)]
            raise DependencyCycleError(
                f"'{target.node.path}' depends on '{self.node.path}'. Adding this dependency "
                f"({reason}) would create a cyclic reference: {' -> '.join(cycle)}",
                cycle=cycle,
            )

        logger.debug("Stack %s depends on %s: %s", self.node.path, target.node.path, reason)
        self._stack_dependencies.setdefault(target, set()).add(reason)

    def remove_dependency(self, target: Stack) -> None:
        self._stack_dependencies.pop(target, None)

    @property
    def dependencies(self) -> list[Stack]:
        """Stacks this stack directly depends on."""
        return list(self._stack_dependencies)

    def dependency_reasons(self, target: Stack) -> list[str]:
        return sorted(self._stack_dependencies.get(target, ()))

    def _dependency_path_to(self, other: Stack) -> list[Stack]:
        """Chain of stacks from this stack to ``other``, or an empty list."""
        if self is other:
            return [self]
        for dep in self._stack_dependencies:
            path = dep._dependency_path_to(other)
            if path:
                return [self, *path]
        return []

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def format_arn(
        self,
        service: str,
        resource: str,
        resource_name: str | None = None,
        arn_format: ArnFormat | None = None,
        partition: str | None = None,
        region: str | None = None,
        account: str | None = None,
    ) -> str:
        """Build an ARN, defaulting partition, region and account to this stack's."""
        return Arn.format(
            ArnComponents(
                service=service,
                resource=resource,
                resource_name=resource_name,
                arn_format=arn_format,
                partition=partition,
                region=region,
                account=account,
            ),
            self,
        )

    def split_arn(self, arn: str, arn_format: ArnFormat) -> ArnComponents:
        return Arn.split(arn, arn_format)

    def resolve(self, obj: Any) -> Any:
        """Resolve tokens in ``obj`` in the context of this stack."""
        return resolve(obj, scope=self)

    def to_json_string(self, obj: Any, space: int | None = None) -> str:
        """
        Render ``obj`` as JSON at synthesis time.

        Deploy-time values are spliced into the JSON with ``Fn::Join``.
        """

        def produce(context: ResolveContext) -> Any:
            return cfn_lang.to_json(context.resolve(obj), space)

        return Lazy.string(produce, display_hint="JSON", cache=False)

    def add_transform(self, transform: str) -> None:
        if transform not in self.template_options.transforms:
            self.template_options.transforms.append(transform)

    # -------------------------------------------------------------------------
    # Template
    # -------------------------------------------------------------------------

    def _elements(self) -> list[CfnElement]:
        from .cfn import CfnElement

        return [
            c
            for c in self.node.find_all()
            if isinstance(c, CfnElement) and Stack.of(c) is self
        ]

    def _to_template(self) -> dict[str, Any]:
        """
        Render this stack's template.

        Raises:
            SynthesisError: If two elements share a logical id
            DependencyCycleError: If resources depend on each other
        """
        options = self.template_options
        header: dict[str, Any] = {
            "AWSTemplateFormatVersion": options.template_format_version,
            "Description": options.description,
            "Metadata": options.metadata or None,
        }
        if options.transforms:
            transforms = options.transforms
            header["Transform"] = transforms[0] if len(transforms) == 1 else list(transforms)

        template: dict[str, Any] = {
            key: value for key, value in self.resolve(header).items() if value is not None
        }

        sections: dict[str, dict[str, Any]] = {name: {} for name in _ELEMENT_SECTIONS}
        for element in self._elements():
            fragment = self.resolve(element._to_template())
            for section, entries in fragment.items():
                target = sections.setdefault(section, {})
                for logical_id, body in entries.items():
                    if logical_id in target:
                        raise SynthesisError(
                            f"section '{section}' already contains '{logical_id}'",
                        )
                    target[logical_id] = body

        sections["Resources"] = _order_resources(sections["Resources"])

        for name in TEMPLATE_SECTIONS:
            if sections.get(name):
                template[name] = sections[name]
        for name, entries in sections.items():
            if name not in TEMPLATE_SECTIONS and entries:
                template[name] = entries
        return template

    def __repr__(self) -> str:
        return f"<Stack {self.stack_name}>"


# =============================================================================
# Resource Ordering
# =============================================================================


_SUB_REFERENCE = re.compile(r"\$\{([A-Za-z0-9]+)(?:\.[A-Za-z0-9.]+)?\}")


def _references(value: Any, found: list[str]) -> None:
    if isinstance(value, dict):
        if len(value) == 1:
            key, arg = next(iter(value.items()))
            if key == "Ref" and isinstance(arg, str):
                found.append(arg)
            elif key == "Fn::GetAtt" and isinstance(arg, list) and arg:
                found.append(arg[0])
            elif key == "Fn::Sub":
                body = arg[0] if isinstance(arg, list) else arg
                if isinstance(body, str):
                    found.extend(_SUB_REFERENCE.findall(body))
        for item in value.values():
            _references(item, found)
    elif isinstance(value, list):
        for item in value:
            _references(item, found)


def _order_resources(resources: dict[str, Any]) -> dict[str, Any]:
    """Order resources so that each comes after everything it refers to."""
    dependencies: dict[str, list[str]] = {}
    for logical_id, body in resources.items():
        found: list[str] = []
        depends_on = body.get("DependsOn") if isinstance(body, dict) else None
        if isinstance(depends_on, str):
            found.append(depends_on)
        elif isinstance(depends_on, list):
            found.extend(d for d in depends_on if isinstance(d, str))
        _references(body, found)
        dependencies[logical_id] = [d for d in found if d in resources and d != logical_id]

    ordered = topological_sort(list(resources), dependencies, what="resources")
    return {logical_id: resources[logical_id] for logical_id in ordered}
