"""
Cloud assembly: the output of synthesis.

A cloud assembly holds one artifact per stack (its template, environment,
dependencies and messages) plus a snapshot of the construct tree. It can be
written to a directory as ``manifest.json``, ``tree.json`` and one template
file per stack.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from .annotations import AnnotationMessage, MessageLevel
from .errors import FormworkError, SynthesisError

if TYPE_CHECKING:
    from .construct import Construct

logger = logging.getLogger(__name__)

ASSEMBLY_VERSION = "1.0.0"
TREE_VERSION = "tree-0.1"
MANIFEST_FILE = "manifest.json"
TREE_FILE = "tree.json"
STACK_ARTIFACT_TYPE = "aws:cloudformation:stack"
TREE_ARTIFACT_TYPE = "formwork:tree"

TEMPLATE_FORMATS = ("json", "yaml")


@dataclass
class StackArtifact:
    """The synthesized form of one stack."""

    artifact_id: str
    stack_name: str
    display_name: str
    template: dict[str, Any]
    environment: str
    dependencies: list[str] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    termination_protection: bool = False
    messages: list[AnnotationMessage] = field(default_factory=list)

    @property
    def template_file(self) -> str:
        return self.template_file_for("json")

    def template_file_for(self, template_format: str) -> str:
        return f"{self.artifact_id}.template.{template_format}"

    @property
    def resources(self) -> dict[str, Any]:
        return self.template.get("Resources", {})

    def find_resources(self, resource_type: str) -> dict[str, Any]:
        """Resources of the given type, keyed by logical id."""
        return {
            logical_id: body
            for logical_id, body in self.resources.items()
            if body.get("Type") == resource_type
        }


class CloudAssembly:
    """
    Synthesized stacks, in dependency order.

    Raises:
        SynthesisError: If two stacks in the same environment share a name
    """

    def __init__(
        self,
        stacks: list[StackArtifact],
        tree: dict[str, Any] | None = None,
        messages: list[AnnotationMessage] | None = None,
    ):
        seen: dict[tuple[str, str], StackArtifact] = {}
        for stack in stacks:
            key = (stack.environment, stack.stack_name)
            if key in seen:
                raise SynthesisError(
                    f"Stacks '{seen[key].display_name}' and '{stack.display_name}' share the "
                    f"stack name '{stack.stack_name}' in environment {stack.environment}"
                )
            seen[key] = stack
        self.stacks = stacks
        self.tree = tree or {}
        self._messages = messages

    def get_stack_by_name(self, stack_name: str) -> StackArtifact:
        """
        Return the stack artifact with this deployed name.

        Raises:
            FormworkError: If no stack, or more than one, has this name
        """
        matches = [s for s in self.stacks if s.stack_name == stack_name]
        if not matches:
            raise FormworkError(f"Unable to find stack with stack name '{stack_name}'")
        if len(matches) > 1:
            raise FormworkError(
                f"There are multiple stacks with the stack name '{stack_name}'. "
                f"Use get_stack_artifact(id) instead"
            )
        return matches[0]

    def get_stack_artifact(self, artifact_id: str) -> StackArtifact:
        for stack in self.stacks:
            if stack.artifact_id == artifact_id:
                return stack
        raise FormworkError(f"Unable to find artifact with id '{artifact_id}'")

    @property
    def messages(self) -> list[AnnotationMessage]:
        """Every annotation in the app, including ones outside any stack."""
        if self._messages is not None:
            return list(self._messages)
        return [m for s in self.stacks for m in s.messages]

    @property
    def has_errors(self) -> bool:
        return any(m.level == MessageLevel.ERROR for m in self.messages)

    def manifest(self, template_format: str = "json") -> dict[str, Any]:
        """The assembly manifest."""
        ids_by_name = {s.stack_name: s.artifact_id for s in self.stacks}
        artifacts: dict[str, Any] = {}
        for stack in self.stacks:
            properties: dict[str, Any] = {
                "templateFile": stack.template_file_for(template_format),
                "stackName": stack.stack_name,
            }
            if stack.termination_protection:
                properties["terminationProtection"] = True
            if stack.tags:
                properties["tags"] = dict(stack.tags)

            metadata: dict[str, list[dict[str, str]]] = {}
            for message in stack.messages:
                metadata.setdefault("/" + message.path, []).append(
                    {"type": f"formwork:{message.level.value}", "data": message.message}
                )

            artifact: dict[str, Any] = {
                "type": STACK_ARTIFACT_TYPE,
                "environment": stack.environment,
                "properties": properties,
                "displayName": stack.display_name,
            }
            if stack.dependencies:
                artifact["dependencies"] = [ids_by_name.get(d, d) for d in stack.dependencies]
            if metadata:
                artifact["metadata"] = metadata
            artifacts[stack.artifact_id] = artifact

        if self.tree:
            artifacts["Tree"] = {"type": TREE_ARTIFACT_TYPE, "properties": {"file": TREE_FILE}}
        return {"version": ASSEMBLY_VERSION, "artifacts": artifacts}

    def write(self, outdir: str | Path, template_format: str = "json") -> Path:
        """
        Write the assembly to ``outdir``.

        Args:
            outdir: Output directory, created if missing
            template_format: ``json`` or ``yaml``

        Returns:
            The output directory
        """
        if template_format not in TEMPLATE_FORMATS:
            raise FormworkError(
                f"Unknown template format '{template_format}'. Expected one of: "
                f"{', '.join(TEMPLATE_FORMATS)}"
            )
        out = Path(outdir)
        out.mkdir(parents=True, exist_ok=True)

        for stack in self.stacks:
            path = out / stack.template_file_for(template_format)
            path.write_text(render_template(stack.template, template_format), encoding="utf-8")
            logger.debug("Wrote %s", path)

        (out / MANIFEST_FILE).write_text(
            json.dumps(self.manifest(template_format), indent=2) + "\n", encoding="utf-8"
        )
        if self.tree:
            (out / TREE_FILE).write_text(json.dumps(self.tree, indent=2) + "\n", encoding="utf-8")

        logger.info("Cloud assembly written to %s (%d stacks)", out, len(self.stacks))
        return out


def render_template(template: dict[str, Any], template_format: str = "json") -> str:
    """Serialize a template as JSON (indent 1) or YAML."""
    if template_format == "yaml":
        return yaml.safe_dump(template, sort_keys=False, default_flow_style=False)
    return json.dumps(template, indent=1) + "\n"


def build_tree(root: Construct) -> dict[str, Any]:
    """Snapshot of the construct tree for ``tree.json``."""
    from .cfn import CfnResource

    def node_info(construct: Construct) -> dict[str, Any]:
        cls = type(construct)
        info: dict[str, Any] = {
            "id": construct.node.id or "App",
            "path": construct.node.path,
            "constructInfo": {"fqn": f"{cls.__module__}.{cls.__qualname__}"},
        }
        if isinstance(construct, CfnResource):
            info["attributes"] = {"formwork:cloudformation:type": construct.cfn_resource_type}
        children = construct.node.children
        if children:
            info["children"] = {c.node.id: node_info(c) for c in children}
        return info

    return {"version": TREE_VERSION, "tree": node_info(root)}
