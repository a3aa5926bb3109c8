"""
The synthesis pipeline.

Turns a construct tree into a CloudAssembly in five phases:

1. Aspects:    apply every aspect to every construct in its scope
2. Prepare:    map construct dependencies, wire cross-stack references
3. Validate:   run deferred validations, fail with all errors at once
4. Synthesize: lock the tree, render each stack's template in dependency order
5. Assemble:   build the assembly and optionally write it out
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .annotations import AnnotationMessage, Annotations, collect_messages, messages_of
from .aspects import AspectApplication, Aspects
from .assembly import CloudAssembly, StackArtifact, build_tree
from .cfn import CfnElement, CfnOutput, CfnResource
from .construct import Construct
from .errors import SynthesisError, ValidationError, make_validation_error
from .graph import topological_sort
from .names import make_unique_id
from .references import CfnReference
from .resolve import RememberingTokenResolver, resolve
from .stack import Stack
from .tokens import Intrinsic, Token

logger = logging.getLogger(__name__)

MAX_ASPECT_PASSES = 100
MAX_EXPORT_NAME_LENGTH = 255
EXPORTS_SCOPE_ID = "Exports"

ASPECT_PRIORITY_INVERSION_WARNING = "@formwork/core:aspectPriorityInversion"


def synthesize(
    root: Construct,
    outdir: str | None = None,
    validate: bool = True,
    template_format: str = "json",
    tree_metadata: bool = True,
) -> CloudAssembly:
    """
    Synthesize a construct tree.

    Args:
        root: Root of the tree, usually an App
        outdir: Directory to write the assembly to; nothing is written if None
        validate: Whether to run deferred validations
        template_format: ``json`` or ``yaml`` for written templates
        tree_metadata: Whether to include a snapshot of the construct tree

    Returns:
        The cloud assembly

    Raises:
        ValidationError: If any deferred validation fails
        SynthesisError: If the tree cannot be rendered
    """
    logger.debug("Invoking aspects")
    invoke_aspects(root)

    logger.debug("Preparing app")
    prepare_app(root)

    if validate:
        logger.debug("Validating tree")
        validate_tree(root)

    logger.debug("Synthesizing stacks")
    artifacts = synthesize_stacks(root)

    assembly = CloudAssembly(
        artifacts,
        tree=build_tree(root) if tree_metadata else None,
        messages=collect_messages(root),
    )
    if outdir is not None:
        assembly.write(outdir, template_format)
    return assembly


# =============================================================================
# Phase 1: Aspects
# =============================================================================


def invoke_aspects(root: Construct) -> None:
    """
    Apply aspects until a pass invokes nothing new.

    Raises:
        SynthesisError: If aspects are still being invoked after 100 passes
    """
    for pass_number in range(1, MAX_ASPECT_PASSES + 1):
        if not _invoke_aspects_pass(root):
            logger.debug("Aspects settled after %d pass(es)", pass_number)
            return
    raise SynthesisError(
        "We have detected a possible infinite loop while invoking Aspects. Please check "
        "your Aspects and verify there is no configuration that would cause infinite "
        "Aspect or Node creation."
    )


def _invoke_aspects_pass(root: Construct) -> bool:
    invoked_any = False

    def visit(construct: Construct, inherited: list[AspectApplication]) -> None:
        nonlocal invoked_any
        state = Aspects.of(construct)
        # sorted() is stable, so inherited aspects go first at equal priority.
        applications = sorted([*inherited, *state.applied], key=lambda app: app.priority)

        for application in applications:
            if state.has_invoked(application.aspect):
                continue
            highest = state.highest_invoked_priority
            if highest is not None and application.priority < highest:
                Annotations.of(construct).add_warning_v2(
                    ASPECT_PRIORITY_INVERSION_WARNING,
                    f"Cannot invoke Aspect {type(application.aspect).__name__} with priority "
                    f"{application.priority} on node {construct.node.path}: an Aspect with "
                    f"a higher priority number ({highest}) was already invoked on this node.",
                )
            application.aspect.visit(construct)
            state.mark_invoked(application)
            invoked_any = True

        for child in construct.node.children:
            visit(child, applications)

    visit(root, [])
    return invoked_any


# =============================================================================
# Phase 2: Prepare
# =============================================================================


def find_stacks(root: Construct) -> list[Stack]:
    return [c for c in root.node.find_all() if isinstance(c, Stack)]


def prepare_app(root: Construct) -> None:
    """Map construct dependencies and wire cross-stack references."""
    for construct in root.node.find_all():
        for target in construct.node.dependencies:
            _add_construct_dependency(construct, target)

    for stack in find_stacks(root):
        for reference in find_tokens(stack):
            if isinstance(reference, CfnReference):
                _resolve_reference(stack, reference)


def _add_construct_dependency(source: Construct, target: Construct) -> None:
    if source is target:
        return
    if isinstance(source, Stack) or isinstance(target, Stack):
        source_stack = Stack.of(source)
        target_stack = Stack.of(target)
        if source_stack is not target_stack:
            source_stack.add_dependency(
                target_stack, f"{source.node.path} -> {target.node.path}"
            )
        return

    source_resources = [c for c in source.node.find_all() if isinstance(c, CfnResource)]
    target_resources = [c for c in target.node.find_all() if isinstance(c, CfnResource)]
    for source_resource in source_resources:
        for target_resource in target_resources:
            if source_resource is not target_resource:
                source_resource.add_depends_on(target_resource)


def find_tokens(stack: Stack) -> list[Any]:
    """Every token the stack's elements resolve to, in order of first use."""
    resolver = RememberingTokenResolver()
    for element in stack._elements():
        resolve(element._to_template(), scope=element, preparing=True, resolver=resolver)
    return resolver.tokens


def _resolve_reference(consumer: Stack, reference: CfnReference) -> None:
    producer = Stack.of(reference.target)
    if producer is consumer or reference.has_value_for_stack(consumer):
        return

    if producer.node.root is not consumer.node.root:
        raise ValidationError(
            f"Cannot reference across apps. Consuming and producing stacks must be defined "
            f"within the same app ('{consumer.node.path}' references "
            f"'{reference.target.node.path}')"
        )
    if producer.environment != consumer.environment:
        raise ValidationError(
            f"Stack '{consumer.node.path}' cannot consume a cross reference from stack "
            f"'{producer.node.path}'. Cross stack references are only supported for stacks "
            f"deployed to the same environment ({consumer.environment} != "
            f"{producer.environment})"
        )

    consumer.add_dependency(
        producer,
        f"{consumer.node.path} -> {reference.target.node.path}.{reference.display_name}",
    )
    export_name = _create_export(producer, reference)
    reference.assign_value_for_stack(consumer, Intrinsic({"Fn::ImportValue": export_name}))
    logger.debug(
        "Stack %s imports %s from %s", consumer.node.path, export_name, producer.node.path
    )


def _create_export(producer: Stack, reference: CfnReference) -> str:
    if isinstance(reference.target, CfnElement):
        reference.target._lock_logical_id()

    exports = producer.node.try_find_child(EXPORTS_SCOPE_ID) or Construct(
        producer, EXPORTS_SCOPE_ID
    )
    resolved = producer.resolve(reference)
    id = "Output" + json.dumps(resolved, separators=(",", ":"))

    output = exports.node.try_find_child(id)
    if isinstance(output, CfnOutput):
        return output.export_name

    export_name = generate_export_name(exports, id)
    if Token.is_unresolved(export_name):
        raise SynthesisError(
            f"Unresolved token in export name of {reference.target.node.path}: {export_name}"
        )
    CfnOutput(exports, id, value=Token.as_string(reference), export_name=export_name)
    return export_name


def generate_export_name(scope: Construct, id: str) -> str:
    """``<stack name>:<unique id>``, keeping the end when too long."""
    stack = Stack.of(scope)
    scopes = scope.node.scopes
    index = next(i for i, s in enumerate(scopes) if s is stack)
    components = [*(s.node.id for s in scopes[index + 1 :]), id]
    prefix = f"{stack.stack_name}:" if stack.stack_name else ""
    local = make_unique_id(components)
    return prefix + local[max(0, len(local) - MAX_EXPORT_NAME_LENGTH + len(prefix)) :]


# =============================================================================
# Phase 3: Validate
# =============================================================================


def validate_tree(root: Construct) -> None:
    """
    Run every deferred validation.

    Raises:
        ValidationError: Listing every failure in tree order
    """
    errors: list[tuple[str, str]] = []
    for construct in root.node.find_all():
        for message in construct.node.validate():
            errors.append((construct.node.path, message))
    if errors:
        raise make_validation_error(errors)


# =============================================================================
# Phase 4: Synthesize
# =============================================================================


def synthesize_stacks(root: Construct) -> list[StackArtifact]:
    """Lock the tree and render every stack, dependencies first."""
    stacks = find_stacks(root)
    by_path = {stack.node.path: stack for stack in stacks}
    order = topological_sort(
        list(by_path),
        {path: [dep.node.path for dep in stack.dependencies] for path, stack in by_path.items()},
        what="stacks",
    )

    root.node.lock()
    try:
        artifacts = [_synthesize_stack(by_path[path]) for path in order]
    finally:
        root.node.unlock()
    return artifacts


def _messages_for(stack: Stack) -> list[AnnotationMessage]:
    return [
        message
        for construct in stack.node.find_all()
        if _owning_stack(construct) is stack
        for message in messages_of(construct)
    ]


def _owning_stack(construct: Construct) -> Stack | None:
    for scope in reversed(construct.node.scopes):
        if isinstance(scope, Stack):
            return scope
    return None


def _synthesize_stack(stack: Stack) -> StackArtifact:
    template = stack._to_template()
    artifact = StackArtifact(
        artifact_id=stack.artifact_id,
        stack_name=stack.stack_name,
        display_name=stack.node.path,
        template=template,
        environment=stack.environment,
        dependencies=[dep.stack_name for dep in stack.dependencies],
        tags=stack.tags.tag_values(),
        termination_protection=stack.termination_protection,
        messages=_messages_for(stack),
    )
    logger.info(
        "Synthesized stack %s (%d resources)", stack.stack_name, len(artifact.resources)
    )
    return artifact
