"""
References to template elements.

A CfnReference renders as ``Ref`` or ``Fn::GetAtt`` in the stack that owns
the target. When another stack consumes it, synthesis assigns a
replacement value for that stack (an ``Fn::ImportValue`` of an export).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .errors import SynthesisError
from .resolve import ResolveContext
from .stack import Stack
from .tokens import IResolvable, Intrinsic

if TYPE_CHECKING:
    from .cfn import CfnElement


class CfnReference(Intrinsic):
    """A ``Ref`` or ``Fn::GetAtt`` to a template element."""

    def __init__(self, value: Any, display_name: str, target: CfnElement):
        super().__init__(value, display_hint=display_name)
        self.display_name = display_name
        self.target = target
        self._replacement_tokens: dict[Stack, IResolvable] = {}

    @staticmethod
    def for_(target: CfnElement, attribute: str) -> CfnReference:
        """
        Return the reference to an attribute of ``target``. ``"Ref"`` means ``Ref``.

        References are interned, so the same attribute always yields the same
        object and the same token encoding.
        """
        cache: dict[str, CfnReference] = target.__dict__.setdefault("_cfn_references", {})
        reference = cache.get(attribute)
        if reference is None:
            if attribute == "Ref":
                value: Any = {"Ref": target.logical_id}
                display_name = "Ref"
            else:
                value = {"Fn::GetAtt": [target.logical_id, attribute]}
                display_name = attribute
            reference = CfnReference(value, display_name, target)
            cache[attribute] = reference
        return reference

    @property
    def is_ref(self) -> bool:
        return self.display_name == "Ref"

    def resolve(self, context: ResolveContext) -> Any:
        consuming_stack = Stack.of(context.scope)
        token = self._replacement_tokens.get(consuming_stack)
        if token is not None:
            return token.resolve(context)
        return super().resolve(context)

    def has_value_for_stack(self, stack: Stack) -> bool:
        return stack in self._replacement_tokens

    def assign_value_for_stack(self, stack: Stack, value: IResolvable) -> None:
        """Use ``value`` wherever ``stack`` consumes this reference."""
        if self.has_value_for_stack(stack):
            raise SynthesisError(
                f"Cannot assign a value for the same stack twice: {stack.node.path}"
            )
        self._replacement_tokens[stack] = value

    def __repr__(self) -> str:
        return f"CfnReference({self.target.node.path}.{self.display_name})"
