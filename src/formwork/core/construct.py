"""
The construct tree.

Every configurable unit is a Construct. Constructs form a tree rooted at an
App. Each construct carries a Node holding its id, children, context,
metadata, dependencies and deferred validations.
"""

from __future__ import annotations

import hashlib
import weakref
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import ErrorContext, SynthesisError, ValidationError

PATH_SEP = "/"

Validation = Callable[[], list[str]]


class ConstructOrder(str, Enum):
    """Traversal order for ``Node.find_all``."""

    PREORDER = "preorder"
    POSTORDER = "postorder"


@dataclass
class MetadataEntry:
    """A metadata entry attached to a construct node."""

    type: str
    data: Any
    trace: list[str] = field(default_factory=list)


_UNSET: Any = object()


class Node:
    """Tree bookkeeping for a single construct."""

    def __init__(self, host: Construct, scope: Construct | None, id: str):
        id = id or ""
        if scope is not None and not id:
            raise ValidationError("Only root constructs may have an empty ID")
        if PATH_SEP in id:
            raise ValidationError(f"Construct id '{id}' cannot contain '{PATH_SEP}'")

        self.host = host
        self.scope = scope
        self.id = id

        self._children: dict[str, Construct] = {}
        self._context: dict[str, Any] = {}
        self._metadata: list[MetadataEntry] = []
        self._dependencies: list[Any] = []
        self._validations: list[Validation] = []
        self._locked = False
        self._default_child: Any = _UNSET

        if scope is not None:
            scope.node._add_child(id, host)

    # -------------------------------------------------------------------------
    # Tree structure
    # -------------------------------------------------------------------------

    @property
    def scopes(self) -> list[Construct]:
        """All constructs from the root down to this one."""
        chain: list[Construct] = []
        current: Construct | None = self.host
        while current is not None:
            chain.append(current)
            current = current.node.scope
        return list(reversed(chain))

    @property
    def root(self) -> Construct:
        return self.scopes[0]

    @property
    def path(self) -> str:
        """Ids from the root to this construct, joined by '/'. Empty ids are skipped."""
        return PATH_SEP.join(c.node.id for c in self.scopes if c.node.id)

    @property
    def addr(self) -> str:
        """Stable 42-character address derived from the path."""
        digest = hashlib.sha1(self.path.encode("utf-8")).hexdigest()
        return "c8" + digest

    @property
    def children(self) -> list[Construct]:
        return list(self._children.values())

    def try_find_child(self, id: str) -> Construct | None:
        return self._children.get(id)

    def find_child(self, id: str) -> Construct:
        child = self.try_find_child(id)
        if child is None:
            raise ValidationError(f"No child with id: '{id}'")
        return child

    def find_all(self, order: ConstructOrder = ConstructOrder.PREORDER) -> list[Construct]:
        """Return this construct and all of its descendants."""
        result: list[Construct] = []

        def visit(construct: Construct) -> None:
            if order == ConstructOrder.PREORDER:
                result.append(construct)
            for child in construct.node.children:
                visit(child)
            if order == ConstructOrder.POSTORDER:
                result.append(construct)

        visit(self.host)
        return result

    def try_remove_child(self, id: str) -> bool:
        """Remove a child. Returns False if there was no such child."""
        if id not in self._children:
            return False
        del self._children[id]
        return True

    def _add_child(self, id: str, child: Construct) -> None:
        if self.locked:
            if not self.path:
                raise SynthesisError(
                    "Cannot add children during synthesis. Please create all constructs "
                    "before calling synth()"
                )
            raise SynthesisError(
                f'Cannot add children to "{self.path}" during synthesis. '
                f"Please create all constructs before calling synth()"
            )
        if id in self._children:
            raise ValidationError(
                f"There is already a Construct with name '{id}'",
                context=ErrorContext(self.path, type(self.host).__name__),
            )
        self._children[id] = child

    # -------------------------------------------------------------------------
    # Default child
    # -------------------------------------------------------------------------

    @property
    def default_child(self) -> Construct | None:
        """
        The child that represents this construct's primary resource.

        Explicitly set, or else the child named 'Resource' or 'Default'.
        """
        if self._default_child is not _UNSET:
            return self._default_child
        resource = self._children.get("Resource")
        default = self._children.get("Default")
        if resource is not None and default is not None:
            raise ValidationError(
                f"Cannot determine default child for {self.path}. There is both a child "
                f"with id 'Resource' and id 'Default'"
            )
        return resource or default

    @default_child.setter
    def default_child(self, value: Construct | None) -> None:
        self._default_child = value

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------

    def set_context(self, key: str, value: Any) -> None:
        """Set a context value. Only allowed before any children are added."""
        if self._children:
            names = ", ".join(c.node.id for c in self.children)
            raise ValidationError(
                f"Cannot set context after children have been added: {names}"
            )
        self._context[key] = value

    def try_get_context(self, key: str) -> Any:
        """Look up a context value on this node or the nearest scope that has it."""
        if key in self._context:
            return self._context[key]
        if self.scope is None:
            return None
        return self.scope.node.try_get_context(key)

    def get_all_context(self, defaults: dict[str, Any] | None = None) -> dict[str, Any]:
        """Merge the context of every scope, nearer scopes winning."""
        merged: dict[str, Any] = dict(defaults or {})
        for construct in self.scopes:
            merged.update(construct.node._context)
        return merged

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    @property
    def metadata(self) -> list[MetadataEntry]:
        return list(self._metadata)

    def add_metadata(self, type: str, data: Any, trace: list[str] | None = None) -> None:
        """Attach a metadata entry. ``None`` data is ignored."""
        if data is None:
            return
        self._metadata.append(MetadataEntry(type=type, data=data, trace=list(trace or [])))

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def add_validation(self, validation: Validation | Any) -> None:
        """
        Register a validation that runs during synthesis.

        Accepts a callable returning error messages, or an object with a
        ``validate()`` method returning them.
        """
        if not callable(validation) and not hasattr(validation, "validate"):
            raise ValidationError("A validation must be callable or have a validate() method")
        self._validations.append(validation)

    def validate(self) -> list[str]:
        """Run this node's validations and return their error messages."""
        errors: list[str] = []
        for validation in self._validations:
            if callable(validation):
                errors.extend(validation())
            else:
                errors.extend(validation.validate())
        return errors

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def add_dependency(self, *dependables: Any) -> None:
        """Make this construct depend on other constructs or dependency groups."""
        self._dependencies.extend(dependables)

    @property
    def dependencies(self) -> list[Construct]:
        """Constructs this construct depends on, expanded to their dependency roots."""
        result: list[Construct] = []
        for dependable in self._dependencies:
            for root in Dependable.get_dependency_roots(dependable):
                if not any(root is existing for existing in result):
                    result.append(root)
        return result

    # -------------------------------------------------------------------------
    # Locking
    # -------------------------------------------------------------------------

    def lock(self) -> None:
        """Forbid adding children to this subtree."""
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    @property
    def locked(self) -> bool:
        return any(c.node._locked for c in self.scopes)


class Construct:
    """A node in the construct tree."""

    def __init__(self, scope: Construct | None, id: str):
        self.node = Node(self, scope, id)

    @staticmethod
    def is_construct(x: Any) -> bool:
        return isinstance(x, Construct)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.node.path or '<root>'}>"


# =============================================================================
# Dependables
# =============================================================================

_DEPENDABLE_ROOTS: weakref.WeakKeyDictionary[Any, list[Any]] = weakref.WeakKeyDictionary()


class Dependable:
    """Registry mapping an object to the constructs that must exist before it."""

    @staticmethod
    def implement(instance: Any, dependency_roots: list[Any]) -> None:
        """Declare the dependency roots of an object."""
        _DEPENDABLE_ROOTS[instance] = dependency_roots

    @staticmethod
    def get_dependency_roots(instance: Any) -> list[Construct]:
        """Expand an object to the constructs it stands for."""
        roots = _DEPENDABLE_ROOTS.get(instance)
        if roots is None:
            if isinstance(instance, Construct):
                return [instance]
            raise ValidationError(f"{instance!r} does not implement Dependable")

        result: list[Construct] = []
        for root in roots:
            expanded = [root] if root is instance else Dependable.get_dependency_roots(root)
            for construct in expanded:
                if not any(construct is existing for existing in result):
                    result.append(construct)
        return result


class DependencyGroup:
    """A collection of dependables that can be depended on as one."""

    def __init__(self, *dependables: Any):
        self._dependables: list[Any] = list(dependables)
        Dependable.implement(self, self._dependables)

    def add(self, *dependables: Any) -> None:
        self._dependables.extend(dependables)

    def __iter__(self) -> Iterable[Any]:  # type: ignore[override]
        return iter(self._dependables)
