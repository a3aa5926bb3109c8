"""
Aspects: visitors applied to every construct in a scope during synthesis.

Tags are implemented as aspects, so ``Tags.of(scope).add(...)`` reaches
every taggable resource created under ``scope``, including ones created
after the call.
"""

from __future__ import annotations

import weakref
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

from .errors import ValidationError
from .tags import TagManager

if TYPE_CHECKING:
    from .construct import Construct


class AspectPriority(IntEnum):
    """Standard aspect priorities. Lower numbers run first."""

    MUTATING = 200
    DEFAULT = 500
    READONLY = 1000


class IAspect(ABC):
    """A visitor applied to constructs during synthesis."""

    @abstractmethod
    def visit(self, node: Construct) -> None:
        ...


@dataclass(frozen=True, eq=False)
class AspectApplication:
    """An aspect added to a construct with a priority."""

    construct: Construct
    aspect: IAspect
    priority: int


_ASPECTS: weakref.WeakKeyDictionary[Construct, Aspects] = weakref.WeakKeyDictionary()


class Aspects:
    """The aspects added to a construct."""

    def __init__(self, scope: Construct):
        self._scope = scope
        self._applications: list[AspectApplication] = []
        self._invoked: list[AspectApplication] = []

    @staticmethod
    def of(scope: Construct) -> Aspects:
        aspects = _ASPECTS.get(scope)
        if aspects is None:
            aspects = Aspects(scope)
            _ASPECTS[scope] = aspects
        return aspects

    def add(self, aspect: IAspect, priority: int = AspectPriority.DEFAULT) -> None:
        """Apply ``aspect`` to this construct and everything under it."""
        if any(app.aspect is aspect for app in self._applications):
            return
        self._applications.append(AspectApplication(self._scope, aspect, int(priority)))

    @property
    def all(self) -> list[IAspect]:
        return [app.aspect for app in self._applications]

    @property
    def applied(self) -> list[AspectApplication]:
        return list(self._applications)

    # Bookkeeping used by synthesis: which aspects already visited this construct.

    def has_invoked(self, aspect: IAspect) -> bool:
        return any(app.aspect is aspect for app in self._invoked)

    def mark_invoked(self, application: AspectApplication) -> None:
        self._invoked.append(application)

    @property
    def highest_invoked_priority(self) -> int | None:
        if not self._invoked:
            return None
        return max(app.priority for app in self._invoked)


# =============================================================================
# Tags
# =============================================================================


class _TagBase(IAspect):
    def __init__(
        self,
        key: str,
        priority: int,
        include_resource_types: Sequence[str] = (),
        exclude_resource_types: Sequence[str] = (),
        apply_to_launched_instances: bool = True,
    ):
        self.key = key
        self.priority = priority
        self.include_resource_types = tuple(include_resource_types)
        self.exclude_resource_types = tuple(exclude_resource_types)
        self.apply_to_launched_instances = apply_to_launched_instances

    def visit(self, node: Construct) -> None:
        tags = TagManager.of(node)
        if tags is None:
            return
        if not tags.apply_tag_aspect_here(self.include_resource_types, self.exclude_resource_types):
            return
        self._apply(tags)

    def _apply(self, tags: TagManager) -> None:
        raise NotImplementedError


class Tag(_TagBase):
    """Aspect that sets a tag on every taggable construct in scope."""

    def __init__(self, key: str, value: str, priority: int = 100, **kwargs):
        super().__init__(key, priority, **kwargs)
        if not key:
            raise ValidationError("Tag key must not be empty")
        self.value = value

    def _apply(self, tags: TagManager) -> None:
        tags.set_tag(self.key, self.value, self.priority, self.apply_to_launched_instances)


class RemoveTag(_TagBase):
    """Aspect that removes a tag from every taggable construct in scope."""

    def __init__(self, key: str, priority: int = 200, **kwargs):
        super().__init__(key, priority, **kwargs)

    def _apply(self, tags: TagManager) -> None:
        tags.remove_tag(self.key, self.priority)


class Tags:
    """Tag API for a scope."""

    def __init__(self, scope: Construct):
        self._scope = scope

    @staticmethod
    def of(scope: Construct) -> Tags:
        return Tags(scope)

    def add(
        self,
        key: str,
        value: str,
        priority: int = 100,
        include_resource_types: Sequence[str] = (),
        exclude_resource_types: Sequence[str] = (),
        apply_to_launched_instances: bool = True,
    ) -> None:
        """Add a tag to every taggable construct in this scope."""
        Aspects.of(self._scope).add(
            Tag(
                key,
                value,
                priority,
                include_resource_types=include_resource_types,
                exclude_resource_types=exclude_resource_types,
                apply_to_launched_instances=apply_to_launched_instances,
            ),
            priority=AspectPriority.MUTATING,
        )

    def remove(
        self,
        key: str,
        priority: int = 200,
        include_resource_types: Sequence[str] = (),
        exclude_resource_types: Sequence[str] = (),
    ) -> None:
        """Remove a tag from every taggable construct in this scope."""
        Aspects.of(self._scope).add(
            RemoveTag(
                key,
                priority,
                include_resource_types=include_resource_types,
                exclude_resource_types=exclude_resource_types,
            ),
            priority=AspectPriority.MUTATING,
        )
