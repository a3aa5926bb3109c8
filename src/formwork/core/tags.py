"""
Tag management for taggable resources and stacks.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import ValidationError
from .tokens import Token

INITIAL_TAG_PRIORITY = 50


class TagType(str, Enum):
    """Shape of the tags property of a resource type."""

    STANDARD = "standard"
    AUTOSCALING_GROUP = "autoscaling_group"
    MAP = "map"
    NOT_TAGGABLE = "not_taggable"


@dataclass
class _Tag:
    key: str
    value: str
    priority: int
    apply_to_launched_instances: bool = True


def _parse_initial_tags(tag_type: TagType, initial: Any) -> list[_Tag]:
    if initial is None:
        return []
    if tag_type == TagType.MAP:
        if not isinstance(initial, dict):
            raise ValidationError(f"Expected a map of tags, got {initial!r}")
        return [_Tag(str(k), v, INITIAL_TAG_PRIORITY) for k, v in initial.items()]
    if not isinstance(initial, list):
        raise ValidationError(f"Expected a list of tags, got {initial!r}")
    tags = []
    for entry in initial:
        if not isinstance(entry, dict) or "Key" not in entry or "Value" not in entry:
            raise ValidationError(f"Invalid tag: {entry!r}")
        tags.append(
            _Tag(
                entry["Key"],
                entry["Value"],
                INITIAL_TAG_PRIORITY,
                entry.get("PropagateAtLaunch", True),
            )
        )
    return tags


class TagManager:
    """
    Tags applied to one resource.

    A tag set at a higher priority wins over one at a lower priority. At
    equal priority the most recent call wins.
    """

    def __init__(self, tag_type: TagType, resource_type: str, initial_tags: Any = None):
        self.tag_type = tag_type
        self.resource_type = resource_type
        self._tags: dict[str, _Tag] = {}
        self._priorities: dict[str, int] = {}
        self._dynamic_tags: Any = None

        if initial_tags is not None and Token.is_unresolved(initial_tags):
            self._dynamic_tags = initial_tags
        else:
            for tag in _parse_initial_tags(tag_type, initial_tags):
                self._set(tag)

    @staticmethod
    def is_taggable(construct: Any) -> bool:
        return isinstance(getattr(construct, "tags", None), TagManager)

    @staticmethod
    def of(construct: Any) -> TagManager | None:
        tags = getattr(construct, "tags", None)
        return tags if isinstance(tags, TagManager) else None

    def set_tag(
        self,
        key: str,
        value: str,
        priority: int = 0,
        apply_to_launched_instances: bool = True,
    ) -> None:
        """Set a tag unless a higher priority operation already touched this key."""
        if key.startswith("aws:"):
            raise ValidationError(f"Tag keys starting with 'aws:' are reserved: {key}")
        self._set(_Tag(key, value, priority, apply_to_launched_instances))

    def remove_tag(self, key: str, priority: int) -> None:
        if priority >= self._priorities.get(key, 0):
            self._tags.pop(key, None)
            self._priorities[key] = priority

    def _set(self, tag: _Tag) -> None:
        if tag.priority >= self._priorities.get(tag.key, 0):
            self._tags[tag.key] = tag
            self._priorities[tag.key] = tag.priority

    def has_tags(self) -> bool:
        return bool(self._tags) or self._dynamic_tags is not None

    def tag_values(self) -> dict[str, str]:
        """Tag keys to values, sorted by key."""
        return {key: self._tags[key].value for key in sorted(self._tags)}

    def render_tags(self) -> Any:
        """
        Render the tags in the shape of the resource's tags property.

        Returns:
            The rendered tags, or None when there are none

        Raises:
            ValidationError: If unresolved initial tags would be combined with
                managed tags
        """
        if self._dynamic_tags is not None:
            if self._tags:
                raise ValidationError(
                    f"Cannot add tags to a {self.resource_type} whose tags property "
                    f"is an unresolved token"
                )
            return self._dynamic_tags

        if not self._tags:
            return None
        ordered = [self._tags[key] for key in sorted(self._tags)]
        if self.tag_type == TagType.MAP:
            return {tag.key: tag.value for tag in ordered}
        if self.tag_type == TagType.AUTOSCALING_GROUP:
            return [
                {
                    "Key": tag.key,
                    "Value": tag.value,
                    "PropagateAtLaunch": tag.apply_to_launched_instances,
                }
                for tag in ordered
            ]
        if self.tag_type == TagType.STANDARD:
            return [{"Key": tag.key, "Value": tag.value} for tag in ordered]
        return None

    def apply_tag_aspect_here(
        self, include: Sequence[str] = (), exclude: Sequence[str] = ()
    ) -> bool:
        """Whether a tag aspect with these resource type filters applies here."""
        if self.resource_type in exclude:
            return False
        if include and self.resource_type not in include:
            return False
        return True
