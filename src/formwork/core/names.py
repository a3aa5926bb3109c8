"""
Logical id and physical name generation.

Logical ids are derived from construct paths. They are human readable where
possible and always unique, because they end in a hash of the full path.
"""

from __future__ import annotations

import hashlib
import re
from typing import TYPE_CHECKING

from .errors import ValidationError
from .tokens import Token

if TYPE_CHECKING:
    from .construct import Construct, Node

MAX_ID_LEN = 255
MAX_HUMAN_LEN = 240
HASH_LEN = 8

# Path components with these ids don't contribute to the id.
HIDDEN_ID = "Default"
# Hidden from the human-readable part, but still hashed.
HIDDEN_FROM_HUMAN_ID = "Resource"

PATH_SEP = "/"

_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def _remove_non_alphanumeric(s: str) -> str:
    return _NON_ALPHANUMERIC.sub("", s)


def _remove_dupes(path: list[str]) -> list[str]:
    result: list[str] = []
    for component in path:
        if not result or not result[-1].endswith(component):
            result.append(component)
    return result


def _path_hash(path: list[str]) -> str:
    digest = hashlib.md5(PATH_SEP.join(path).encode("utf-8")).hexdigest()
    return digest[:HASH_LEN].upper()


def make_unique_id(components: list[str]) -> str:
    """
    Build a logical id from path components.

    Args:
        components: Construct ids from the stack down to the element

    Returns:
        An alphanumeric id of at most 255 characters

    Raises:
        ValidationError: If a component is an unresolved token
    """
    components = [c for c in components if c != HIDDEN_ID]
    if not components:
        raise ValidationError("Unable to calculate a unique id for an empty set of components")

    for component in components:
        if Token.is_unresolved(component):
            raise ValidationError(
                f"ID components may not include unresolved tokens: {PATH_SEP.join(components)}"
            )

    if len(components) == 1:
        candidate = _remove_non_alphanumeric(components[0])
        if len(candidate) <= MAX_ID_LEN:
            return candidate

    hash_part = _path_hash(components)
    human = [c for c in _remove_dupes(components) if c != HIDDEN_FROM_HUMAN_ID]
    human_part = _remove_non_alphanumeric("".join(human))[:MAX_HUMAN_LEN]
    return human_part + hash_part


def make_unique_resource_name(
    components: list[str],
    max_length: int = 256,
    separator: str = "",
    allowed_special_characters: str = "",
    hidden_prefix: int = 0,
) -> str:
    """
    Build a name from path components, keeping the head and tail when too long.

    The first ``hidden_prefix`` components are hashed but left out of the
    readable part.
    """
    readable = [c for c in components[hidden_prefix:] if c != HIDDEN_ID]
    components = [c for c in components if c != HIDDEN_ID]
    if not components:
        raise ValidationError("Unable to calculate a unique resource name for an empty path")

    hash_part = _path_hash(components)
    allowed = re.compile("[^A-Za-z0-9" + re.escape(allowed_special_characters) + "]")
    human = separator.join(
        allowed.sub("", c)
        for c in _remove_dupes(readable)
        if c != HIDDEN_FROM_HUMAN_ID
    )

    max_human = max_length - HASH_LEN
    if len(human) > max_human:
        head = max_human // 2
        tail = max_human - head
        human = human[:head] + human[len(human) - tail :]
    return human + hash_part


class Names:
    """Unique names for constructs."""

    @staticmethod
    def unique_id(construct: Construct) -> str:
        return Names.node_unique_id(construct.node)

    @staticmethod
    def node_unique_id(node: Node) -> str:
        components = [c.node.id for c in node.scopes[1:]]
        return make_unique_id(components) if components else ""

    @staticmethod
    def unique_resource_name(
        construct: Construct,
        max_length: int = 256,
        separator: str = "",
        allowed_special_characters: str = "",
    ) -> str:
        """
        A unique name for ``construct``, at most ``max_length`` characters.

        Unless ``@formwork/core:includePrefixInUniqueNameGeneration`` is on,
        the ids down to the owning stack are left out of the readable part.
        They always feed the hash.
        """
        from .feature_flags import INCLUDE_PREFIX_IN_UNIQUE_NAME_GENERATION, FeatureFlags
        from .stack import Stack

        scopes = construct.node.scopes[1:]
        components = [c.node.id for c in scopes]
        hidden_prefix = 0
        if not FeatureFlags.of(construct).is_enabled(INCLUDE_PREFIX_IN_UNIQUE_NAME_GENERATION):
            stack_depth = max(
                (i + 1 for i, scope in enumerate(scopes) if isinstance(scope, Stack)),
                default=0,
            )
            if stack_depth < len(components):
                hidden_prefix = stack_depth
        return make_unique_resource_name(
            components,
            max_length,
            separator,
            allowed_special_characters,
            hidden_prefix=hidden_prefix,
        )


def generate_physical_name(resource: Construct) -> str:
    """
    Generate a deterministic physical name for a resource.

    The name is ``<stack name prefix><unique id suffix><hash>``, lower-cased,
    where the hash covers the stack name, the unique id, the region and the
    account.

    Raises:
        ValidationError: If the stack name, region or account is not concrete
    """
    from .stack import Stack

    stack = Stack.of(resource)
    stack_name = stack.stack_name
    if Token.is_unresolved(stack_name):
        raise ValidationError(
            f"Cannot generate a physical name for {resource.node.path}: "
            f"the stack name is not a concrete value"
        )

    region = stack.region
    account = stack.account
    if Token.is_unresolved(region):
        raise ValidationError(
            f"Cannot generate a physical name for {resource.node.path}: "
            f"the stack region must be a concrete value"
        )
    if Token.is_unresolved(account):
        raise ValidationError(
            f"Cannot generate a physical name for {resource.node.path}: "
            f"the stack account must be a concrete value"
        )

    unique_id = Names.unique_id(resource)
    prefix = stack_name[:25]
    suffix = unique_id[-24:]
    digest = hashlib.sha256(
        "".join([prefix, suffix, region, account]).encode("utf-8")
    ).hexdigest()[:12]
    return (prefix + suffix + digest).lower()
