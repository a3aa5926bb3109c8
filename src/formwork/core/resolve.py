"""
Recursive token resolution.

``resolve()`` walks a value tree and replaces every token, whether it is an
IResolvable object or an encoded string, number or list, with its template
value. Resolution is re-entrant: whatever a token produces is resolved
again, so lazies may return other tokens.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from . import cfn_lang
from .errors import TokenResolutionError
from .tokens import (
    LIST_TOKEN_REGEX,
    IResolvable,
    Token,
    TokenizedString,
    TokenMap,
)

if TYPE_CHECKING:
    from .construct import Construct

logger = logging.getLogger(__name__)

# Deeper trees than this are almost certainly self-referencing objects.
MAX_RESOLVE_DEPTH = 200

PostProcessor = Callable[[Any, "ResolveContext"], Any]


# =============================================================================
# Resolve Context
# =============================================================================


class ResolveContext:
    """
    Context passed to ``IResolvable.resolve()``.

    Attributes:
        scope: Construct on whose behalf resolution happens
        preparing: True while synthesis is still preparing the tree
        document_path: Keys leading to the value being resolved
    """

    def __init__(
        self,
        scope: Construct,
        preparing: bool,
        resolver: TokenResolver,
        document_path: list[str],
        resolving: tuple[IResolvable, ...] = (),
    ):
        self.scope = scope
        self.preparing = preparing
        self.resolver = resolver
        self.document_path = document_path
        self._resolving = resolving
        self.post_processor: PostProcessor | None = None

    def register_post_processor(self, post_processor: PostProcessor) -> None:
        """Run a function over the fully resolved value of the current token."""
        self.post_processor = post_processor

    def resolve(self, value: Any) -> Any:
        """Resolve a nested value within the current context."""
        return resolve(
            value,
            scope=self.scope,
            prefix=self.document_path,
            preparing=self.preparing,
            resolver=self.resolver,
            _resolving=self._resolving,
        )


# =============================================================================
# Resolvers
# =============================================================================


class TokenResolver:
    """Default strategy for resolving tokens, strings and lists."""

    def resolve_token(self, token: IResolvable, context: ResolveContext) -> Any:
        resolved = token.resolve(context)
        resolved = context.resolve(resolved)
        if context.post_processor is not None:
            resolved = context.post_processor(resolved, context)
        return resolved

    def resolve_string(self, fragments: TokenizedString, context: ResolveContext) -> Any:
        if fragments.is_single_token:
            return context.resolve(fragments.first_token)
        parts = [
            context.resolve(fragment.token) if fragment.is_token else fragment.literal
            for fragment in fragments.fragments
        ]
        return cfn_lang.concat(parts)

    def resolve_list(self, value: list[str], context: ResolveContext) -> Any:
        token = TokenMap.instance().lookup_list(value)
        if token is None:
            raise TokenResolutionError(f"Could not find a token for list: {value!r}")
        return context.resolve(token)


class RememberingTokenResolver(TokenResolver):
    """Resolver that records every token it encounters."""

    def __init__(self) -> None:
        self._tokens: list[IResolvable] = []
        self._seen: set[int] = set()

    def _remember(self, token: IResolvable) -> None:
        if id(token) not in self._seen:
            self._seen.add(id(token))
            self._tokens.append(token)

    def resolve_token(self, token: IResolvable, context: ResolveContext) -> Any:
        self._remember(token)
        return super().resolve_token(token, context)

    def resolve_string(self, fragments: TokenizedString, context: ResolveContext) -> Any:
        for token in fragments.tokens:
            self._remember(token)
        return super().resolve_string(fragments, context)

    @property
    def tokens(self) -> list[IResolvable]:
        """Tokens seen so far, in order of first encounter."""
        return list(self._tokens)


DEFAULT_RESOLVER = TokenResolver()


# =============================================================================
# Resolution
# =============================================================================


def _describe(token: IResolvable) -> str:
    hint = getattr(token, "display_hint", None) or getattr(token, "display_name", None)
    return hint or type(token).__name__


def resolve(
    obj: Any,
    scope: Construct,
    prefix: list[str] | None = None,
    preparing: bool = False,
    resolver: TokenResolver | None = None,
    _resolving: tuple[IResolvable, ...] = (),
) -> Any:
    """
    Resolve every token in a value tree.

    Args:
        obj: Value to resolve
        scope: Construct on whose behalf resolution happens
        prefix: Document path of ``obj``, used in error messages
        preparing: Whether synthesis is still in its prepare phase
        resolver: Token resolution strategy

    Returns:
        The value with every token replaced. ``None`` entries of lists and
        dicts are dropped.

    Raises:
        TokenResolutionError: On cycles or values with no template form
    """
    path = list(prefix or [])
    resolver = resolver or DEFAULT_RESOLVER
    path_name = "/" + "/".join(path)

    def make_context(resolving: tuple[IResolvable, ...] = _resolving) -> ResolveContext:
        return ResolveContext(scope, preparing, resolver, path, resolving)

    if len(path) > MAX_RESOLVE_DEPTH:
        raise TokenResolutionError(
            f"Unable to resolve object tree with circular reference. Path: {path_name}"
        )

    if obj is None:
        return None

    if isinstance(obj, Enum):
        obj = obj.value

    if isinstance(obj, bool):
        return obj

    if isinstance(obj, str):
        if not Token.is_unresolved(obj):
            return obj
        if LIST_TOKEN_REGEX.search(obj):
            raise TokenResolutionError(
                f"Found an encoded list token string in a scalar string context at "
                f"{path_name}. Use Fn.select(0, value) to get a single element."
            )
        fragments = TokenMap.instance().split_string(obj)
        return resolver.resolve_string(fragments, make_context())

    if isinstance(obj, (int, float)):
        if isinstance(obj, float):
            token = TokenMap.instance().lookup_number_token(obj)
            if token is not None:
                return make_context().resolve(token)
        return obj

    if isinstance(obj, (list, tuple)):
        if isinstance(obj, list) and Token.is_unresolved(obj):
            return resolver.resolve_list(obj, make_context())
        result = []
        for index, item in enumerate(obj):
            value = resolve(
                item,
                scope=scope,
                prefix=[*path, str(index)],
                preparing=preparing,
                resolver=resolver,
                _resolving=_resolving,
            )
            if value is None:
                continue
            result.append(value)
        return result

    if isinstance(obj, IResolvable):
        if any(obj is entry for entry in _resolving):
            chain = " -> ".join(_describe(t) for t in (*_resolving, obj))
            raise TokenResolutionError(
                f"Cycle detected while resolving token at {path_name}: {chain}"
            )
        return resolver.resolve_token(obj, make_context((*_resolving, obj)))

    if isinstance(obj, dict):
        output: dict[str, Any] = {}
        for key, item in obj.items():
            resolved_key = resolve(
                key,
                scope=scope,
                prefix=[*path, str(key)],
                preparing=preparing,
                resolver=resolver,
                _resolving=_resolving,
            )
            if not isinstance(resolved_key, str):
                raise TokenResolutionError(
                    f'"{key}" is used as the key in a map so must resolve to a string, '
                    f"but it resolves to: {json.dumps(resolved_key)}"
                )
            value = resolve(
                item,
                scope=scope,
                prefix=[*path, resolved_key],
                preparing=preparing,
                resolver=resolver,
                _resolving=_resolving,
            )
            if value is None:
                continue
            output[resolved_key] = value
        return output

    from .construct import Construct

    if isinstance(obj, Construct):
        raise TokenResolutionError(f"Trying to resolve() a Construct at {path_name}")

    raise TokenResolutionError(
        f"Unable to resolve object of type {type(obj).__name__} at {path_name}"
    )


# =============================================================================
# Tokenization
# =============================================================================


class Tokenization:
    """Reverse and resolve token encodings."""

    @staticmethod
    def reverse_string(value: str) -> TokenizedString:
        """Split a string into its literal and token fragments."""
        return TokenMap.instance().split_string(value)

    @staticmethod
    def reverse_number(value: float) -> IResolvable | None:
        return TokenMap.instance().lookup_number_token(value)

    @staticmethod
    def reverse_list(value: list[Any]) -> IResolvable | None:
        return TokenMap.instance().lookup_list(value)

    @staticmethod
    def reverse(value: Any) -> IResolvable | None:
        """Return the resolvable behind a single encoded value, if any."""
        if isinstance(value, IResolvable):
            return value
        if isinstance(value, str):
            return TokenMap.instance().lookup_string(value)
        if isinstance(value, float):
            return TokenMap.instance().lookup_number_token(value)
        if isinstance(value, list):
            return TokenMap.instance().lookup_list(value)
        return None

    @staticmethod
    def resolve(
        obj: Any,
        scope: Construct,
        preparing: bool = False,
        resolver: TokenResolver | None = None,
    ) -> Any:
        return resolve(obj, scope=scope, preparing=preparing, resolver=resolver)

    @staticmethod
    def is_resolvable(obj: Any) -> bool:
        return isinstance(obj, IResolvable)
