"""
Annotations: informational, warning and error messages attached to constructs.

Annotations are stored as node metadata and collected into the cloud
assembly during synthesis. Error annotations fail the CLI; in strict mode
warnings fail synthesis too.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .feature_flags import parse_bool

if TYPE_CHECKING:
    from .construct import Construct

logger = logging.getLogger(__name__)

INFO = "formwork:info"
WARNING = "formwork:warning"
ERROR = "formwork:error"
ACKNOWLEDGE = "formwork:acknowledge"
DEPRECATIONS_AS_ERRORS = "formwork:deprecationsAsErrors"


class MessageLevel(str, Enum):
    """Severity of an annotation."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_LEVEL_BY_TYPE = {INFO: MessageLevel.INFO, WARNING: MessageLevel.WARNING, ERROR: MessageLevel.ERROR}


@dataclass(frozen=True)
class AnnotationMessage:
    """An annotation collected from the tree."""

    level: MessageLevel
    path: str
    message: str

    def format(self) -> str:
        return f"[{self.level.value}] {self.path or '<root>'}: {self.message}"


def _ack_suffix(id: str) -> str:
    return f" [ack: {id}]"


class Annotations:
    """Annotation API for a construct."""

    def __init__(self, scope: Construct):
        self._scope = scope

    @staticmethod
    def of(scope: Construct) -> Annotations:
        return Annotations(scope)

    def add_info(self, message: str) -> None:
        self._add(INFO, message)

    def add_warning(self, message: str) -> None:
        """Add a warning. Prefer ``add_warning_v2`` so users can acknowledge it."""
        self._add(WARNING, message)

    def add_warning_v2(self, id: str, message: str) -> None:
        """Add a warning that can be acknowledged by ``id``."""
        if self._is_acknowledged(id):
            return
        self._add(WARNING, message + _ack_suffix(id))

    def acknowledge_warning(self, id: str, message: str | None = None) -> None:
        """
        Acknowledge a warning on this construct and everything under it.

        Warnings already added with this id are removed; later ones are
        suppressed.
        """
        self._scope.node.add_metadata(ACKNOWLEDGE, {"id": id, "message": message})
        suffix = _ack_suffix(id)
        for construct in self._scope.node.find_all():
            node = construct.node
            kept = [
                entry
                for entry in node._metadata
                if not (entry.type == WARNING and str(entry.data).endswith(suffix))
            ]
            node._metadata[:] = kept

    def add_error(self, message: str) -> None:
        self._add(ERROR, message)

    def add_deprecation(self, api: str, message: str) -> None:
        """Warn that ``api`` is deprecated. Raises instead when deprecations are errors."""
        text = f"The API {api} is deprecated: {message}. This API will be removed in the next major release"
        as_errors = self._scope.node.try_get_context(DEPRECATIONS_AS_ERRORS)
        if as_errors is not None and parse_bool(DEPRECATIONS_AS_ERRORS, as_errors):
            self._add(ERROR, text)
        else:
            self._add(WARNING, text)

    def _is_acknowledged(self, id: str) -> bool:
        for construct in self._scope.node.scopes:
            for entry in construct.node.metadata:
                if entry.type == ACKNOWLEDGE and entry.data.get("id") == id:
                    return True
        return False

    def _add(self, type: str, message: str) -> None:
        # Duplicates are dropped so aspects that re-run don't repeat themselves.
        for entry in self._scope.node.metadata:
            if entry.type == type and entry.data == message:
                return
        logger.debug("%s %s: %s", type, self._scope.node.path, message)
        self._scope.node.add_metadata(type, message)


def messages_of(construct: Construct) -> list[AnnotationMessage]:
    """Annotations attached directly to one construct."""
    messages: list[AnnotationMessage] = []
    for entry in construct.node.metadata:
        level = _LEVEL_BY_TYPE.get(entry.type)
        if level is not None:
            messages.append(AnnotationMessage(level, construct.node.path, str(entry.data)))
    return messages


def collect_messages(root: Construct) -> list[AnnotationMessage]:
    """All annotations under ``root``, in tree order."""
    return [m for construct in root.node.find_all() for m in messages_of(construct)]
