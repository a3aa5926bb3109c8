"""
The App: root of the construct tree.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from .annotations import MessageLevel
from .assembly import CloudAssembly
from .construct import Construct
from .errors import FormworkError, SynthesisError
from .feature_flags import parse_bool
from .synthesis import synthesize

logger = logging.getLogger(__name__)

CONTEXT_ENV = "FORMWORK_CONTEXT_JSON"
PATH_METADATA_CONTEXT = "formwork:pathMetadata"
STRICT_CONTEXT = "formwork:strict"


def _context_from_env() -> dict[str, Any]:
    raw = os.environ.get(CONTEXT_ENV)
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise FormworkError(f"{CONTEXT_ENV} is not valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise FormworkError(f"{CONTEXT_ENV} must be a JSON object")
    return value


class App(Construct):
    """
    Root construct of an application.

    Args:
        outdir: Directory ``synth()`` writes the cloud assembly to
        context: Initial context values
        post_cli_context: Context applied after the environment context
        tree_metadata: Include ``tree.json`` in the assembly
        template_format: Format of written templates, ``json`` or ``yaml``
    """

    def __init__(
        self,
        outdir: str | None = None,
        context: dict[str, Any] | None = None,
        post_cli_context: dict[str, Any] | None = None,
        tree_metadata: bool = True,
        template_format: str = "json",
    ):
        super().__init__(None, "")
        self.outdir = outdir
        self.template_format = template_format
        self.tree_metadata = tree_metadata
        self._assembly: CloudAssembly | None = None

        merged: dict[str, Any] = {PATH_METADATA_CONTEXT: True}
        merged.update(context or {})
        merged.update(_context_from_env())
        merged.update(post_cli_context or {})
        for key, value in merged.items():
            self.node.set_context(key, value)

    @staticmethod
    def is_app(x: Any) -> bool:
        return isinstance(x, App)

    def synth(self, force: bool = False, validate_on_synthesis: bool = True) -> CloudAssembly:
        """
        Synthesize the app into a cloud assembly.

        The result is cached; pass ``force=True`` to synthesize again.

        Raises:
            ValidationError: If deferred validations fail
            SynthesisError: If rendering fails, or annotations fail strict mode
        """
        if self._assembly is not None and not force:
            return self._assembly

        assembly = synthesize(
            self,
            outdir=self.outdir,
            validate=validate_on_synthesis,
            template_format=self.template_format,
            tree_metadata=self.tree_metadata,
        )

        strict = self.node.try_get_context(STRICT_CONTEXT)
        if strict is not None and parse_bool(STRICT_CONTEXT, strict):
            failing = [
                m for m in assembly.messages
                if m.level in (MessageLevel.ERROR, MessageLevel.WARNING)
            ]
            if failing:
                details = "\n".join(f"  - {m.format()}" for m in failing)
                raise SynthesisError(f"Synthesis failed in strict mode:\n{details}")

        self._assembly = assembly
        return assembly
