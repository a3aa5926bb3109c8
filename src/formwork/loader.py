"""
Load an App from a ``module:attribute`` entry point.
"""

from __future__ import annotations

import importlib
import inspect
import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from formwork.core.app import CONTEXT_ENV, App
from formwork.core.errors import FormworkError

logger = logging.getLogger(__name__)


@contextmanager
def _on_sys_path(directory: Path) -> Iterator[None]:
    entry = str(directory)
    added = entry not in sys.path
    if added:
        sys.path.insert(0, entry)
    try:
        yield
    finally:
        if added and entry in sys.path:
            sys.path.remove(entry)


@contextmanager
def _context_in_env(context: dict[str, Any] | None) -> Iterator[None]:
    """Expose ``context`` to Apps created at import time."""
    if not context:
        yield
        return
    try:
        encoded = json.dumps(context)
    except (TypeError, ValueError) as e:
        raise FormworkError(f"Context values must be JSON-compatible: {e}") from e
    previous = os.environ.get(CONTEXT_ENV)
    os.environ[CONTEXT_ENV] = encoded
    try:
        yield
    finally:
        if previous is None:
            os.environ.pop(CONTEXT_ENV, None)
        else:
            os.environ[CONTEXT_ENV] = previous


def _accepts_context(factory: Any) -> bool:
    try:
        parameters = inspect.signature(factory).parameters
    except (TypeError, ValueError):
        return False
    return "context" in parameters or any(
        p.kind is inspect.Parameter.VAR_KEYWORD for p in parameters.values()
    )


def load_app(entry: str, context: dict[str, Any] | None = None, cwd: Path | None = None) -> App:
    """
    Import an entry point and return its App.

    Args:
        entry: ``package.module:attribute``. The attribute is an App, or a
            callable returning one.
        context: Passed as ``context=`` to a factory that accepts it
        cwd: Directory put on ``sys.path`` during the import; defaults to
            the current directory

    Raises:
        FormworkError: If the entry cannot be imported or yields no App
    """
    module_name, _, attribute = entry.partition(":")
    if not module_name or not attribute:
        raise FormworkError(f"App entry must look like 'package.module:attribute', got '{entry}'")

    with _on_sys_path(cwd or Path.cwd()), _context_in_env(context):
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise FormworkError(f"Cannot import app module '{module_name}': {e}") from e

        try:
            target = getattr(module, attribute)
        except AttributeError as e:
            raise FormworkError(f"Module '{module_name}' has no attribute '{attribute}'") from e

        if isinstance(target, App):
            logger.debug("Loaded App instance %s", entry)
            return target

        if callable(target):
            if _accepts_context(target):
                app = target(context=dict(context or {}))
            else:
                app = target()
            if isinstance(app, App):
                return app
            raise FormworkError(
                f"'{entry}' returned {type(app).__name__}, expected an App"
            )

    raise FormworkError(f"'{entry}' is {type(target).__name__}, expected an App or a factory")
