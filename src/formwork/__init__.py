"""
formwork - infrastructure as constructs.

Compose constructs into a tree and synthesize it into declarative
infrastructure templates for a separate deployment engine.
"""

from __future__ import annotations

from . import iam
from ._version import get_version
from .core import App, CfnOutput, CfnResource, Construct, Stack, Token
from .core.errors import FormworkError, SynthesisError, ValidationError

__version__ = get_version()

__all__ = [
    "__version__",
    "iam",
    "App",
    "CfnOutput",
    "CfnResource",
    "Construct",
    "Stack",
    "Token",
    "FormworkError",
    "SynthesisError",
    "ValidationError",
]
