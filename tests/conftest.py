"""Shared pytest fixtures for formwork tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from formwork.core import App, Environment, Stack
from formwork.core.app import CONTEXT_ENV


@pytest.fixture(autouse=True)
def _clear_context_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep context from the environment out of every test."""
    monkeypatch.delenv(CONTEXT_ENV, raising=False)


@pytest.fixture
def app() -> App:
    """Return an App with no output directory."""
    return App()


@pytest.fixture
def stack(app: App) -> Stack:
    """Return an environment-agnostic stack."""
    return Stack(app, "TestStack")


@pytest.fixture
def env_stack(app: App) -> Stack:
    """Return a stack with a concrete account and region."""
    return Stack(app, "EnvStack", env=Environment(account="123456789012", region="us-east-1"))


@pytest.fixture
def synth_template() -> Callable[[Stack], dict[str, Any]]:
    """Return a function that synthesizes a stack's app and returns the stack's template."""

    def _synth(stack: Stack) -> dict[str, Any]:
        root = stack.node.root
        assert isinstance(root, App)
        assembly = root.synth(force=True)
        return assembly.get_stack_artifact(stack.artifact_id).template

    return _synth
