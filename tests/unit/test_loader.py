"""Tests for loading an App from an entry point."""

from __future__ import annotations

import uuid
from datetime import date
from pathlib import Path

import pytest

from formwork.core import App, FormworkError
from formwork.loader import load_app


@pytest.fixture
def write_module(tmp_path: Path):
    """Return a function that writes a uniquely named module into tmp_path."""

    def _write(source: str) -> str:
        name = f"infra_{uuid.uuid4().hex}"
        (tmp_path / f"{name}.py").write_text(source, encoding="utf-8")
        return name

    return _write


class TestLoadApp:
    """Entry point resolution."""

    def test_app_instance(self, tmp_path: Path, write_module) -> None:
        module = write_module("from formwork.core import App\napp = App()\n")
        assert isinstance(load_app(f"{module}:app", cwd=tmp_path), App)

    def test_instance_sees_context_through_environment(self, tmp_path: Path, write_module) -> None:
        module = write_module("from formwork.core import App\napp = App()\n")
        app = load_app(f"{module}:app", context={"stage": "prod"}, cwd=tmp_path)
        assert app.node.try_get_context("stage") == "prod"

    def test_factory_with_context(self, tmp_path: Path, write_module) -> None:
        module = write_module(
            "from formwork.core import App\n"
            "def build(context):\n"
            "    return App(context=context)\n"
        )
        app = load_app(f"{module}:build", context={"stage": "dev"}, cwd=tmp_path)
        assert app.node.try_get_context("stage") == "dev"

    def test_factory_without_arguments(self, tmp_path: Path, write_module) -> None:
        module = write_module("from formwork.core import App\ndef build():\n    return App()\n")
        assert isinstance(load_app(f"{module}:build", cwd=tmp_path), App)

    def test_environment_restored(self, tmp_path: Path, write_module) -> None:
        import os

        from formwork.core.app import CONTEXT_ENV

        module = write_module("from formwork.core import App\napp = App()\n")
        load_app(f"{module}:app", context={"a": 1}, cwd=tmp_path)
        assert CONTEXT_ENV not in os.environ

    @pytest.mark.parametrize(
        ("source", "attribute", "message"),
        [
            ("x = 1\n", "missing", "has no attribute"),
            ("x = 1\n", "x", "expected an App or a factory"),
            ("def build():\n    return 42\n", "build", "expected an App"),
        ],
    )
    def test_bad_targets(
        self, tmp_path: Path, write_module, source: str, attribute: str, message: str
    ) -> None:
        module = write_module(source)
        with pytest.raises(FormworkError, match=message):
            load_app(f"{module}:{attribute}", cwd=tmp_path)

    def test_context_must_be_json_compatible(self, tmp_path: Path, write_module) -> None:
        """Dates from TOML cannot be passed through the environment."""
        module = write_module("from formwork.core import App\napp = App()\n")
        with pytest.raises(FormworkError, match="JSON-compatible"):
            load_app(f"{module}:app", context={"released": date(2024, 1, 1)}, cwd=tmp_path)

    def test_missing_module(self, tmp_path: Path) -> None:
        with pytest.raises(FormworkError, match="Cannot import app module"):
            load_app("does_not_exist_anywhere:app", cwd=tmp_path)

    def test_malformed_entry(self) -> None:
        with pytest.raises(FormworkError, match="package.module:attribute"):
            load_app("no_attribute")
