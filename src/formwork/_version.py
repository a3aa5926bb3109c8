"""
Version lookup.

An installed distribution reports its own metadata. A source checkout that
was never installed falls back to the ``[project]`` table of the
``pyproject.toml`` next to ``src/``.
"""

from __future__ import annotations

import tomllib
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

DISTRIBUTION = "formwork"
UNKNOWN_VERSION = "0.0.0"

_PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


def _version_from_pyproject(path: Path) -> str | None:
    try:
        project = tomllib.loads(path.read_text(encoding="utf-8")).get("project", {})
    except (OSError, tomllib.TOMLDecodeError):
        return None
    if project.get("name") != DISTRIBUTION:
        return None
    return project.get("version")


@lru_cache(maxsize=1)
def get_version() -> str:
    try:
        return version(DISTRIBUTION)
    except PackageNotFoundError:
        return _version_from_pyproject(_PYPROJECT) or UNKNOWN_VERSION
