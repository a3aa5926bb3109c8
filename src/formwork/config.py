"""
Project configuration from ``formwork.toml``.

Example::

    [app]
    entry = "infra.app:app"
    outdir = "formwork.out"
    output_format = "yaml"

    [context]
    environment = "staging"

    [feature_flags]
    "@formwork/iam:minimizePolicies" = true
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from formwork.core.app import PATH_METADATA_CONTEXT
from formwork.core.errors import ValidationError
from formwork.core.feature_flags import FLAGS

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "formwork.toml"
DEFAULT_OUTDIR = "formwork.out"


class AppConfig(BaseModel):
    """The ``[app]`` section."""

    model_config = ConfigDict(extra="forbid")

    entry: str | None = None
    outdir: str = DEFAULT_OUTDIR
    output_format: Literal["json", "yaml"] = "json"
    path_metadata: bool = True

    @field_validator("entry")
    @classmethod
    def validate_entry(cls, v: str | None) -> str | None:
        """Require ``module:attribute``."""
        if v is not None:
            module, _, attribute = v.partition(":")
            if not module or not attribute:
                raise ValueError(f"entry must look like 'package.module:attribute', got '{v}'")
        return v


class ProjectConfig(BaseModel):
    """Everything in ``formwork.toml``."""

    model_config = ConfigDict(extra="forbid")

    app: AppConfig = Field(default_factory=AppConfig)
    context: dict[str, Any] = Field(default_factory=dict)
    feature_flags: dict[str, bool] = Field(default_factory=dict)

    @field_validator("context")
    @classmethod
    def validate_context(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Context is handed to the app as JSON, so values must survive that."""
        for key, value in v.items():
            try:
                json.dumps(value)
            except (TypeError, ValueError) as e:
                raise ValueError(
                    f"context value '{key}' must be JSON-compatible, got {type(value).__name__}"
                ) from e
        return v

    @field_validator("feature_flags")
    @classmethod
    def validate_feature_flags(cls, v: dict[str, bool]) -> dict[str, bool]:
        """Reject flags this version does not know."""
        unknown = sorted(name for name in v if name not in FLAGS)
        if unknown:
            raise ValueError(f"Unknown feature flag(s): {', '.join(unknown)}")
        return v

    def build_context(self, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Merge the configured context for an App.

        Later sources win: path metadata setting, ``[context]``,
        ``[feature_flags]``, then ``overrides``.
        """
        context: dict[str, Any] = {PATH_METADATA_CONTEXT: self.app.path_metadata}
        context.update(self.context)
        context.update(self.feature_flags)
        context.update(overrides or {})
        return context


def load_project_config(path: Path | str | None = None) -> ProjectConfig:
    """
    Load ``formwork.toml``.

    Args:
        path: Config file, or a directory containing ``formwork.toml``.
            Defaults to the current directory.

    Returns:
        The configuration; the defaults when the file does not exist

    Raises:
        ValidationError: If the file is not valid TOML or has invalid values
    """
    path = Path(path) if path is not None else Path.cwd()
    if path.is_dir():
        path = path / CONFIG_FILE_NAME
    if not path.exists():
        logger.debug("No %s found, using defaults", path)
        return ProjectConfig()

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ValidationError(f"Invalid TOML in {path}: {e}") from e

    try:
        config = ProjectConfig.model_validate(data)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid configuration in {path}: {details}") from e

    logger.debug("Loaded configuration from %s", path)
    return config
