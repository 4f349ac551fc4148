"""stackweave configuration.

Centralised, typed configuration for the composition engine. All settings use
Pydantic v2 models so they can be validated at construction time and serialised
to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from stackweave.modules.models import ResolutionOptions


DEFAULT_MODULES_DIR = Path(__file__).parent / "catalog"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ResolutionDefaults(BaseModel):
    """Default switches applied when a caller does not pass resolution options."""

    auto_resolve: bool = Field(
        default=True, description="Pull in missing dependencies automatically"
    )
    allow_conflicts: bool = Field(
        default=False, description="Report conflicts as warnings instead of errors"
    )
    include_recommended: bool = Field(
        default=True, description="Auto-include modules listed under 'recommends'"
    )


class Config(BaseModel):
    """Global stackweave configuration.

    Instances are typically created once by the caller (CLI or embedding
    application) and then passed to the registry and the generator.
    """

    modules_dir: Path = Field(default=DEFAULT_MODULES_DIR)
    manifest_file: str = Field(
        default="package.json",
        description="Relative path that receives module manifest fragments",
    )
    json_indent: int = Field(default=2, ge=0, le=8)
    resolution: ResolutionDefaults = Field(default_factory=ResolutionDefaults)

    def resolution_options(self) -> "ResolutionOptions":
        """Build the default ``ResolutionOptions`` from this configuration."""
        from stackweave.modules.models import ResolutionOptions

        return ResolutionOptions(
            auto_resolve=self.resolution.auto_resolve,
            allow_conflicts=self.resolution.allow_conflicts,
            include_recommended=self.resolution.include_recommended,
        )

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file. Parent directories are created.

        Returns:
            The path where the file was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            STACKWEAVE_MODULES_DIR, STACKWEAVE_MANIFEST_FILE,
            STACKWEAVE_JSON_INDENT, STACKWEAVE_AUTO_RESOLVE,
            STACKWEAVE_ALLOW_CONFLICTS, STACKWEAVE_INCLUDE_RECOMMENDED.
        """
        resolution_kwargs: dict[str, bool] = {}
        for env_name, field_name in (
            ("STACKWEAVE_AUTO_RESOLVE", "auto_resolve"),
            ("STACKWEAVE_ALLOW_CONFLICTS", "allow_conflicts"),
            ("STACKWEAVE_INCLUDE_RECOMMENDED", "include_recommended"),
        ):
            if os.environ.get(env_name):
                resolution_kwargs[field_name] = (
                    os.environ[env_name].strip().lower() in _TRUE_VALUES
                )

        kwargs: dict[str, object] = {}
        if os.environ.get("STACKWEAVE_MODULES_DIR"):
            kwargs["modules_dir"] = Path(os.environ["STACKWEAVE_MODULES_DIR"])
        if os.environ.get("STACKWEAVE_MANIFEST_FILE"):
            kwargs["manifest_file"] = os.environ["STACKWEAVE_MANIFEST_FILE"]
        if os.environ.get("STACKWEAVE_JSON_INDENT"):
            kwargs["json_indent"] = int(os.environ["STACKWEAVE_JSON_INDENT"])

        return cls(resolution=ResolutionDefaults(**resolution_kwargs), **kwargs)
