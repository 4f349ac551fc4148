"""Pydantic v2 models for stackweave modules.

Defines the module descriptor hierarchy (file contributions, manifest
fragments, descriptors) together with the transient resolution request and
result types exchanged with callers.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


MODULE_NAME_PATTERN = r"^[a-z0-9][a-z0-9-]*$"

STRUCTURED_SUFFIXES = (".json", ".yaml", ".yml")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class MergeStrategy(str, Enum):
    """How a contribution is combined with earlier content at the same path."""
    OVERWRITE = "overwrite"
    MERGE_STRUCTURED = "merge-structured"
    APPEND_TEXT = "append-text"
    APPEND_UNIQUE = "append-unique"
    MERGE_FAIL_ON_CONFLICT = "merge-fail-on-conflict"
    MERGE_ENTRY = "merge-entry"
    MERGE_ENV = "merge-env"

    @property
    def is_structured(self) -> bool:
        return self in (MergeStrategy.MERGE_STRUCTURED, MergeStrategy.MERGE_FAIL_ON_CONFLICT)


# ---------------------------------------------------------------------------
# Contributions
# ---------------------------------------------------------------------------

class FileContribution(BaseModel):
    """A single file a module contributes to the generated project.

    Only contributions flagged ``template`` (``.j2`` sources on disk) are
    rendered with Jinja2; everything else is copied verbatim.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = Field(..., description="Target path relative to the project root, '/' separated")
    content: str = Field(default="", description="File content, or Jinja2 source when templated")
    strategy: MergeStrategy = Field(default=MergeStrategy.OVERWRITE)
    template: bool = Field(default=False, description="Render content with the template context")

    @field_validator("path")
    @classmethod
    def _check_relative(cls, value: str) -> str:
        if not value or "\\" in value:
            raise ValueError(f"invalid contribution path {value!r}")
        pure = PurePosixPath(value)
        if pure.is_absolute() or ".." in pure.parts:
            raise ValueError(f"contribution path must stay inside the project: {value!r}")
        return str(pure)

    @model_validator(mode="after")
    def _check_structured_suffix(self) -> "FileContribution":
        if self.strategy.is_structured and not self.path.endswith(STRUCTURED_SUFFIXES):
            raise ValueError(
                f"strategy '{self.strategy.value}' needs a JSON or YAML file, got {self.path!r}"
            )
        return self


class ManifestFragment(BaseModel):
    """Package manifest entries a module merges into the generated manifest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict, alias="devDependencies")
    scripts: dict[str, str] = Field(default_factory=dict)

    def dependency_entries(self) -> dict[str, Any]:
        """Dependency maps keyed the way package.json spells them."""
        entries: dict[str, Any] = {}
        if self.dependencies:
            entries["dependencies"] = dict(self.dependencies)
        if self.dev_dependencies:
            entries["devDependencies"] = dict(self.dev_dependencies)
        return entries

    def script_entries(self) -> dict[str, Any]:
        return {"scripts": dict(self.scripts)} if self.scripts else {}


# ---------------------------------------------------------------------------
# Module descriptor
# ---------------------------------------------------------------------------

class ModuleDescriptor(BaseModel):
    """An immutable, validated description of one composable module.

    Unknown keys are rejected so that a misspelled ``module.yaml`` field
    fails at discovery instead of being dropped.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., pattern=MODULE_NAME_PATTERN, description="Unique module identifier")
    category: str = Field(default="other", description="Display grouping only")
    description: str = Field(default="")
    dependencies: tuple[str, ...] = Field(default=())
    conflicts: tuple[str, ...] = Field(default=())
    recommends: tuple[str, ...] = Field(default=())
    variables: dict[str, Any] = Field(
        default_factory=dict, description="Template variable defaults declared by the module"
    )
    files: tuple[FileContribution, ...] = Field(default=())
    manifest: Optional[ManifestFragment] = Field(default=None)
    source_dir: Optional[Path] = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def _check_references(self) -> "ModuleDescriptor":
        for label in ("dependencies", "conflicts", "recommends"):
            names: tuple[str, ...] = getattr(self, label)
            if self.name in names:
                raise ValueError(f"module '{self.name}' lists itself in {label}")
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                raise ValueError(f"duplicate entries in {label}: {', '.join(duplicates)}")
            for ref in names:
                if not re.match(MODULE_NAME_PATTERN, ref):
                    raise ValueError(f"invalid module name {ref!r} in {label}")

        overlap = set(self.dependencies) & set(self.conflicts)
        if overlap:
            raise ValueError(
                f"module '{self.name}' both depends on and conflicts with: "
                f"{', '.join(sorted(overlap))}"
            )

        paths = [f.path for f in self.files]
        repeated = sorted({p for p in paths if paths.count(p) > 1})
        if repeated:
            raise ValueError(f"module '{self.name}' contributes {', '.join(repeated)} more than once")
        return self

    def references(self) -> set[str]:
        """Every module name this descriptor points at."""
        return set(self.dependencies) | set(self.conflicts) | set(self.recommends)

    def declares_conflict_with(self, other: str) -> bool:
        return other in self.conflicts


# ---------------------------------------------------------------------------
# Resolution request / result
# ---------------------------------------------------------------------------

class ResolutionOptions(BaseModel):
    """Switches controlling how a module request is expanded."""

    model_config = ConfigDict(frozen=True)

    auto_resolve: bool = Field(default=True)
    allow_conflicts: bool = Field(default=False)
    include_recommended: bool = Field(default=True)
    exclude: tuple[str, ...] = Field(
        default=(), description="Names never pulled in through 'recommends'"
    )


class ResolutionResult(BaseModel):
    """Outcome of a resolution: an ordered module list or every error found.

    A failed result may carry ``suggestions``: selection changes (add a
    missing module, replace a conflicting one, fix a misspelled name) that
    would let the request resolve.
    """

    success: bool
    modules: list[ModuleDescriptor] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [m.name for m in self.modules]

    @classmethod
    def ok(cls, modules: list[ModuleDescriptor], warnings: list[str] | None = None) -> "ResolutionResult":
        return cls(success=True, modules=modules, warnings=warnings or [])

    @classmethod
    def failed(
        cls,
        errors: list[str],
        warnings: list[str] | None = None,
        suggestions: list[str] | None = None,
    ) -> "ResolutionResult":
        return cls(
            success=False,
            errors=errors,
            warnings=warnings or [],
            suggestions=suggestions or [],
        )
