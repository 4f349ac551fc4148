"""Shared pytest fixtures for the stackweave test suite.

Provides reusable fixtures for:
- In-memory module descriptors and registries
- On-disk module source trees written into ``tmp_path``
- The bundled module catalog
- A standard template context
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

from stackweave.modules import (
    FileContribution,
    ManifestFragment,
    MergeStrategy,
    ModuleDescriptor,
    ModuleRegistry,
)


# ---------------------------------------------------------------------------
# In-memory descriptors
# ---------------------------------------------------------------------------

def build_module(
    name: str,
    *,
    category: str = "other",
    dependencies: tuple[str, ...] | list[str] = (),
    conflicts: tuple[str, ...] | list[str] = (),
    recommends: tuple[str, ...] | list[str] = (),
    files: dict[str, tuple | str] | None = None,
    manifest: dict[str, Any] | None = None,
    variables: dict[str, Any] | None = None,
) -> ModuleDescriptor:
    """Terse ModuleDescriptor constructor used throughout the tests.

    ``files`` maps a path to either plain content (overwrite) or a
    ``(content, strategy)`` pair, optionally followed by a template flag.
    Contributions are Jinja2 templates unless the flag says otherwise.
    """
    contributions = []
    for path, entry in (files or {}).items():
        if isinstance(entry, str):
            entry = (entry, MergeStrategy.OVERWRITE)
        content, strategy, template = (*entry, True)[:3]
        contributions.append(
            FileContribution(path=path, content=content, strategy=strategy, template=template)
        )
    return ModuleDescriptor(
        name=name,
        category=category,
        dependencies=tuple(dependencies),
        conflicts=tuple(conflicts),
        recommends=tuple(recommends),
        files=tuple(contributions),
        manifest=ManifestFragment.model_validate(manifest) if manifest else None,
        variables=variables or {},
    )


@pytest.fixture
def make_module() -> Callable[..., ModuleDescriptor]:
    """Factory fixture wrapping ``build_module``."""
    return build_module


@pytest.fixture
def make_registry() -> Callable[..., ModuleRegistry]:
    """Build a validated registry from descriptors."""

    def _make(*modules: ModuleDescriptor) -> ModuleRegistry:
        return ModuleRegistry.from_descriptors(list(modules))

    return _make


# ---------------------------------------------------------------------------
# On-disk module sources
# ---------------------------------------------------------------------------

@pytest.fixture
def module_source(tmp_path: Path) -> Callable[..., Path]:
    """Write a module directory under ``tmp_path / 'modules'``.

    Usage::

        module_source("vue-base", {"name": "vue-base"}, {"src/main.js": "..."})
    """
    root = tmp_path / "modules"
    root.mkdir(exist_ok=True)

    def _write(
        dirname: str,
        manifest: dict[str, Any] | str,
        files: dict[str, str] | None = None,
    ) -> Path:
        module_dir = root / dirname
        module_dir.mkdir(parents=True, exist_ok=True)
        text = manifest if isinstance(manifest, str) else yaml.safe_dump(manifest, sort_keys=False)
        (module_dir / "module.yaml").write_text(textwrap.dedent(text), encoding="utf-8")
        for rel, content in (files or {}).items():
            target = module_dir / "files" / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return root

    return _write


# ---------------------------------------------------------------------------
# Bundled catalog & context
# ---------------------------------------------------------------------------

@pytest.fixture
def catalog_registry() -> ModuleRegistry:
    """Registry discovered from the bundled catalog."""
    registry = ModuleRegistry()
    registry.discover()
    return registry


@pytest.fixture
def sample_context() -> dict[str, Any]:
    """Template context as a CLI layer would pass it."""
    return {
        "project_name": "Test Project",
        "description": "Test project for module composition",
        "author_name": "Test Author",
        "author_email": "test@example.com",
    }


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Target path for generated projects (not created)."""
    return tmp_path / "output" / "test-project"
