"""stackweave -- composes project scaffolds from independent modules.

Quick usage::

    from stackweave import compose

    result = await compose(
        ["vue-base", "vuetify", "supabase"],
        "/tmp/output/my-app",
        {"project_name": "my-app"},
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from stackweave.config import Config
from stackweave.modules import (
    DependencyResolver,
    ModuleRegistry,
    ResolutionFailed,
    ResolutionOptions,
)
from stackweave.scaffolder import GenerationResult, ProjectContext, ProjectGenerator

__version__ = "0.1.0"


async def compose(
    module_names: Iterable[str],
    target_dir: str | Path,
    context: ProjectContext | Mapping[str, Any],
    *,
    registry: ModuleRegistry | None = None,
    options: ResolutionOptions | None = None,
    config: Config | None = None,
) -> GenerationResult:
    """Resolve *module_names* and generate the project under *target_dir*.

    A registry is discovered from ``config.modules_dir`` when none is given.

    Raises:
        ResolutionFailed: if the selection cannot be resolved.
        GenerationError: if generation fails.
    """
    config = config or Config()
    if registry is None:
        registry = ModuleRegistry(config.modules_dir)
        registry.discover()

    resolution = DependencyResolver(registry).resolve(
        module_names, options or config.resolution_options()
    )
    if not resolution.success:
        raise ResolutionFailed(resolution)

    generator = ProjectGenerator(resolution.modules, config)
    return await generator.generate(target_dir, context)


__all__ = ["Config", "ResolutionFailed", "compose", "__version__"]
