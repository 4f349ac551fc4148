"""Project materialization from a resolved module list.

Takes the ordered module list produced by the resolver and writes a single
project tree, combining every module's file contributions according to their
declared merge strategies.

Generation happens in three steps:

1. Collect -- apply each module's files (then its manifest fragment) in
   resolution order, in memory.
2. Render -- substitute the final template context into every merged file.
3. Write -- write the rendered files under the target directory.

Steps 1 and 2 finish before anything touches disk, so merge conflicts and
templating errors never leave files behind.
"""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from rich.console import Console

from stackweave.config import Config
from stackweave.modules.models import ModuleDescriptor

from .errors import GenerationError
from .merge import MergedFile
from .templates import TemplateRenderer, _write_file, slugify

console = Console()


# ---------------------------------------------------------------------------
# Context & result models
# ---------------------------------------------------------------------------


class ProjectContext(BaseModel):
    """Typed template context for the common project-wide values."""

    project_name: str = Field(..., min_length=1, description="Project name (used in manifests)")
    description: str = Field(default="", description="Short project description")
    author_name: Optional[str] = Field(default=None)
    author_email: Optional[str] = Field(default=None)
    extra: dict[str, Any] = Field(
        default_factory=dict, description="Additional template variables"
    )

    def as_template_vars(self) -> dict[str, Any]:
        """Flatten into the variables templates see.

        Unset optional values are omitted so that templates needing them
        fail loudly unless a module declares a default.
        """
        variables: dict[str, Any] = {
            "project_name": self.project_name,
            "project_name_slug": slugify(self.project_name),
            "description": self.description,
        }
        if self.author_name is not None:
            variables["author_name"] = self.author_name
        if self.author_email is not None:
            variables["author_email"] = self.author_email
        variables.update(self.extra)
        return variables


class GenerationResult(BaseModel):
    """What a successful generation wrote."""

    project_root: Path
    files: list[str] = Field(default_factory=list, description="Relative paths in write order")
    contributors: dict[str, list[str]] = Field(
        default_factory=dict, description="Path -> modules that contributed, in apply order"
    )


# ---------------------------------------------------------------------------
# Main generator
# ---------------------------------------------------------------------------


class ProjectGenerator:
    """Materializes an ordered module list into a project directory."""

    def __init__(
        self,
        modules: Sequence[ModuleDescriptor],
        config: Config | None = None,
    ) -> None:
        self.modules = list(modules)
        self.config = config or Config()
        self.renderer = TemplateRenderer()

    # -- Public API --------------------------------------------------------

    async def generate(
        self,
        target_dir: str | Path,
        context: ProjectContext | Mapping[str, Any],
    ) -> GenerationResult:
        """Generate the project tree under *target_dir*.

        Args:
            target_dir: Directory to create.  It must not exist or be empty.
            context: Template context, as a ``ProjectContext`` or a plain
                mapping of variable names to values.

        Returns:
            A ``GenerationResult`` describing the written files.

        Raises:
            GenerationError: on a non-empty target, a merge conflict, a
                templating error, or a filesystem failure.  Files written
                before a filesystem failure are left in place.
        """
        project_root = Path(target_dir)
        _check_target(project_root)

        merged = self.collect()
        rendered = self.render(merged, context)

        await asyncio.to_thread(project_root.mkdir, parents=True, exist_ok=True)
        for rel_path, content in rendered.items():
            try:
                await asyncio.to_thread(_write_file, project_root / rel_path, content)
            except OSError as exc:
                raise GenerationError(f"{rel_path}: write failed: {exc}", path=rel_path) from exc
            sources = merged[rel_path].contributors
            suffix = f" (merged from {len(sources)} modules)" if len(sources) > 1 else ""
            console.print(f"[dim]  + {rel_path}{suffix}[/dim]")

        console.print(
            f"[green]Generated {len(rendered)} files from "
            f"{len(self.modules)} modules in {project_root}[/green]"
        )
        return GenerationResult(
            project_root=project_root,
            files=list(rendered),
            contributors={path: list(f.contributors) for path, f in merged.items()},
        )

    def collect(self) -> dict[str, MergedFile]:
        """Apply every contribution in resolution order, without rendering.

        Paths that only received ``merge-entry`` snippets, with no module
        providing the entry point itself, are dropped with a console note.
        """
        files: dict[str, MergedFile] = {}
        manifest_path = self.config.manifest_file

        for module in self.modules:
            for contribution in module.files:
                merged = files.setdefault(contribution.path, MergedFile(contribution.path))
                merged.apply(
                    contribution.content,
                    contribution.strategy,
                    module.name,
                    template=contribution.template,
                )

            if module.manifest is None:
                continue
            merged = files.setdefault(manifest_path, MergedFile(manifest_path))
            dependency_entries = module.manifest.dependency_entries()
            if dependency_entries:
                merged.apply_data(dependency_entries, module.name, strict=False)
            script_entries = module.manifest.script_entries()
            if script_entries:
                merged.apply_data(script_entries, module.name, strict=True)

        for path in [p for p, f in files.items() if not f.has_content]:
            console.print(
                f"[yellow]Skipping {path}: snippets from "
                f"{', '.join(files[path].contributors)} have no base file to merge into[/yellow]"
            )
            del files[path]
        return files

    def render(
        self,
        files: dict[str, MergedFile],
        context: ProjectContext | Mapping[str, Any],
    ) -> dict[str, str]:
        """Render merged files with the final context."""
        variables = self.build_context(context)
        indent = self.config.json_indent
        return {
            path: merged.render(self.renderer, variables, indent=indent)
            for path, merged in files.items()
        }

    def build_context(self, context: ProjectContext | Mapping[str, Any]) -> dict[str, Any]:
        """Module-declared defaults, overridden by the caller's values."""
        variables: dict[str, Any] = {}
        for module in self.modules:
            variables.update(module.variables)
        if isinstance(context, ProjectContext):
            variables.update(context.as_template_vars())
        else:
            variables.update(context)
            if "project_name" in context and "project_name_slug" not in context:
                variables["project_name_slug"] = slugify(str(context["project_name"]))
        return variables


# ---------------------------------------------------------------------------
# Target directory helpers
# ---------------------------------------------------------------------------

def clean_target(target_dir: str | Path) -> None:
    """Remove a partially generated project so generation can be retried."""
    path = Path(target_dir)
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()


def _check_target(path: Path) -> None:
    if not path.exists():
        return
    if not path.is_dir():
        raise GenerationError(f"target {path} exists and is not a directory")
    if any(path.iterdir()):
        raise GenerationError(
            f"target {path} is not empty; remove it (see clean_target) before generating"
        )

