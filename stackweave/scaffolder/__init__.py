"""stackweave scaffolder -- writes a project tree from resolved modules.

Quick usage::

    from stackweave.scaffolder import ProjectContext, ProjectGenerator

    generator = ProjectGenerator(resolution.modules)
    result = await generator.generate(
        "/tmp/output/my-app",
        ProjectContext(project_name="my-app", author_name="Ada"),
    )
"""

from stackweave.scaffolder.errors import (
    GenerationError,
    MergeConflictError,
    StructuredParseError,
    TemplatingError,
)
from stackweave.scaffolder.generator import (
    GenerationResult,
    ProjectContext,
    ProjectGenerator,
    clean_target,
)
from stackweave.scaffolder.merge import MergedFile
from stackweave.scaffolder.templates import TemplateRenderer

__all__ = [
    "GenerationError",
    "GenerationResult",
    "MergeConflictError",
    "MergedFile",
    "ProjectContext",
    "ProjectGenerator",
    "StructuredParseError",
    "TemplateRenderer",
    "TemplatingError",
    "clean_target",
]
