"""stackweave modules package.

Module descriptors, the registry that loads them from a module source
directory, and the resolver that turns a selection into an ordered list.

Key classes:
    ModuleDescriptor    - Validated, immutable description of one module
    ModuleRegistry      - Discovery and lookup of descriptors
    DependencyResolver  - Expansion, conflict and cycle checks, ordering
"""

from .models import (
    FileContribution,
    ManifestFragment,
    MergeStrategy,
    ModuleDescriptor,
    ResolutionOptions,
    ResolutionResult,
)
from .registry import ModuleConfigurationError, ModuleRegistry, load_module
from .resolver import DependencyResolver, ResolutionFailed

__all__ = [
    # Descriptor model
    "ModuleDescriptor",
    "FileContribution",
    "ManifestFragment",
    "MergeStrategy",
    # Registry
    "ModuleRegistry",
    "ModuleConfigurationError",
    "load_module",
    # Resolution
    "DependencyResolver",
    "ResolutionOptions",
    "ResolutionResult",
    "ResolutionFailed",
]
