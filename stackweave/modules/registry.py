"""Module registry: discovery, validation, and lookup of module descriptors.

Modules live in a source directory with one subdirectory per module::

    catalog/
      vue-base/
        module.yaml
        files/
          package.json
          src/main.js.j2
      tooling/              # a folder without module.yaml is a category
        base-config/
          module.yaml
          files/.gitignore

``module.yaml`` carries the descriptor fields (name, category, dependencies,
conflicts, recommends, variables, manifest) plus a ``merge`` mapping of
target path -> merge strategy.  Files not listed in ``merge`` are
contributed with the ``overwrite`` strategy.  Only files ending in ``.j2``
are Jinja2 templates; the suffix is stripped from the target path.  All
other files are copied verbatim.

Any problem found while loading is a configuration error: the whole load is
rejected and every problem is reported at once.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError
from rich.console import Console

from .models import FileContribution, ManifestFragment, MergeStrategy, ModuleDescriptor

console = Console()

MANIFEST_NAME = "module.yaml"
FILES_DIR = "files"
TEMPLATE_SUFFIX = ".j2"


class ModuleConfigurationError(Exception):
    """Raised when the module source is malformed.  Never user-recoverable."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        summary = "; ".join(self.problems)
        super().__init__(f"Invalid module configuration: {summary}")


class ModuleRegistry:
    """Holds every known ``ModuleDescriptor`` keyed by name.

    A registry is a plain value: create one per module source and hand it to
    the resolver.  Nothing is shared between instances.
    """

    def __init__(self, modules_dir: str | Path | None = None) -> None:
        if modules_dir is None:
            from stackweave.config import DEFAULT_MODULES_DIR

            modules_dir = DEFAULT_MODULES_DIR
        self.modules_dir = Path(modules_dir)
        self._modules: dict[str, ModuleDescriptor] = {}

    # -- Discovery ---------------------------------------------------------

    def discover(self) -> None:
        """Load and validate every module under ``modules_dir``.

        Raises:
            ModuleConfigurationError: on a missing source directory, an
                unreadable or invalid manifest, a duplicate name, or a
                reference to a module that does not exist.
        """
        if not self.modules_dir.is_dir():
            raise ModuleConfigurationError(
                [f"module directory not found: {self.modules_dir}"]
            )

        problems: list[str] = []
        loaded: dict[str, ModuleDescriptor] = {}

        for module_dir, category in self._scan(self.modules_dir):
            try:
                descriptor = load_module(module_dir, default_category=category)
            except ModuleConfigurationError as exc:
                problems.extend(exc.problems)
                continue
            if descriptor.name in loaded:
                problems.append(
                    f"duplicate module name '{descriptor.name}' "
                    f"({loaded[descriptor.name].source_dir} and {module_dir})"
                )
                continue
            loaded[descriptor.name] = descriptor

        problems.extend(_dangling_references(loaded))
        if problems:
            raise ModuleConfigurationError(problems)

        self._modules = loaded
        console.print(
            f"[dim]Discovered {len(loaded)} modules across "
            f"{len(self.categories())} categories[/dim]"
        )

    def register(self, descriptor: ModuleDescriptor) -> None:
        """Add an in-memory descriptor.  Call ``validate()`` once all are added."""
        if descriptor.name in self._modules:
            raise ModuleConfigurationError(
                [f"duplicate module name '{descriptor.name}'"]
            )
        self._modules[descriptor.name] = descriptor

    def validate(self) -> None:
        """Check that every cross-reference names a registered module."""
        problems = _dangling_references(self._modules)
        if problems:
            raise ModuleConfigurationError(problems)

    @classmethod
    def from_descriptors(cls, descriptors: list[ModuleDescriptor]) -> "ModuleRegistry":
        """Build a validated registry from in-memory descriptors."""
        registry = cls()
        for descriptor in descriptors:
            registry.register(descriptor)
        registry.validate()
        return registry

    # -- Lookup ------------------------------------------------------------

    def get(self, name: str) -> Optional[ModuleDescriptor]:
        """Return the descriptor called *name*, or ``None`` if unknown."""
        return self._modules.get(name)

    def all(self) -> list[ModuleDescriptor]:
        return list(self._modules.values())

    def list_by_category(self, category: str) -> list[ModuleDescriptor]:
        """Descriptors in *category*, in discovery order."""
        return [m for m in self._modules.values() if m.category == category]

    def categories(self) -> list[str]:
        """Category names in the order they were first seen."""
        seen: dict[str, None] = {}
        for module in self._modules.values():
            seen.setdefault(module.category, None)
        return list(seen)

    def search(
        self,
        query: str,
        *,
        category: str | None = None,
        limit: int = 10,
    ) -> list[ModuleDescriptor]:
        """Rank modules matching *query* by name, description, and category.

        Name matches weigh most, then description, then category.  Ties keep
        discovery order.
        """
        needle = query.strip().lower()
        if not needle:
            return []

        scored: list[tuple[int, int, ModuleDescriptor]] = []
        for index, module in enumerate(self._modules.values()):
            if category is not None and module.category != category:
                continue
            score = 0
            if needle in module.name:
                score += 10
            if needle in module.description.lower():
                score += 5
            if needle in module.category.lower():
                score += 2
            if score:
                scored.append((-score, index, module))

        scored.sort(key=lambda item: (item[0], item[1]))
        return [module for _, _, module in scored[:limit]]

    def statistics(self) -> dict[str, Any]:
        """Summary counts used by catalog listings."""
        by_category: dict[str, int] = {}
        for module in self._modules.values():
            by_category[module.category] = by_category.get(module.category, 0) + 1
        return {
            "total_modules": len(self._modules),
            "by_category": by_category,
            "with_dependencies": sum(1 for m in self._modules.values() if m.dependencies),
            "with_manifest": sum(1 for m in self._modules.values() if m.manifest),
        }

    def __contains__(self, name: object) -> bool:
        return name in self._modules

    def __len__(self) -> int:
        return len(self._modules)

    def __iter__(self) -> Iterator[ModuleDescriptor]:
        return iter(list(self._modules.values()))

    # -- Internal ----------------------------------------------------------

    @staticmethod
    def _scan(root: Path) -> list[tuple[Path, str | None]]:
        """Find module directories, flat or nested one level under a category."""
        found: list[tuple[Path, str | None]] = []
        for entry in sorted(p for p in root.iterdir() if p.is_dir()):
            if (entry / MANIFEST_NAME).is_file():
                found.append((entry, None))
                continue
            for child in sorted(p for p in entry.iterdir() if p.is_dir()):
                if (child / MANIFEST_NAME).is_file():
                    found.append((child, entry.name))
        return found


# ---------------------------------------------------------------------------
# Loading a single module directory
# ---------------------------------------------------------------------------

def load_module(module_dir: str | Path, default_category: str | None = None) -> ModuleDescriptor:
    """Read ``module.yaml`` and the ``files/`` tree of one module.

    Raises:
        ModuleConfigurationError: if the manifest cannot be read or the
            resulting descriptor fails validation.
    """
    module_dir = Path(module_dir)
    manifest_path = module_dir / MANIFEST_NAME

    try:
        raw = yaml.safe_load(manifest_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ModuleConfigurationError([f"{manifest_path}: cannot read manifest ({exc})"]) from exc

    if not isinstance(raw, dict):
        raise ModuleConfigurationError([f"{manifest_path}: manifest must be a mapping"])

    merge_map = raw.pop("merge", None) or {}
    if not isinstance(merge_map, dict):
        raise ModuleConfigurationError([f"{manifest_path}: 'merge' must map paths to strategies"])

    problems: list[str] = []
    contributions: list[dict[str, Any]] = []
    for target, source in _collect_files(module_dir / FILES_DIR):
        strategy = merge_map.get(target, MergeStrategy.OVERWRITE.value)
        try:
            content = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            problems.append(f"{source}: cannot read contributed file ({exc})")
            continue
        contributions.append(
            {
                "path": target,
                "content": content,
                "strategy": strategy,
                "template": source.name.endswith(TEMPLATE_SUFFIX),
            }
        )

    contributed = {c["path"] for c in contributions}
    for target in merge_map:
        if target not in contributed:
            problems.append(f"{manifest_path}: merge strategy declared for missing file '{target}'")

    if problems:
        raise ModuleConfigurationError(problems)

    manifest = raw.pop("manifest", None)
    raw.setdefault("category", default_category or "other")
    for key in ("dependencies", "conflicts", "recommends"):
        if raw.get(key) is None:
            raw[key] = []

    try:
        return ModuleDescriptor(
            **raw,
            files=tuple(FileContribution(**c) for c in contributions),
            manifest=ManifestFragment.model_validate(manifest) if manifest else None,
            source_dir=module_dir,
        )
    except (ValidationError, TypeError) as exc:
        raise ModuleConfigurationError([f"{manifest_path}: {_describe_error(exc)}"]) from exc


def _collect_files(files_root: Path) -> list[tuple[str, Path]]:
    """Return ``(target_path, source_file)`` pairs in a stable order."""
    if not files_root.is_dir():
        return []
    pairs: list[tuple[str, Path]] = []
    for source in sorted(files_root.rglob("*")):
        if not source.is_file():
            continue
        target = source.relative_to(files_root).as_posix()
        if target.endswith(TEMPLATE_SUFFIX):
            target = target[: -len(TEMPLATE_SUFFIX)]
        pairs.append((target, source))
    return pairs


def _dangling_references(modules: dict[str, ModuleDescriptor]) -> list[str]:
    problems: list[str] = []
    for module in modules.values():
        for label in ("dependencies", "conflicts", "recommends"):
            for ref in getattr(module, label):
                if ref not in modules:
                    problems.append(
                        f"module '{module.name}' lists unknown module '{ref}' in {label}"
                    )
    return problems


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'module'}: {err['msg']}"
            for err in exc.errors()
        )
    return str(exc)
