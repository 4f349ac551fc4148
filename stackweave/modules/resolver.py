"""Dependency resolution for module selections.

Turns a requested list of module names into a complete, conflict-free list
ordered so that every module appears after the modules it depends on.

Resolution runs in three passes over the selection:

1. **Expansion** -- breadth-first over the growing selection, adding missing
   dependencies when ``auto_resolve`` is enabled.  Recommendations are
   considered only once the required set is complete: each one joins together
   with its own dependencies, or is skipped with a warning if any of them
   conflicts with the selection.
2. **Conflict detection** -- every pair in the final set is checked against
   both modules' ``conflicts``.
3. **Ordering** -- Kahn's algorithm over dependency edges, breaking ties by
   the order modules joined the selection.  Nodes left over are reported as
   cycles.

Errors from every pass are collected and returned together; resolution never
raises for a bad selection.  A failed result also carries suggestions: a
close match for a misspelled name, a missing dependency to add, or a module
of the same category that would remove a conflict.
"""

from __future__ import annotations

import difflib
import heapq
from collections.abc import Iterable
from dataclasses import dataclass, field

from .models import ModuleDescriptor, ResolutionOptions, ResolutionResult
from .registry import ModuleRegistry


class ResolutionFailed(Exception):
    """Raised by convenience wrappers when a resolution result is unsuccessful."""

    def __init__(self, result: ResolutionResult):
        self.result = result
        super().__init__("Module resolution failed: " + "; ".join(result.errors))


@dataclass
class _Attempt:
    """Everything one resolution pass found, before it becomes a result."""

    ordered: list[ModuleDescriptor] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)
    missing: list[tuple[str, str]] = field(default_factory=list)
    conflicts: list[tuple[ModuleDescriptor, ModuleDescriptor]] = field(default_factory=list)


class DependencyResolver:
    """Resolves module selections against one ``ModuleRegistry``."""

    def __init__(self, registry: ModuleRegistry) -> None:
        self.registry = registry

    def resolve(
        self,
        module_names: Iterable[str],
        options: ResolutionOptions | None = None,
    ) -> ResolutionResult:
        """Expand, validate, and order *module_names*.

        Args:
            module_names: Requested names, in caller order.  Duplicates are
                ignored after their first occurrence.
            options: Resolution switches; defaults to ``ResolutionOptions()``.

        Returns:
            A successful ``ResolutionResult`` with the ordered modules, or a
            failed one listing every problem found and any suggested fixes.
        """
        options = options or ResolutionOptions()
        requested = list(dict.fromkeys(module_names))
        attempt = self._attempt(requested, options)
        if attempt.errors:
            return ResolutionResult.failed(
                attempt.errors,
                attempt.warnings,
                self._suggest(requested, options, attempt),
            )
        return ResolutionResult.ok(attempt.ordered, attempt.warnings)

    def _attempt(self, requested: list[str], options: ResolutionOptions) -> _Attempt:
        attempt = _Attempt()
        selected = self._expand(requested, options, attempt)

        attempt.conflicts = _find_conflicts(selected)
        for first, second in attempt.conflicts:
            message = f"conflict between '{first.name}' and '{second.name}'"
            if options.allow_conflicts:
                attempt.warnings.append(f"{message} (allowed)")
            else:
                attempt.errors.append(message)

        attempt.ordered, cycles = _order(selected)
        attempt.errors.extend(cycles)
        return attempt

    # -- Expansion ---------------------------------------------------------

    def _expand(
        self,
        requested: list[str],
        options: ResolutionOptions,
        attempt: _Attempt,
    ) -> list[ModuleDescriptor]:
        selected: list[ModuleDescriptor] = []
        present: set[str] = set()

        for name in requested:
            module = self.registry.get(name)
            if module is None:
                attempt.unknown.append(name)
                attempt.errors.append(f"unknown module '{name}'")
                continue
            selected.append(module)
            present.add(name)

        index = 0
        # ``selected`` grows while it is walked.
        while index < len(selected):
            module = selected[index]
            index += 1
            for dep in module.dependencies:
                if dep in present:
                    continue
                if not options.auto_resolve:
                    attempt.missing.append((module.name, dep))
                    attempt.errors.append(
                        f"module '{module.name}' requires '{dep}', which is not selected"
                    )
                    continue
                dependency = self.registry.get(dep)
                if dependency is None:
                    attempt.errors.append(
                        f"module '{module.name}' requires unknown module '{dep}'"
                    )
                    continue
                selected.append(dependency)
                present.add(dep)

        if options.auto_resolve and options.include_recommended:
            self._add_recommended(selected, present, set(options.exclude), attempt)
        return selected

    def _add_recommended(
        self,
        selected: list[ModuleDescriptor],
        present: set[str],
        excluded: set[str],
        attempt: _Attempt,
    ) -> None:
        index = 0
        while index < len(selected):
            module = selected[index]
            index += 1
            for rec in module.recommends:
                if rec in present or rec in excluded:
                    continue
                closure = self._closure(rec, present)
                if closure is None:
                    continue
                clash = _first_clash(closure, selected)
                if clash is not None:
                    member, other = clash
                    reason = (
                        f"conflicts with '{other}'"
                        if member == rec
                        else f"its dependency '{member}' conflicts with '{other}'"
                    )
                    attempt.warnings.append(
                        f"skipped '{rec}' recommended by '{module.name}': {reason}"
                    )
                    continue
                _, cycles = _order(closure)
                if cycles:
                    attempt.warnings.append(
                        f"skipped '{rec}' recommended by '{module.name}': {cycles[0]}"
                    )
                    continue
                selected.extend(closure)
                present.update(m.name for m in closure)

    def _closure(self, name: str, present: set[str]) -> list[ModuleDescriptor] | None:
        """*name* plus its dependencies not yet in *present*, or ``None`` if any is unknown."""
        found: list[ModuleDescriptor] = []
        names: set[str] = set()
        queue = [name]
        while queue:
            current = queue.pop(0)
            if current in names or current in present:
                continue
            module = self.registry.get(current)
            if module is None:
                return None
            found.append(module)
            names.add(current)
            queue.extend(module.dependencies)
        return found

    # -- Suggestions -------------------------------------------------------

    def _suggest(
        self,
        requested: list[str],
        options: ResolutionOptions,
        attempt: _Attempt,
    ) -> list[str]:
        suggestions: list[str] = []
        known = [m.name for m in self.registry]

        for name in attempt.unknown:
            match = difflib.get_close_matches(name, known, n=1)
            if match:
                suggestions.append(f"did you mean '{match[0]}' instead of '{name}'?")

        for module, dep in attempt.missing:
            if dep in self.registry:
                suggestions.append(f"add '{dep}' (required by '{module}')")

        if not options.allow_conflicts:
            replaced: set[str] = set()
            for first, second in attempt.conflicts:
                for culprit, other in ((second, first), (first, second)):
                    if culprit.name not in requested or culprit.name in replaced:
                        continue
                    alternative = self._alternative(culprit, requested, options)
                    if alternative is not None:
                        replaced.add(culprit.name)
                        suggestions.append(
                            f"replace '{culprit.name}' with '{alternative}' "
                            f"to resolve the conflict with '{other.name}'"
                        )
                        break

        return list(dict.fromkeys(suggestions))

    def _alternative(
        self,
        culprit: ModuleDescriptor,
        requested: list[str],
        options: ResolutionOptions,
    ) -> str | None:
        """A same-category module that makes the request resolve in place of *culprit*."""
        for candidate in self.registry.list_by_category(culprit.category):
            if candidate.name == culprit.name or candidate.name in requested:
                continue
            trial = [candidate.name if n == culprit.name else n for n in requested]
            if not self._attempt(trial, options).errors:
                return candidate.name
        return None


# ---------------------------------------------------------------------------
# Conflict detection
# ---------------------------------------------------------------------------

def _conflicting(first: ModuleDescriptor, second: ModuleDescriptor) -> bool:
    return first.declares_conflict_with(second.name) or second.declares_conflict_with(first.name)


def _find_conflicts(
    modules: list[ModuleDescriptor],
) -> list[tuple[ModuleDescriptor, ModuleDescriptor]]:
    found: list[tuple[ModuleDescriptor, ModuleDescriptor]] = []
    for i, first in enumerate(modules):
        for second in modules[i + 1:]:
            if _conflicting(first, second):
                found.append((first, second))
    return found


def _first_clash(
    closure: list[ModuleDescriptor],
    selected: list[ModuleDescriptor],
) -> tuple[str, str] | None:
    """The first ``(closure member, other)`` pair that conflicts, if any."""
    pool = selected + closure
    for member in closure:
        for other in pool:
            if other.name != member.name and _conflicting(member, other):
                return member.name, other.name
    return None


# ---------------------------------------------------------------------------
# Ordering & cycle detection
# ---------------------------------------------------------------------------

def _order(modules: list[ModuleDescriptor]) -> tuple[list[ModuleDescriptor], list[str]]:
    """Topologically sort *modules*, returning ``(ordered, cycle_errors)``."""
    position = {m.name: i for i, m in enumerate(modules)}
    # Edges restricted to the selection: dep -> dependant.
    dependants: dict[str, list[str]] = {m.name: [] for m in modules}
    pending: dict[str, int] = {}
    for module in modules:
        deps = [d for d in module.dependencies if d in position]
        pending[module.name] = len(deps)
        for dep in deps:
            dependants[dep].append(module.name)

    ready = [position[name] for name, count in pending.items() if count == 0]
    heapq.heapify(ready)

    ordered: list[ModuleDescriptor] = []
    while ready:
        module = modules[heapq.heappop(ready)]
        ordered.append(module)
        for dependant in dependants[module.name]:
            pending[dependant] -= 1
            if pending[dependant] == 0:
                heapq.heappush(ready, position[dependant])

    if len(ordered) == len(modules):
        return ordered, []

    remaining = [m for m in modules if pending[m.name] > 0]
    return ordered, [
        "cyclic dependency: " + " -> ".join(cycle)
        for cycle in _cycles(remaining, position)
    ]


def _cycles(remaining: list[ModuleDescriptor], position: dict[str, int]) -> list[list[str]]:
    """One representative cycle per strongly connected component."""
    graph = {
        m.name: [d for d in m.dependencies if d in position]
        for m in remaining
    }
    members = set(graph)
    cycles: list[list[str]] = []
    for component in _strongly_connected(graph):
        if len(component) < 2:
            continue
        inside = set(component)
        start = min(component, key=position.__getitem__)
        path = [start]
        seen = {start: 0}
        current = start
        while True:
            current = next(
                d for d in sorted(graph[current], key=position.__getitem__)
                if d in inside and d in members
            )
            if current in seen:
                cycle = path[seen[current]:] + [current]
                break
            seen[current] = len(path)
            path.append(current)
        cycles.append(cycle)

    cycles.sort(key=lambda c: position[c[0]])
    return cycles


def _strongly_connected(graph: dict[str, list[str]]) -> list[list[str]]:
    """Tarjan's algorithm, iterative, restricted to nodes present in *graph*."""
    index_of: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    components: list[list[str]] = []
    counter = 0

    for root in graph:
        if root in index_of:
            continue
        work: list[tuple[str, int]] = [(root, 0)]
        while work:
            node, edge_i = work.pop()
            if edge_i == 0:
                index_of[node] = lowlink[node] = counter
                counter += 1
                stack.append(node)
                on_stack.add(node)
            edges = [d for d in graph[node] if d in graph]
            if edge_i < len(edges):
                work.append((node, edge_i + 1))
                target = edges[edge_i]
                if target not in index_of:
                    work.append((target, 0))
                elif target in on_stack:
                    lowlink[node] = min(lowlink[node], index_of[target])
                continue
            if lowlink[node] == index_of[node]:
                component: list[str] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(component)
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

    return components
