"""Unit tests for dependency resolution (stackweave.modules.resolver).

Tests cover:
- Dependency expansion and dependency-first ordering
- Conflict detection, optionally downgraded to warnings
- Cycle reporting
- Recommendations, exclusions, and the auto_resolve switch
- Suggestions attached to failed results
- Determinism and error collection
"""

from __future__ import annotations

import itertools

import pytest

from stackweave.modules import (
    DependencyResolver,
    ModuleDescriptor,
    ResolutionFailed,
    ResolutionOptions,
    ResolutionResult,
)


pytestmark = pytest.mark.unit


def _assert_dependency_first(result: ResolutionResult) -> None:
    position = {name: i for i, name in enumerate(result.names)}
    for module in result.modules:
        for dep in module.dependencies:
            assert position[dep] < position[module.name], (
                f"{dep} must precede {module.name} in {result.names}"
            )


# Small acyclic, conflict-free catalog: every non-empty selection must resolve.
SUBSET_MODULES = (
    ModuleDescriptor(name="core"),
    ModuleDescriptor(name="http", dependencies=("core",)),
    ModuleDescriptor(name="auth", dependencies=("http", "core")),
    ModuleDescriptor(name="ui", dependencies=("core",), recommends=("theme",)),
    ModuleDescriptor(name="theme"),
    ModuleDescriptor(name="admin", dependencies=("auth", "ui")),
)
SUBSETS = [
    list(combo)
    for size in range(1, len(SUBSET_MODULES) + 1)
    for combo in itertools.combinations([m.name for m in SUBSET_MODULES], size)
]


# ---------------------------------------------------------------------------
# Expansion & ordering
# ---------------------------------------------------------------------------


class TestOrdering:
    def test_dependency_added_and_placed_first(self, make_module, make_registry):
        registry = make_registry(make_module("a", dependencies=["b"]), make_module("b"))
        result = DependencyResolver(registry).resolve(["a"])

        assert result.success
        assert result.names == ["b", "a"]
        assert result.errors == []

    def test_empty_request_is_a_blank_project(self, make_module, make_registry):
        registry = make_registry(make_module("a"))
        result = DependencyResolver(registry).resolve([])

        assert result.success
        assert result.modules == []
        assert result.errors == []

    def test_duplicates_are_ignored(self, make_module, make_registry):
        registry = make_registry(make_module("a"), make_module("b"))
        result = DependencyResolver(registry).resolve(["a", "b", "a"])
        assert result.names == ["a", "b"]

    def test_independent_modules_keep_request_order(self, make_module, make_registry):
        registry = make_registry(make_module("x"), make_module("y"))
        resolver = DependencyResolver(registry)
        assert resolver.resolve(["x", "y"]).names == ["x", "y"]
        assert resolver.resolve(["y", "x"]).names == ["y", "x"]

    def test_transitive_diamond(self, make_module, make_registry):
        registry = make_registry(
            make_module("core"),
            make_module("left", dependencies=["core"]),
            make_module("right", dependencies=["core"]),
            make_module("top", dependencies=["left", "right"]),
        )
        result = DependencyResolver(registry).resolve(["top"])

        assert result.success
        assert result.names == ["core", "left", "right", "top"]
        _assert_dependency_first(result)

    def test_resolution_is_deterministic(self, catalog_registry):
        resolver = DependencyResolver(catalog_registry)
        first = resolver.resolve(["vuetify", "supabase", "pinia"])
        second = resolver.resolve(["vuetify", "supabase", "pinia"])
        assert first.names == second.names
        _assert_dependency_first(first)

    def test_catalog_stack(self, catalog_registry):
        result = DependencyResolver(catalog_registry).resolve(["vue-base", "vuetify", "supabase"])

        assert result.success, result.errors
        assert result.names == [
            "base-config",
            "vue-base",
            "vuetify",
            "supabase",
            "eslint-prettier",
        ]

    @pytest.mark.parametrize("selection", SUBSETS, ids="+".join)
    def test_every_selection_is_dependency_first(self, selection, make_registry):
        result = DependencyResolver(make_registry(*SUBSET_MODULES)).resolve(selection)

        assert result.success, result.errors
        assert set(selection) <= set(result.names)
        assert len(result.names) == len(set(result.names))
        _assert_dependency_first(result)


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_unknown_module(self, make_module, make_registry):
        registry = make_registry(make_module("a"))
        result = DependencyResolver(registry).resolve(["a", "ghost"])

        assert not result.success
        assert result.modules == []
        assert result.errors == ["unknown module 'ghost'"]

    def test_conflicting_pair(self, make_module, make_registry):
        registry = make_registry(make_module("a", conflicts=["c"]), make_module("c"))
        result = DependencyResolver(registry).resolve(["a", "c"])

        assert not result.success
        assert result.errors == ["conflict between 'a' and 'c'"]

    def test_conflict_declared_on_either_side(self, make_module, make_registry):
        registry = make_registry(make_module("a"), make_module("c", conflicts=["a"]))
        result = DependencyResolver(registry).resolve(["a", "c"])
        assert result.errors == ["conflict between 'a' and 'c'"]

    def test_mutual_conflict_reported_once(self, make_module, make_registry):
        registry = make_registry(
            make_module("a", conflicts=["c"]),
            make_module("c", conflicts=["a"]),
        )
        result = DependencyResolver(registry).resolve(["a", "c"])
        assert result.errors == ["conflict between 'a' and 'c'"]

    def test_conflict_pulled_in_through_dependency(self, catalog_registry):
        result = DependencyResolver(catalog_registry).resolve(["react-base", "vuetify"])
        assert not result.success
        assert "conflict between 'react-base' and 'vuetify'" in result.errors

    def test_cycle_reported_with_path(self, make_module, make_registry):
        registry = make_registry(
            make_module("a", dependencies=["b"]),
            make_module("b", dependencies=["c"]),
            make_module("c", dependencies=["a"]),
        )
        resolver = DependencyResolver(registry)

        for request in (["a"], ["a", "b", "c"]):
            result = resolver.resolve(request)
            assert not result.success
            assert result.errors == ["cyclic dependency: a -> b -> c -> a"]

    def test_cycle_does_not_hide_acyclic_part(self, make_module, make_registry):
        registry = make_registry(
            make_module("ok"),
            make_module("p", dependencies=["q"]),
            make_module("q", dependencies=["p"]),
        )
        result = DependencyResolver(registry).resolve(["ok", "p"])
        assert result.errors == ["cyclic dependency: p -> q -> p"]

    def test_errors_from_every_pass_are_collected(self, make_module, make_registry):
        registry = make_registry(
            make_module("a", conflicts=["c"]),
            make_module("c"),
            make_module("p", dependencies=["q"]),
            make_module("q", dependencies=["p"]),
        )
        result = DependencyResolver(registry).resolve(["ghost", "a", "c", "p"])

        assert result.errors == [
            "unknown module 'ghost'",
            "conflict between 'a' and 'c'",
            "cyclic dependency: p -> q -> p",
        ]

    def test_resolution_failed_carries_result(self):
        result = ResolutionResult.failed(["unknown module 'x'", "conflict between 'a' and 'c'"])
        exc = ResolutionFailed(result)
        assert exc.result is result
        assert "unknown module 'x'; conflict between 'a' and 'c'" in str(exc)


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class TestOptions:
    def test_missing_dependency_without_auto_resolve(self, make_module, make_registry):
        registry = make_registry(make_module("a", dependencies=["b"]), make_module("b"))
        result = DependencyResolver(registry).resolve(
            ["a"], ResolutionOptions(auto_resolve=False)
        )

        assert not result.success
        assert result.errors == ["module 'a' requires 'b', which is not selected"]

    def test_explicit_selection_without_auto_resolve(self, make_module, make_registry):
        registry = make_registry(make_module("a", dependencies=["b"]), make_module("b"))
        result = DependencyResolver(registry).resolve(
            ["a", "b"], ResolutionOptions(auto_resolve=False)
        )
        assert result.success
        assert result.names == ["b", "a"]

    def test_allowed_conflicts_become_warnings(self, make_module, make_registry):
        registry = make_registry(make_module("a", conflicts=["c"]), make_module("c"))
        result = DependencyResolver(registry).resolve(
            ["a", "c"], ResolutionOptions(allow_conflicts=True)
        )

        assert result.success
        assert result.names == ["a", "c"]
        assert result.warnings == ["conflict between 'a' and 'c' (allowed)"]

    def test_recommendations_are_included(self, make_module, make_registry):
        registry = make_registry(make_module("a", recommends=["r"]), make_module("r"))
        result = DependencyResolver(registry).resolve(["a"])
        assert result.names == ["a", "r"]

    def test_recommendations_can_be_disabled(self, make_module, make_registry):
        registry = make_registry(make_module("a", recommends=["r"]), make_module("r"))
        result = DependencyResolver(registry).resolve(
            ["a"], ResolutionOptions(include_recommended=False)
        )
        assert result.names == ["a"]

    def test_auto_resolve_off_skips_recommendations(self, make_module, make_registry):
        registry = make_registry(make_module("a", recommends=["r"]), make_module("r"))
        result = DependencyResolver(registry).resolve(
            ["a"], ResolutionOptions(auto_resolve=False)
        )
        assert result.names == ["a"]

    def test_excluded_recommendation(self, make_module, make_registry):
        registry = make_registry(make_module("a", recommends=["r"]), make_module("r"))
        result = DependencyResolver(registry).resolve(["a"], ResolutionOptions(exclude=("r",)))
        assert result.names == ["a"]

    def test_exclude_does_not_drop_explicit_requests(self, make_module, make_registry):
        registry = make_registry(make_module("a", recommends=["r"]), make_module("r"))
        result = DependencyResolver(registry).resolve(
            ["a", "r"], ResolutionOptions(exclude=("r",))
        )
        assert result.names == ["a", "r"]

    def test_conflicting_recommendation_is_skipped(self, make_module, make_registry):
        registry = make_registry(
            make_module("a", recommends=["r"]),
            make_module("r", conflicts=["x"]),
            make_module("x"),
        )
        result = DependencyResolver(registry).resolve(["a", "x"])

        assert result.success
        assert result.names == ["a", "x"]
        assert result.warnings == ["skipped 'r' recommended by 'a': conflicts with 'x'"]

    def test_recommendation_skipped_for_later_required_module(self, make_module, make_registry):
        registry = make_registry(
            make_module("a", recommends=["r"]),
            make_module("b", dependencies=["x"]),
            make_module("x", conflicts=["r"]),
            make_module("r"),
        )
        result = DependencyResolver(registry).resolve(["a", "b"])

        assert result.success, result.errors
        assert result.names == ["a", "x", "b"]
        assert result.warnings == ["skipped 'r' recommended by 'a': conflicts with 'x'"]

    def test_recommendation_brings_its_dependencies(self, make_module, make_registry):
        registry = make_registry(
            make_module("a", recommends=["r"]),
            make_module("r", dependencies=["d"]),
            make_module("d"),
        )
        result = DependencyResolver(registry).resolve(["a"])

        assert result.success
        assert result.names == ["a", "d", "r"]

    def test_recommendation_skipped_when_its_dependency_conflicts(self, make_module, make_registry):
        registry = make_registry(
            make_module("a", recommends=["r"]),
            make_module("r", dependencies=["d"]),
            make_module("d", conflicts=["x"]),
            make_module("x"),
        )
        result = DependencyResolver(registry).resolve(["a", "x"])

        assert result.success
        assert result.names == ["a", "x"]
        assert result.warnings == [
            "skipped 'r' recommended by 'a': its dependency 'd' conflicts with 'x'"
        ]

    def test_recommendations_do_not_conflict_with_each_other(self, make_module, make_registry):
        registry = make_registry(
            make_module("a", recommends=["r1", "r2"]),
            make_module("r1"),
            make_module("r2", conflicts=["r1"]),
        )
        result = DependencyResolver(registry).resolve(["a"])

        assert result.success
        assert result.names == ["a", "r1"]
        assert result.warnings == ["skipped 'r2' recommended by 'a': conflicts with 'r1'"]

    def test_cyclic_recommendation_is_skipped(self, make_module, make_registry):
        registry = make_registry(
            make_module("a", recommends=["r"]),
            make_module("r", dependencies=["d"]),
            make_module("d", dependencies=["r"]),
        )
        result = DependencyResolver(registry).resolve(["a"])

        assert result.success
        assert result.names == ["a"]
        assert result.warnings == [
            "skipped 'r' recommended by 'a': cyclic dependency: r -> d -> r"
        ]


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


class TestSuggestions:
    def test_close_match_for_unknown_name(self, make_module, make_registry):
        registry = make_registry(make_module("vue-base"), make_module("pinia"))
        result = DependencyResolver(registry).resolve(["vue-bse"])

        assert result.errors == ["unknown module 'vue-bse'"]
        assert result.suggestions == ["did you mean 'vue-base' instead of 'vue-bse'?"]

    def test_missing_dependency_suggested(self, make_module, make_registry):
        registry = make_registry(make_module("a", dependencies=["b"]), make_module("b"))
        result = DependencyResolver(registry).resolve(
            ["a"], ResolutionOptions(auto_resolve=False)
        )
        assert result.suggestions == ["add 'b' (required by 'a')"]

    def test_same_category_replacement_for_conflict(self, catalog_registry):
        result = DependencyResolver(catalog_registry).resolve(["react-base", "vuetify"])

        assert not result.success
        assert result.suggestions == [
            "replace 'react-base' with 'vue-base' to resolve the conflict with 'vuetify'"
        ]

    def test_no_replacement_without_alternative(self, make_module, make_registry):
        registry = make_registry(make_module("a", conflicts=["c"]), make_module("c"))
        result = DependencyResolver(registry).resolve(["a", "c"])

        assert not result.success
        assert result.suggestions == []

    def test_successful_result_has_no_suggestions(self, catalog_registry):
        result = DependencyResolver(catalog_registry).resolve(["vue-base"])
        assert result.success
        assert result.suggestions == []
