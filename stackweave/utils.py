"""Shared console helpers for stackweave.

Rich-based output used by the registry, the generator, and callers that
present resolution results to a user.
"""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from stackweave.modules.models import ResolutionResult
from stackweave.modules.registry import ModuleRegistry

console = Console()


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table.

    Args:
        data: Mapping of label -> value.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")


def print_resolution(result: ResolutionResult) -> None:
    """Show a resolution outcome: the install order, or every error found plus suggested fixes."""
    for warning in result.warnings:
        print_warning(f"  ! {warning}")

    if not result.success:
        print_error("Module resolution failed:")
        for err in result.errors:
            console.print(f"  [red]- {err}[/red]")
        if result.suggestions:
            console.print("[bold]Suggestions:[/bold]")
            for suggestion in result.suggestions:
                console.print(f"  [cyan]- {suggestion}[/cyan]")
        return

    if not result.modules:
        print_success("Resolved an empty module set (blank project)")
        return

    table = Table(title="Resolved modules", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Module", style="bold")
    table.add_column("Category")
    table.add_column("Depends on", style="dim")
    for position, module in enumerate(result.modules, start=1):
        table.add_row(
            str(position),
            module.name,
            module.category,
            ", ".join(module.dependencies) or "-",
        )
    console.print(table)


def print_module_catalog(registry: ModuleRegistry) -> None:
    """List every registered module grouped by category."""
    table = Table(title="Available modules", show_header=True, header_style="bold cyan")
    table.add_column("Category", style="dim", no_wrap=True)
    table.add_column("Module", style="bold")
    table.add_column("Description")
    for category in registry.categories():
        for module in registry.list_by_category(category):
            table.add_row(category, module.name, module.description)
    console.print(table)
