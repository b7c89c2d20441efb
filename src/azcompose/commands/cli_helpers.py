"""Shared helper functions for CLI commands.

Functions in this module should be:
- Side-effect minimal (they read the catalog, never write it)
- Reusable across multiple commands
"""

import logging
from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from azcompose.catalog_manager import CatalogError, CatalogManager
from azcompose.config_manager import AzComposeConfig, ConfigManager
from azcompose.log_sanitizer import LogSanitizer
from azcompose.templates.bundles import ParameterBundle
from azcompose.templates.plan import RealizationPlan, render_value

logger = logging.getLogger(__name__)


def get_config(ctx: click.Context) -> AzComposeConfig:
    """Load the configuration selected by the top-level --config option."""
    return ConfigManager.load_config(ctx.obj.get("config_path"))


def get_catalog(ctx: click.Context) -> CatalogManager:
    """Build a catalog manager from --catalog, AZCOMPOSE_CATALOG or the config file."""
    root = ConfigManager.get_catalog_path(ctx.obj.get("catalog"), ctx.obj.get("config_path"))
    logger.debug(f"Using catalog: {root}")
    return CatalogManager(root)


def select_bundle(
    catalog: CatalogManager,
    workload: str,
    config: AzComposeConfig,
    tenant: str | None,
    environment: str | None,
    params_file: str | None,
) -> ParameterBundle | None:
    """Pick the parameter bundle for a resolve run.

    An explicit --params file wins. Otherwise tenant and environment come from
    the options or the config defaults; with neither, only defaults are used.

    Raises:
        CatalogError: If only one of tenant/environment is known or the bundle is missing
    """
    if params_file:
        return catalog.load_bundle_file(params_file)

    tenant = tenant or config.default_tenant
    environment = environment or config.default_environment
    if not tenant and not environment:
        return None
    if not tenant or not environment:
        raise CatalogError("Both --tenant and --environment are required to select a parameter bundle")
    return catalog.load_bundle(workload, tenant, environment)


def _display(value: Any) -> str:
    rendered = render_value(value)
    if isinstance(rendered, dict) and set(rendered) == {"$output"}:
        return rendered["$output"]
    return LogSanitizer.sanitize(repr(rendered) if not isinstance(rendered, str) else f'"{rendered}"')


def print_plan(plan: RealizationPlan, console: Console) -> None:
    """Render a realization plan as rich tables."""
    context = f" ({plan.tenant}.{plan.environment})" if plan.tenant else ""
    console.print(f"\n[bold]Realization plan for {plan.workload}[/bold]{context}")
    console.print(f"  Target scope: {plan.target_scope}" + (f" ({plan.scope_id})" if plan.scope_id else ""))

    table = Table(title="Modules", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=3)
    table.add_column("Module", style="green")
    table.add_column("Template", style="blue")
    table.add_column("Depends On")
    for index, step in enumerate(plan.steps, 1):
        table.add_row(str(index), step.id, step.ref, ", ".join(step.depends_on) or "-")
    console.print(table)

    if plan.excluded:
        console.print(f"[yellow]Excluded:[/yellow] {', '.join(plan.excluded)}")

    if plan.substitutions:
        subs = Table(title="Substitutions", show_header=True, header_style="bold cyan")
        subs.add_column("Module")
        subs.add_column("Field")
        subs.add_column("Producer")
        subs.add_column("Value")
        for sub in plan.substitutions:
            subs.add_row(
                sub.module_id,
                sub.field,
                f"{sub.producer}.{sub.output}",
                escape(f"{_display(sub.value)} ({sub.reason})"),
            )
        console.print(subs)

    if plan.outputs:
        console.print("[bold]Outputs:[/bold]")
        for name, value in plan.outputs.items():
            console.print(f"  {name} = {_display(value)}", markup=False)

    for warning in plan.warnings:
        console.print(f"Warning: {warning}", style="yellow", markup=False)

    console.print(f"\nDigest: {plan.digest}")
