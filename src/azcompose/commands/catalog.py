"""Catalog command groups for azcompose.

This module provides read-only commands for browsing the catalog:
- modules list: List module templates (glob and tag filters)
- modules show: Show a template's parameter and output interface
- workloads list: List workloads with their target scope and bundles
"""

import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from azcompose.catalog_manager import CatalogError
from azcompose.click_group import AzcomposeGroup
from azcompose.commands.cli_helpers import get_catalog
from azcompose.config_manager import ConfigError
from azcompose.templates.errors import CompositionError

logger = logging.getLogger(__name__)
console = Console()


@click.group(name="modules", cls=AzcomposeGroup)
def modules_group():
    """Browse module templates in the catalog.

    Module templates live under modules/ in the catalog, one YAML file per
    template version.

    \b
    EXAMPLES:
        # List all templates
        $ azcompose modules list

        # List templates by name pattern or tag
        $ azcompose modules list --filter 'key*'
        $ azcompose modules list --tag security

        # Show a template's interface
        $ azcompose modules show keyvault
        $ azcompose modules show keyvault --version '<2.0.0'
    """
    pass


@modules_group.command(name="list")
@click.option("--filter", "name_pattern", help="Glob pattern for template names", type=str)
@click.option("--tag", "tags", multiple=True, help="Only templates with this tag (repeatable)")
@click.pass_context
def modules_list(ctx: click.Context, name_pattern: str | None, tags: tuple[str, ...]):
    """List module templates."""
    try:
        registry = get_catalog(ctx).load_registry()
        templates = registry.search(name_pattern=name_pattern, tags=list(tags) or None)

        if not templates:
            console.print("[yellow]No module templates found.[/yellow]")
            return

        table = Table(title=f"Module Templates ({len(templates)})")
        table.add_column("Name", style="green")
        table.add_column("Versions", style="cyan")
        table.add_column("Tags", style="yellow")
        table.add_column("Description")
        for template in templates:
            versions = ", ".join(str(v) for v in registry.versions(template.name))
            table.add_row(template.name, versions, escape(", ".join(template.tags)), escape(template.description))
        console.print(table)

    except (CompositionError, CatalogError, ConfigError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error in modules list")
        sys.exit(1)


@modules_group.command(name="show")
@click.argument("name", type=str)
@click.option("--version", "constraint", help="Version constraint (default: latest)", type=str)
@click.pass_context
def modules_show(ctx: click.Context, name: str, constraint: str | None):
    """Show the parameters and outputs of a module template."""
    try:
        registry = get_catalog(ctx).load_registry()
        template = registry.get(name, constraint)
        if template is None:
            suffix = f" matching '{constraint}'" if constraint else ""
            click.echo(f"Error: Template '{name}'{suffix} not found", err=True)
            sys.exit(1)

        console.print(f"[bold]{template.ref}[/bold]")
        if template.description:
            console.print(f"  {template.description}", markup=False)
        if template.tags:
            console.print(f"  Tags: {', '.join(template.tags)}", markup=False)

        params = Table(title="Parameters")
        params.add_column("Name", style="green")
        params.add_column("Type", style="cyan")
        params.add_column("Default")
        params.add_column("Constraints")
        for spec in template.parameters.values():
            if spec.required:
                default = "(required)"
            elif spec.secure:
                default = "[REDACTED]"
            else:
                default = repr(spec.default)
            constraints = ", ".join(f"{k}={v}" for k, v in spec.constraints().items())
            params.add_row(spec.name, spec.type.value, escape(default), escape(constraints))
        console.print(params)

        outputs = Table(title="Outputs")
        outputs.add_column("Name", style="green")
        outputs.add_column("Type", style="cyan")
        outputs.add_column("Sentinel")
        for output in template.outputs.values():
            outputs.add_row(output.name, output.type.value, escape(repr(output.sentinel)))
        console.print(outputs)

    except (CompositionError, CatalogError, ConfigError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error in modules show")
        sys.exit(1)


@click.group(name="workloads", cls=AzcomposeGroup)
def workloads_group():
    """Browse workloads in the catalog.

    \b
    EXAMPLES:
        $ azcompose workloads list
    """
    pass


@workloads_group.command(name="list")
@click.pass_context
def workloads_list(ctx: click.Context):
    """List workloads with their target scope and parameter bundles."""
    try:
        catalog = get_catalog(ctx)
        names = catalog.list_workloads()

        if not names:
            console.print("[yellow]No workloads found.[/yellow]")
            return

        table = Table(title=f"Workloads ({len(names)})")
        table.add_column("Name", style="green")
        table.add_column("Scope", style="cyan")
        table.add_column("Modules")
        table.add_column("Bundles", style="yellow")
        for name in names:
            workload = catalog.load_workload(name)
            bundles = ", ".join(f"{t}.{e}" for t, e in catalog.list_bundles(name)) or "-"
            table.add_row(name, workload.target_scope, str(len(workload.modules)), bundles)
        console.print(table)

    except (CompositionError, CatalogError, ConfigError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error in workloads list")
        sys.exit(1)
