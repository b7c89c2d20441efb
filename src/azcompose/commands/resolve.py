"""Resolve and validate commands for azcompose.

This module provides the commands that run the composition resolver:
- resolve: Compute the realization plan for one workload and bundle
- validate: Static checks, lint, and a trial resolve of every bundle

Security:
- Secure parameter values are redacted in plans and messages
- Error messages pass through the log sanitizer
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console

from azcompose.catalog_manager import CatalogError
from azcompose.commands.cli_helpers import get_catalog, get_config, print_plan, select_bundle
from azcompose.config_manager import OUTPUT_FORMATS, ConfigError
from azcompose.log_sanitizer import LogSanitizer
from azcompose.templates.errors import CompositionError
from azcompose.templates.resolver import CompositionResolver

logger = logging.getLogger(__name__)
console = Console()


@click.command(name="resolve")
@click.argument("workload", type=str)
@click.option("--tenant", help="Tenant whose parameter bundle to use", type=str)
@click.option("--environment", "--env", "environment", help="Environment whose parameter bundle to use", type=str)
@click.option("--params", "params_file", help="Explicit parameter bundle file", type=click.Path(exists=True, dir_okay=False))
@click.option("--scope", "scope_id", help="Deployment scope id to check against the target scope", type=str)
@click.option("--format", "output_format", type=click.Choice(OUTPUT_FORMATS), help="Output format")
@click.option("--output", "output_file", help="Write the plan as JSON to this file", type=click.Path(dir_okay=False))
@click.option("--allow-unknown", is_flag=True, default=False, help="Warn instead of failing on undeclared bundle values")
@click.pass_context
def resolve_command(
    ctx: click.Context,
    workload: str,
    tenant: str | None,
    environment: str | None,
    params_file: str | None,
    scope_id: str | None,
    output_format: str | None,
    output_file: str | None,
    allow_unknown: bool,
):
    """Compute the realization plan for a workload.

    The bundle is read from parameters/<workload>/<tenant>.<environment>.json
    in the catalog, or from --params. Without either, only declared defaults
    are used.

    \b
    Examples:
        azcompose resolve data-platform --tenant contoso --environment prod
        azcompose resolve data-platform --params ./my-values.json --format json
        azcompose resolve data-platform --tenant contoso --env dev \\
            --scope /subscriptions/<guid>/resourceGroups/rg-data-dev
    """
    try:
        config = get_config(ctx)
        catalog = get_catalog(ctx)

        registry = catalog.load_registry()
        definition = catalog.load_workload(workload)
        bundle = select_bundle(catalog, workload, config, tenant, environment, params_file)

        resolver = CompositionResolver(
            registry, allow_unknown_parameters=allow_unknown or config.allow_unknown_parameters
        )
        plan = resolver.resolve(definition, bundle, scope_id=scope_id)

        if output_file:
            Path(output_file).write_text(plan.to_json() + "\n")
            click.echo(f"Plan written to {output_file} (digest {plan.digest})")
            return

        if (output_format or config.output_format) == "json":
            click.echo(plan.to_json())
        else:
            print_plan(plan, console)

    except (CompositionError, CatalogError, ConfigError) as e:
        click.echo(f"Error: {LogSanitizer.sanitize(str(e))}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error: {LogSanitizer.sanitize(str(e))}", err=True)
        logger.exception("Unexpected error in resolve")
        sys.exit(1)


@click.command(name="validate")
@click.argument("workload", type=str)
@click.option("--strict", is_flag=True, default=False, help="Treat lint warnings as errors")
@click.pass_context
def validate_command(ctx: click.Context, workload: str, strict: bool):
    """Validate a workload and every parameter bundle it has.

    Runs the static reference and cycle checks and the linter, then resolves
    the workload once per bundle found under parameters/<workload>/.

    \b
    Examples:
        azcompose validate data-platform
        azcompose validate data-platform --strict
    """
    try:
        config = get_config(ctx)
        catalog = get_catalog(ctx)
        strict = strict or config.strict

        registry = catalog.load_registry()
        definition = catalog.load_workload(workload)
        resolver = CompositionResolver(registry, allow_unknown_parameters=config.allow_unknown_parameters)

        result = resolver.validate(definition, strict=strict)
        if result.is_valid:
            for tenant, environment in catalog.list_bundles(workload):
                label = f"{tenant}.{environment}"
                try:
                    bundle = catalog.load_bundle(workload, tenant, environment)
                    plan = resolver.resolve(definition, bundle)
                except (CompositionError, CatalogError) as e:
                    result.is_valid = False
                    result.errors.append(f"{label}: {e}")
                    continue
                click.echo(f"  {label}: {len(plan.steps)} modules, {len(plan.excluded)} excluded")

        click.echo(LogSanitizer.sanitize(result.get_summary()))
        if not result.is_valid:
            sys.exit(1)

    except (CompositionError, CatalogError, ConfigError) as e:
        click.echo(f"Error: {LogSanitizer.sanitize(str(e))}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error: {LogSanitizer.sanitize(str(e))}", err=True)
        logger.exception("Unexpected error in validate")
        sys.exit(1)
