"""azcompose CLI entry point.

Commands:
    resolve     Compute the realization plan for a workload
    validate    Check a workload and all of its parameter bundles
    modules     Browse module templates
    workloads   Browse workloads
    config      Manage configuration
"""

import logging

import click

from azcompose import __version__
from azcompose.click_group import AzcomposeGroup
from azcompose.commands import (
    config_group,
    modules_group,
    resolve_command,
    validate_command,
    workloads_group,
)
from azcompose.log_sanitizer import install_log_sanitizer


@click.group(
    cls=AzcomposeGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.option("--config", "config_path", help="Config file path (default: ~/.azcompose/config.toml)", type=str)
@click.option("--catalog", help="Catalog directory (overrides AZCOMPOSE_CATALOG and config)", type=str)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
@click.version_option(version=__version__)
def main(ctx: click.Context, config_path: str | None, catalog: str | None, verbose: bool) -> None:
    """azcompose - Azure IaC template composition resolver.

    Resolves a workload (a graph of module instances) against a module
    catalog and a per-tenant, per-environment parameter bundle into an
    ordered, validated realization plan.

    \b
    COMMANDS:
        resolve       Compute the realization plan for a workload
        validate      Check a workload and all of its parameter bundles
        modules       List and show module templates
        workloads     List workloads
        config        Show or change configuration

    \b
    EXAMPLES:
        $ azcompose resolve data-platform --tenant contoso --environment prod
        $ azcompose validate data-platform --strict
        $ azcompose modules list --tag security

    \b
    CONFIGURATION:
        Config file: ~/.azcompose/config.toml
        Set defaults: catalog_path, default_tenant, default_environment

    For help on any command: azcompose <command> --help
    """
    # Set up logging
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    install_log_sanitizer()

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["catalog"] = catalog

    # If no subcommand provided, show help
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


main.add_command(resolve_command)
main.add_command(validate_command)
main.add_command(modules_group)
main.add_command(workloads_group)
main.add_command(config_group)


if __name__ == "__main__":
    main()


__all__ = ["main"]
