"""Config command group for azcompose.

This module provides commands for the persistent configuration file:
- show: Show the effective configuration
- set: Set one configuration key
"""

import logging
import sys

import click

from azcompose.click_group import AzcomposeGroup
from azcompose.config_manager import AzComposeConfig, ConfigError, ConfigManager

logger = logging.getLogger(__name__)


@click.group(name="config", cls=AzcomposeGroup)
def config_group():
    """Manage azcompose configuration.

    Configuration is stored in ~/.azcompose/config.toml (or the file named by
    --config or AZCOMPOSE_CONFIG).

    \b
    KEYS:
        catalog_path              Catalog directory
        default_tenant            Tenant used when --tenant is omitted
        default_environment       Environment used when --environment is omitted
        output_format             table or json
        strict                    Treat lint warnings as errors in validate
        allow_unknown_parameters  Warn instead of failing on undeclared bundle values

    \b
    EXAMPLES:
        $ azcompose config show
        $ azcompose config set catalog_path ~/src/iac-catalog
        $ azcompose config set strict true
    """
    pass


@config_group.command(name="show")
@click.pass_context
def config_show(ctx: click.Context):
    """Show the effective configuration."""
    try:
        custom_path = ctx.obj.get("config_path")
        path = ConfigManager.get_config_path(custom_path)
        config = ConfigManager.load_config(custom_path)

        click.echo(f"Config file: {path}{'' if path.exists() else ' (not found, using defaults)'}")
        for name in AzComposeConfig.__dataclass_fields__:
            value = getattr(config, name)
            click.echo(f"  {name:<26} {'-' if value is None else value}")

    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@config_group.command(name="set")
@click.argument("key", type=str)
@click.argument("value", type=str)
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str):
    """Set a configuration key."""
    try:
        custom_path = ctx.obj.get("config_path")
        parsed = ConfigManager.parse_value(key, value)
        ConfigManager.update_config(custom_path, **{key: parsed})
        click.echo(f"Set {key} = {parsed}")

    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error in config set")
        sys.exit(1)
