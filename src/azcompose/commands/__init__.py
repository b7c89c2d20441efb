"""Command groups for azcompose CLI."""

from azcompose.commands.catalog import modules_group, workloads_group
from azcompose.commands.config import config_group
from azcompose.commands.resolve import resolve_command, validate_command

__all__ = ["config_group", "modules_group", "resolve_command", "validate_command", "workloads_group"]
