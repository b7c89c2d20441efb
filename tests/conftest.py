"""
Shared test fixtures and configuration for azcompose tests.

This module provides common fixtures used across all test types:
- Isolated configuration directory and environment
- A copy of the sample catalog
- Small in-memory module templates and workloads
"""

import shutil
from pathlib import Path
from typing import Any

import pytest

EXAMPLE_CATALOG = Path(__file__).resolve().parent.parent / "examples" / "catalog"


# ============================================================================
# ISOLATION FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config manager at a temporary directory.

    Clears AZCOMPOSE_CONFIG and AZCOMPOSE_CATALOG so the developer's
    environment never leaks into tests.
    """
    from azcompose.config_manager import ConfigManager

    config_dir = tmp_path / ".azcompose"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_dir / "config.toml")
    monkeypatch.delenv("AZCOMPOSE_CONFIG", raising=False)
    monkeypatch.delenv("AZCOMPOSE_CATALOG", raising=False)
    return config_dir


# ============================================================================
# CATALOG FIXTURES
# ============================================================================


@pytest.fixture
def catalog_dir(tmp_path):
    """Writable copy of the sample catalog."""
    target = tmp_path / "catalog"
    shutil.copytree(EXAMPLE_CATALOG, target)
    return target


# ============================================================================
# TEMPLATE FIXTURES
# ============================================================================


@pytest.fixture
def network_template() -> dict[str, Any]:
    return {
        "name": "network",
        "version": "1.0.0",
        "parameters": {
            "location": {"type": "string"},
            "addressPrefix": {"type": "string", "default": "10.0.0.0/16"},
        },
        "outputs": {"vnetId": {"type": "string"}, "subnetId": {"type": "string"}},
    }


@pytest.fixture
def keyvault_template() -> dict[str, Any]:
    return {
        "name": "keyvault",
        "version": "1.0.0",
        "tags": ["security"],
        "parameters": {
            "name": {"type": "string", "min_length": 3, "max_length": 24},
            "sku": {"type": "string", "allowed": ["standard", "premium"], "default": "standard"},
            "subnetId": {"type": "string", "default": ""},
        },
        "outputs": {"vaultId": {"type": "string"}, "vaultUri": {"type": "string"}},
    }


@pytest.fixture
def registry(network_template, keyvault_template):
    """Registry holding the network and keyvault templates."""
    from azcompose.templates.registry import TemplateRegistry
    from azcompose.templates.schema import ModuleTemplate

    registry = TemplateRegistry()
    registry.register(ModuleTemplate.from_dict(network_template))
    registry.register(ModuleTemplate.from_dict(keyvault_template))
    return registry


@pytest.fixture
def network_keyvault_workload() -> dict[str, Any]:
    """Network plus a Key Vault that is deployed only when deployKeyVault is true."""
    return {
        "name": "secure-network",
        "parameters": {
            "location": {"type": "string", "default": "westeurope"},
            "deployKeyVault": {"type": "bool", "default": True},
        },
        "modules": [
            {
                "id": "network",
                "template": "network",
                "params": {"location": {"param": "location"}},
            },
            {
                "id": "keyvault",
                "template": "keyvault",
                "condition": "deployKeyVault == true",
                "params": {
                    "name": "kv-secure",
                    "subnetId": {"output": "network.subnetId"},
                },
            },
        ],
    }
