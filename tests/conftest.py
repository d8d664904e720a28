"""Shared fixtures: the shop fixture module and bridge settings."""

from pathlib import Path

import pytest

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_path() -> Path:
    return FIXTURES


@pytest.fixture
def shop_module():
    """(ModuleInfo, ModuleMcpConfig, imported code) of the shop fixture."""
    from discovery.manifest import ManifestConfigResolver
    from discovery.modules import import_code_module, read_module_info

    info = read_module_info(FIXTURES / "shop")
    config = ManifestConfigResolver().get_config(info)
    return info, config, import_code_module(info)


@pytest.fixture
def settings(tmp_path):
    """Settings with an API key, audit written under a temporary directory."""
    from shared.config import BridgeServerSettings, PlatformSettings, Settings

    return Settings(
        platform=PlatformSettings(base_url="http://platform.test", api_key="K1"),
        mcp_server=BridgeServerSettings(
            modules_path=str(FIXTURES),
            audit_log_path=str(tmp_path / "audit.log"),
        ),
    )
