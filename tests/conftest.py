"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from hops.core.config.catalog_loader import load_catalog
from hops.core.models.context import ConfigurationContext
from hops.core.services.catalog import Catalog


@pytest.fixture
def catalog() -> Catalog:
    """The bundled service catalog."""
    return load_catalog()


@pytest.fixture
def context(tmp_path: Path) -> ConfigurationContext:
    """A context rooted entirely under tmp_path."""
    return ConfigurationContext(
        puid=1000,
        pgid=1000,
        timezone="Europe/London",
        data_root=tmp_path / "data",
        config_root=tmp_path / "config",
        install_root=tmp_path / "homelab",
    )
