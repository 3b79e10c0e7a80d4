"""
Catalog loader — loads the service catalog from YAML.

The bundled catalog lives in ``hops/core/data/catalog.yml``.  A
different file can be supplied for testing or customisation.

Unlike a best-effort loader, this one refuses: a single malformed entry
or structural defect raises ``CatalogError`` listing every problem, so
the installer never resolves against an incomplete graph.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from hops.core.errors import CatalogError
from hops.core.models.service import ServiceDescriptor
from hops.core.services.catalog import Catalog

logger = logging.getLogger(__name__)

DEFAULT_CATALOG = Path(__file__).resolve().parent.parent / "data" / "catalog.yml"


def load_catalog(path: Path | None = None) -> Catalog:
    """Load and validate the service catalog.

    Args:
        path: Catalog YAML file.  Defaults to the bundled catalog.

    Returns:
        A validated, read-only Catalog.

    Raises:
        CatalogError: If the file is unreadable, malformed, or has defects.
    """
    path = path or DEFAULT_CATALOG
    logger.debug("Loading catalog from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(f"Cannot read catalog {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise CatalogError(f"Invalid YAML in catalog {path}: {e}") from e

    return catalog_from_data(data, source=str(path))


def catalog_from_data(data: object, source: str = "<data>") -> Catalog:
    """Build a Catalog from already-parsed YAML data.

    Accepts either ``{"services": [...]}`` or a bare list of entries.
    """
    if isinstance(data, dict):
        entries = data.get("services")
    else:
        entries = data

    if not isinstance(entries, list):
        raise CatalogError(f"Expected a list of services in {source}")

    descriptors: list[ServiceDescriptor] = []
    problems: list[str] = []

    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            problems.append(f"entry {i}: expected a mapping, got {type(entry).__name__}")
            continue
        label = entry.get("id", f"entry {i}")
        try:
            descriptors.append(ServiceDescriptor.model_validate(entry))
        except ValidationError as e:
            for err in e.errors():
                loc = ".".join(str(p) for p in err["loc"])
                problems.append(f"{label}: {loc}: {err['msg']}")

    if problems:
        raise CatalogError(
            f"Malformed catalog {source}: {len(problems)} problem(s)",
            defects=problems,
        )

    catalog = Catalog(descriptors)
    defects = catalog.validate_catalog()
    if defects:
        raise CatalogError(
            f"Catalog {source} failed validation: {len(defects)} defect(s)",
            defects=defects,
        )

    logger.info("Loaded catalog with %d services from %s", len(catalog), source)
    return catalog
