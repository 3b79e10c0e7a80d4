"""
Catalog check use case — load the catalog and report defects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from hops.core.config.catalog_loader import DEFAULT_CATALOG, load_catalog
from hops.core.errors import CatalogError
from hops.core.services.catalog import Catalog


@dataclass
class CatalogCheckResult:
    """Result of catalog validation."""

    valid: bool = False
    catalog: Catalog | None = None
    catalog_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "catalog_path": str(self.catalog_path) if self.catalog_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "service_count": len(self.catalog) if self.catalog else 0,
        }


def check_catalog(catalog_path: Path | None = None) -> CatalogCheckResult:
    """Validate the service catalog and report issues.

    Args:
        catalog_path: Optional catalog file (default: bundled catalog).

    Returns:
        CatalogCheckResult with every defect found.
    """
    result = CatalogCheckResult(catalog_path=catalog_path or DEFAULT_CATALOG)

    try:
        catalog = load_catalog(result.catalog_path)
    except CatalogError as e:
        result.errors.append(str(e))
        result.errors.extend(str(d) for d in e.defects)
        return result

    result.catalog = catalog

    # Semantic checks that do not block loading
    for desc in catalog:
        if not desc.ports and not desc.healthcheck:
            result.warnings.append(
                f"{desc.id}: no published port or healthcheck; readiness is not verified"
            )

    result.valid = True
    return result


def catalog_listing(catalog: Catalog) -> list[dict]:
    """Catalog rows for display, grouped by category."""
    rows: list[dict] = []
    for category, members in catalog.by_category().items():
        for desc in members:
            primary = desc.primary_port
            rows.append({
                "id": desc.id,
                "name": desc.display_name,
                "category": str(category),
                "image": desc.image,
                "port": primary.host_port if primary else None,
                "dependencies": list(desc.dependencies),
                "description": desc.description,
            })
    return rows
