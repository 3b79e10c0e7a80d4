"""
Builders for small, hand-made catalogs used across tests.
"""

from hops.core.models.service import ServiceDescriptor
from hops.core.services.catalog import Catalog


def make_service(sid: str, **fields) -> ServiceDescriptor:
    """Build a descriptor with sensible defaults."""
    data = {
        "id": sid,
        "image": f"example/{sid}:1.0",
        "category": "monitoring",
    }
    data.update(fields)
    return ServiceDescriptor.model_validate(data)


def make_catalog(*services: ServiceDescriptor) -> Catalog:
    return Catalog(services)
