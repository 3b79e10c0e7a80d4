"""
Manifest generator — resolved selection + context → compose document.

One generic renderer covers every service: per-service differences live
in the catalog data (ports, volumes, env, healthcheck, ``special``), not
in code.  The output is a structured ``Manifest``; ``render_manifest()``
serialises it.

Determinism: the same (selection, context) always yields byte-identical
YAML.  Services follow selection order, every mapping is built in a
fixed key order, environment keys are sorted, and no timestamps are
embedded.
"""

from __future__ import annotations

import logging
from pathlib import Path
from string import Template

import yaml

from hops.core.models.context import ConfigurationContext
from hops.core.models.manifest import (
    Manifest,
    ManifestNetwork,
    ManifestService,
    ManifestVolume,
)
from hops.core.models.selection import ResolvedSelection
from hops.core.models.service import Category, ServiceDescriptor, VolumeSpec
from hops.core.services.catalog import Catalog
from hops.core.services.port_checker import check_ports

logger = logging.getLogger(__name__)

PROJECT_NAME = "hops"

SHARED_NETWORK = "homelab"
DATABASE_NETWORK = "database"

MANIFEST_HEADER = (
    "# Generated by HOPS. Re-run `hops generate --write` instead of editing;\n"
    "# values not set in hops.yml (e.g. ${DB_PASSWORD}) come from .env.\n"
)

# Defaults merged under each service's own env (the service wins).
CATEGORY_ENV: dict[Category, dict[str, str]] = {
    Category.MEDIA_MANAGEMENT: {"UMASK": "002"},
    Category.DOWNLOAD_CLIENT: {"UMASK": "002"},
    Category.MEDIA_SERVER: {"UMASK": "002"},
}


# ── Templates ────────────────────────────────────────────────────


def render_template(value: str, variables: dict[str, str]) -> str:
    """Substitute ``${NAME}`` from ``variables``.

    Unknown names are left untouched so compose can interpolate them
    from the install root's ``.env`` at start time.
    """
    return Template(value).safe_substitute(variables)


def compose_vars(ctx: ConfigurationContext) -> dict[str, str]:
    """Template values escaped for compose, which interpolates ``$`` itself."""
    return {key: value.replace("$", "$$") for key, value in ctx.template_vars().items()}


def embeds_credentials(
    catalog: Catalog,
    selection: ResolvedSelection,
    ctx: ConfigurationContext,
) -> bool:
    """True when a supplied credential is rendered into the manifest."""
    if not ctx.credentials:
        return False
    return any(
        name in ctx.credentials
        for sid in selection.ids
        for var in catalog.lookup(sid).env
        for name in var.placeholders()
    )


def _volume_spec(vol: VolumeSpec, variables: dict[str, str]) -> str:
    source = vol.source if vol.kind == "named" else render_template(vol.source, variables)
    spec = f"{source}:{vol.target}"
    if vol.mode == "ro":
        spec += ":ro"
    return spec


def _environment(desc: ServiceDescriptor, variables: dict[str, str]) -> dict[str, str]:
    env = dict(CATEGORY_ENV.get(desc.category, {}))
    for var in desc.env:
        env[var.name] = render_template(var.value, variables)
    return {key: env[key] for key in sorted(env)}


# ── Generation ───────────────────────────────────────────────────


def generate_manifest(
    catalog: Catalog,
    selection: ResolvedSelection,
    ctx: ConfigurationContext,
) -> Manifest:
    """Build the compose document for a resolved selection.

    Args:
        catalog: Service catalog.
        selection: Dependency-closed selection.
        ctx: Configuration context for template values.

    Returns:
        Structured Manifest.

    Raises:
        PortConflictError: Two selected services publish the same host port.
    """
    check_ports(catalog, selection).raise_for_errors()

    variables = compose_vars(ctx)
    descriptors = [catalog.lookup(sid) for sid in selection.ids]
    database_ids = {d.id for d in descriptors if d.is_database}

    manifest = Manifest(project=PROJECT_NAME)

    for desc in descriptors:
        depends_on = [dep for dep in selection.ids if dep in desc.dependencies]

        if desc.is_database:
            networks = [DATABASE_NETWORK]
        elif database_ids.intersection(desc.dependencies):
            networks = [SHARED_NETWORK, DATABASE_NETWORK]
        else:
            networks = [SHARED_NETWORK]

        manifest.services[desc.id] = ManifestService(
            name=desc.id,
            image=desc.image,
            container_name=desc.id,
            ports=[p.compose_spec() for p in desc.ports],
            volumes=[_volume_spec(v, variables) for v in desc.volumes],
            environment=_environment(desc, variables),
            depends_on=depends_on,
            networks=networks,
            healthcheck=desc.healthcheck.compose_spec() if desc.healthcheck else None,
        )

    used_networks = {n for svc in manifest.services.values() for n in svc.networks}
    if SHARED_NETWORK in used_networks:
        manifest.networks[SHARED_NETWORK] = ManifestNetwork(name=SHARED_NETWORK)
    if DATABASE_NETWORK in used_networks:
        manifest.networks[DATABASE_NETWORK] = ManifestNetwork(
            name=DATABASE_NETWORK, internal=True,
        )

    named = sorted({v.source for d in descriptors for v in d.named_volumes()})
    for name in named:
        manifest.volumes[name] = ManifestVolume(name=name)

    logger.info(
        "Generated manifest: %d services, %d networks, %d named volumes",
        len(manifest.services), len(manifest.networks), len(manifest.volumes),
    )
    return manifest


def render_manifest(manifest: Manifest) -> str:
    """Serialise a manifest to compose YAML (byte-stable)."""
    content = MANIFEST_HEADER
    content += yaml.dump(
        manifest.to_compose(),
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=1000,
    )
    return content


def host_directories(
    catalog: Catalog,
    selection: ResolvedSelection,
    ctx: ConfigurationContext,
) -> list[Path]:
    """Host directories to provision for every ``bind`` volume.

    Returns:
        Absolute paths, sorted and de-duplicated.  Sources that do not
        render to an absolute path are skipped with a warning.
    """
    variables = ctx.template_vars()
    dirs: set[Path] = set()
    for sid in selection.ids:
        for vol in catalog.lookup(sid).bind_volumes():
            source = render_template(vol.source, variables)
            path = Path(source)
            if not path.is_absolute() or "$" in source:
                logger.warning("Skipping unresolved volume source for %s: %s", sid, source)
                continue
            dirs.add(path)
    return sorted(dirs)
