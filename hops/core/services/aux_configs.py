"""
Auxiliary config generator — per-service files beside the manifest.

Some services will not start usefully without a config file of their
own: the database tier needs a bootstrap script, the auth gateway an
access-control policy, the reverse proxy its static configuration.
Which files exist depends on the service's category; the content
depends on the rest of the selection and the context.

Files are planned here (pure) and written by ``manifest_writer``, which
skips any file that already exists so operator edits survive re-runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import yaml

from hops.core.models.context import ConfigurationContext
from hops.core.models.selection import ResolvedSelection
from hops.core.models.service import Category
from hops.core.models.template import GeneratedFile
from hops.core.services.catalog import Catalog

logger = logging.getLogger(__name__)

# Cookie/rule domain used when the operator has not configured one.
FALLBACK_DOMAIN = "home.arpa"

_YAML_HEADER = "# Generated by HOPS on first install. Edits are preserved.\n"


def _dump(data: dict) -> str:
    return _YAML_HEADER + yaml.dump(data, default_flow_style=False, sort_keys=False)


# ── Database tier ────────────────────────────────────────────────


def _postgres_init(
    catalog: Catalog,
    selection: ResolvedSelection,
    ctx: ConfigurationContext,
) -> GeneratedFile:
    """One database per selected service that depends on postgres."""
    dependents = [
        sid for sid in selection.ids
        if "postgres" in catalog.lookup(sid).dependencies
    ]

    lines = [
        "-- Generated by HOPS on first install. Edits are preserved.",
        "-- Runs once, when the postgres data volume is first initialised.",
        "",
    ]
    for sid in dependents:
        db_name = sid.replace("-", "_")
        lines.append(f'CREATE DATABASE "{db_name}" OWNER hops;')
    if not dependents:
        lines.append("-- No selected service needs a dedicated database.")

    path = ctx.service_config_dir("postgres") / "init" / "01-hops-databases.sql"
    return GeneratedFile(
        path=str(path),
        content="\n".join(lines) + "\n",
        service_id="postgres",
        reason=f"Database bootstrap for: {', '.join(dependents) or 'none'}",
    )


# ── Proxy & security ─────────────────────────────────────────────


def _authelia_config(
    catalog: Catalog,
    selection: ResolvedSelection,
    ctx: ConfigurationContext,
) -> GeneratedFile:
    """Default-deny policy with one-factor access to ``*.domain``."""
    domain = ctx.domain or FALLBACK_DOMAIN

    session: dict = {
        "cookies": [{
            "domain": domain,
            "authelia_url": f"https://auth.{domain}",
        }],
    }
    if "redis" in selection:
        session["redis"] = {"host": "redis", "port": 6379}

    config = {
        "server": {"address": "tcp://0.0.0.0:9091"},
        "log": {"level": "info"},
        "authentication_backend": {
            "file": {"path": "/config/users_database.yml"},
        },
        "access_control": {
            "default_policy": "deny",
            "rules": [
                {"domain": f"auth.{domain}", "policy": "bypass"},
                {"domain": f"*.{domain}", "policy": "one_factor"},
            ],
        },
        "session": session,
        "storage": {"local": {"path": "/config/db.sqlite3"}},
        "notifier": {"filesystem": {"filename": "/config/notification.txt"}},
    }

    path = ctx.service_config_dir("authelia") / "configuration.yml"
    return GeneratedFile(
        path=str(path),
        content=_dump(config),
        service_id="authelia",
        reason="Default access-control policy",
    )


def _traefik_config(
    catalog: Catalog,
    selection: ResolvedSelection,
    ctx: ConfigurationContext,
) -> GeneratedFile:
    """Static configuration: entry points, docker provider, optional ACME."""
    config: dict = {
        "api": {"dashboard": True, "insecure": True},
        "entryPoints": {
            "web": {"address": ":80"},
            "websecure": {"address": ":443"},
        },
        "providers": {
            "docker": {"exposedByDefault": False, "network": "homelab"},
        },
    }
    if ctx.acme_email:
        config["certificatesResolvers"] = {
            "letsencrypt": {
                "acme": {
                    "email": ctx.acme_email,
                    "storage": "/letsencrypt/acme.json",
                    "httpChallenge": {"entryPoint": "web"},
                },
            },
        }

    path = ctx.service_config_dir("traefik") / "traefik.yml"
    return GeneratedFile(
        path=str(path),
        content=_dump(config),
        service_id="traefik",
        reason="Reverse proxy static configuration",
    )


# ── Registry ─────────────────────────────────────────────────────


AuxGenerator = Callable[[Catalog, ResolvedSelection, ConfigurationContext], GeneratedFile]

_GENERATORS: dict[Category, dict[str, AuxGenerator]] = {
    Category.DATABASE: {"postgres": _postgres_init},
    Category.PROXY_SECURITY: {
        "authelia": _authelia_config,
        "traefik": _traefik_config,
    },
}


def plan_aux_files(
    catalog: Catalog,
    selection: ResolvedSelection,
    ctx: ConfigurationContext,
) -> list[GeneratedFile]:
    """Auxiliary files for a selection, in selection order.

    Returns:
        GeneratedFile list with absolute paths under ``ctx.config_root``.
    """
    files: list[GeneratedFile] = []
    for sid in selection.ids:
        desc = catalog.lookup(sid)
        generator = _GENERATORS.get(desc.category, {}).get(sid)
        if generator is None:
            continue
        files.append(generator(catalog, selection, ctx))

    if files:
        logger.debug("Planned %d auxiliary file(s)", len(files))
    return files


def supported_services() -> list[str]:
    """Return service ids that have an auxiliary config generator."""
    return sorted(sid for group in _GENERATORS.values() for sid in group)
