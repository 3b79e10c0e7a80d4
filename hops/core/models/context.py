"""
ConfigurationContext — user-supplied values threaded through generation.

Constructed once per invocation from validated input and frozen
afterwards.  Replaces ad-hoc reads of ``PUID`` / ``CONFIG_ROOT`` / …
from the process environment: every stage receives the same value.

Malformed values are rejected, never coerced (``"abc"`` is not a uid,
and neither is ``True``).
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_MAX_ID = 65534

_TIMEZONE_RE = re.compile(r"^[A-Za-z_]+(/[A-Za-z0-9_+\-]+)*$")
_DOMAIN_LABEL = r"[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?"
_DOMAIN_RE = re.compile(rf"^{_DOMAIN_LABEL}(\.{_DOMAIN_LABEL})*$")
_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_CREDENTIAL_KEY_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")


class ConfigurationContext(BaseModel):
    """Values every generation stage needs.

    Attributes:
        puid / pgid:   Numeric owner for container files (0–65534).
        timezone:      IANA identifier, e.g. ``Europe/London``.
        data_root:     Media and downloads root (``DATA_ROOT``).
        config_root:   Per-service application data root (``CONFIG_ROOT``).
        install_root:  Directory holding the rendered manifest.
        domain:        Optional public domain for the reverse proxy.
        acme_email:    Optional contact address for certificate issuance.
        credentials:   Externally issued secrets keyed by variable name.
                       Never logged, never part of ``repr()``.
    """

    model_config = ConfigDict(frozen=True)

    puid: int
    pgid: int
    timezone: str
    data_root: Path
    config_root: Path
    install_root: Path = Field(default_factory=lambda: Path.home() / "homelab")
    domain: str | None = None
    acme_email: str | None = None
    credentials: dict[str, str] = Field(default_factory=dict, repr=False)

    # ── Validation ───────────────────────────────────────────────

    @field_validator("puid", "pgid", mode="before")
    @classmethod
    def _numeric_id(cls, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError("must be a number, not a boolean")
        if isinstance(value, str):
            if not value.strip().isdigit():
                raise ValueError(f"must be a number: {value!r}")
            value = int(value.strip())
        if not isinstance(value, int):
            raise ValueError(f"must be a number: {value!r}")
        if value < 0 or value > _MAX_ID:
            raise ValueError(f"out of range: {value} (0-{_MAX_ID})")
        return value

    @field_validator("timezone")
    @classmethod
    def _timezone_format(cls, value: str) -> str:
        if not _TIMEZONE_RE.match(value):
            raise ValueError(f"invalid timezone format: {value!r}")
        return value

    @field_validator("data_root", "config_root", "install_root")
    @classmethod
    def _absolute_path(cls, value: Path) -> Path:
        if not value.is_absolute():
            raise ValueError(f"relative paths not allowed: {value}")
        if ".." in value.parts:
            raise ValueError(f"path traversal detected in: {value}")
        return value

    @field_validator("domain")
    @classmethod
    def _domain_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if len(value) > 253 or not _DOMAIN_RE.match(value):
            raise ValueError(f"invalid domain: {value!r}")
        return value

    @field_validator("acme_email")
    @classmethod
    def _email_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if len(value) > 254 or not _EMAIL_RE.match(value):
            raise ValueError(f"invalid email: {value!r}")
        return value

    @field_validator("credentials")
    @classmethod
    def _credential_keys(cls, value: dict[str, str]) -> dict[str, str]:
        for key in value:
            if not _CREDENTIAL_KEY_RE.match(key):
                raise ValueError(f"invalid credential name: {key!r}")
        return value

    # ── Derived values ───────────────────────────────────────────

    @property
    def manifest_path(self) -> Path:
        return self.install_root / "docker-compose.yml"

    @property
    def env_path(self) -> Path:
        return self.install_root / ".env"

    def service_config_dir(self, service_id: str) -> Path:
        return self.config_root / service_id

    def template_vars(self) -> dict[str, str]:
        """Substitution map for ``${NAME}`` templates in the catalog.

        Credentials are included so that e.g. ``${DB_PASSWORD}`` renders
        when supplied; absent ones stay as compose interpolation.
        """
        values = {
            "PUID": str(self.puid),
            "PGID": str(self.pgid),
            "TZ": self.timezone,
            "DATA_ROOT": str(self.data_root),
            "CONFIG_ROOT": str(self.config_root),
        }
        if self.domain:
            values["DOMAIN"] = self.domain
        if self.acme_email:
            values["ACME_EMAIL"] = self.acme_email
        values.update(self.credentials)
        return values
