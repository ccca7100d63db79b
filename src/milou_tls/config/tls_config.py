"""milou-tls configuration loader.

Lifecycle::

    # CLI (or the surrounding deployment workflow) builds it once ...
    config = TlsConfig(config_file="/etc/milou/tls.yaml")

    # ... and passes the typed settings explicitly to whatever needs them.
    orchestrator = ValidationOrchestrator.from_settings(config.settings)

There is no module-level singleton: components receive
their settings at construction rather than reading ambient state.

Loading order:

1. read the YAML/JSON file (optional; defaults apply without one),
2. resolve ``${VAR}`` / ``${VAR:-default}`` references,
3. overlay the deployment ``.env`` variables (``SSL_MODE``, ``DOMAIN`` ...),
4. validate against the bundled JSON schema,
5. run cross-field checks,
6. build the frozen :class:`TlsSettings` tree.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator

from milou_tls.config.settings import TlsSettings, build_settings

SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

# Deployment .env variable -> (section, key, converter)
_ENV_OVERLAY: dict[str, tuple[str, str, str]] = {
    "SSL_MODE": ("ssl", "mode", "str"),
    "SSL_CERT_PATH": ("ssl", "cert_path", "str"),
    "SSL_KEY_PATH": ("ssl", "key_path", "str"),
    "SSL_BASE_DIR": ("ssl", "base_dir", "str"),
    "DOMAIN": ("ssl", "domain", "str"),
    "SSL_ADDITIONAL_DOMAINS": ("ssl", "additional_domains", "list"),
    "SSL_POLICY": ("ssl", "policy", "str"),
    "SSL_WARN_DAYS": ("expiry", "warn_days", "int"),
    "SSL_CRITICAL_DAYS": ("expiry", "critical_days", "int"),
}

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        """Store *errors* and build a human-readable message."""
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str, environ: Mapping[str, str]) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    environ: Mapping[str, str],
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path, environ)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], environ, child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path, environ)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, environ, child_path)


def _apply_env_overlay(data: dict, environ: Mapping[str, str]) -> None:
    """Let deployment ``.env`` variables override file values in-place."""
    errors: list[str] = []
    for var_name, (section, key, kind) in _ENV_OVERLAY.items():
        raw = environ.get(var_name)
        if raw is None or raw == "":
            continue
        value: Any = raw
        if kind == "int":
            try:
                value = int(raw)
            except ValueError:
                errors.append(f"{var_name} must be an integer (got {raw!r})")
                continue
        elif kind == "list":
            value = [item.strip() for item in raw.split(",") if item.strip()]
        elif kind == "str" and key == "mode":
            value = raw.lower()
        section_data = data.get(section)
        if not isinstance(section_data, dict):
            section_data = {}
            data[section] = section_data
        section_data[key] = value
    if errors:
        raise ConfigValidationError(errors)


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class TlsConfig:
    """Central configuration for the certificate engine.

    After construction the typed settings tree is available at
    :pyattr:`settings` and the raw dict via :pyattr:`data` /
    :pymeth:`get`.
    """

    def __init__(
        self,
        *,
        config_file: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Load, validate and materialise the configuration.

        Parameters
        ----------
        config_file:
            Path to the YAML/JSON configuration file.  When ``None`` the
            built-in defaults plus the environment overlay are used.
        environ:
            Environment mapping; defaults to :data:`os.environ`.

        """
        self._source = str(config_file) if config_file is not None else None
        self._environ = os.environ if environ is None else environ
        self._data = self._load()
        _resolve_env_vars(self._data, self._environ)
        _apply_env_overlay(self._data, self._environ)
        self._validate_schema()
        self.additional_checks()
        self._settings: TlsSettings = build_settings(self._data)

    # -- lifecycle ----------------------------------------------------------

    def _load(self) -> dict:
        if self._source is None:
            return {}
        path = Path(self._source)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            msg = f"configuration file not found: {path}"
            raise ConfigValidationError([msg]) from None
        except OSError as exc:
            msg = f"cannot read configuration file {path}: {exc.strerror}"
            raise ConfigValidationError([msg]) from None

        try:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            msg = f"cannot parse configuration file {path}: {exc}"
            raise ConfigValidationError([msg]) from None

        if data is None:
            return {}
        if not isinstance(data, dict):
            msg = f"configuration file {path} must contain a mapping at the top level"
            raise ConfigValidationError([msg])
        return data

    def _validate_schema(self) -> None:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        validator = Draft7Validator(schema)
        errors = []
        for error in sorted(validator.iter_errors(self._data), key=lambda e: list(e.path)):
            location = ".".join(str(p) for p in error.path) or "(root)"
            errors.append(f"{location}: {error.message}")
        if errors:
            raise ConfigValidationError(errors)

    # -- typed access -------------------------------------------------------

    @property
    def settings(self) -> TlsSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    @property
    def data(self) -> dict:
        return self._data

    def get(self, dotted_path: str, default: Any = None) -> Any:  # noqa: ANN401
        """Dynamic dot-path access into the raw data."""
        node: Any = self._data
        for part in dotted_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # -- cross-field validation ---------------------------------------------

    def additional_checks(self) -> None:
        """Semantic & cross-field validation, run after schema validation."""
        errors: list[str] = []
        warnings: list[str] = []

        ssl = self._data.get("ssl") or {}
        expiry = self._data.get("expiry") or {}
        generation = self._data.get("generation") or {}

        # -- expiry --
        warn_days = expiry.get("warn_days", 30)
        critical_days = expiry.get("critical_days", 7)
        if critical_days > warn_days:
            errors.append(
                f"expiry.critical_days ({critical_days}) must be <= "
                f"expiry.warn_days ({warn_days})",
            )

        validity_days = generation.get("validity_days", 365)
        if validity_days <= warn_days:
            warnings.append(
                f"generation.validity_days ({validity_days}) is not greater than "
                f"expiry.warn_days ({warn_days}); freshly generated certificates "
                "will already be reported as expiring soon",
            )

        # -- ssl --
        mode = ssl.get("mode", "auto")
        cert_path = ssl.get("cert_path")
        key_path = ssl.get("key_path")
        if bool(cert_path) != bool(key_path):
            errors.append(
                "ssl.cert_path and ssl.key_path must be set together "
                "(the certificate and key are always stored as a pair)",
            )
        if cert_path and key_path and Path(cert_path) == Path(key_path):
            errors.append("ssl.cert_path and ssl.key_path must be different files")

        domain = ssl.get("domain", "localhost")
        if domain.startswith("*."):
            errors.append(
                f"ssl.domain ({domain!r}) must be a concrete host name; "
                "list wildcards under ssl.additional_domains",
            )
        if mode == "none" and ssl.get("additional_domains"):
            warnings.append(
                "ssl.additional_domains is set but ssl.mode is 'none'; it has no effect",
            )

        for w in warnings:
            log.warning("Config warning: %s", w)

        if errors:
            raise ConfigValidationError(errors)

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        return f"<TlsConfig config_file={self._source or '(defaults)'}>"
