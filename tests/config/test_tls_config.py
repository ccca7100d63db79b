"""Tests for milou_tls.config: loading, env resolution, schema and cross-field checks."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import yaml

from milou_tls.config import ConfigValidationError, TlsConfig, build_settings
from milou_tls.core.types import SslMode, ValidationPolicy


def _write_config(tmp_path: Path, data: dict, name: str = "tls.yaml") -> Path:
    path = tmp_path / name
    if name.endswith(".json"):
        path.write_text(json.dumps(data), encoding="utf-8")
    else:
        path.write_text(
            yaml.safe_dump(data, default_flow_style=False, sort_keys=False),
            encoding="utf-8",
        )
    return path


def _make_config(tmp_path: Path, data: dict, environ: dict | None = None) -> TlsConfig:
    return TlsConfig(config_file=_write_config(tmp_path, data), environ=environ or {})


class TestDefaults:
    def test_no_file_gives_defaults(self):
        settings = TlsConfig(environ={}).settings
        assert settings.ssl.mode is SslMode.AUTO
        assert settings.ssl.policy is ValidationPolicy.LENIENT
        assert settings.ssl.domain == "localhost"
        assert settings.ssl.cert_file == Path("./ssl/milou.crt")
        assert settings.ssl.key_file == Path("./ssl/milou.key")
        assert settings.expiry.warn_days == 30
        assert settings.expiry.critical_days == 7
        assert settings.generation.rsa_key_size == 2048
        assert settings.generation.validity_days == 365
        assert settings.logging.format == "text"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert TlsConfig(config_file=path, environ={}).settings.ssl.name == "milou"

    def test_build_settings_directly(self):
        settings = build_settings(None)
        assert settings.generation.max_attempts == 3


class TestLoading:
    def test_yaml_file(self, tmp_config_file, minimal_config_data):
        config = TlsConfig(config_file=tmp_config_file, environ={})
        assert config.settings.ssl.domain == "example.com"
        assert config.settings.ssl.domains == ("example.com", "*.example.com")
        assert config.get("ssl.base_dir") == minimal_config_data["ssl"]["base_dir"]
        assert config.get("ssl.nope", "fallback") == "fallback"

    def test_json_file(self, tmp_path):
        path = _write_config(tmp_path, {"expiry": {"warn_days": 45}}, name="tls.json")
        assert TlsConfig(config_file=path, environ={}).settings.expiry.warn_days == 45

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="not found"):
            TlsConfig(config_file=tmp_path / "nope.yaml", environ={})

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("ssl: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="cannot parse"):
            TlsConfig(config_file=path, environ={})

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="mapping"):
            TlsConfig(config_file=path, environ={})

    def test_repr(self, tmp_config_file):
        assert "tls" in repr(TlsConfig(config_file=tmp_config_file, environ={})).lower()

    def test_explicit_cert_paths(self, tmp_path):
        config = _make_config(
            tmp_path,
            {"ssl": {"cert_path": "/etc/tls/site.pem", "key_path": "/etc/tls/site-key.pem"}},
        )
        assert config.settings.ssl.cert_file == Path("/etc/tls/site.pem")
        assert config.settings.ssl.key_file == Path("/etc/tls/site-key.pem")


class TestEnvironment:
    def test_var_reference(self, tmp_path):
        config = _make_config(
            tmp_path,
            {"ssl": {"domain": "${SITE_DOMAIN}"}},
            environ={"SITE_DOMAIN": "site.example.com"},
        )
        assert config.settings.ssl.domain == "site.example.com"

    def test_var_default(self, tmp_path):
        config = _make_config(tmp_path, {"ssl": {"base_dir": "${SSL_DIR:-/srv/ssl}"}})
        assert config.settings.ssl.base_dir == "/srv/ssl"

    def test_unset_var_without_default(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="UNSET_VAR"):
            _make_config(tmp_path, {"ssl": {"domain": "${UNSET_VAR}"}})

    def test_overlay_overrides_file(self, tmp_path):
        config = _make_config(
            tmp_path,
            {"ssl": {"mode": "generate", "domain": "file.example.com"}},
            environ={
                "SSL_MODE": "EXISTING",
                "DOMAIN": "env.example.com",
                "SSL_ADDITIONAL_DOMAINS": "www.env.example.com, api.env.example.com",
                "SSL_WARN_DAYS": "60",
                "SSL_CRITICAL_DAYS": "14",
                "SSL_POLICY": "strict",
            },
        )
        settings = config.settings
        assert settings.ssl.mode is SslMode.EXISTING
        assert settings.ssl.domain == "env.example.com"
        assert settings.ssl.additional_domains == ("www.env.example.com", "api.env.example.com")
        assert settings.expiry.warn_days == 60
        assert settings.expiry.critical_days == 14
        assert settings.ssl.policy is ValidationPolicy.STRICT

    def test_overlay_without_file(self):
        config = TlsConfig(environ={"SSL_CERT_PATH": "/a.crt", "SSL_KEY_PATH": "/a.key"})
        assert config.settings.ssl.cert_file == Path("/a.crt")

    def test_empty_overlay_value_ignored(self):
        assert TlsConfig(environ={"DOMAIN": ""}).settings.ssl.domain == "localhost"

    def test_bad_integer(self):
        with pytest.raises(ConfigValidationError, match="SSL_WARN_DAYS"):
            TlsConfig(environ={"SSL_WARN_DAYS": "soon"})


class TestSchema:
    @pytest.mark.parametrize(
        "data",
        [
            {"ssl": {"mode": "letsencrypt"}},
            {"ssl": {"policy": "paranoid"}},
            {"ssl": {"unknown": 1}},
            {"generation": {"rsa_key_size": 1024}},
            {"generation": {"validity_days": 0}},
            {"generation": {"ec_curve": "secp521r1"}},
            {"expiry": {"warn_days": -1}},
            {"logging": {"format": "xml"}},
            {"extra_section": {}},
        ],
    )
    def test_rejected(self, tmp_path, data):
        with pytest.raises(ConfigValidationError):
            _make_config(tmp_path, data)

    def test_error_lists_location(self, tmp_path):
        with pytest.raises(ConfigValidationError) as exc_info:
            _make_config(tmp_path, {"expiry": {"warn_days": "thirty"}})
        assert any(e.startswith("expiry.warn_days") for e in exc_info.value.errors)


class TestAdditionalChecks:
    def test_critical_above_warn(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="critical_days"):
            _make_config(tmp_path, {"expiry": {"warn_days": 5, "critical_days": 10}})

    def test_cert_path_without_key_path(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="set together"):
            _make_config(tmp_path, {"ssl": {"cert_path": "/a.crt"}})

    def test_same_cert_and_key_path(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="different files"):
            _make_config(tmp_path, {"ssl": {"cert_path": "/a.pem", "key_path": "/a.pem"}})

    def test_wildcard_primary_domain(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="concrete host name"):
            _make_config(tmp_path, {"ssl": {"domain": "*.example.com"}})

    def test_errors_are_collected(self, tmp_path):
        with pytest.raises(ConfigValidationError) as exc_info:
            _make_config(
                tmp_path,
                {
                    "ssl": {"domain": "*.example.com", "cert_path": "/a.crt"},
                    "expiry": {"warn_days": 5, "critical_days": 10},
                },
            )
        assert len(exc_info.value.errors) == 3

    def test_short_validity_warns(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            _make_config(tmp_path, {"generation": {"validity_days": 20}})
        assert "expiring soon" in caplog.text

    def test_domains_with_mode_none_warns(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            _make_config(tmp_path, {"ssl": {"mode": "none", "additional_domains": ["a.test"]}})
        assert "no effect" in caplog.text
