"""Configuration helpers for the loyalty-orchestrator CLI."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from loyalty_orchestrator.context import OrchestratorContext, TokenParameters, WorkflowParameters

DEFAULT_CONFIG_PATH = Path.home() / ".loyalty_orchestrator" / "config.toml"
CA_URL_ENV_VAR = "LOYALTY_CA_URL"
GATEWAY_URL_ENV_VAR = "LOYALTY_GATEWAY_URL"
ADMIN_SECRET_ENV_VAR = "LOYALTY_ADMIN_SECRET"

_DEFAULTS = OrchestratorContext()


class ConfigError(ValueError):
    """Raised when CLI config is invalid."""


def _load_toml(path: Path) -> dict[str, Any]:
    raw = path.read_text(encoding="utf-8")

    try:  # Python 3.11+
        import tomllib  # type: ignore[attr-defined]
        try:
            return tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {path}: {exc}") from exc
    except ModuleNotFoundError:
        try:
            import tomli
        except ModuleNotFoundError as exc:
            raise ConfigError("toml parser unavailable; install tomli for Python < 3.11") from exc
        try:
            return tomli.loads(raw)
        except tomli.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {path}: {exc}") from exc


def _to_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    raise ConfigError(f"{field_name} must be a boolean")


def _to_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be an integer") from exc


def _to_str(source: dict, field_name: str, default: str) -> str:
    value = str(source.get(field_name, default)).strip()
    if not value:
        raise ConfigError(f"{field_name} must not be empty")
    return value


def _env_or(env_var: str, configured: str) -> str:
    env_value = os.getenv(env_var)
    return env_value.strip() if env_value and env_value.strip() else configured


def load_connection_profile_ca(path: str | Path, ca_name: str | None = None) -> tuple[str, str]:
    """Return ``(url, caName)`` of a certificate authority in a connection profile."""
    profile_path = Path(path)
    try:
        profile = json.loads(profile_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"invalid connection profile: {profile_path}") from exc

    authorities = profile.get("certificateAuthorities") if isinstance(profile, dict) else None
    if not isinstance(authorities, dict) or not authorities:
        raise ConfigError("connection profile has no certificateAuthorities")
    if ca_name is None:
        key = next(iter(authorities))
    else:
        key = next(
            (k for k, v in authorities.items() if k == ca_name or v.get("caName") == ca_name),
            None,
        )
        if key is None:
            raise ConfigError(f"certificate authority {ca_name!r} not in connection profile")
    entry = authorities[key]
    url = entry.get("url") if isinstance(entry, dict) else None
    if not isinstance(url, str) or not url:
        raise ConfigError(f"certificate authority {key!r} has no url")
    return url, str(entry.get("caName") or key)


def load_orchestrator_context(path: str | Path | None = None) -> OrchestratorContext:
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    parsed = _load_toml(config_path) if config_path.exists() else {}

    section = parsed.get("orchestrator")
    if isinstance(section, dict):
        source = section
    elif section is None:
        source = parsed
    else:
        raise ConfigError("[orchestrator] must be a table")

    ca_name_raw = source.get("ca_name", _DEFAULTS.ca_name)
    ca_name = str(ca_name_raw).strip() or None if ca_name_raw is not None else None
    ca_url = source.get("ca_url")
    profile_path = source.get("connection_profile")
    if ca_url is None and profile_path:
        # Relative profile paths resolve against the config file's directory.
        profile = config_path.parent / str(profile_path)
        ca_url, ca_name = load_connection_profile_ca(profile, ca_name)
    ca_url = _env_or(CA_URL_ENV_VAR, str(ca_url or _DEFAULTS.ca_url).strip())
    gateway_url = _env_or(
        GATEWAY_URL_ENV_VAR, _to_str(source, "gateway_url", _DEFAULTS.gateway_url)
    )
    admin_secret = _env_or(
        ADMIN_SECRET_ENV_VAR, _to_str(source, "admin_secret", _DEFAULTS.admin_secret)
    )

    secrets_raw = parsed.get("enrollment_secrets", source.get("enrollment_secrets", {}))
    if not isinstance(secrets_raw, dict):
        raise ConfigError("[enrollment_secrets] must be a table")
    enrollment_secrets = {str(k): str(v) for k, v in secrets_raw.items()}

    counterparties_raw = source.get("counterparties", list(_DEFAULTS.workflow.counterparties))
    if not isinstance(counterparties_raw, list) or not all(
        isinstance(c, str) and c.strip() for c in counterparties_raw
    ):
        raise ConfigError("counterparties must be a list of non-empty strings")

    verify_raw = source.get("verify_tls", True)
    verify_tls: bool | str
    if isinstance(verify_raw, str) and verify_raw.strip().lower() not in {
        "true", "false", "1", "0", "yes", "no", "on", "off"
    }:
        verify_tls = verify_raw.strip()
    else:
        verify_tls = _to_bool(verify_raw, "verify_tls")

    try:
        token = TokenParameters(
            name=_to_str(source, "token_name", _DEFAULTS.token.name),
            symbol=_to_str(source, "token_symbol", _DEFAULTS.token.symbol),
            decimals=_to_int(
                source.get("token_decimals", _DEFAULTS.token.decimals), "token_decimals"
            ),
        )
        workflow = WorkflowParameters(
            mint_amount=_to_int(source.get("mint_amount", 1000), "mint_amount"),
            transfer_amount=_to_int(source.get("transfer_amount", 500), "transfer_amount"),
            allowance_amount=_to_int(source.get("allowance_amount", 200), "allowance_amount"),
            counterparties=tuple(c.strip() for c in counterparties_raw),
        )
        return OrchestratorContext(
            wallet_path=Path(_to_str(source, "wallet_path", str(_DEFAULTS.wallet_path))),
            msp_id=_to_str(source, "msp_id", _DEFAULTS.msp_id),
            ca_url=ca_url,
            ca_name=ca_name,
            gateway_url=gateway_url,
            channel=_to_str(source, "channel", _DEFAULTS.channel),
            contract=_to_str(source, "contract", _DEFAULTS.contract),
            discovery_enabled=_to_bool(source.get("discovery_enabled", True), "discovery_enabled"),
            as_localhost=_to_bool(source.get("as_localhost", True), "as_localhost"),
            admin_name=_to_str(source, "admin_name", _DEFAULTS.admin_name),
            admin_secret=admin_secret,
            affiliation=_to_str(source, "affiliation", _DEFAULTS.affiliation),
            role=_to_str(source, "role", _DEFAULTS.role),
            enrollment_secrets=enrollment_secrets,
            token=token,
            workflow=workflow,
            timeout=float(source.get("timeout", _DEFAULTS.timeout)),
            retries=max(0, _to_int(source.get("retries", _DEFAULTS.retries), "retries")),
            verify_tls=verify_tls,
        )
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(str(exc)) from exc
