"""
Environment-driven configuration with validation.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict

from dotenv import load_dotenv

from swapkeeper.config.chains import parse_spender_overrides
from swapkeeper.core import json_utils
from swapkeeper.core.errors import ConfigError

load_dotenv()

VAULT_BACKENDS = ("redis", "file")
ALERT_SEVERITIES = ("CRITICAL", "WARNING", "INFO")
REDACTED_FIELDS = {"api_key", "private_key", "custody_app_secret", "alert_webhook_url"}


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def _float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    api_base_url: str
    http_timeout: float
    reconcile_interval_sec: float
    vault_backend: str
    redis_url: str
    state_dir: str
    key_prefix: str
    spender_overrides: Dict[int, str] = field(default_factory=dict)
    # Custody: remote wallet service, or a local key for self-custody
    private_key: str | None = None
    custody_url: str | None = None
    custody_app_id: str | None = None
    custody_app_secret: str | None = None
    # Observability
    metrics_port: int = 0
    log_level: str = "INFO"
    log_file: str | None = None
    alert_webhook_url: str | None = None
    alert_webhook_type: str = "generic"
    alert_min_severity: str = "WARNING"
    alert_enabled: bool = True

    def dump(self) -> dict:
        """Settings as a dict with credentials redacted, for the startup log."""
        out = self.__dict__.copy()
        out["spender_overrides"] = {str(k): v for k, v in self.spender_overrides.items()}
        for key in REDACTED_FIELDS:
            if out.get(key):
                out[key] = "***"
        return out

    @classmethod
    def load(cls) -> "Settings":
        raw_overrides = os.getenv("SWAP_SPENDER_OVERRIDES")
        try:
            overrides = parse_spender_overrides(json_utils.loads(raw_overrides) if raw_overrides else None)
        except json_utils.JSONDecodeError as exc:
            raise ConfigError(f"SWAP_SPENDER_OVERRIDES is not valid JSON: {exc}") from exc

        cfg = cls(
            api_key=os.getenv("ONE_INCH_API_KEY"),
            api_base_url=os.getenv("SWAP_API_BASE_URL", "https://api.1inch.dev/fusion-plus"),
            http_timeout=_float_env("SWAP_HTTP_TIMEOUT", 10.0),
            reconcile_interval_sec=_float_env("SWAP_RECONCILE_INTERVAL_SEC", 10.0),
            vault_backend=os.getenv("SWAP_VAULT_BACKEND", "redis").lower(),
            redis_url=os.getenv("SWAP_REDIS_URL", "redis://localhost:6379/0"),
            state_dir=os.getenv("SWAP_STATE_DIR", "state"),
            key_prefix=os.getenv("SWAP_KEY_PREFIX", "cross_chain_swap_order"),
            spender_overrides=overrides,
            private_key=os.getenv("SWAP_PRIVATE_KEY"),
            custody_url=os.getenv("SWAP_CUSTODY_URL"),
            custody_app_id=os.getenv("SWAP_CUSTODY_APP_ID"),
            custody_app_secret=os.getenv("SWAP_CUSTODY_APP_SECRET"),
            metrics_port=_int_env("SWAP_METRICS_PORT", 0),
            log_level=os.getenv("SWAP_LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("SWAP_LOG_FILE") or None,
            alert_webhook_url=os.getenv("SWAP_ALERT_WEBHOOK_URL"),
            alert_webhook_type=os.getenv("SWAP_ALERT_WEBHOOK_TYPE", "generic"),
            alert_min_severity=os.getenv("SWAP_ALERT_MIN_SEVERITY", "WARNING").upper(),
            alert_enabled=env_bool("SWAP_ALERT_ENABLED", True),
        )
        cfg._validate()
        _log_loaded(cfg)
        return cfg

    def resolve_signer(self):
        """Local eth_account signer for self-custody wallets."""
        from eth_account import Account

        if self.private_key:
            return Account.from_key(self.private_key)
        raise ConfigError("Missing credentials: set SWAP_PRIVATE_KEY or SWAP_CUSTODY_URL")

    def _validate(self) -> None:
        if self.reconcile_interval_sec <= 0:
            raise ConfigError("SWAP_RECONCILE_INTERVAL_SEC must be > 0")
        if self.http_timeout <= 0:
            raise ConfigError("SWAP_HTTP_TIMEOUT must be > 0")
        if self.vault_backend not in VAULT_BACKENDS:
            raise ConfigError(f"SWAP_VAULT_BACKEND must be one of {VAULT_BACKENDS}, got {self.vault_backend!r}")
        if not self.key_prefix or ":" in self.key_prefix or "*" in self.key_prefix:
            raise ConfigError("SWAP_KEY_PREFIX must be non-empty and contain no ':' or '*'")
        if self.metrics_port < 0 or self.metrics_port > 65535:
            raise ConfigError("SWAP_METRICS_PORT must be within 0..65535")
        if self.log_level not in logging.getLevelNamesMapping():
            raise ConfigError(f"SWAP_LOG_LEVEL is not a logging level: {self.log_level!r}")
        if self.alert_min_severity not in ALERT_SEVERITIES:
            raise ConfigError(f"SWAP_ALERT_MIN_SEVERITY must be one of {ALERT_SEVERITIES}, got {self.alert_min_severity!r}")
        if self.custody_url and not (self.custody_app_id and self.custody_app_secret):
            raise ConfigError("SWAP_CUSTODY_URL requires SWAP_CUSTODY_APP_ID and SWAP_CUSTODY_APP_SECRET")

        if not self.api_key:
            logging.getLogger("swapkeeper").warning(
                "WARNING: ONE_INCH_API_KEY not set. "
                "The order network will reject quote and order requests."
            )
        if self.reconcile_interval_sec > 60:
            logging.getLogger("swapkeeper").warning(
                f"WARNING: SWAP_RECONCILE_INTERVAL_SEC is {self.reconcile_interval_sec:.0f}s. "
                "Slow reveals can let the resolver's escrow window lapse."
            )


def _log_loaded(cfg: Settings) -> None:
    """Log the effective settings once at startup so overrides are obvious."""
    logging.getLogger("swapkeeper").info(json_utils.dumps({"event": "config_loaded", **cfg.dump()}))
