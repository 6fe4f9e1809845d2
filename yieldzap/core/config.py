import json
import os
from pathlib import Path
from typing import Any

from yieldzap.core.constants.base import (
    DEFAULT_SLIPPAGE_PCT,
    GASLESS_USDC_RESERVE,
    MIN_NATIVE_GAS_WEI,
    QUOTE_RATE_LIMIT,
)

_CONFIG_ENV_KEYS = ("YIELDZAP_CONFIG_PATH", "YIELDZAP_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"
_DEFAULT_ODOS_API_URL = "https://api.odos.xyz"


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except json.JSONDecodeError:
        return {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def set_rpc_urls(rpc_urls):
    if "strategy" not in CONFIG:
        CONFIG["strategy"] = {}
    CONFIG["strategy"]["rpc_urls"] = rpc_urls


def get_rpc_urls() -> dict[str, Any]:
    return CONFIG.get("strategy", {}).get("rpc_urls", {})


def _system_value(key: str, env_key: str | None = None) -> str | None:
    value = CONFIG.get("system", {}).get(key)
    if value:
        return str(value).strip()
    if env_key:
        return os.environ.get(env_key)
    return None


def get_api_key() -> str | None:
    return _system_value("api_key", "YIELDZAP_API_KEY")


def get_odos_api_url() -> str:
    return (_system_value("odos_api_url") or _DEFAULT_ODOS_API_URL).rstrip("/")


def get_bundler_url() -> str | None:
    return _system_value("bundler_url", "YIELDZAP_BUNDLER_URL")


def get_paymaster_url() -> str | None:
    # Coinbase serves bundler and paymaster RPC from the same endpoint.
    return _system_value("paymaster_url", "YIELDZAP_PAYMASTER_URL") or get_bundler_url()


def get_ledger_dir() -> Path:
    value = _system_value("ledger_dir", "YIELDZAP_LEDGER_DIR")
    if value:
        return Path(value).expanduser()
    root = _project_root()
    return (root / ".ledger") if root else Path(".ledger")


def _routing_value(key: str, default: Any) -> Any:
    value = CONFIG.get("routing", {}).get(key)
    return default if value is None else value


def get_min_native_gas_wei() -> int:
    return int(_routing_value("min_native_gas_wei", MIN_NATIVE_GAS_WEI))


def get_gasless_usdc_reserve() -> int:
    return int(_routing_value("gasless_usdc_reserve", GASLESS_USDC_RESERVE))


def get_quote_rate_limit() -> int:
    return int(_routing_value("quote_rate_limit", QUOTE_RATE_LIMIT))


def get_default_slippage_pct() -> float:
    return float(_routing_value("default_slippage_pct", DEFAULT_SLIPPAGE_PCT))
