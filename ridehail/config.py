from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import yaml


@dataclass(frozen=True)
class Settings:
    # Credentials
    token: str | None = None
    credentials_file: str | None = None
    oauth2_client_id: str | None = None
    oauth2_client_secret: str | None = None

    # API
    sandbox: bool = False
    timeout_seconds: float = 20.0

    # Paging
    page_size: int = 50
    max_pages: int = 0
    throttle_ms: int = 150

    # Logging
    log_dir: str = "./logs"
    log_level: str = "INFO"


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


_ENV_NAMES = {
    "token": "UBER_TOKEN_KEY",
    "credentials_file": "RIDEHAIL_CREDENTIALS_FILE",
    "oauth2_client_id": "UBER_APP_OAUTH2_CLIENT_ID",
    "oauth2_client_secret": "UBER_APP_OAUTH2_CLIENT_SECRET",
    "sandbox": "RIDEHAIL_SANDBOX",
    "timeout_seconds": "RIDEHAIL_TIMEOUT_SECONDS",
    "page_size": "RIDEHAIL_PAGE_SIZE",
    "max_pages": "RIDEHAIL_MAX_PAGES",
    "throttle_ms": "RIDEHAIL_THROTTLE_MS",
    "log_dir": "RIDEHAIL_LOG_DIR",
    "log_level": "RIDEHAIL_LOG_LEVEL",
}


def _read_yaml_config(path: Path) -> dict:
    if not path.exists():
        return {}
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _parse_int(v: str | None) -> int | None:
    if v is None:
        return None
    return int(v)


def _parse_float(v: str | None) -> float | None:
    if v is None:
        return None
    return float(v)


def _parse_bool(v: str | None) -> bool | None:
    if v is None:
        return None
    vv = v.lower()
    if vv in ("1", "true", "yes", "y"):
        return True
    if vv in ("0", "false", "no", "n"):
        return False
    raise ValueError(f"Invalid boolean env value: {v}")


_ENV_PARSERS = {
    "sandbox": _parse_bool,
    "timeout_seconds": _parse_float,
    "page_size": _parse_int,
    "max_pages": _parse_int,
    "throttle_ms": _parse_int,
}


def load_settings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Priority: CLI > ENV > config > defaults
    """
    sources: list[str] = []
    defaults = Settings()

    # 1) config file
    cfg: dict = {}
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")

    merged = {name: cfg.get(name, getattr(defaults, name)) for name in _ENV_NAMES}

    # 2) env
    env = {name: _env_get(env_name) for name, env_name in _ENV_NAMES.items()}
    if any(v is not None for v in env.values()):
        sources.append("env")

    for name, raw in env.items():
        if raw is None:
            continue
        parser = _ENV_PARSERS.get(name)
        merged[name] = parser(raw) if parser else raw

    # 3) apply CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")

    for k, v in cli_overrides.items():
        if v is None:
            continue
        merged[k] = v

    settings = Settings(
        token=merged["token"],
        credentials_file=merged["credentials_file"],
        oauth2_client_id=merged["oauth2_client_id"],
        oauth2_client_secret=merged["oauth2_client_secret"],
        sandbox=bool(merged["sandbox"]),
        timeout_seconds=float(merged["timeout_seconds"]),
        page_size=int(merged["page_size"]),
        max_pages=int(merged["max_pages"]),
        throttle_ms=int(merged["throttle_ms"]),
        log_dir=merged["log_dir"],
        log_level=merged["log_level"],
    )

    return LoadedSettings(settings=settings, sources_used=sources)
