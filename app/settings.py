import os
from pathlib import Path

import yaml

ROOT = Path(__file__).resolve().parent.parent
PARAMS_PATH_DEFAULT = str(ROOT / "config" / "params.yaml")

DEFAULTS_FALLBACK = {
    "data_dir": "data/stock-data",
    "history_start": "1999-01-01",
    "update_lookback_days": 14,
    "log_level": "INFO",
}

ENV_OVERRIDES = {
    "RISK_DATA_DIR": "data_dir",
    "RISK_LOG_LEVEL": "log_level",
}


def load_settings(path: str = PARAMS_PATH_DEFAULT) -> dict:
    """params.yaml `defaults` over the built-in fallback, then environment overrides."""
    settings = dict(DEFAULTS_FALLBACK)
    p = Path(path)
    if p.exists():
        with p.open("r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
            settings.update(cfg.get("defaults") or {})
    for env, key in ENV_OVERRIDES.items():
        if os.getenv(env):
            settings[key] = os.environ[env]

    settings["update_lookback_days"] = int(settings["update_lookback_days"])
    data_dir = Path(settings["data_dir"])
    settings["data_dir"] = data_dir if data_dir.is_absolute() else ROOT / data_dir
    return settings
