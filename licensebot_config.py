"""
Config files for the license bot.

LicenseBot/config.json is committed and holds non-secret settings.
LicenseBot/config.secrets.json is git-ignored and is laid over it key by key.
Any secret may be left out of both files; settings then fall back to the environment.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

REPO_ROOT = Path(__file__).resolve().parent

CONFIG_NAME = "config.json"
SECRETS_NAME = "config.secrets.json"
SECRETS_TEMPLATE_NAME = "config.secrets.example.json"

# Keys that must never be committed in config.json.
SECRET_KEYS = ("bot_token", "public_key", "spreadsheet_id", "google_service_account_json")

_PLACEHOLDER_WORDS = {"CHANGEME", "REPLACE_ME", "TODO", "XXX"}


class ConfigFileError(ValueError):
    """A config file exists but is not a JSON object."""
    pass


def _read_object(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigFileError(f"{path} is not valid JSON (line {e.lineno}): {e.msg}") from e
    if not isinstance(data, dict):
        raise ConfigFileError(f"{path} must contain a JSON object")
    return data


def _overlay(base: Dict[str, Any], top: Dict[str, Any]) -> Dict[str, Any]:
    """Lay ``top`` over ``base`` in place; nested objects merge, everything else replaces."""
    for key, value in top.items():
        current = base.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            _overlay(current, value)
        else:
            base[key] = value
    return base


@dataclass
class LoadedConfig:
    values: Dict[str, Any]
    config_path: Path
    secrets_path: Path
    # Keys as written in config.json, before the secrets overlay.
    committed_keys: Dict[str, Any] = field(default_factory=dict)

    @property
    def secrets_template(self) -> Path:
        return self.config_path.parent / SECRETS_TEMPLATE_NAME

    def secrets_in_config(self) -> List[str]:
        """Secret keys that carry a real value in the committed config.json."""
        return [k for k in SECRET_KEYS if not is_placeholder_secret(self.committed_keys.get(k))]


def load_config(bot_dir: Path, config_name: str = CONFIG_NAME, secrets_name: str = SECRETS_NAME) -> LoadedConfig:
    """Read ``config.json`` from ``bot_dir`` and overlay ``config.secrets.json`` if present.

    Raises FileNotFoundError when config.json is absent and ConfigFileError when
    either file is not a JSON object.
    """
    config_path = bot_dir / config_name
    secrets_path = bot_dir / secrets_name
    if not config_path.exists():
        raise FileNotFoundError(f"Missing config file: {config_path}")

    committed = _read_object(config_path)
    values = json.loads(json.dumps(committed))
    if secrets_path.exists():
        _overlay(values, _read_object(secrets_path))
    return LoadedConfig(values, config_path, secrets_path, committed_keys=committed)


def is_placeholder_secret(value: Any) -> bool:
    """True for empty values and template markers such as ``PUT_BOT_TOKEN_HERE``."""
    if isinstance(value, dict):
        return not value
    s = str(value if value is not None else "").strip().upper()
    return not s or s.startswith("PUT_") or s.endswith("_HERE") or s in _PLACEHOLDER_WORDS


def mask_secret(value: Any, show_last: int = 4) -> str:
    """Stars for all but the last ``show_last`` characters; short values are fully hidden."""
    s = "" if value is None else str(value)
    if not s:
        return "<missing>"
    visible = s[-show_last:] if 0 < show_last < len(s) else ""
    return "*" * (len(s) - len(visible)) + visible
