from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import date, datetime, time as dt_time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from licensebot_config import REPO_ROOT, is_placeholder_secret, load_config

BASE_DIR = Path(__file__).resolve().parent


def _cfg_str(cfg: Dict[str, Any], key: str, default: str = "", *, env: str = "") -> str:
    v = str((cfg or {}).get(key) or "").strip()
    if v:
        return v
    return str(os.getenv(env or key.upper(), "") or "").strip() or default


def _cfg_int(cfg: Dict[str, Any], key: str, default: int, *, env: str = "") -> int:
    v = (cfg or {}).get(key)
    # 0 counts as unset so placeholder ids in config.json defer to the environment
    if isinstance(v, int) and not isinstance(v, bool) and v:
        return v
    s = str(v or "").strip()
    if not s:
        s = str(os.getenv(env or key.upper(), "") or "").strip()
    if not s:
        return default
    try:
        return int(s)
    except ValueError:
        return default


def _cfg_float(cfg: Dict[str, Any], key: str, default: float) -> float:
    v = (cfg or {}).get(key)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def _cfg_bool(cfg: Dict[str, Any], key: str, default: bool) -> bool:
    v = (cfg or {}).get(key)
    if isinstance(v, bool):
        return v
    if v is None:
        v = os.getenv(key.upper(), "")
    s = str(v or "").strip().lower()
    if not s:
        return default
    return s in {"1", "true", "yes", "y", "on"}


def _try_parse_service_account_json(raw: str) -> Optional[dict]:
    s = (raw or "").strip()
    if not s:
        return None
    try:
        obj = json.loads(s)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def load_service_account_info(cfg: Dict[str, Any]) -> Optional[dict]:
    """Resolve Google service-account credentials.

    Order: inline object/JSON string in config, a file path (relative paths resolve
    against the repo root), then GOOGLE_CREDS / GOOGLE_SERVICE_ACCOUNT_JSON.
    """
    v = (cfg or {}).get("google_service_account_json")
    if isinstance(v, dict):
        return v
    if isinstance(v, str):
        parsed = _try_parse_service_account_json(v)
        if parsed:
            return parsed

    p = _cfg_str(cfg, "google_service_account_file", "")
    if p:
        path = Path(p)
        if not path.is_absolute():
            path = (REPO_ROOT / path).resolve()
        if path.exists():
            parsed = _try_parse_service_account_json(path.read_text(encoding="utf-8", errors="replace"))
            if parsed:
                return parsed

    for env_name in ("GOOGLE_CREDS", "GOOGLE_SERVICE_ACCOUNT_JSON"):
        parsed = _try_parse_service_account_json(os.getenv(env_name, "") or "")
        if parsed:
            return parsed
    return None


def parse_reminder_time(raw: str, tz: ZoneInfo) -> dt_time:
    """Parse ``HH:MM`` into a tz-aware time for ``tasks.loop(time=...)``."""
    s = str(raw or "").strip() or "10:00"
    hh, _, mm = s.partition(":")
    return dt_time(hour=int(hh), minute=int(mm or 0), tzinfo=tz)


@dataclass
class LicenseBotSettings:
    bot_token: str
    public_key: str
    application_id: str
    guild_id: int
    spreadsheet_id: str
    service_account_info: Optional[dict]
    sheet_tab_name: str = "FormResponses"
    client_role_name: str = "client"
    prospect_role_name: str = "prospect"
    client_id_policy: str = "sequential"
    client_id_prefix: str = ""
    client_id_max_attempts: int = 15
    license_days: int = 365
    http_host: str = "0.0.0.0"
    http_port: int = 3000
    timezone_name: str = "UTC"
    reminder_time: str = "10:00"
    reminder_thresholds_days: Tuple[int, ...] = (30, 14, 1)
    response_deadline_s: float = 2.5
    defer_responses: bool = False
    sheets_timeout_s: float = 10.0
    renew_sync_roles: bool = False
    discord_api_base: str = "https://discord.com/api/v10"

    @property
    def tz(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone_name or "UTC")
        except ZoneInfoNotFoundError:
            return ZoneInfo("UTC")

    def today(self) -> date:
        return datetime.now(self.tz).date()

    def reminder_clock(self) -> dt_time:
        return parse_reminder_time(self.reminder_time, self.tz)

    def validate(self) -> List[str]:
        """Return human-readable problems; an empty list means the bot can start."""
        errors: List[str] = []
        if is_placeholder_secret(self.bot_token):
            errors.append("bot_token missing/placeholder (config.secrets.json or BOT_TOKEN)")
        if is_placeholder_secret(self.public_key):
            errors.append("public_key missing/placeholder (config.secrets.json or PUBLIC_KEY)")
        if not self.guild_id:
            errors.append("guild_id missing (config.json or GUILD_ID)")
        if is_placeholder_secret(self.spreadsheet_id):
            errors.append("spreadsheet_id missing/placeholder (config.secrets.json or SHEET_ID)")
        if not self.service_account_info:
            errors.append("google service account json/file missing (or GOOGLE_CREDS)")
        if self.client_id_policy not in {"sequential", "random"}:
            errors.append(f"client_id_policy must be 'sequential' or 'random' (got {self.client_id_policy!r})")
        try:
            parse_reminder_time(self.reminder_time, self.tz)
        except ValueError:
            errors.append(f"reminder_time must look like HH:MM (got {self.reminder_time!r})")
        if not self.reminder_thresholds_days:
            errors.append("reminder_thresholds_days must list at least one day count")
        return errors


def resolve_settings(cfg: Dict[str, Any]) -> LicenseBotSettings:
    raw_thresholds = (cfg or {}).get("reminder_thresholds_days") or [30, 14, 1]
    thresholds = tuple(int(d) for d in raw_thresholds)
    return LicenseBotSettings(
        bot_token=_cfg_str(cfg, "bot_token", env="BOT_TOKEN"),
        public_key=_cfg_str(cfg, "public_key", env="PUBLIC_KEY"),
        application_id=_cfg_str(cfg, "application_id", env="APPLICATION_ID"),
        guild_id=_cfg_int(cfg, "guild_id", 0, env="GUILD_ID"),
        spreadsheet_id=_cfg_str(cfg, "spreadsheet_id", env="SHEET_ID"),
        service_account_info=load_service_account_info(cfg),
        sheet_tab_name=_cfg_str(cfg, "sheet_tab_name", "FormResponses", env="SHEET_TAB_NAME"),
        client_role_name=_cfg_str(cfg, "client_role_name", "client", env="CLIENT_ROLE_NAME"),
        prospect_role_name=_cfg_str(cfg, "prospect_role_name", "prospect", env="PROSPECT_ROLE_NAME"),
        client_id_policy=_cfg_str(cfg, "client_id_policy", "sequential", env="CLIENT_ID_POLICY").lower(),
        client_id_prefix=str((cfg or {}).get("client_id_prefix") or ""),
        client_id_max_attempts=max(1, _cfg_int(cfg, "client_id_max_attempts", 15)),
        license_days=_cfg_int(cfg, "license_days", 365),
        http_host=_cfg_str(cfg, "http_host", "0.0.0.0"),
        http_port=_cfg_int(cfg, "http_port", 3000, env="PORT"),
        timezone_name=_cfg_str(cfg, "timezone", "UTC", env="TZ_NAME"),
        reminder_time=_cfg_str(cfg, "reminder_time", "10:00"),
        reminder_thresholds_days=thresholds,
        response_deadline_s=max(0.0, _cfg_float(cfg, "response_deadline_s", 2.5)),
        defer_responses=_cfg_bool(cfg, "defer_responses", False),
        sheets_timeout_s=max(1.0, _cfg_float(cfg, "sheets_timeout_s", 10.0)),
        renew_sync_roles=_cfg_bool(cfg, "renew_sync_roles", False),
        discord_api_base=_cfg_str(cfg, "discord_api_base", "https://discord.com/api/v10").rstrip("/"),
    )


def load_settings(base_dir: Path = BASE_DIR) -> Tuple[LicenseBotSettings, Path, Path]:
    """Load config.json + config.secrets.json from ``base_dir`` and resolve settings.

    Returns: (settings, config_path, secrets_path)
    """
    loaded = load_config(base_dir)
    return resolve_settings(loaded.values), loaded.config_path, loaded.secrets_path
