from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

from licensebot_config import REPO_ROOT, load_config, mask_secret

BOT_DIR = REPO_ROOT / "LicenseBot"
ENTRYPOINT = "LicenseBot/license_bot.py"


def _check_sheet_shape(cfg: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    thresholds = cfg.get("reminder_thresholds_days") or []
    if not isinstance(thresholds, list) or not all(isinstance(d, int) and d > 0 for d in thresholds):
        errors.append("reminder_thresholds_days must be a list of positive integers")
    days = cfg.get("license_days", 365)
    if not isinstance(days, int) or days <= 0:
        errors.append("license_days must be a positive integer")
    return errors


def run(bot_dir: Path = BOT_DIR) -> int:
    # Imported here so the preflight still reports a broken config.json cleanly.
    from LicenseBot.bot_messages import load_messages
    from LicenseBot.settings import resolve_settings

    print("License Bot config preflight (no Discord connection)\n")
    try:
        loaded = load_config(bot_dir)
    except (OSError, ValueError) as e:
        print("[licensebot] FAIL")
        print(f"  - entrypoint: {ENTRYPOINT}")
        print(f"  - error: {e}")
        return 2

    settings = resolve_settings(loaded.values)
    errors = settings.validate() + _check_sheet_shape(loaded.values)
    try:
        load_messages(thresholds=settings.reminder_thresholds_days)
    except RuntimeError as e:
        errors.append(str(e))
    committed = loaded.secrets_in_config()

    print(f"[licensebot] {'FAIL' if errors else 'OK'}")
    print(f"  - entrypoint: {ENTRYPOINT}")
    print(f"  - config: {loaded.config_path}")
    print(f"  - secrets: {loaded.secrets_path}{'' if loaded.secrets_path.exists() else ' (missing; environment only)'}")
    if loaded.secrets_template.exists():
        print(f"  - secrets template: {loaded.secrets_template}")
    if settings.bot_token:
        print(f"  - bot_token: {mask_secret(settings.bot_token)}")
    print(f"  - client ids: {settings.client_id_policy} (prefix '{settings.client_id_prefix}')")
    print(f"  - reminders: {settings.reminder_time} {settings.timezone_name}")
    for key in committed:
        print(f"  - warning: {key} is set in {loaded.config_path.name}; move it to {loaded.secrets_path.name}")
    for e in errors:
        print(f"  - error: {e}")
    if errors and loaded.secrets_template.exists() and not loaded.secrets_path.exists():
        print("  - next: copy the template to config.secrets.json and fill real values")
    print("")

    if errors:
        print("Result: FAIL (required secrets/config missing).")
        return 2
    print("Result: OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
