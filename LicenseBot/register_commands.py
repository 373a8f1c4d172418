#!/usr/bin/env python3
"""
Register License Bot Commands
-----------------------------
Puts the `/validate` and `/renew` guild commands to the Discord API.
Run once after creating the application, and again whenever the options change.

  python LicenseBot/register_commands.py            # sync if different
  python LicenseBot/register_commands.py --dry-run  # print payload only
  python LicenseBot/register_commands.py --check    # exit 1 if a sync is needed
"""

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from dotenv import load_dotenv

from LicenseBot.settings import BASE_DIR, load_settings

API_BASE = "https://discord.com/api/v10"

# Discord option types
OPTION_STRING = 3
OPTION_USER = 6

LICENSE_COMMANDS: List[Dict[str, Any]] = [
    {
        "name": "validate",
        "type": 1,
        "description": "Validate a payment and record the license",
        "options": [
            {"name": "user", "type": OPTION_USER, "description": "User to validate", "required": True},
            {"name": "proof", "type": OPTION_STRING, "description": "Payment proof (link/ID)", "required": True},
        ],
    },
    {
        "name": "renew",
        "type": 1,
        "description": "Renew an existing client's license",
        "options": [
            {"name": "clientid", "type": OPTION_STRING, "description": "Client ID (e.g. CLT-00001)", "required": True},
            {"name": "proof", "type": OPTION_STRING, "description": "New payment proof", "required": True},
        ],
    },
]


def normalize_command_for_comparison(cmd: Dict[str, Any]) -> Dict[str, Any]:
    """Drop Discord-assigned fields (id, version, ...) so registered and local definitions compare."""
    options = []
    for opt in cmd.get("options") or []:
        options.append({
            "name": opt.get("name", ""),
            "type": opt.get("type"),
            "description": opt.get("description", ""),
            "required": bool(opt.get("required", False)),
        })
    return {
        "name": str(cmd.get("name", "")).lower(),
        "description": str(cmd.get("description", ""))[:100],
        "type": cmd.get("type", 1),
        "options": sorted(options, key=lambda x: x["name"]),
    }


def check_sync_needed(local: List[Dict[str, Any]], registered: List[Dict[str, Any]]) -> Tuple[bool, str]:
    """Returns: (needs_sync, reason)"""
    remote = {str(c.get("name", "")).lower(): c for c in registered}
    local_names = {str(c["name"]).lower() for c in local}
    missing = local_names - set(remote)
    if missing:
        return True, f"{len(missing)} command(s) missing in Discord: {', '.join(sorted(missing))}"
    extra = set(remote) - local_names
    if extra:
        return True, f"{len(extra)} extra command(s) in Discord: {', '.join(sorted(extra))}"
    differing = [
        c["name"] for c in local
        if normalize_command_for_comparison(c) != normalize_command_for_comparison(remote[c["name"].lower()])
    ]
    if differing:
        return True, f"{len(differing)} command(s) differ: {', '.join(differing)}"
    return False, "All commands match, sync not needed"


def sync_with_retry(
    url: str,
    headers: Dict[str, str],
    commands: List[Dict[str, Any]],
    max_retries: int = 3,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[Optional[List[Dict[str, Any]]], Optional[str]]:
    """
    Bulk-overwrite guild commands, waiting out rate limits.
    Returns: (registered_commands or None, error or None)
    """
    for attempt in range(max_retries):
        last = attempt >= max_retries - 1
        try:
            r = requests.put(url, headers=headers, json=commands, timeout=60)
        except requests.exceptions.Timeout:
            if last:
                return None, "Request timeout"
            print(f"  [TIMEOUT] Retrying... (attempt {attempt + 1}/{max_retries})")
            sleep(2 ** attempt)
            continue
        except requests.exceptions.RequestException as e:
            if last:
                return None, str(e)
            print(f"  [ERROR] {e} - Retrying... (attempt {attempt + 1}/{max_retries})")
            sleep(2 ** attempt)
            continue

        if r.status_code in (200, 201):
            return r.json(), None
        if r.status_code == 429:
            try:
                data = r.json()
            except ValueError:
                data = {}
            retry_after = float(data.get("retry_after", 60))
            message = data.get("message", "Rate limited")
            if last:
                return None, f"Rate limited: {message} (retry after {retry_after:.0f}s)"
            print(f"  [RATE LIMIT] {message}; retrying in {retry_after:.0f}s (attempt {attempt + 1}/{max_retries})")
            sleep(retry_after)
            continue
        return None, f"HTTP {r.status_code}: {(r.text or 'Unknown error')[:500]}"

    return None, "Max retries exceeded"


def resolve_application_id(token: str, configured: str) -> str:
    if configured:
        return configured
    r = requests.get(f"{API_BASE}/users/@me", headers={"Authorization": f"Bot {token}"}, timeout=10)
    r.raise_for_status()
    return str(r.json()["id"])


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Register /validate and /renew guild commands")
    parser.add_argument("--dry-run", action="store_true", help="Print the command payload and exit")
    parser.add_argument("--check", action="store_true", help="Exit 1 if registered commands differ")
    args = parser.parse_args(argv)

    if args.dry_run:
        print(json.dumps(LICENSE_COMMANDS, indent=2, ensure_ascii=False))
        return 0

    load_dotenv(BASE_DIR / ".env")
    load_dotenv()
    settings, _, _ = load_settings(BASE_DIR)
    if not settings.bot_token or not settings.guild_id:
        print("[ERROR] bot_token and guild_id are required (config.secrets.json / BOT_TOKEN, GUILD_ID)")
        return 1

    headers = {"Authorization": f"Bot {settings.bot_token}", "Content-Type": "application/json"}
    try:
        app_id = resolve_application_id(settings.bot_token, settings.application_id)
    except requests.exceptions.RequestException as e:
        print(f"[ERROR] Failed to resolve application id: {e}")
        return 1

    url = f"{API_BASE}/applications/{app_id}/guilds/{settings.guild_id}/commands"
    print("Registering commands…")
    try:
        r = requests.get(url, headers=headers, timeout=15)
        registered = r.json() if r.status_code == 200 else []
    except requests.exceptions.RequestException:
        registered = []
    needs_sync, reason = check_sync_needed(LICENSE_COMMANDS, registered)
    print(f"  {reason}")
    if args.check:
        return 1 if needs_sync else 0
    if not needs_sync:
        return 0

    result, error = sync_with_retry(url, headers, LICENSE_COMMANDS)
    if error:
        print(f"[ERROR] Command registration failed: {error}")
        return 1
    print(f"✅ Registered {len(result or [])} command(s): {', '.join('/' + c.get('name', '?') for c in result or [])}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
