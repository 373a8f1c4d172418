from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

MESSAGES_FILE = Path(__file__).resolve().parent / "messages.json"

REQUIRED_KEYS = (
    "validate_success",
    "validate_dm",
    "renew_success",
    "renew_dm",
    "client_not_found",
    "missing_option",
    "unknown_command",
    "retry",
    "reminder_dm",
)


class BotMessages:
    """User-facing text, loaded from messages.json (single source of truth)."""

    def __init__(self, data: Dict[str, Any]):
        self.data = data

    def render(self, key: str, **values: Any) -> str:
        return str(self.data[key]).format(**values)

    def reminder_label(self, days: int) -> Optional[str]:
        labels = self.data.get("reminders") or {}
        label = labels.get(str(int(days)))
        return str(label) if label else None


def load_messages(path: Path = MESSAGES_FILE, thresholds: Iterable[int] = ()) -> BotMessages:
    """Load and validate messages.json; every reminder threshold needs a label."""
    if not path.exists():
        raise RuntimeError(f"Missing {path} (required).")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise RuntimeError(f"Failed to load {path}: {e}") from e

    if not isinstance(data, dict):
        raise RuntimeError(f"Invalid {path}: expected JSON object at top-level.")

    missing = [k for k in REQUIRED_KEYS if not isinstance(data.get(k), str) or not data.get(k, "").strip()]
    if missing:
        raise RuntimeError(f"Invalid {path}: missing message(s): {', '.join(missing)}")

    reminders = data.get("reminders")
    if not isinstance(reminders, dict):
        raise RuntimeError(f"Invalid {path}: expected 'reminders' object.")
    unlabeled = [str(d) for d in thresholds if not str(reminders.get(str(int(d))) or "").strip()]
    if unlabeled:
        raise RuntimeError(f"Invalid {path}: no reminder label for threshold day(s): {', '.join(unlabeled)}")

    return BotMessages(data)
