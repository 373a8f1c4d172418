from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Optional

from LicenseBot.bot_messages import BotMessages
from LicenseBot.license_records import format_sheet_date, parse_sheet_date
from LicenseBot.license_sheet_store import LicenseSheetStore, SheetStoreError
from LicenseBot.member_sync import GuildMemberSync

log = logging.getLogger("license-bot")


def days_until(expiry: date, today: date) -> int:
    return (expiry - today).days


def select_reminder(expiry: date, today: date, thresholds: Iterable[int]) -> Optional[int]:
    """Threshold hit exactly today, or None. A missed day is never caught up."""
    left = days_until(expiry, today)
    for days in thresholds:
        if left == int(days):
            return int(days)
    return None


@dataclass
class ReminderSweepResult:
    scanned: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0


class ExpiryReminderSweep:
    """Daily scan of every sheet row; DMs holders whose license hits a reminder threshold."""

    def __init__(
        self,
        store: LicenseSheetStore,
        members: GuildMemberSync,
        messages: BotMessages,
        *,
        thresholds: Iterable[int] = (30, 14, 1),
        today: Callable[[], date],
    ):
        self.store = store
        self.members = members
        self.messages = messages
        self.thresholds = tuple(int(d) for d in thresholds)
        self._today = today

    async def run(self, today: Optional[date] = None) -> ReminderSweepResult:
        day = today or self._today()
        result = ReminderSweepResult()
        try:
            rows = await self.store.fetch_rows()
        except SheetStoreError as e:
            log.error(f"[Reminders] Could not read license sheet, skipping today's sweep: {e}")
            return result

        for row in rows:
            result.scanned += 1
            holder = str(row[0]).strip() if len(row) > 0 else ""
            expiry_raw = row[4] if len(row) > 4 else ""
            expiry = parse_sheet_date(expiry_raw)
            if not holder or expiry is None:
                result.skipped += 1
                continue

            days = select_reminder(expiry, day, self.thresholds)
            if days is None:
                continue

            text = self.messages.render(
                "reminder_dm",
                when=self.messages.reminder_label(days) or f"in {days} days",
                expiry_date=format_sheet_date(expiry),
                days=days,
            )
            try:
                ok, reason = await self.members.send_dm(holder, text)
            except Exception as e:
                ok, reason = False, str(e)
            if ok:
                result.sent += 1
                log.info(f"[Reminders] Sent {days}-day reminder to {holder}")
            else:
                result.failed += 1
                log.warning(f"[Reminders] Reminder to {holder} failed: {reason}")

        log.info(
            f"[Reminders] Sweep {day.isoformat()}: scanned={result.scanned} sent={result.sent} "
            f"failed={result.failed} skipped={result.skipped}"
        )
        return result
