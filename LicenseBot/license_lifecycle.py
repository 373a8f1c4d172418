from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import date
from typing import Callable, Optional

from LicenseBot.bot_messages import BotMessages
from LicenseBot.client_ids import ClientIdAllocator
from LicenseBot.license_records import LICENSE_DAYS, LicenseRecord, format_sheet_date, new_license, renewed_license
from LicenseBot.license_sheet_store import LicenseSheetStore
from LicenseBot.member_sync import GuildMemberSync

log = logging.getLogger("license-bot")


class LicenseError(Exception):
    """A command could not be carried out; the message is safe to show the user."""
    pass


class MissingOptionError(LicenseError):
    def __init__(self, option: str):
        super().__init__(f"missing option: {option}")
        self.option = option


class ClientNotFoundError(LicenseError):
    def __init__(self, client_id: str):
        super().__init__(f"no client with id {client_id!r}")
        self.client_id = client_id


def _require(value: Optional[str], option: str) -> str:
    s = str(value or "").strip()
    if not s:
        raise MissingOptionError(option)
    return s


class LicenseLifecycle:
    """Create and renew license records, then sync roles and notify the holder.

    Store writes are the durable part: once a row is written, role or DM failures are
    logged and never turn the command into a failure.
    """

    def __init__(
        self,
        store: LicenseSheetStore,
        allocator: ClientIdAllocator,
        members: GuildMemberSync,
        messages: BotMessages,
        *,
        today: Callable[[], date],
        license_days: int = LICENSE_DAYS,
        renew_sync_roles: bool = False,
    ):
        self.store = store
        self.allocator = allocator
        self.members = members
        self.messages = messages
        self._today = today
        self.license_days = int(license_days)
        self.renew_sync_roles = renew_sync_roles
        # Read-modify-write on the sheet (id allocation, renewal) must not interleave in-process.
        self._write_lock = asyncio.Lock()

    async def create(self, holder_id: str, proof: str) -> LicenseRecord:
        holder_id = _require(holder_id, "user")
        proof = _require(proof, "proof")

        async with self._write_lock:
            client_id = self.allocator.next_id(await self.store.fetch_client_ids())
            record = new_license(holder_id, proof, client_id, self._today(), days=self.license_days)
            row_number = await self.store.append_record(record)
        if row_number:
            record = replace(record, row_number=row_number)
        log.info(
            f"[License] Created {record.client_id} for {holder_id} "
            f"({format_sheet_date(record.start_date)} -> {format_sheet_date(record.expiry_date)})"
        )

        await self._after_write(record, self.messages.render("validate_dm", **self.template_values(record)), sync_roles=True)
        return record

    async def renew(self, client_id: str, new_proof: str) -> LicenseRecord:
        client_id = _require(client_id, "clientid")
        new_proof = _require(new_proof, "proof")

        async with self._write_lock:
            current = await self.store.find_by_client_id(client_id)
            if current is None:
                raise ClientNotFoundError(client_id)
            record = renewed_license(current, new_proof, self._today(), days=self.license_days)
            await self.store.update_record(record)
        log.info(
            f"[License] Renewed {record.client_id} (row {record.row_number}, renewal #{record.renewal_count}) "
            f"until {format_sheet_date(record.expiry_date)}"
        )

        await self._after_write(record, self.messages.render("renew_dm", **self.template_values(record)), sync_roles=self.renew_sync_roles)
        return record

    async def _after_write(self, record: LicenseRecord, dm_text: str, *, sync_roles: bool) -> None:
        if not record.holder_id:
            return
        try:
            if sync_roles:
                ok, reason = await self.members.grant_client_role(record.holder_id)
                if not ok:
                    log.warning(f"[License] Role sync failed for {record.holder_id} ({record.client_id}): {reason}")
            ok, reason = await self.members.send_dm(record.holder_id, dm_text)
            if not ok:
                log.warning(f"[License] Confirmation DM not sent to {record.holder_id} ({record.client_id}): {reason}")
        except Exception:
            log.exception(f"[License] Post-write sync failed for {record.client_id}; record is stored")

    @staticmethod
    def template_values(record: LicenseRecord) -> dict:
        return {
            "holder_id": record.holder_id,
            "client_id": record.client_id,
            "proof": record.proof,
            "start_date": format_sheet_date(record.start_date),
            "expiry_date": format_sheet_date(record.expiry_date),
            "created_date": format_sheet_date(record.created_date),
            "renewal_count": record.renewal_count,
        }
