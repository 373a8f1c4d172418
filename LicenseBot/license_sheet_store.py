from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from LicenseBot.license_records import LicenseRecord
from LicenseBot.settings import LicenseBotSettings

log = logging.getLogger("license-bot")

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
# RAW keeps client ids like "00001" as text; USER_ENTERED would turn them into the number 1.
RECORD_VALUE_INPUT = "RAW"


class SheetStoreError(Exception):
    """Google Sheets read/write failed (or the client could not be built)."""
    pass


def _build_sheets_service(service_account_info: dict):
    # Lazy import keeps tests and --check-config free of the google client stack.
    import warnings

    warnings.filterwarnings(
        "ignore",
        category=FutureWarning,
        module=r"google\.api_core\._python_version_support",
    )
    from google.oauth2.service_account import Credentials
    from googleapiclient.discovery import build

    creds = Credentials.from_service_account_info(service_account_info, scopes=SHEETS_SCOPES)
    return build("sheets", "v4", credentials=creds, cache_discovery=False)


class LicenseSheetStore:
    """
    License rows in the FormResponses tab.

    Low-level range access (get/append/update) plus record-level helpers.
    Every call runs the blocking google client in a worker thread behind one lock:
    googleapiclient/httplib2 are not safe for concurrent use, and the webhook handlers
    and the daily reminder sweep share this store.
    """

    def __init__(self, settings: LicenseBotSettings, service: Any = None):
        self.settings = settings
        self._service = service
        self._api_lock: asyncio.Lock = asyncio.Lock()

    @property
    def tab(self) -> str:
        return self.settings.sheet_tab_name or "FormResponses"

    def _range(self, cols: str) -> str:
        return f"'{self.tab}'!{cols}"

    def _get_service(self):
        if self._service is not None:
            return self._service
        info = self.settings.service_account_info
        if not info:
            raise SheetStoreError("missing google service account json/file")
        try:
            self._service = _build_sheets_service(info)
        except ImportError as e:
            raise SheetStoreError(f"missing google libs: {e}") from e
        except Exception as e:
            raise SheetStoreError(f"failed to initialize google sheets client: {e}") from e
        return self._service

    async def _execute(self, what: str, build_request) -> Dict[str, Any]:
        service = self._get_service()

        def _do() -> Dict[str, Any]:
            return build_request(service.spreadsheets().values()).execute()

        async with self._api_lock:
            try:
                resp = await asyncio.wait_for(asyncio.to_thread(_do), timeout=self.settings.sheets_timeout_s)
            except asyncio.TimeoutError as e:
                raise SheetStoreError(f"{what} timed out after {self.settings.sheets_timeout_s:.0f}s") from e
            except Exception as e:
                raise SheetStoreError(f"{what} failed: {e}") from e
        return resp if isinstance(resp, dict) else {}

    # -----------------------------
    # Range access
    # -----------------------------
    async def get_values(self, rng: str) -> List[List[str]]:
        resp = await self._execute(
            f"values.get {rng}",
            lambda values: values.get(spreadsheetId=self.settings.spreadsheet_id, range=rng),
        )
        rows = resp.get("values")
        if not isinstance(rows, list):
            return []
        return [[str(c if c is not None else "") for c in row] for row in rows if isinstance(row, list)]

    async def append_values(
        self, rng: str, rows: Sequence[Sequence[str]], *, value_input: str = "USER_ENTERED"
    ) -> Dict[str, Any]:
        body = {"values": [list(r) for r in rows]}
        return await self._execute(
            f"values.append {rng}",
            lambda values: values.append(
                spreadsheetId=self.settings.spreadsheet_id,
                range=rng,
                valueInputOption=value_input,
                insertDataOption="INSERT_ROWS",
                body=body,
            ),
        )

    async def update_values(
        self, rng: str, rows: Sequence[Sequence[str]], *, value_input: str = "USER_ENTERED"
    ) -> Dict[str, Any]:
        body = {"values": [list(r) for r in rows]}
        return await self._execute(
            f"values.update {rng}",
            lambda values: values.update(
                spreadsheetId=self.settings.spreadsheet_id,
                range=rng,
                valueInputOption=value_input,
                body=body,
            ),
        )

    # -----------------------------
    # Records
    # -----------------------------
    async def fetch_rows(self) -> List[List[str]]:
        """All rows A:G, unfiltered (row i of the result is sheet row i + 1)."""
        return await self.get_values(self._range("A:G"))

    async def fetch_records(self) -> List[LicenseRecord]:
        records: List[LicenseRecord] = []
        for i, row in enumerate(await self.fetch_rows()):
            rec = LicenseRecord.from_row(row, row_number=i + 1)
            if rec is not None:
                records.append(rec)
        return records

    async def fetch_client_ids(self) -> List[str]:
        rows = await self.get_values(self._range("C:C"))
        return [row[0].strip() for row in rows if row and str(row[0]).strip()]

    async def find_by_client_id(self, client_id: str) -> Optional[LicenseRecord]:
        wanted = str(client_id or "").strip()
        if not wanted:
            return None
        for rec in await self.fetch_records():
            if rec.client_id == wanted:
                return rec
        return None

    async def append_record(self, record: LicenseRecord) -> Optional[int]:
        """Append one record; returns the sheet row it landed on when the API reports it."""
        resp = await self.append_values(self._range("A:G"), [record.to_row()], value_input=RECORD_VALUE_INPUT)
        updates = resp.get("updates") if isinstance(resp.get("updates"), dict) else {}
        updated_range = str((updates or {}).get("updatedRange") or "")
        _, _, cells = updated_range.rpartition("!")
        digits = "".join(ch for ch in cells.split(":")[0] if ch.isdigit())
        return int(digits) if digits else None

    async def update_record(self, record: LicenseRecord) -> None:
        if not record.row_number:
            raise SheetStoreError(f"cannot update {record.client_id}: row number unknown")
        n = int(record.row_number)
        await self.update_values(self._range(f"A{n}:G{n}"), [record.to_row()], value_input=RECORD_VALUE_INPUT)
