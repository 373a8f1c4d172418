"""
License Bot - pytest configuration
Shared fixtures: settings, messages, an in-memory Sheets values resource.
"""

import re
from datetime import date
from typing import List, Optional, Sequence, Set
from unittest.mock import AsyncMock

import pytest
from nacl.signing import SigningKey

from LicenseBot.bot_messages import load_messages
from LicenseBot.client_ids import ClientIdAllocator
from LicenseBot.license_lifecycle import LicenseLifecycle
from LicenseBot.license_sheet_store import LicenseSheetStore
from LicenseBot.settings import LicenseBotSettings

_RANGE = re.compile(r"^(?:'?(?P<tab>[^'!]+)'?!)?(?P<c0>[A-Z])(?P<r0>\d*):(?P<c1>[A-Z])(?P<r1>\d*)$")


class _Request:
    def __init__(self, fn):
        self._fn = fn

    def execute(self):
        return self._fn()


class FakeSheetValues:
    """Just enough of ``spreadsheets().values()`` for get/append/update on one tab."""

    def __init__(self, rows: Sequence[Sequence[str]] = ()):
        self.rows: List[List[str]] = [list(r) for r in rows]
        self.calls: List[tuple] = []
        self.fail_on: Set[str] = set()
        self.value_inputs: List[str] = []

    @staticmethod
    def _parse(rng: str):
        m = _RANGE.match(rng)
        assert m, f"unsupported range {rng!r}"
        c0 = ord(m.group("c0")) - ord("A")
        c1 = ord(m.group("c1")) - ord("A")
        r0 = int(m.group("r0")) if m.group("r0") else None
        return c0, c1, r0

    @staticmethod
    def _entered(cell, value_input: str) -> str:
        # Sheets parses user-entered digit strings as numbers, dropping leading zeros.
        s = str(cell)
        if value_input == "USER_ENTERED" and s.strip().isdigit():
            return str(int(s))
        return s

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise RuntimeError(f"{op} exploded")

    def get(self, spreadsheetId: str, range: str):
        self.calls.append(("get", range))

        def _do():
            self._check("get")
            c0, c1, _ = self._parse(range)
            out = []
            for row in self.rows:
                cells = list(row[c0:c1 + 1])
                while cells and cells[-1] == "":
                    cells.pop()
                out.append(cells)
            while out and not out[-1]:
                out.pop()
            return {"range": range, "values": out} if out else {"range": range}

        return _Request(_do)

    def append(self, spreadsheetId: str, range: str, valueInputOption: str, insertDataOption: Optional[str] = None, body=None):
        self.calls.append(("append", range, body))
        self.value_inputs.append(valueInputOption)

        def _do():
            self._check("append")
            first = len(self.rows) + 1
            for r in body["values"]:
                self.rows.append([self._entered(c, valueInputOption) for c in r])
            last = len(self.rows)
            return {"updates": {"updatedRange": f"'FormResponses'!A{first}:G{last}", "updatedRows": last - first + 1}}

        return _Request(_do)

    def update(self, spreadsheetId: str, range: str, valueInputOption: str, body=None):
        self.calls.append(("update", range, body))
        self.value_inputs.append(valueInputOption)

        def _do():
            self._check("update")
            _, _, r0 = self._parse(range)
            while len(self.rows) < r0:
                self.rows.append([])
            self.rows[r0 - 1] = [self._entered(c, valueInputOption) for c in body["values"][0]]
            return {"updatedRange": range, "updatedRows": 1}

        return _Request(_do)


class FakeSheetsService:
    def __init__(self, rows: Sequence[Sequence[str]] = ()):
        self.values_resource = FakeSheetValues(rows)

    def spreadsheets(self):
        return self

    def values(self):
        return self.values_resource


class FixedClock:
    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


@pytest.fixture
def signing_key() -> SigningKey:
    return SigningKey.generate()


@pytest.fixture
def settings(signing_key) -> LicenseBotSettings:
    return LicenseBotSettings(
        bot_token="bot-token",
        public_key=signing_key.verify_key.encode().hex(),
        application_id="111",
        guild_id=42,
        spreadsheet_id="sheet-id",
        service_account_info={"type": "service_account"},
        response_deadline_s=2.0,
    )


@pytest.fixture
def messages():
    return load_messages(thresholds=(30, 14, 1))


@pytest.fixture
def sheets_service() -> FakeSheetsService:
    return FakeSheetsService()


@pytest.fixture
def store(settings, sheets_service) -> LicenseSheetStore:
    return LicenseSheetStore(settings, service=sheets_service)


@pytest.fixture
def members():
    m = AsyncMock()
    m.grant_client_role.return_value = (True, "ok")
    m.send_dm.return_value = (True, "ok")
    return m


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(date(2024, 6, 1))


@pytest.fixture
def lifecycle(store, members, messages, clock) -> LicenseLifecycle:
    return LicenseLifecycle(store, ClientIdAllocator("sequential"), members, messages, today=clock)
