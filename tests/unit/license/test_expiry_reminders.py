"""
Tests for the daily expiry reminder sweep.
"""
from datetime import date

import pytest

from LicenseBot.expiry_reminders import ExpiryReminderSweep, select_reminder

TODAY = date(2024, 1, 1)


@pytest.fixture
def sweep(store, members, messages, clock):
    clock.today = TODAY
    return ExpiryReminderSweep(store, members, messages, thresholds=(30, 14, 1), today=clock)


def _row(holder: str, expiry: str) -> list:
    return [holder, "p", "00001", "01/01/2023", expiry]


class TestSelectReminder:

    @pytest.mark.parametrize(
        "expiry,expected",
        [
            (date(2024, 1, 2), 1),
            (date(2024, 1, 15), 14),
            (date(2024, 1, 31), 30),
            (date(2024, 2, 15), None),
            (date(2024, 1, 1), None),
            (date(2023, 12, 31), None),
        ],
    )
    def test_exact_threshold_match(self, expiry, expected):
        assert select_reminder(expiry, TODAY, (30, 14, 1)) == expected


class TestSweep:

    @pytest.mark.asyncio
    async def test_sends_only_due_reminders(self, sweep, sheets_service, members):
        sheets_service.values_resource.rows = [
            _row("1", "02/01/2024"),
            _row("2", "15/01/2024"),
            _row("3", "15/02/2024"),
        ]
        result = await sweep.run()
        assert (result.scanned, result.sent, result.failed, result.skipped) == (3, 2, 0, 0)
        sent_to = [c.args[0] for c in members.send_dm.await_args_list]
        assert sent_to == ["1", "2"]
        assert "tomorrow" in members.send_dm.await_args_list[0].args[1]
        assert "in 2 weeks" in members.send_dm.await_args_list[1].args[1]
        assert "15/01/2024" in members.send_dm.await_args_list[1].args[1]

    @pytest.mark.asyncio
    async def test_header_and_blank_rows_skipped(self, sweep, sheets_service, members):
        sheets_service.values_resource.rows = [
            ["User", "Proof", "Client ID", "Start", "Expiry"],
            ["", "p", "00009", "01/01/2023", "02/01/2024"],
            ["4", "p", "00004", "01/01/2023", "not a date"],
            _row("5", "02/01/2024"),
        ]
        result = await sweep.run()
        assert result.skipped == 3
        assert result.sent == 1
        members.send_dm.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_dm_does_not_stop_sweep(self, sweep, sheets_service, members):
        sheets_service.values_resource.rows = [_row("1", "02/01/2024"), _row("2", "02/01/2024"), _row("3", "02/01/2024")]
        members.send_dm.side_effect = [(False, "dm_closed"), RuntimeError("boom"), (True, "ok")]
        result = await sweep.run()
        assert (result.sent, result.failed) == (1, 2)
        assert members.send_dm.await_count == 3

    @pytest.mark.asyncio
    async def test_store_failure_skips_day(self, sweep, sheets_service, members):
        sheets_service.values_resource.fail_on.add("get")
        result = await sweep.run()
        assert result.scanned == 0
        members.send_dm.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_explicit_day_overrides_clock(self, sweep, sheets_service, members):
        sheets_service.values_resource.rows = [_row("1", "02/01/2024")]
        result = await sweep.run(today=date(2023, 12, 3))
        assert result.sent == 1
        assert "in 1 month" in members.send_dm.await_args.args[1]
