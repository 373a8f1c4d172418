"""
Tests for license record row codec and renewal arithmetic.
"""
from datetime import date

from LicenseBot.license_records import (
    LicenseRecord,
    format_sheet_date,
    new_license,
    parse_sheet_date,
    renewed_license,
)


class TestSheetDates:

    def test_format_day_first(self):
        assert format_sheet_date(date(2024, 1, 5)) == "05/01/2024"

    def test_parse_day_first_and_iso(self):
        assert parse_sheet_date("05/01/2024") == date(2024, 1, 5)
        assert parse_sheet_date("2024-01-05") == date(2024, 1, 5)

    def test_parse_garbage(self):
        assert parse_sheet_date("") is None
        assert parse_sheet_date("Expiration") is None
        assert parse_sheet_date("31/02/2024") is None


class TestRowCodec:

    def test_round_trip_full_row(self):
        rec = LicenseRecord("u1", "proofA", "00001", date(2024, 1, 1), date(2024, 12, 31), date(2024, 1, 1), 2)
        row = rec.to_row()
        assert row == ["u1", "proofA", "00001", "01/01/2024", "31/12/2024", "01/01/2024", "2"]
        assert LicenseRecord.from_row(row, row_number=7) == LicenseRecord(
            "u1", "proofA", "00001", date(2024, 1, 1), date(2024, 12, 31), date(2024, 1, 1), 2, row_number=7
        )

    def test_legacy_five_column_row(self):
        rec = LicenseRecord.from_row(["u1", "p", "CLT-ABCDE", "01/01/2024", "31/12/2024"], row_number=3)
        assert rec.created_date is None
        assert rec.renewal_count == 0
        assert rec.row_number == 3

    def test_header_row_is_not_a_record(self):
        assert LicenseRecord.from_row(["User", "Proof", "Client ID", "Start", "Expiry"]) is None

    def test_blank_row_is_not_a_record(self):
        assert LicenseRecord.from_row([]) is None


class TestLicenseArithmetic:

    def test_new_license_is_one_year(self):
        rec = new_license("u1", "p", "00001", date(2024, 1, 1))
        assert rec.expiry_date == date(2024, 12, 31)  # 2024 is a leap year: +365 days
        assert rec.created_date == rec.start_date
        assert rec.renewal_count == 0

    def test_early_renewal_extends_from_expiry(self):
        rec = new_license("u1", "p", "00001", date(2024, 1, 1))
        renewed = renewed_license(rec, "p2", date(2024, 6, 1))
        assert renewed.start_date == rec.expiry_date
        assert renewed.proof == "p2"
        assert renewed.created_date == date(2024, 1, 1)
        assert renewed.renewal_count == 1

    def test_late_renewal_starts_today(self):
        rec = new_license("u1", "p", "00001", date(2023, 1, 1))
        renewed = renewed_license(rec, "p2", date(2024, 6, 1))
        assert renewed.start_date == date(2024, 6, 1)
        assert renewed.expiry_date == date(2025, 6, 1)

    def test_renewal_on_expiry_day_starts_today(self):
        rec = LicenseRecord("u1", "p", "00001", date(2023, 6, 2), date(2024, 6, 1))
        renewed = renewed_license(rec, "p2", date(2024, 6, 1))
        assert renewed.start_date == date(2024, 6, 1)
