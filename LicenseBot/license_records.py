"""
License records as stored in the FormResponses sheet.

Columns:
  A: holder (Discord user id)
  B: payment proof
  C: client id
  D: license start
  E: license expiry
  F: created (optional)
  G: renewal count (optional)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence

DATE_FORMAT = "%d/%m/%Y"
LICENSE_DAYS = 365
COLUMN_COUNT = 7


def format_sheet_date(d: Optional[date]) -> str:
    return d.strftime(DATE_FORMAT) if d else ""


def parse_sheet_date(raw: object) -> Optional[date]:
    """Parse a sheet cell as a date (DD/MM/YYYY, or ISO YYYY-MM-DD). None if unparseable."""
    s = str(raw or "").strip()
    if not s:
        return None
    for fmt in (DATE_FORMAT, "%Y-%m-%d"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def _parse_count(raw: object) -> int:
    s = str(raw or "").strip()
    if not s:
        return 0
    try:
        return max(0, int(float(s)))
    except ValueError:
        return 0


@dataclass(frozen=True)
class LicenseRecord:
    holder_id: str
    proof: str
    client_id: str
    start_date: date
    expiry_date: date
    created_date: Optional[date] = None
    renewal_count: int = 0
    # 1-based sheet row; None until the record has been appended.
    row_number: Optional[int] = None

    def to_row(self) -> List[str]:
        return [
            self.holder_id,
            self.proof,
            self.client_id,
            format_sheet_date(self.start_date),
            format_sheet_date(self.expiry_date),
            format_sheet_date(self.created_date),
            str(int(self.renewal_count)),
        ]

    @classmethod
    def from_row(cls, row: Sequence[object], row_number: Optional[int] = None) -> Optional["LicenseRecord"]:
        """Build a record from a sheet row; None for header/blank/partial rows."""
        cells = [str(c or "").strip() for c in row]
        cells += [""] * max(0, COLUMN_COUNT - len(cells))
        holder, proof, client_id = cells[0], cells[1], cells[2]
        start = parse_sheet_date(cells[3])
        expiry = parse_sheet_date(cells[4])
        if not (client_id and start and expiry):
            return None
        return cls(
            holder_id=holder,
            proof=proof,
            client_id=client_id,
            start_date=start,
            expiry_date=expiry,
            created_date=parse_sheet_date(cells[5]),
            renewal_count=_parse_count(cells[6]),
            row_number=row_number,
        )


def new_license(holder_id: str, proof: str, client_id: str, today: date, *, days: int = LICENSE_DAYS) -> LicenseRecord:
    return LicenseRecord(
        holder_id=holder_id,
        proof=proof,
        client_id=client_id,
        start_date=today,
        expiry_date=today + timedelta(days=days),
        created_date=today,
        renewal_count=0,
    )


def renewed_license(record: LicenseRecord, new_proof: str, today: date, *, days: int = LICENSE_DAYS) -> LicenseRecord:
    """Extend a license by one period.

    Renewing before expiry continues from the current expiry date so remaining paid
    time is kept; renewing on or after expiry starts again from today.
    """
    start = max(today, record.expiry_date)
    return replace(
        record,
        proof=new_proof,
        start_date=start,
        expiry_date=start + timedelta(days=days),
        renewal_count=record.renewal_count + 1,
    )
