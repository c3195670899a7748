# SPDX-License-Identifier: MIT
# Copyright (c) 2024 Collegiate Cyber Defense Club
from typing import Any, List, Optional

from pydantic import BaseModel, Field


def cell_to_int(cell: Any) -> int:
    """
    Sheets returns numbers as JSON numbers with UNFORMATTED_VALUE, but hand-edited
    cells may still come back as strings.
    """
    if cell is None:
        return 0
    if isinstance(cell, bool):
        raise ValueError(f"Expected a number, got {cell!r}")
    if isinstance(cell, (int, float)):
        return int(cell)
    cell = str(cell).strip()
    if cell == "":
        return 0
    return int(float(cell))


def cell_to_str(cell: Any) -> str:
    if cell is None:
        return ""
    return str(cell).strip()


def normalize_email(email: str) -> str:
    """
    Domains are case-insensitive, so rows are keyed on a lowercased domain.
    """
    local, sep, domain = email.strip().rpartition("@")
    if not sep:
        return email.strip()
    return f"{local}@{domain.lower()}"


class ValidationCode(BaseModel):
    token: str
    expires_at: int

    @classmethod
    def from_row(cls, rows: List[List[Any]]) -> Optional["ValidationCode"]:
        # Nothing stored yet, or a half-written row, means there is no code.
        if not rows or len(rows[0]) < 2:
            return None
        token = cell_to_str(rows[0][0])
        if not token:
            return None
        try:
            expires_at = cell_to_int(rows[0][1])
        except ValueError:
            return None
        return cls(token=token, expires_at=expires_at)

    def to_row(self) -> List[List[Any]]:
        return [[self.token, self.expires_at]]

    def is_valid(self, submitted: str, now: int) -> bool:
        return submitted == self.token and now < self.expires_at


class AttendanceRecord(BaseModel):
    email: str
    check_in_count: int = Field(0, ge=0)
    last_check_in: int = 0

    @classmethod
    def from_row(cls, row: List[Any]) -> "AttendanceRecord":
        padded = list(row) + [None] * (3 - len(row))
        return cls(
            email=cell_to_str(padded[0]),
            check_in_count=cell_to_int(padded[1]),
            last_check_in=cell_to_int(padded[2]),
        )

    def to_row(self) -> List[Any]:
        return [self.email, self.check_in_count, self.last_check_in]


class AttendanceTable:
    """
    Every row of the attendance range, in sheet order.

    Blank rows are kept as ``None`` so that rewriting the table leaves them
    where they were instead of shifting everything below them.
    """

    def __init__(self, records: Optional[List[Optional[AttendanceRecord]]] = None):
        self.records = records if records is not None else []

    @classmethod
    def from_rows(cls, rows: List[List[Any]]) -> "AttendanceTable":
        records = []
        for i, row in enumerate(rows):
            if not row or not cell_to_str(row[0]):
                records.append(None)
                continue
            try:
                records.append(AttendanceRecord.from_row(row))
            except ValueError as e:
                raise ValueError(f"Malformed attendance row {i + 1}: {row!r}") from e
        return cls(records)

    def to_rows(self) -> List[List[Any]]:
        return [[] if record is None else record.to_row() for record in self.records]

    def find(self, email: str) -> Optional[int]:
        key = normalize_email(email)
        for i, record in enumerate(self.records):
            if record is not None and normalize_email(record.email) == key:
                return i
        return None

    def append(self, record: AttendanceRecord) -> int:
        self.records.append(record)
        return len(self.records) - 1

    def __len__(self):
        return len(self.records)

    def __getitem__(self, index: int) -> Optional[AttendanceRecord]:
        return self.records[index]


class CheckInRequest(BaseModel):
    # Left untyped so bad values reach validation and get a 400, not a 422.
    email: Optional[Any] = None
    code: Optional[Any] = None


class ReconciliationOutcome(BaseModel):
    inserted: bool = False
    updated: bool = False
    record: AttendanceRecord
