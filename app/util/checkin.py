import logging
import math
import secrets
import string
import time

from app.models.checkin import (
    AttendanceRecord,
    AttendanceTable,
    ReconciliationOutcome,
    ValidationCode,
    normalize_email,
)
from app.util.errors import (
    CheckInError,
    InvalidCode,
    InvalidEmail,
    IssuanceFailed,
    StoreReadFailure,
    Throttled,
    Unauthorized,
)
from app.util.settings import CheckinConfig

logger = logging.getLogger(__name__)

DAY = 86_400_000
CODE_ALPHABET = string.ascii_lowercase + string.digits


def now_millis() -> int:
    return int(time.time() * 1000)


def remaining_wait(last_check_in: int, cooldown: int, now: int) -> str:
    """
    Human-readable time left before the next counted check-in, rounded to whole days.
    """
    days = math.floor((last_check_in + cooldown - now) / DAY + 0.5)
    if days <= 0:
        return "a few hours"
    return f"{days} days"


def validate_email(email, allowed_domain: str) -> str:
    if not email or not isinstance(email, str):
        raise InvalidEmail()
    email = email.strip()
    parts = email.split("@")
    if len(parts) != 2 or not parts[0] or parts[1].lower() != allowed_domain.lower():
        raise InvalidEmail(f"Invalid email, it must be @{allowed_domain}")
    return normalize_email(email)


def validate_code(code) -> str:
    if not code or not isinstance(code, str):
        raise InvalidCode()
    return code


class CodeIssuer:
    """
    Generates the session code and stores it, replacing whatever code was there.
    """

    def __init__(self, store, config: CheckinConfig, clock=now_millis):
        self.store = store
        self.config = config
        self.clock = clock

    def generate_token(self) -> str:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(self.config.code_length))

    def issue_code(self) -> ValidationCode:
        code = ValidationCode(
            token=self.generate_token(),
            expires_at=self.clock() + self.config.code_lifetime,
        )
        try:
            self.store.write_range(self.config.qualify(self.config.code_range), code.to_row())
        except CheckInError as e:
            logger.exception("Failed to store the generated code")
            raise IssuanceFailed() from e
        logger.info(f"Issued check in code expiring at {code.expires_at}")
        return code


class AttendanceReconciler:
    """
    Validates a check-in code and upserts the member's attendance row.

    The attendance range is read and rewritten as a whole, so the read and the
    write happen under the store's transaction for that range.
    """

    def __init__(self, store, config: CheckinConfig, clock=now_millis):
        self.store = store
        self.config = config
        self.clock = clock

    @property
    def table_range(self) -> str:
        return self.config.qualify(self.config.table_range)

    def current_code(self):
        rows = self.store.read_range(self.config.qualify(self.config.code_range))
        return ValidationCode.from_row(rows)

    def read_table(self) -> AttendanceTable:
        rows = self.store.read_range(self.table_range)
        try:
            return AttendanceTable.from_rows(rows)
        except ValueError as e:
            logger.error(str(e))
            raise StoreReadFailure("Attendance sheet has a row that could not be read") from e

    def check_in(self, code, email) -> ReconciliationOutcome:
        email = validate_email(email, self.config.allowed_domain)
        code = validate_code(code)

        stored = self.current_code()
        if stored is None or not stored.is_valid(code, self.clock()):
            logger.info(f"Rejected check in for {email}: wrong or expired code")
            raise Unauthorized()

        with self.store.transaction(self.table_range):
            table = self.read_table()
            now = self.clock()
            index = table.find(email)

            if index is None:
                record = AttendanceRecord(email=email, check_in_count=1, last_check_in=now)
                table.append(record)
                outcome = ReconciliationOutcome(inserted=True, record=record)
            else:
                record = table[index]
                if now - record.last_check_in <= self.config.cooldown:
                    wait = remaining_wait(record.last_check_in, self.config.cooldown, now)
                    logger.info(f"Throttled check in for {email}, {wait} left")
                    raise Throttled(wait)
                record.check_in_count += 1
                record.last_check_in = now
                outcome = ReconciliationOutcome(updated=True, record=record)

            self.store.write_range(self.table_range, table.to_rows())

        logger.info(
            f"Checked in {email} ({'inserted' if outcome.inserted else 'updated'}), "
            f"count {outcome.record.check_in_count}"
        )
        return outcome


def get_clock():
    return now_millis
