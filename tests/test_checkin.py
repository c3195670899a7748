import pytest

from app.util.checkin import (
    DAY,
    AttendanceReconciler,
    CodeIssuer,
    remaining_wait,
    validate_email,
)
from app.util.errors import (
    InvalidCode,
    InvalidEmail,
    IssuanceFailed,
    StoreReadFailure,
    StoreTimeout,
    StoreWriteFailure,
    Throttled,
    Unauthorized,
)
from app.util.settings import CheckinConfig

T = 1_700_000_000_000
COOLDOWN = 518_300_000
CODE_RANGE = "A2:B2"
TABLE_RANGE = "A5:C"


@pytest.fixture(name="reconciler")
def reconciler_fixture(store, config, clock):
    store.ranges[CODE_RANGE] = [["abc123", T + 7_200_000]]
    return AttendanceReconciler(store, config, clock=clock)


def test_issue_code_writes_code_and_expiry(store, config, clock):
    code = CodeIssuer(store, config, clock=clock).issue_code()

    assert len(code.token) == config.code_length
    assert code.token.isalnum() and code.token == code.token.lower()
    assert code.expires_at == T + 7_200_000
    assert store.ranges[CODE_RANGE] == [[code.token, T + 7_200_000]]


def test_issue_code_replaces_previous_code(store, config, clock):
    store.ranges[CODE_RANGE] = [["old", 1]]
    code = CodeIssuer(store, config, clock=clock).issue_code()
    assert store.ranges[CODE_RANGE] == [[code.token, code.expires_at]]


def test_issue_code_failure(store, config, clock):
    store.write_error = StoreTimeout()
    with pytest.raises(IssuanceFailed):
        CodeIssuer(store, config, clock=clock).issue_code()


def test_issued_code_valid_until_expiry(store, config, clock):
    code = CodeIssuer(store, config, clock=clock).issue_code()
    reconciler = AttendanceReconciler(store, config, clock=clock)

    clock.now = code.expires_at - 1
    assert reconciler.check_in(code.token, "a@d.edu").inserted

    clock.now = code.expires_at
    with pytest.raises(Unauthorized):
        reconciler.check_in(code.token, "b@d.edu")


@pytest.mark.parametrize(
    "email",
    [None, "", "a", "a@b@d.edu", "a@other.edu", "@d.edu", "a@d.edu.evil.com", 42],
)
def test_invalid_email_never_reads_store(reconciler, store, email):
    with pytest.raises(InvalidEmail):
        reconciler.check_in("abc123", email)
    assert store.reads == []
    assert store.writes == []


@pytest.mark.parametrize("code", [None, "", 123])
def test_invalid_code_never_reads_store(reconciler, store, code):
    with pytest.raises(InvalidCode):
        reconciler.check_in(code, "a@d.edu")
    assert store.reads == []


def test_email_domain_is_lowercased():
    assert validate_email(" Jane.Doe@D.EDU ", "d.edu") == "Jane.Doe@d.edu"


def test_domain_case_variant_is_throttled(reconciler, store, clock):
    reconciler.check_in("abc123", "a@d.edu")

    for email in ["a@D.edu", "a@d.EDU"]:
        clock.now += 1000
        with pytest.raises(Throttled):
            reconciler.check_in("abc123", email)

    assert store.ranges[TABLE_RANGE] == [["a@d.edu", 1, T]]


def test_existing_row_with_uppercase_domain_is_matched(reconciler, store):
    store.ranges[TABLE_RANGE] = [["a@D.EDU", 2, T - 7 * DAY]]

    outcome = reconciler.check_in("abc123", "a@d.edu")

    assert outcome.updated
    assert store.ranges[TABLE_RANGE] == [["a@D.EDU", 3, T]]


def test_code_compared_exactly(reconciler, store):
    with pytest.raises(Unauthorized):
        reconciler.check_in(" abc123 ", "a@d.edu")
    assert store.writes == []


def test_wrong_code_is_unauthorized(reconciler, store):
    store.ranges[TABLE_RANGE] = [["a@d.edu", 3, T - 10 * DAY]]
    with pytest.raises(Unauthorized):
        reconciler.check_in("nope", "a@d.edu")
    assert store.writes == []
    assert TABLE_RANGE not in store.reads


def test_expired_code_is_unauthorized(reconciler, store, clock):
    store.ranges[TABLE_RANGE] = [["a@d.edu", 3, T - 10 * DAY]]
    clock.now = T + 7_200_001
    with pytest.raises(Unauthorized):
        reconciler.check_in("abc123", "a@d.edu")
    assert store.writes == []
    assert store.ranges[TABLE_RANGE] == [["a@d.edu", 3, T - 10 * DAY]]


@pytest.mark.parametrize("stored", [[], [[]], [["abc123"]], [["", T + 1000]], [["abc123", "soon"]]])
def test_missing_code_is_unauthorized(store, config, clock, stored):
    store.ranges[CODE_RANGE] = stored
    with pytest.raises(Unauthorized):
        AttendanceReconciler(store, config, clock=clock).check_in("abc123", "a@d.edu")


def test_first_check_in_on_empty_table(reconciler, store):
    outcome = reconciler.check_in("abc123", "x@d.edu")

    assert outcome.inserted and not outcome.updated
    assert store.ranges[TABLE_RANGE] == [["x@d.edu", 1, T]]
    assert store.transactions == [TABLE_RANGE]


def test_new_email_appended_to_end(reconciler, store):
    store.ranges[TABLE_RANGE] = [["a@d.edu", 3, T - DAY], ["b@d.edu", 1, T - DAY]]

    reconciler.check_in("abc123", "c@d.edu")

    assert store.ranges[TABLE_RANGE] == [
        ["a@d.edu", 3, T - DAY],
        ["b@d.edu", 1, T - DAY],
        ["c@d.edu", 1, T],
    ]


def test_check_in_after_cooldown_increments(store, config, clock):
    store.ranges[CODE_RANGE] = [["abc123", T + COOLDOWN + 7_200_000]]
    store.ranges[TABLE_RANGE] = [["a@d.edu", 3, T]]
    clock.now = T + 518_300_001

    outcome = AttendanceReconciler(store, config, clock=clock).check_in("abc123", "a@d.edu")

    assert outcome.updated and not outcome.inserted
    assert outcome.record.check_in_count == 4
    assert store.ranges[TABLE_RANGE] == [["a@d.edu", 4, T + 518_300_001]]


def test_update_leaves_other_rows_alone(reconciler, store):
    store.ranges[TABLE_RANGE] = [
        ["a@d.edu", 3, T - 7 * DAY],
        ["b@d.edu", 2, T - 7 * DAY],
        ["c@d.edu", 5, T - DAY],
    ]

    reconciler.check_in("abc123", "b@d.edu")

    assert store.ranges[TABLE_RANGE] == [
        ["a@d.edu", 3, T - 7 * DAY],
        ["b@d.edu", 3, T],
        ["c@d.edu", 5, T - DAY],
    ]


def test_string_cells_are_parsed(reconciler, store):
    store.ranges[TABLE_RANGE] = [["a@d.edu", "3", str(T - 7 * DAY)]]
    reconciler.check_in("abc123", "a@d.edu")
    assert store.ranges[TABLE_RANGE] == [["a@d.edu", 4, T]]


def test_throttled_within_cooldown(reconciler, store):
    store.ranges[TABLE_RANGE] = [["a@d.edu", 3, T - DAY], ["b@d.edu", 1, T - DAY]]
    before = list(store.ranges[TABLE_RANGE])

    with pytest.raises(Throttled) as e:
        reconciler.check_in("abc123", "a@d.edu")

    assert e.value.wait == "5 days"
    assert "try again in 5 days" in e.value.msg
    assert store.writes == []
    assert store.ranges[TABLE_RANGE] == before


def test_throttled_at_exact_cooldown(reconciler, store, clock):
    store.ranges[TABLE_RANGE] = [["a@d.edu", 3, T - COOLDOWN]]
    with pytest.raises(Throttled):
        reconciler.check_in("abc123", "a@d.edu")
    assert store.writes == []


def test_throttled_a_few_hours(reconciler, store):
    store.ranges[TABLE_RANGE] = [["a@d.edu", 3, T - COOLDOWN + 3 * 3_600_000]]
    with pytest.raises(Throttled) as e:
        reconciler.check_in("abc123", "a@d.edu")
    assert e.value.wait == "a few hours"


@pytest.mark.parametrize(
    "remaining, expected",
    [
        (COOLDOWN, "6 days"),
        (DAY // 2, "1 days"),
        (DAY // 2 - 1, "a few hours"),
        (1, "a few hours"),
        (3 * DAY + 1, "3 days"),
    ],
)
def test_remaining_wait(remaining, expected):
    assert remaining_wait(T, COOLDOWN, T + COOLDOWN - remaining) == expected


def test_blank_rows_survive_rewrite(reconciler, store):
    store.ranges[TABLE_RANGE] = [["a@d.edu", 3, T - 7 * DAY], [], ["b@d.edu", 1, T - 7 * DAY]]

    reconciler.check_in("abc123", "b@d.edu")

    assert store.ranges[TABLE_RANGE] == [
        ["a@d.edu", 3, T - 7 * DAY],
        [],
        ["b@d.edu", 2, T],
    ]


def test_malformed_row_aborts_without_write(reconciler, store):
    store.ranges[TABLE_RANGE] = [["a@d.edu", "three", T]]
    with pytest.raises(StoreReadFailure):
        reconciler.check_in("abc123", "b@d.edu")
    assert store.writes == []


def test_store_errors_propagate(reconciler, store):
    store.write_error = StoreWriteFailure()
    with pytest.raises(StoreWriteFailure):
        reconciler.check_in("abc123", "a@d.edu")


def test_uses_sheet_name(store, clock):
    config = CheckinConfig(allowed_domain="d.edu", sheet_name="Hoplite")
    store.ranges["'Hoplite'!A2:B2"] = [["abc123", T + 1000]]

    AttendanceReconciler(store, config, clock=clock).check_in("abc123", "a@d.edu")

    assert store.ranges["'Hoplite'!A5:C"] == [["a@d.edu", 1, T]]
