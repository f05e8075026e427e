import re
from datetime import datetime, timedelta, timezone

from tutorhub.utils.date_utils import (
    generate_invoice_no,
    get_due_date_utc,
    get_full_date_utc,
    get_invoice_period_utc,
    get_payment_period_from_date,
    get_previous_payment_period,
    to_utc,
)

UTC = timezone.utc


def test_period_at_end_of_month_stays_in_month():
    assert get_invoice_period_utc(datetime(2025, 1, 31, 23, 59, 59, tzinfo=UTC)) == "2025-01"


def test_period_uses_utc_not_local_offset():
    # 2025-02-01 01:00 in UTC+05:30 is still January in UTC
    local = datetime(2025, 2, 1, 1, 0, tzinfo=timezone(timedelta(hours=5, minutes=30)))
    assert get_invoice_period_utc(local) == "2025-01"

    # 2025-01-31 20:00 in UTC-05:00 is already February in UTC
    local = datetime(2025, 1, 31, 20, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert get_invoice_period_utc(local) == "2025-02"


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime(2025, 6, 30, 23, 0)
    assert to_utc(naive).tzinfo is UTC
    assert get_invoice_period_utc(naive) == "2025-06"


def test_previous_period_from_first_of_month():
    assert get_previous_payment_period(datetime(2025, 3, 1, 0, 0, tzinfo=UTC)) == "2025-02"


def test_previous_period_is_independent_of_timezone_offset():
    for offset_hours in (-11, -5, 0, 3, 9, 14):
        tz = timezone(timedelta(hours=offset_hours))
        reference = datetime(2025, 3, 1, 0, 0, tzinfo=UTC).astimezone(tz)
        assert get_previous_payment_period(reference) == "2025-02"


def test_previous_period_wraps_year():
    assert get_previous_payment_period(datetime(2025, 1, 2, tzinfo=UTC)) == "2024-12"
    assert get_previous_payment_period(datetime(2024, 12, 31, 23, 59, tzinfo=UTC)) == "2024-11"


def test_full_date():
    moment = datetime(2025, 4, 7, 18, 30, tzinfo=UTC)
    assert get_full_date_utc(moment) == "2025-04-07"


def test_due_date_defaults_to_fifteenth_of_invoice_month():
    assert get_due_date_utc(datetime(2025, 1, 31, 23, 59, tzinfo=UTC)) == "2025-01-15"


def test_due_date_is_clamped_to_month_length():
    assert get_due_date_utc(datetime(2025, 2, 3, tzinfo=UTC), due_day=31) == "2025-02-28"
    assert get_due_date_utc(datetime(2024, 2, 3, tzinfo=UTC), due_day=30) == "2024-02-29"


def test_payment_period_from_session_date():
    assert get_payment_period_from_date(datetime(2025, 5, 20, 14, 0, tzinfo=UTC)) == "2025-05"


def test_invoice_number_format_and_uniqueness():
    numbers = {generate_invoice_no("2025-01") for _ in range(50)}
    assert len(numbers) == 50
    for number in numbers:
        assert re.fullmatch(r"2025-01-[0-9A-F]{8}", number)
