from datetime import date

import pytest

from kudumbam.utils.validators import (
    is_complete_pin_code,
    join_phone_number,
    split_phone_number,
    validate_birth_date,
    validate_email,
    validate_phone,
    validate_pin_code,
)

TODAY = date(2024, 6, 15)


def test_birth_date_today_has_its_own_message():
    error = validate_birth_date("2024-06-15", minimum_age=18, today=TODAY)
    assert error == "Please enter your actual date of birth. It cannot be today's date."


def test_birth_date_in_future():
    assert validate_birth_date("2024-06-16", minimum_age=18, today=TODAY) == "Date of birth cannot be in the future"


def test_birth_date_under_minimum_age():
    error = validate_birth_date("2006-06-16", minimum_age=18, today=TODAY)
    assert error == "You must be at least 18 years old to register."
    assert validate_birth_date("2006-06-15", minimum_age=18, today=TODAY) is None


def test_birth_date_required_and_invalid():
    assert validate_birth_date("", required=True, today=TODAY) == "Please enter your date of birth"
    assert validate_birth_date("", today=TODAY) is None
    assert validate_birth_date("15/06/2000", today=TODAY) == "Please enter a valid date of birth"


@pytest.mark.parametrize("phone, code, ok", [
    ("9876543210", "+91", True),
    ("5876543210", "+91", False),
    ("98765", "+91", False),
    ("2025550123", "+1", True),
    ("98-765", "+91", False),
])
def test_phone_digits_per_country(phone, code, ok):
    assert (validate_phone(phone, code) is None) is ok


def test_email_and_pin():
    assert validate_email("x@y.com") is None
    assert validate_email("not-an-email") == "Please enter a valid email address"
    assert validate_pin_code("600001") is None
    assert validate_pin_code("60001") == "PIN code must be exactly 6 digits"
    assert is_complete_pin_code("600001")
    assert not is_complete_pin_code("60000")


def test_split_and_join_phone():
    assert split_phone_number("+919876543210") == ("+91", "9876543210")
    assert split_phone_number("+12025550123") == ("+1", "2025550123")
    assert split_phone_number("9876543210") == ("+91", "9876543210")
    assert split_phone_number(None) == ("+91", "")
    assert join_phone_number("9876543210", "+91") == "+919876543210"
    assert join_phone_number("+449876543210", "+91") == "+449876543210"
