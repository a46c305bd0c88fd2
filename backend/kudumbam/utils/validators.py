"""
Kudumbam — Field Validators
Shared by the server endpoints and the client-side section saves.
Each validator returns an error message, or None when the value is acceptable.
"""

import re
from datetime import date, datetime
from typing import Optional


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
LOGIN_PHONE_PATTERN = re.compile(r"^\+\d{1,4}\d{7,15}$")
PIN_CODE_PATTERN = re.compile(r"^\d{6}$")

DEFAULT_COUNTRY_CODE = "+91"
COUNTRY_CODES = ["+91", "+1", "+44", "+61", "+81", "+49", "+33", "+39", "+34", "+86"]

# country code → (min digits, max digits)
PHONE_DIGIT_RULES = {
    "+91": (10, 10),
    "+1": (10, 10),
    "+44": (10, 10),
    "+61": (9, 9),
    "+81": (10, 11),
}
DEFAULT_PHONE_DIGITS = (7, 15)
MAX_STORED_PHONE_LENGTH = 20

MIN_PASSWORD_LENGTH = 6
MIN_FULL_NAME_LENGTH = 2


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email.strip()))


def validate_email(email: Optional[str], label: str = "email") -> Optional[str]:
    if not email:
        return None
    if not is_valid_email(email):
        return f"Please enter a valid {label} address"
    return None


def validate_phone(phone: Optional[str], country_code: str = DEFAULT_COUNTRY_CODE) -> Optional[str]:
    """Digit-length check per country code; Indian mobiles must start with 6-9."""
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if digits != phone.strip():
        return "Phone number must contain digits only"
    low, high = PHONE_DIGIT_RULES.get(country_code, DEFAULT_PHONE_DIGITS)
    if not low <= len(digits) <= high:
        if low == high:
            return f"Phone number for {country_code} must be {low} digits"
        return f"Phone number for {country_code} must be {low}-{high} digits"
    if country_code == "+91" and digits[0] not in "6789":
        return "Indian mobile numbers must start with 6, 7, 8, or 9"
    return None


def is_valid_login_phone(phone: Optional[str]) -> bool:
    return bool(phone) and bool(LOGIN_PHONE_PATTERN.match(phone))


def validate_pin_code(pin_code: Optional[str]) -> Optional[str]:
    if not pin_code:
        return None
    if not PIN_CODE_PATTERN.match(pin_code.strip()):
        return "PIN code must be exactly 6 digits"
    return None


def is_complete_pin_code(pin_code: Optional[str]) -> bool:
    return bool(pin_code) and bool(PIN_CODE_PATTERN.match(pin_code))


def parse_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def calculate_age(born: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def validate_birth_date(
    value,
    minimum_age: Optional[int] = None,
    today: Optional[date] = None,
    required: bool = False,
) -> Optional[str]:
    """
    Date-of-birth rules, checked in order:
    missing, unparseable, today's date, future date, then minimum age.
    Today's date gets its own message because forms default to it.
    """
    today = today or date.today()
    if value is None or value == "":
        return "Please enter your date of birth" if required else None

    born = parse_date(value)
    if born is None:
        return "Please enter a valid date of birth"
    if born == today:
        return "Please enter your actual date of birth. It cannot be today's date."
    if born > today:
        return "Date of birth cannot be in the future"
    if minimum_age is not None and calculate_age(born, today) < minimum_age:
        return f"You must be at least {minimum_age} years old to register."
    return None


def validate_password(password: Optional[str]) -> Optional[str]:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    return None


def validate_full_name(full_name: Optional[str]) -> Optional[str]:
    if not full_name or len(full_name.strip()) < MIN_FULL_NAME_LENGTH:
        return f"Full name must be at least {MIN_FULL_NAME_LENGTH} characters long"
    return None


def split_phone_number(phone: Optional[str]) -> tuple[str, str]:
    """
    Split a stored "+CCNNN" number into (country code, local number).
    Longest matching known code wins; unknown or bare numbers default to +91.
    """
    if not phone:
        return DEFAULT_COUNTRY_CODE, ""
    phone = phone.strip()
    if not phone.startswith("+"):
        return DEFAULT_COUNTRY_CODE, re.sub(r"\D", "", phone)
    for code in sorted(COUNTRY_CODES, key=len, reverse=True):
        if phone.startswith(code):
            return code, phone[len(code):]
    return DEFAULT_COUNTRY_CODE, re.sub(r"\D", "", phone)


def join_phone_number(phone: Optional[str], country_code: Optional[str]) -> str:
    """A value already starting with '+' is used as-is, else code + number."""
    if not phone:
        return ""
    phone = phone.strip()
    if phone.startswith("+"):
        return phone
    return f"{country_code or ''}{phone}"
