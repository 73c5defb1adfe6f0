import re
from typing import Optional

PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")
USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
RACK_RE = re.compile(r"^[A-Z]\d+-\d+$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ISBNValidator:
    """Lenient ISBN format check: 10 characters (last may be X) or 13 digits,
    ignoring hyphens and spaces. No checksum is enforced.
    """

    @staticmethod
    def normalize_isbn(raw: str) -> str:
        if raw is None:
            return ""
        return re.sub(r"[-\s]", "", raw).upper()

    @staticmethod
    def is_valid_isbn(isbn: str) -> bool:
        if not isbn:
            return False
        s = ISBNValidator.normalize_isbn(isbn)
        if len(s) == 10:
            return s[:9].isdigit() and (s[9].isdigit() or s[9] == "X")
        if len(s) == 13:
            return s.isdigit()
        return False


class TextValidator:

    @staticmethod
    def has_min_length(text: Optional[str], minimum: int) -> bool:
        if text is None:
            return False
        return len(text.strip()) >= minimum

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        return bool(email) and bool(EMAIL_RE.match(email.strip()))

    @staticmethod
    def is_valid_rack_number(rack: Optional[str]) -> bool:
        # Shelf codes look like A1-01
        return bool(rack) and bool(RACK_RE.match(rack.strip()))


class CredentialValidator:
    """Rules for the one-time admin account setup."""

    @staticmethod
    def is_valid_phone(phone: Optional[str]) -> bool:
        return bool(phone) and bool(PHONE_RE.match(phone.strip()))

    @staticmethod
    def is_valid_username(username: Optional[str]) -> bool:
        if not username or len(username) < 3:
            return False
        return bool(USERNAME_RE.match(username))

    @staticmethod
    def password_problem(password: Optional[str]) -> Optional[str]:
        """Return why a password is rejected, or None when it is acceptable."""
        if not password:
            return "Password is required"
        if len(password) < 8:
            return "Password must be at least 8 characters"
        if not (re.search(r"[a-z]", password) and re.search(r"[A-Z]", password) and re.search(r"\d", password)):
            return "Password must contain uppercase, lowercase, and number"
        return None
