import re
from datetime import date
from typing import Optional

from circulation.exceptions import InvalidEmail, InvalidRegistrationDate

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


class EmailValidator:
    """Whole-string email check used when a member registers."""

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not email:
            return False
        return EMAIL_PATTERN.fullmatch(email) is not None

    @staticmethod
    def validate(email: Optional[str]) -> None:
        if not EmailValidator.is_valid_email(email):
            raise InvalidEmail()


class DateValidator:

    @staticmethod
    def validate_registration_date(registration_date: Optional[date], today: Optional[date] = None) -> None:
        """Registration may be today or earlier, never in the future."""
        if registration_date is None:
            raise InvalidRegistrationDate("Registration date is required!")
        today = today or date.today()
        if registration_date > today:
            raise InvalidRegistrationDate()
