import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

PASSWORD_MIN_LENGTH = 8
NAME_MIN_LENGTH = 2


@dataclass
class PasswordCheck:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    """Field name -> message for every field that failed."""

    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors


def parse_date(value: Any) -> datetime:
    """Parse an ISO date or datetime (a trailing 'Z' is accepted) into an aware datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TextValidator:
    """Primitive checks shared by every form."""

    @staticmethod
    def is_empty_string(value: Optional[str]) -> bool:
        if value is None:
            return True
        return len(str(value).strip()) == 0

    @staticmethod
    def is_valid_email(value: Optional[str]) -> bool:
        if not isinstance(value, str):
            return False
        return EMAIL_PATTERN.fullmatch(value) is not None


class PasswordValidator:
    """Password strength rules. Every rule is checked, all violations are reported."""

    @staticmethod
    def validate(password: Optional[str]) -> PasswordCheck:
        if not isinstance(password, str):
            password = ""
        errors: List[str] = []

        if len(password) < PASSWORD_MIN_LENGTH:
            errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
        if not re.search(r"[A-Z]", password):
            errors.append("Password must contain at least one uppercase letter")
        if not re.search(r"[a-z]", password):
            errors.append("Password must contain at least one lowercase letter")
        if not re.search(r"[0-9]", password):
            errors.append("Password must contain at least one number")

        return PasswordCheck(valid=not errors, errors=errors)


class FormValidator:
    """Per-entity form checks built on the primitives above.

    Forms are plain mappings of raw input (strings from a prompt or a form),
    keyed by snake_case field names.
    """

    @staticmethod
    def book(form: Mapping[str, Any], current_year: Optional[int] = None) -> ValidationResult:
        errors: Dict[str, str] = {}
        year_limit = current_year or datetime.now().year

        if TextValidator.is_empty_string(form.get("title")):
            errors["title"] = "Title is required"

        if TextValidator.is_empty_string(form.get("author_id")):
            errors["author_id"] = "Author is required"

        genre_ids = form.get("genre_ids")
        if not isinstance(genre_ids, (list, tuple, set)) or len(genre_ids) == 0:
            errors["genre_ids"] = "At least one genre is required"
        elif any(_parse_int(genre_id) is None for genre_id in genre_ids):
            errors["genre_ids"] = "Invalid genre"

        year = form.get("publish_year")
        if year is not None and str(year).strip() != "":
            parsed_year = _parse_int(year)
            if parsed_year is None or parsed_year < 0 or parsed_year > year_limit:
                errors["publish_year"] = "Invalid year"

        price = _parse_number(form.get("price"))
        if price is None or price < 0:
            errors["price"] = "Price is required and must be a non-negative number"

        return ValidationResult(errors)

    @staticmethod
    def author(form: Mapping[str, Any]) -> ValidationResult:
        errors: Dict[str, str] = {}

        for key, label in (("first_name", "First name"), ("last_name", "Last name")):
            value = form.get(key)
            if TextValidator.is_empty_string(value):
                errors[key] = f"{label} is required"
            elif len(str(value).strip()) < NAME_MIN_LENGTH:
                errors[key] = f"{label} must be at least {NAME_MIN_LENGTH} characters"

        birth_date = form.get("birth_date")
        if birth_date is None or (isinstance(birth_date, str) and TextValidator.is_empty_string(birth_date)):
            errors["birth_date"] = "Birth date is required"
        else:
            try:
                parse_date(birth_date)
            except (TypeError, ValueError):
                errors["birth_date"] = "Invalid date"

        return ValidationResult(errors)

    @staticmethod
    def genre(form: Mapping[str, Any]) -> ValidationResult:
        errors: Dict[str, str] = {}
        if TextValidator.is_empty_string(form.get("name")):
            errors["name"] = "Name is required"
        return ValidationResult(errors)

    @staticmethod
    def user(form: Mapping[str, Any]) -> ValidationResult:
        errors: Dict[str, str] = {}

        if TextValidator.is_empty_string(form.get("name")):
            errors["name"] = "Name is required"

        if TextValidator.is_empty_string(form.get("nick_name")):
            errors["nick_name"] = "Nick name is required"

        email = form.get("email")
        if TextValidator.is_empty_string(email):
            errors["email"] = "Email is required"
        elif not TextValidator.is_valid_email(email):
            errors["email"] = "Invalid email format"

        password = form.get("password")
        if TextValidator.is_empty_string(password):
            errors["password"] = "Password is required"
        else:
            check = PasswordValidator.validate(password)
            if not check.valid:
                errors["password"] = "; ".join(check.errors)

        if "confirm_password" in form and form.get("confirm_password") != password:
            errors["confirm_password"] = "Passwords do not match"

        return ValidationResult(errors)

    @staticmethod
    def login(form: Mapping[str, Any]) -> ValidationResult:
        errors: Dict[str, str] = {}

        email = form.get("email")
        if TextValidator.is_empty_string(email):
            errors["email"] = "Email is required"
        elif not TextValidator.is_valid_email(email):
            errors["email"] = "Invalid email format"

        if TextValidator.is_empty_string(form.get("password")):
            errors["password"] = "Password is required"

        return ValidationResult(errors)


def _parse_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


# Function-style aliases for callers that only need the primitives
is_empty_string = TextValidator.is_empty_string
is_valid_email = TextValidator.is_valid_email
validate_password = PasswordValidator.validate
