# Core - Input Validation
#
# Field checks shared by AuthManager and VaultManager.
# Every failure raises ValidationError naming the offending field.

import re
from typing import Union

from .errors import ValidationError
from ..models import DataType

MIN_PASSWORD_LENGTH = 8
MAX_NAME_LENGTH = 255

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def validate_email(email: str) -> None:
    if not email:
        raise ValidationError("email is required", field="email")
    if not _EMAIL_RE.match(email):
        raise ValidationError("invalid email format", field="email")


def validate_password(password: str) -> None:
    """
    Check a new password before it is hashed.

    Only applied on registration and password change; login never
    validates so that it cannot leak which rule a guess broke.
    """
    if not password:
        raise ValidationError("password is required", field="password")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"password must be at least {MIN_PASSWORD_LENGTH} characters long",
            field="password",
        )


def validate_data_name(name: str) -> None:
    if not name or not name.strip():
        raise ValidationError("name is required", field="name")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"name must be at most {MAX_NAME_LENGTH} characters",
            field="name",
        )


def coerce_data_type(value: Union[str, DataType]) -> DataType:
    """Return ``value`` as a DataType or raise ValidationError."""
    try:
        return DataType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in DataType)
        raise ValidationError(
            f"unknown data type {value!r} (expected one of: {allowed})",
            field="type",
        ) from None


def validate_payload(plaintext: bytes) -> None:
    if not isinstance(plaintext, (bytes, bytearray)):
        raise ValidationError("data must be bytes", field="data")
