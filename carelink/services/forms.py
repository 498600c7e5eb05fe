"""Form rules shared by the login screens and the add-patient dialog."""
from typing import Optional

from carelink.core.config import settings
from carelink.core.exceptions import FormError


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def validate_new_account(
    email: str,
    password: str,
    confirm_password: Optional[str] = None,
    name: Optional[str] = None,
    require_name: bool = False,
) -> None:
    """Raise FormError with the message the screen shows inline."""
    if require_name and not (name or "").strip():
        raise FormError("Please enter your name")
    if not (email or "").strip() or not password:
        raise FormError("All fields are required")
    if len(password) < settings.MIN_PASSWORD_LENGTH:
        raise FormError(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters")
    if confirm_password is not None and confirm_password != password:
        raise FormError("Passwords do not match")
