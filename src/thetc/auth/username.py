"""Username validation rules.

Two kinds of username are supported. Both are trimmed, non-empty, at most 64 characters and
restricted to ASCII, which keeps the database's lower() projection and Python's case folding in
agreement. Case is preserved as entered; comparisons are always case-insensitive.
"""
import enum

from pydantic.networks import validate_email
from pydantic_core import PydanticCustomError

MAX_USERNAME_LENGTH = 64


class UsernameKind(str, enum.Enum):
    ASCII = "ascii"
    EMAIL = "email"


def validate_username(value: str, kind: UsernameKind = UsernameKind.ASCII) -> str:
    """
    Normalize and validate a username, returning the trimmed value.

    Raises:
        ValueError: If the value breaks the rules of the requested kind
    """
    value = value.strip()

    if len(value) == 0:
        raise ValueError("username must not be empty")

    if len(value) > MAX_USERNAME_LENGTH:
        raise ValueError(f"username must be at most {MAX_USERNAME_LENGTH} characters")

    if not value.isascii():
        raise ValueError("username must only contain ASCII characters")

    if UsernameKind(kind) is UsernameKind.EMAIL:
        try:
            _, email = validate_email(value)
        except PydanticCustomError as e:
            raise ValueError("username is not a valid email address") from e
        # validate_email also accepts "Name <address>"; only a bare address is a username.
        if email.lower() != value.lower():
            raise ValueError("username must be a bare email address")
        return value

    for c in value:
        if not ("!" <= c <= "~"):
            raise ValueError("username must only contain printable characters")

    return value
