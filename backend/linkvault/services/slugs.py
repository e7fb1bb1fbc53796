import secrets
import string

# 64 URL-safe symbols: 12 of them give 72 bits of entropy.
SLUG_ALPHABET = string.ascii_letters + string.digits + "_-"
DEFAULT_SLUG_LENGTH = 12


def generate_slug(length: int = DEFAULT_SLUG_LENGTH) -> str:
    if length < DEFAULT_SLUG_LENGTH:
        raise ValueError(f"slug length must be at least {DEFAULT_SLUG_LENGTH}")
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))
