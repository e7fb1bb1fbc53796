import bcrypt

from linkvault.core.config import get_settings

# bcrypt only reads the first 72 bytes; newer releases refuse longer input.
BCRYPT_MAX_BYTES = 72


def _secret_bytes(secret: str) -> bytes:
    return secret.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_secret(secret: str) -> str:
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(_secret_bytes(secret), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_secret(secret: str, digest: str) -> bool:
    # Strict verification; a malformed digest is a mismatch, not a crash.
    try:
        return bcrypt.checkpw(_secret_bytes(secret), digest.encode("utf-8"))
    except ValueError:
        return False
