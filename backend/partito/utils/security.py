"""Security utilities: edit tokens, event passwords, guest fingerprints."""

import secrets
import string

import bcrypt

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
# bcrypt only reads the first 72 bytes of a secret
PASSWORD_MAX_BYTES = 72


# --- Edit tokens ---

def generate_edit_token() -> str:
    """256-bit random bearer capability, hex encoded."""
    return secrets.token_hex(32)


def tokens_match(supplied: str | None, expected: str | None) -> bool:
    if not supplied or not expected:
        return False
    return secrets.compare_digest(supplied.encode(), expected.encode())


def generate_slug_suffix() -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(4))


# --- Event passwords ---

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str | None) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


# --- Guest fingerprint ---

def rsvp_fingerprint(name: str, event_id: str) -> str:
    """Per-guest identifier: normalised display name plus event id.

    Anyone reusing the same name produces the same fingerprint.
    """
    return f"{name.lower().strip()}-{event_id}"
