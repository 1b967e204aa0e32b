"""Password hashing utilities.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks. The work
factor comes from settings.bcrypt_rounds (tests turn it down).
"""

import bcrypt

from connectsphere.config import settings


def hash_password(password: str) -> str:
    """Hash a password with bcrypt.

    Learn: bcrypt produces hashes starting with "$2b$" and only looks at
    the first 72 bytes of the password, so longer input is truncated here
    rather than rejected.
    """
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False
