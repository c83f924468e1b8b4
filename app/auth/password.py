"""
Password hashing with Argon2id.

Argon2id is the recommended password hashing algorithm because:
- Memory-hard (resists GPU/ASIC attacks)
- Side-channel resistant (id variant)
- Salted per hash, so equal passwords never share a digest

Verification never tells the caller *why* it failed: a mismatch and a
malformed digest both come back as False.
"""

import re
import secrets
import string

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from app.core.errors import ValidationError

PASSWORD_MIN_LENGTH = 8

# Configure Argon2id with secure parameters
ph = PasswordHasher(
    time_cost=3,        # Number of iterations
    memory_cost=65536,  # 64 MB memory usage
    parallelism=4,      # Number of parallel threads
    hash_len=32,        # Length of the hash in bytes
    salt_len=16,        # Length of the random salt
)


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Returns:
        The hashed password string (includes algorithm, params, salt, and hash)
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash. Any failure is just False."""
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(password_hash: str) -> bool:
    """
    Check if a password hash needs to be rehashed.

    After a successful login, check this and rehash if the security
    parameters were raised since the digest was produced.
    """
    try:
        return ph.check_needs_rehash(password_hash)
    except InvalidHashError:
        return True


def validate_password_strength(password: str) -> tuple[bool, list[str]]:
    """
    Validate password meets minimum security requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Returns:
        Tuple of (is_valid, list_of_issues)
    """
    issues = []

    if not isinstance(password, str):
        return False, ["Password must be a string"]

    if len(password) < PASSWORD_MIN_LENGTH:
        issues.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long (got {len(password)})")

    if not re.search(r"[A-Za-z]", password):
        issues.append("Password must contain at least one letter")

    if not re.search(r"\d", password):
        issues.append("Password must contain at least one digit")

    return len(issues) == 0, issues


def ensure_password_policy(password: str) -> None:
    """Raise ValidationError with every failed rule when the policy is not met."""
    is_valid, issues = validate_password_strength(password)
    if not is_valid:
        raise ValidationError(
            "Password does not meet the security policy",
            source="body/password",
            details=issues,
        )


def generate_temp_password(length: int = 16) -> str:
    """
    Generate a secure temporary password that satisfies the policy.

    Used for the bootstrap admin account when no password is configured.
    """
    if length < PASSWORD_MIN_LENGTH:
        length = PASSWORD_MIN_LENGTH

    password = [
        secrets.choice(string.ascii_letters),
        secrets.choice(string.digits),
    ]
    alphabet = string.ascii_letters + string.digits
    password.extend(secrets.choice(alphabet) for _ in range(length - 2))

    # Shuffle to avoid predictable positions
    secrets.SystemRandom().shuffle(password)

    return "".join(password)
