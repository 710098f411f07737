"""
Password hashing and session tokens.

Passwords use PBKDF2-HMAC-SHA256 with a random salt, stored as
``pbkdf2_sha256$iterations$salt_b64$hash_b64``. Session tokens are HS256 JWTs.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from core.config import SECRET_KEY, TOKEN_ALGORITHM, TOKEN_TTL_HOURS
from core.errors import AuthenticationError

ITERATIONS = int(os.getenv("PASSWORD_HASH_ITERATIONS", "600000"))
SALT_SIZE = 32


def hash_password(password: str, iterations: Optional[int] = None) -> str:
    iterations = iterations or ITERATIONS
    salt = os.urandom(SALT_SIZE)
    key = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    salt_b64 = base64.b64encode(salt).decode("ascii")
    key_b64 = base64.b64encode(key).decode("ascii")
    return f"pbkdf2_sha256${iterations}${salt_b64}${key_b64}"


def verify_password(password: str, stored_hash: Optional[str]) -> bool:
    """Constant-time check of ``password`` against a stored PBKDF2 hash."""
    if not stored_hash:
        return False
    parts = stored_hash.split("$")
    if len(parts) != 4 or parts[0] != "pbkdf2_sha256":
        return False
    try:
        iterations = int(parts[1])
        salt = base64.b64decode(parts[2])
        expected = base64.b64decode(parts[3])
    except ValueError:
        return False
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(derived, expected)


def create_access_token(
    user_id: str,
    role: str,
    organization_id: Optional[str] = None,
    ttl_hours: Optional[int] = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "role": role,
        "org": organization_id,
        "iat": now,
        "exp": now + timedelta(hours=ttl_hours or TOKEN_TTL_HOURS),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=TOKEN_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Session expired. Please sign in again.") from None
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(f"Invalid token: {e}") from None
