"""
Password hashing and random secrets (join codes, email tokens, slugs).

bcrypt is CPU-bound; request handlers use the ``*_async`` variants, which
run it on Starlette's thread pool instead of the event loop.
"""

from __future__ import annotations

import re
import secrets
from functools import lru_cache

import bcrypt
import structlog
from starlette.concurrency import run_in_threadpool

log = structlog.get_logger()

# No 0/O or 1/I, codes are read aloud and typed by invitees.
JOIN_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
JOIN_CODE_LENGTH = 8

# bcrypt only reads the first 72 bytes of a password
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode()[:_BCRYPT_MAX_BYTES]


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt with the given cost factor."""
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash. A corrupt hash never matches."""
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed.encode())
    except ValueError:
        log.warning("security.malformed_password_hash")
        return False


async def hash_password_async(password: str, rounds: int = 12) -> str:
    return await run_in_threadpool(hash_password, password, rounds)


async def verify_password_async(password: str, hashed: str) -> bool:
    return await run_in_threadpool(verify_password, password, hashed)


@lru_cache
def _dummy_hash(rounds: int) -> str:
    return hash_password(secrets.token_urlsafe(16), rounds)


async def burn_password_check(password: str, rounds: int = 12) -> None:
    """Spend the same time as a real check when there is no account to check against."""
    await run_in_threadpool(verify_password, password, _dummy_hash(rounds))


# ---------------------------------------------------------------------------
# Random secrets
# ---------------------------------------------------------------------------

def generate_join_code(length: int = JOIN_CODE_LENGTH) -> str:
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(length))


def generate_email_token() -> str:
    """Token for verification and password-reset links."""
    return secrets.token_hex(32)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:48].rstrip("-") or "org"
