"""
Mark an account as verified without the emailed link (support and local testing).

    python -m app.scripts.force_verify_user --email bob@example.com
"""

import argparse
import asyncio
import sys

import structlog

from app.core.database import engine, get_session_context
from app.core.logging import configure_logging
from app.services.credentials import CredentialStore

log = structlog.get_logger()


async def force_verify(email: str) -> bool:
    """Return False when no account matches ``email``."""
    async with get_session_context() as session:
        store = CredentialStore(session)
        user = await store.find_user_by_email(email)
        if user is None:
            log.warning("script.force_verify_unknown_email", email=email)
            return False
        if user.is_verified:
            log.info("script.force_verify_already_verified", user_id=str(user.id))
            return True
        user.is_verified = True
        user.verification_token = None
        await store.save(user)
    log.info("script.force_verify_done", user_id=str(user.id), email=email)
    return True


async def _main(email: str) -> int:
    try:
        return 0 if await force_verify(email) else 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Force-verify a user's email address.")
    parser.add_argument("--email", required=True, help="Email address of the account")
    args = parser.parse_args()

    configure_logging("info", "console")
    sys.exit(asyncio.run(_main(args.email)))
