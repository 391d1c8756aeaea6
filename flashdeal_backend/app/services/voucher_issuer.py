"""
Voucher issuer

Redemption codes look like FD-7KQ2MZ9A: a fixed prefix plus eight
characters drawn from an alphabet without 0/O/1/I so codes read out
loud at the counter are unambiguous.
"""
import logging
import secrets

from app.core.exceptions import StoreError
from app.store.base import UnitOfWork

logger = logging.getLogger(__name__)

CODE_PREFIX = "FD-"
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8
MAX_COLLISION_RETRIES = 5


def generate_code() -> str:
    """Generate a redemption code from a cryptographically secure source."""
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


async def issue_unique_code(uow: UnitOfWork, max_retries: int = MAX_COLLISION_RETRIES) -> str:
    """
    Generate a code not carried by any reservation.

    Runs inside the unit of work that assigns the code; the unique column is
    the final guard if two transactions race on the same value.
    """
    for attempt in range(1, max_retries + 1):
        code = generate_code()
        if not await uow.redemption_code_exists(code):
            return code
        logger.warning(f"Redemption code collision on attempt {attempt}")
    raise StoreError(
        "Could not generate a unique redemption code",
        details={"attempts": max_retries},
    )
