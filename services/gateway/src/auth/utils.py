"""Authentication utilities for JWT handling.

User accounts live outside this service; the gateway only verifies bearer
tokens and reads the user id from the ``sub`` claim.
"""

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from jose import JWTError, jwt

from packages.core.src.config import get_config
from packages.core.src.protocols import CurrentUser

logger = logging.getLogger(__name__)

# JWT settings
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 30


def create_access_token(
    user_id: UUID,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token."""
    config = get_config()

    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "type": "access",
        "jti": str(uuid4()),
    }
    if email:
        to_encode["email"] = email

    return jwt.encode(to_encode, config.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> CurrentUser | None:
    """
    Decode and validate a JWT access token.

    Args:
        token: The JWT token string

    Returns:
        CurrentUser if valid, None if invalid or expired
    """
    config = get_config()

    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.debug("Token rejected: %s", e)
        return None

    if payload.get("type") != "access":
        return None

    try:
        return CurrentUser(id=UUID(str(payload.get("sub"))), email=payload.get("email"))
    except ValueError:
        # sub is not a UUID
        return None
