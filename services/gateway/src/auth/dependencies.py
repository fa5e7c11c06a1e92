"""FastAPI dependencies for authentication and the automation service."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from packages.automation.src.service import WorkflowAutomationService
from packages.core.src.config import get_config
from packages.core.src.protocols import CurrentUser, StaticIdentityProvider
from packages.database.src.session import get_db_session

from .utils import decode_token

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> CurrentUser:
    """
    Get the current user from the JWT token.

    Raises 401 if no token is provided or the token is invalid.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = decode_token(credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_automation_service(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> WorkflowAutomationService:
    """Automation service scoped to the requesting user."""
    return WorkflowAutomationService(
        db,
        identity=StaticIdentityProvider(current_user),
        config=get_config(),
    )
