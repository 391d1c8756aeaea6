"""
API dependencies

Routes receive the authenticated `Caller` and the process-wide
`ServiceContainer`; role checks are declared per route with `require_role`.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.container import ServiceContainer
from app.core.security import Caller, caller_from_token

# Optional bearer - doesn't fail if no Authorization header
security = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Caller:
    caller = caller_from_token(credentials.credentials) if credentials else None
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return caller


def require_role(*roles: str):
    """Dependency factory restricting a route to the given roles."""

    async def checker(caller: Caller = Depends(get_current_caller)) -> Caller:
        if caller.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(roles)}",
            )
        return caller

    return checker
