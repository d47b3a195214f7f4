"""FastAPI dependencies: get_current_identity, require_client.

Usage in any protected router:
    from src.mk_gateway.auth.dependencies import get_current_identity

    @router.get("/protected")
    async def protected(identity: Identity = Depends(get_current_identity)):
        ...
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from src.mk_common.enums import Role
from src.mk_common.errors import InvalidCredentialsError, RoleRequiredError
from src.mk_common.identity import Identity
from src.mk_gateway.auth.jwt_handler import identity_from_token

# Tokens come from the external auth service; tokenUrl only feeds Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_identity(token: str = Depends(oauth2_scheme)) -> Identity:
    """Resolve the Bearer token to an explicit Identity.

    Raises HTTP 401 if the token is missing, invalid, expired or has no role.
    """
    try:
        return identity_from_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None


async def require_client(
    identity: Identity = Depends(get_current_identity),
) -> Identity:
    """Cart and checkout are client-only."""
    if identity.role != Role.CLIENT:
        raise RoleRequiredError(Role.CLIENT.value)
    return identity
