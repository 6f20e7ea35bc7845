"""FastAPI dependencies: get_current_actor, require_admin.

Usage in any protected router:
    from src.mk_gateway.auth.dependencies import get_current_actor

    @router.get("/protected")
    async def protected(actor: Actor = Depends(get_current_actor)):
        ...
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.mk_common.capabilities import Actor, Operation, authorize
from src.mk_common.errors import InvalidCredentialsError
from src.mk_gateway.auth.jwt_handler import decode_token

bearer_scheme = HTTPBearer(auto_error=False)

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    """Verify the Bearer token and return the attested Actor.

    Raises HTTP 401 if the token is missing, invalid, or expired. The actor's
    identity comes only from the verified claims, never from the request body.
    """
    if credentials is None:
        raise _CREDENTIALS_EXCEPTION
    try:
        payload = decode_token(credentials.credentials)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None

    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise _CREDENTIALS_EXCEPTION

    roles = payload.get("roles") or []
    if not isinstance(roles, list):
        raise _CREDENTIALS_EXCEPTION
    return Actor(user_id=user_id, roles=frozenset(str(r) for r in roles))


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Reject non-admin callers with UnauthorizedError (HTTP 403)."""
    authorize(actor, Operation.RUN_MAINTENANCE)
    return actor
