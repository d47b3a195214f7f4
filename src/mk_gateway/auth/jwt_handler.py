"""JWT token creation and verification.

Tokens are issued by the external auth collaborator; this service only
verifies them. Claims used: ``sub`` (user id), ``role`` ("client" or
"merchant") and ``type`` ("access").

MVP NOTE: HS256 with a shared JWT_SECRET. No revocation; a token stays
valid until it expires.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from config.settings import settings
from src.mk_common.enums import Role
from src.mk_common.errors import InvalidCredentialsError
from src.mk_common.identity import Identity

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"
_ACCESS_EXPIRE = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)


def create_access_token(user_id: str, role: Role) -> str:
    """Issue a short-lived access token (default: 30 min). Used by tests and tooling."""
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "role": role.value,
        "type": "access",
        "iat": now,
        "exp": now + _ACCESS_EXPIRE,
    }
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def decode_token(token: str) -> dict[str, str]:
    """Decode and validate an access token.

    Raises:
        InvalidCredentialsError: signature, expiry or token type is wrong.
    """
    try:
        payload: dict[str, str] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type") != "access":
        raise InvalidCredentialsError()
    return payload


def identity_from_token(token: str) -> Identity:
    payload = decode_token(token)
    user_id = payload.get("sub")
    try:
        role = Role(payload.get("role"))
    except ValueError:
        raise InvalidCredentialsError() from None
    if not user_id:
        raise InvalidCredentialsError()
    return Identity(id=str(user_id), role=role)
