import logging

from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from Gateway.crud.user import get_user
from Gateway.database import get_db
from Gateway.errors import GatewayError, UnauthorizedError
from Gateway.models.user_model import User
from Gateway.settings import get_settings

logger = logging.getLogger(__name__)


# Reads the signing configuration; tokens are issued by the auth service with the same secret
def _get_auth_config() -> tuple[str, str]:
    settings = get_settings()
    if not settings.jwt_secret:
        raise GatewayError("JWT_SECRET is not configured.", code="AUTH_MISCONFIGURED")
    return settings.jwt_secret, settings.jwt_algorithm


# Verifies the bearer token from the Authorization header and returns decoded JWT claims
def verify_bearer_jwt(request: Request) -> dict:
    secret, algorithm = _get_auth_config()

    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise UnauthorizedError("Authentication required. Please provide a valid token.", code="NO_TOKEN")
    if not auth_header.startswith("Bearer "):
        raise UnauthorizedError("Invalid token format. Use: Bearer <token>", code="INVALID_FORMAT")

    token = auth_header[len("Bearer "):].strip()
    if not token:
        raise UnauthorizedError("Token is missing", code="MISSING_TOKEN")

    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except ExpiredSignatureError:
        raise UnauthorizedError("Token has expired. Please refresh your token.", code="TOKEN_EXPIRED")
    except JWTError as e:
        logger.info("auth.token.invalid: %s", e)
        raise UnauthorizedError("Invalid token", code="INVALID_TOKEN")


# FastAPI dependency: the authenticated user row
def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    claims = verify_bearer_jwt(request)
    user_id = claims.get("userId") or claims.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token", code="INVALID_TOKEN")

    user = get_user(db, str(user_id))
    if user is None:
        raise UnauthorizedError("User not found. Token may be invalid.", code="USER_NOT_FOUND")
    return user
