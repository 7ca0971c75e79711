from jose import JWTError, jwt
from retail_pos.config import settings
from retail_pos.core.exceptions import UnauthorizedException


def decode_jwt(token: str) -> dict:
    """
    Decode and validate a bearer token issued by the identity service.

    Args:
        token: JWT access token from Authorization header

    Returns:
        Decoded token payload with 'sub' (user id), 'role', 'tenant_id', 'exp'

    Raises:
        UnauthorizedException: If token invalid, expired, or malformed
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise UnauthorizedException(f"Invalid token: {str(e)}")

    if payload.get("exp") is None:
        raise UnauthorizedException("Token missing expiration")
    if payload.get("sub") is None:
        raise UnauthorizedException("Token missing user identifier")
    if payload.get("role") is None:
        raise UnauthorizedException("Token missing role")

    return payload


def extract_identity(token: str) -> tuple[int, str, str | None]:
    """Extract the (user_id, role, tenant_id) triple from a JWT"""
    payload = decode_jwt(token)
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise UnauthorizedException("Token user identifier must be numeric")
    return user_id, payload["role"], payload.get("tenant_id")
