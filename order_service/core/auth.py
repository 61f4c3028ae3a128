
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from order_service.core.config import settings
from order_service.core.errors import Unauthenticated
from order_service.services.policy import Principal, Role

security = HTTPBearer(auto_error=False)

def decode_principal(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid token")
    if payload.get("type") != "access":
        raise Unauthenticated("Invalid access token")
    try:
        return Principal(user_id=int(payload["sub"]), role=Role(str(payload.get("role", "")).upper()))
    except (KeyError, TypeError, ValueError):
        raise Unauthenticated("Invalid token claims")

def get_current_principal(creds: HTTPAuthorizationCredentials = Depends(security)) -> Principal:
    if not creds:
        raise Unauthenticated()
    return decode_principal(creds.credentials)
