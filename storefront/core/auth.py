from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import Optional
import jwt
from storefront.core.config import settings

security = HTTPBearer(auto_error=False)

def _decode(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid access token")
    return payload

def get_current_identity(creds: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _decode(creds.credentials)

def require_admin(identity: dict = Depends(get_current_identity)):
    if identity.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return identity

def admin_or_internal(
    x_internal_key: Optional[str] = Header(default=None, alias="X-Internal-Key"),
    auth: Optional[str] = Header(default=None, alias="Authorization"),
) -> dict:
    # 1) allow trusted internal calls
    if x_internal_key and x_internal_key == (settings.SVC_INTERNAL_KEY or ""):
        return {"sub": "internal", "role": "internal"}

    # 2) otherwise require admin JWT
    if not auth or not auth.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    payload = _decode(auth.split(" ", 1)[1])
    if payload.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin required")
    return payload
