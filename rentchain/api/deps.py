from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session
from rentchain.db.session import get_db
from rentchain.core.security import decode_token
from rentchain.core.errors import PermissionDeniedError
from rentchain.models.user import User

bearer = HTTPBearer(auto_error=False)

def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.get(User, payload.get("sub"))
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user

def require_roles(*roles: str):
    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return _guard

def acting_user_id(user: User, claimed: str | None = None) -> str:
    """Callers act as themselves; a userId sent alongside the token must name the same account."""
    if claimed and claimed != user.id:
        raise PermissionDeniedError("userId does not match the authenticated user", userId=claimed)
    return user.id

def ensure_visible(user: User, *party_ids: str | None) -> None:
    if user.role != "ADMIN" and user.id not in party_ids:
        raise PermissionDeniedError("not allowed to view another user's records")
