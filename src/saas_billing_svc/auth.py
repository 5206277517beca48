import datetime

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from saas_billing_svc.config import Settings, get_settings
from saas_billing_svc.models.base import get_db
from saas_billing_svc.models.user import User

ALGO = "HS256"

bearer = HTTPBearer(auto_error=False)


def create_session_token(user_id: str, settings: Settings) -> str:
    exp = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(minutes=settings.AUTH_TOKEN_MINUTES)
    return jwt.encode({"sub": user_id, "type": "session", "exp": exp}, settings.AUTH_SECRET, algorithm=ALGO)


def decode_session_token(token: str, settings: Settings) -> dict:
    return jwt.decode(token, settings.AUTH_SECRET, algorithms=[ALGO])


def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not authenticated")
    try:
        payload = decode_session_token(creds.credentials, settings)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session token")
    if payload.get("type") != "session" or not payload.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session token")
    user = db.get(User, payload.get("sub"))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not authenticated")
    return user
