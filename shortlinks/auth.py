import hmac
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from .config import Settings

COOKIE_NAME = "access_token"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login", auto_error=False)


def authenticate_user(settings: Settings, username: str, password: str) -> bool:
    # Evaluate both comparisons so timing doesn't reveal which one failed.
    user_ok = hmac.compare_digest(username or "", settings.admin_username)
    password_ok = hmac.compare_digest(password or "", settings.admin_password)
    return user_ok and password_ok

def create_access_token(settings: Settings, data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

def decode_token(settings: Settings, token: str) -> str | None:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    return payload.get("sub")

def get_current_user(request: Request, token: str | None = Depends(oauth2_scheme)) -> str:
    """Admin identity from the bearer token, falling back to the login cookie."""
    token = token or request.cookies.get(COOKIE_NAME)
    user = decode_token(request.app.state.settings, token) if token else None
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
