from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from passlib.context import CryptContext
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
import uuid

from models import User, Role
from schemas import Token
from services import config

router = APIRouter(tags=["auth"])
pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")
UTC = timezone.utc

def create_token(data: dict, secret: str, expires: int) -> str:
    to_encode = data.copy()
    to_encode["exp"] = datetime.now(tz=UTC) + timedelta(seconds=expires)
    return jwt.encode(to_encode, secret, algorithm=config.JWT_ALGORITHM)

def issue_tokens(user: User) -> dict:
    data = {"sub": str(user.id), "role": Role(user.role).value}
    return {
        "access_token": create_token(data, config.SECRET_KEY, config.ACCESS_EXPIRE_SECONDS),
        "refresh_token": create_token(data, config.REFRESH_SECRET, config.REFRESH_EXPIRE_SECONDS),
        "token_type": "bearer",
    }

# OAuth2 forms call the login field "username"; we log in by email.
@router.post("/login/access-token", response_model=Token)
async def login(form: OAuth2PasswordRequestForm = Depends()):
    user = await User.get_or_none(email=form.username.strip().lower())
    if not user or not pwd_ctx.verify(form.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return issue_tokens(user)

@router.post("/login/refresh-token", response_model=Token)
async def refresh_token(payload: Token):
    try:
        decoded = jwt.decode(payload.refresh_token, config.REFRESH_SECRET, algorithms=[config.JWT_ALGORITHM])
        sub = decoded.get("sub")
        if not sub:
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        user_id = uuid.UUID(sub)
    except (JWTError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user = await User.get_or_none(id=user_id)
    if not user or user.disabled:
        raise HTTPException(status_code=401, detail="User not found")
    return issue_tokens(user)
