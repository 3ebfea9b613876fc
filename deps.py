from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from tortoise.exceptions import DoesNotExist
import uuid

from models import User, Role
from schemas import Principal
from services import config

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login/access-token")

async def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
    cred_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
        user_id = uuid.UUID(payload.get("sub"))
    except (JWTError, ValueError, TypeError):
        raise cred_exc
    try:
        user = await User.get(id=user_id)
    except DoesNotExist:
        raise cred_exc
    return user

async def get_current_active_user(user: User = Depends(get_current_user)) -> User:
    if user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return user

async def get_current_admin_user(user: User = Depends(get_current_active_user)) -> User:
    if user.role != Role.ADMIN:
        raise HTTPException(status_code=403, detail="Not enough permissions")
    return user

def to_principal(user: User) -> Principal:
    return Principal(role=Role(user.role).value, email=user.email)

async def get_principal(user: User = Depends(get_current_active_user)) -> Principal:
    return to_principal(user)

async def get_admin_principal(user: User = Depends(get_current_admin_user)) -> Principal:
    return to_principal(user)
