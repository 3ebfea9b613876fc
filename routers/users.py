from fastapi import APIRouter, Depends, HTTPException
from tortoise.exceptions import IntegrityError
from models import User, Role
from schemas import UserCreate, UserUpdate, UserRead
from api_utils import RAListParams, parse_sort, apply_filter_map, paginate_and_respond, respond_item
from deps import get_current_active_user, get_current_admin_user
from routers.auth import pwd_ctx
import uuid

router = APIRouter(prefix="/users", tags=["users"])

# --- helpers ---------------------------------------------------------------

def to_bool(v) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    s = str(v).strip().lower()
    return s in {"1", "true", "t", "yes", "y"}

def to_user_read(m: User) -> UserRead:
    return UserRead.model_validate(m)

# --- routes ----------------------------------------------------------------

@router.get("", response_model=list[UserRead])
async def list_users(params: RAListParams = Depends(), admin: User = Depends(get_current_admin_user)):
    qs = User.all()
    fmap = {
        "email":    lambda q, v: q.filter(email__icontains=str(v)),
        "role":     lambda q, v: q.filter(role=Role(v)) if v in {r.value for r in Role} else q,
        "disabled": lambda q, v: q.filter(disabled=to_bool(v)),
    }
    qs = apply_filter_map(qs, params.filters, fmap)
    order = parse_sort(params.sort, ["id", "email", "role", "disabled", "created_at"])
    return await paginate_and_respond(qs, params.skip, params.limit, order, to_user_read)

# Put /me BEFORE /{user_id}, or constrain {user_id} below.
@router.get("/me", response_model=UserRead)
async def read_me(current_user: User = Depends(get_current_active_user)):
    return to_user_read(current_user)

@router.get("/{user_id:uuid}", response_model=UserRead)
async def get_user(user_id: uuid.UUID, admin: User = Depends(get_current_admin_user)):
    obj = await User.get_or_none(id=user_id)
    if not obj:
        raise HTTPException(404, "User not found")
    return respond_item(obj, to_user_read)

@router.post("", response_model=UserRead, status_code=201)
async def create_user(payload: UserCreate, admin: User = Depends(get_current_admin_user)):
    try:
        obj = await User.create(
            id=uuid.uuid4(),
            email=str(payload.email),
            hashed_password=pwd_ctx.hash(payload.password),
            role=payload.role,
            disabled=False,
        )
    except IntegrityError:
        raise HTTPException(409, "Email already registered")
    return respond_item(obj, to_user_read, status_code=201)

@router.put("/{user_id:uuid}", response_model=UserRead)
async def update_user(user_id: uuid.UUID, payload: UserUpdate, admin: User = Depends(get_current_admin_user)):
    obj = await User.get_or_none(id=user_id)
    if not obj:
        raise HTTPException(404, "User not found")
    data = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "password" in data:
        obj.hashed_password = pwd_ctx.hash(data.pop("password"))
    if "email" in data:
        data["email"] = str(data["email"])
    for k, v in data.items():
        setattr(obj, k, v)
    try:
        await obj.save()
    except IntegrityError:
        raise HTTPException(409, "Email already registered")
    return respond_item(obj, to_user_read)
