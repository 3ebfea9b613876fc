# main.py (full, lifespan-based)
from __future__ import annotations

import logging, uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from tortoise.contrib.fastapi import RegisterTortoise

from models import User, Role
from routers import auth, users, invoices
from routers.auth import pwd_ctx
from api_utils import register_error_handlers
from services import config

logger = logging.getLogger("uvicorn")
logger.setLevel(config.LOG_LEVEL)

# ----- helpers -----
async def _seed_admin():
    if not await User.exists():
        await User.create(
            id=uuid.uuid4(),
            email=config.ADMIN_EMAIL.strip().lower(),
            hashed_password=pwd_ctx.hash(config.ADMIN_PASSWORD),
            role=Role.ADMIN,
        )
        logger.info(f"[seed] admin user {config.ADMIN_EMAIL} created")

# ----- lifespan -----
@asynccontextmanager
async def lifespan(app: FastAPI):
    async with RegisterTortoise(
        app,
        db_url=config.DB_URL,
        modules={"models": ["models"]},
        generate_schemas=config.DB_GENERATE_SCHEMAS,
        add_exception_handlers=False,
    ):
        await _seed_admin()
        yield

# ----- app & routers -----
app = FastAPI(lifespan=lifespan, title="Invoice Records API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "Content-Disposition"],
)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(invoices.router)

@app.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}

for route in app.routes:
    if isinstance(route, APIRoute):
        logger.debug("%s -> %s", list(route.methods), route.path)
