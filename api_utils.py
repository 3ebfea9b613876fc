# api_utils.py
import json
import logging
from typing import Any, Callable, Iterable
from urllib.parse import quote

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from tortoise.queryset import QuerySet

from schemas import AttachmentContent
from services.errors import InvoiceError, ValidationError, from_pydantic

logger = logging.getLogger("uvicorn")

# ---------- React-Admin param parsing ----------
def parse_range(range_param: str) -> tuple[int, int]:
    start, end = json.loads(range_param)
    skip = max(int(start), 0)
    limit = max(int(end) - skip + 1, 0)
    return skip, limit

def parse_sort(sort_param: str | None, allowed_fields: Iterable[str], default: tuple[str, str] = ("id", "ASC")) -> str:
    allowed = set(allowed_fields) | {"id"}
    try:
        field, order = json.loads(sort_param)
    except Exception:
        field, order = default
    field = field if field in allowed else default[0]
    prefix = "-" if str(order).upper() == "DESC" else ""
    return f"{prefix}{field}"

def parse_filter(filter_param: str | None) -> dict:
    try:
        return json.loads(filter_param or "{}")
    except Exception:
        return {}

# ---------- Query helpers ----------
def apply_filter_map(qs: QuerySet, filters: dict, fmap: dict[str, Callable[[QuerySet, Any], QuerySet]]) -> QuerySet:
    for key, fn in fmap.items():
        if key in filters and filters[key] is not None:
            qs = fn(qs, filters[key])
    return qs

async def paginate_and_respond(
    qs: QuerySet,
    skip: int,
    limit: int,
    order: str,
    to_pydantic: Callable[[Any], Any],
) -> JSONResponse:
    total = await qs.count()
    items = await qs.order_by(order).offset(skip).limit(limit)
    end_real = skip + max(len(items) - 1, 0)
    content_range = f"items {skip}-{end_real}/{total}"

    # Use Pydantic v2 encoders for UUID/datetime safety
    content = [json.loads(to_pydantic(it).model_dump_json()) for it in items]

    return JSONResponse(
        status_code=206,
        content=content,
        headers={"Content-Range": content_range},
    )

def respond_page(items: list[BaseModel], skip: int, total: int) -> JSONResponse:
    """A page already cut by the caller; 206 while more rows remain outside it."""
    end_real = skip + max(len(items) - 1, 0)
    content_range = f"items {skip}-{end_real}/{total}"
    return JSONResponse(
        status_code=206 if len(items) < total else 200,
        content=[json.loads(it.model_dump_json()) for it in items],
        headers={"Content-Range": content_range},
    )

def respond_plain_list(items: list[BaseModel], skip: int, limit: int) -> JSONResponse:
    return respond_page(items[skip : skip + limit], skip, len(items))

def respond_item(model_obj: Any, to_pydantic: Callable[[Any], Any] = lambda m: m, status_code: int = 200) -> JSONResponse:
    """Single item response that uses the same Pydantic-safe encoding."""
    payload = json.loads(to_pydantic(model_obj).model_dump_json())
    return JSONResponse(status_code=status_code, content=payload)

# ---------- Attachments ----------
def content_disposition(disposition: str, file_name: str) -> str:
    """Header value that survives non-ASCII names (RFC 6266 / RFC 5987)."""
    ascii_name = file_name.encode("ascii", "replace").decode("ascii").replace("?", "_")
    ascii_name = ascii_name.replace('"', "").replace("\\", "")
    value = f'{disposition}; filename="{ascii_name}"'
    if ascii_name != file_name:
        value += f"; filename*=UTF-8''{quote(file_name)}"
    return value

def respond_attachment(att: AttachmentContent) -> Response:
    return Response(
        content=att.content,
        media_type=att.mime_type,
        headers={
            "Content-Disposition": content_disposition(att.disposition, att.file_name),
            "Content-Length": str(att.size),
        },
    )

# ---------- Optional RA params container ----------
class RAListParams:
    def __init__(
        self,
        range: str = Query("[0,99]"),
        sort: str | None = Query(None),
        filter: str = Query("{}"),
    ):
        try:
            self.skip, self.limit = parse_range(range)
        except (ValueError, TypeError):
            self.skip, self.limit = 0, 100
        self.filters = parse_filter(filter)
        self.sort = sort

# ---------- Error mapping ----------
def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvoiceError)
    async def _invoice_error(request: Request, exc: InvoiceError):
        body: dict[str, Any] = {"detail": exc.message}
        if isinstance(exc, ValidationError) and exc.errors:
            body["errors"] = exc.errors
        if exc.status_code >= 500:
            logger.error(f"[{request.method} {request.url.path}] {exc.message}: {exc.__cause__!r}")
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body))

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(request: Request, exc: RequestValidationError):
        # Same 400 body as service-level validation failures.
        return await _invoice_error(request, from_pydantic(exc))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception(f"[{request.method} {request.url.path}] unhandled error")
        return JSONResponse(status_code=500, content={"detail": "Server error"})
