# services/invoice_store.py
from __future__ import annotations
import functools
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Mapping

from pydantic import ValidationError as PydanticValidationError
from tortoise.exceptions import DBConnectionError, IntegrityError, OperationalError
from tortoise.exceptions import ValidationError as ORMValidationError
from tortoise.queryset import QuerySet

from models import Invoice, PaymentStatus, SUMMARY_FIELDS
from schemas import (
    Attachment, InvoiceCreate, InvoiceRead, InvoiceRecord, InvoiceUpdate,
    normalize_email, normalize_invoice_number,
)
from services.config import DEFAULT_PDF_MIME_TYPE
from services.errors import DuplicateKey, NotFound, UpstreamFailure, ValidationError, from_pydantic

logger = logging.getLogger("uvicorn")

FULL_FIELDS = SUMMARY_FIELDS + ("pdf_data",)


def _guard(fn):
    """Translate ORM failures into the service taxonomy."""
    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except IntegrityError as e:
            raise DuplicateKey() from e
        except ORMValidationError as e:
            # Tortoise reports "<column>: <reason>" when a value breaks a column constraint.
            field, _, reason = str(e).partition(": ")
            raise ValidationError(errors=[{"field": field, "message": reason or str(e)}]) from e
        except (OperationalError, DBConnectionError) as e:
            logger.error(f"[invoice-store] {fn.__name__} failed: {e}")
            raise UpstreamFailure() from e
    return wrapper


def _as_create(fields: InvoiceCreate | Mapping[str, Any]) -> InvoiceCreate:
    if isinstance(fields, InvoiceCreate):
        return fields
    try:
        return InvoiceCreate.model_validate(dict(fields))
    except PydanticValidationError as e:
        raise from_pydantic(e) from e


def _as_update(changes: InvoiceUpdate | Mapping[str, Any]) -> InvoiceUpdate:
    if isinstance(changes, InvoiceUpdate):
        return changes
    try:
        return InvoiceUpdate.model_validate(dict(changes))
    except PydanticValidationError as e:
        raise from_pydantic(e) from e


def attachment_columns(attachment: Attachment) -> dict[str, Any]:
    # Always all four together: a new upload never leaves stale pieces behind.
    return {
        "pdf_data": attachment.data,
        "pdf_file_name": attachment.file_name,
        "pdf_mime_type": attachment.mime_type or DEFAULT_PDF_MIME_TYPE,
        "pdf_size": attachment.size,
    }


async def _rows(qs: QuerySet[Invoice], with_pdf: bool = False) -> list[InvoiceRead]:
    schema = InvoiceRecord if with_pdf else InvoiceRead
    rows = await qs.values(*(FULL_FIELDS if with_pdf else SUMMARY_FIELDS))
    return [schema.model_validate(r) for r in rows]


async def _one(qs: QuerySet[Invoice], with_pdf: bool = False) -> InvoiceRead | None:
    found = await _rows(qs.limit(1), with_pdf=with_pdf)
    return found[0] if found else None


# ---------- writes ----------

@_guard
async def create(
    fields: InvoiceCreate | Mapping[str, Any],
    attachment: Attachment | None = None,
    *,
    new_id: Callable[[], uuid.UUID],
    now: Callable[[], datetime],
) -> InvoiceRecord:
    payload = _as_create(fields)
    values = payload.model_dump()
    if values["invoice_date"] is None:
        values["invoice_date"] = now()
    if attachment is not None:
        values.update(attachment_columns(attachment))
    obj = await Invoice.create(id=new_id(), **values)
    return InvoiceRecord.model_validate(obj)


@_guard
async def update(
    invoice_id: uuid.UUID | str,
    changes: InvoiceUpdate | Mapping[str, Any],
    attachment: Attachment | None = None,
) -> InvoiceRecord:
    payload = _as_update(changes)
    obj = await Invoice.get_or_none(id=invoice_id)
    if obj is None:
        raise NotFound()
    for k, v in payload.changes().items():
        setattr(obj, k, v)
    if attachment is not None:
        for k, v in attachment_columns(attachment).items():
            setattr(obj, k, v)
    await obj.save()
    return InvoiceRecord.model_validate(obj)


@_guard
async def delete(invoice_id: uuid.UUID | str) -> bool:
    deleted = await Invoice.filter(id=invoice_id).delete()
    return bool(deleted)


# ---------- reads (pdf_data excluded unless asked for) ----------

@_guard
async def find_by_id(invoice_id: uuid.UUID | str, *, with_pdf: bool = False) -> InvoiceRead | None:
    return await _one(Invoice.filter(id=invoice_id), with_pdf=with_pdf)


@_guard
async def find_by_invoice_number(number: str, *, with_pdf: bool = False) -> InvoiceRead | None:
    return await _one(Invoice.filter(invoice_number=normalize_invoice_number(number)), with_pdf=with_pdf)


@_guard
async def find_by_customer_email(email: str) -> list[InvoiceRead]:
    qs = Invoice.filter(customer_email=normalize_email(email)).order_by("-created_at")
    return await _rows(qs)


def _filtered(
    payment_status: PaymentStatus | None = None,
    invoice_number: str | None = None,
    customer_email: str | None = None,
) -> QuerySet[Invoice]:
    qs = Invoice.all()
    if payment_status is not None:
        qs = qs.filter(payment_status=payment_status)
    if invoice_number:
        qs = qs.filter(invoice_number__contains=normalize_invoice_number(invoice_number))
    if customer_email:
        qs = qs.filter(customer_email__contains=normalize_email(customer_email))
    return qs


@_guard
async def list_all(payment_status: PaymentStatus | None = None) -> list[InvoiceRead]:
    return await _rows(_filtered(payment_status).order_by("-created_at"))


@_guard
async def list_page(
    *,
    skip: int,
    limit: int,
    order: str = "-created_at",
    payment_status: PaymentStatus | None = None,
    invoice_number: str | None = None,
    customer_email: str | None = None,
) -> tuple[int, list[InvoiceRead]]:
    """One page of the full listing, counted and sliced in the database."""
    qs = _filtered(payment_status, invoice_number, customer_email)
    total = await qs.count()
    items = await _rows(qs.order_by(order, "id").offset(skip).limit(limit))
    return total, items
