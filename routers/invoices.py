# routers/invoices.py
from __future__ import annotations
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import ValidationError as PydanticValidationError

from api_utils import (
    RAListParams, parse_sort, respond_attachment, respond_item, respond_page, respond_plain_list,
)
from deps import get_admin_principal, get_principal
from models import PaymentStatus
from schemas import Attachment, InvoiceDeleted, InvoiceRead, Principal
from services import config, invoices
from services.errors import UpstreamFailure, ValidationError, from_pydantic
from services.invoices import AttachmentMode

router = APIRouter(prefix="/invoices", tags=["invoices"])

# --- helpers ---------------------------------------------------------------

def _provided(**fields) -> dict:
    # Multipart forms send "" for blank inputs; treat those as absent.
    return {k: v for k, v in fields.items() if v is not None and v != ""}

def _text(value) -> Optional[str]:
    return value if isinstance(value, str) and value.strip() else None

async def _read_attachment(upload: Optional[UploadFile]) -> Optional[Attachment]:
    if upload is None or not upload.filename:
        return None
    try:
        data = await upload.read()
    except OSError as e:
        raise UpstreamFailure("Error processing PDF file") from e
    finally:
        await upload.close()

    mime = upload.content_type or config.DEFAULT_PDF_MIME_TYPE
    if mime not in config.ATTACHMENT_MIME_TYPES:
        raise ValidationError(errors=[{"field": "attachment", "message": f"Unsupported file type: {mime}"}])
    if not data:
        raise ValidationError(errors=[{"field": "attachment", "message": "Uploaded file is empty"}])
    if len(data) > config.MAX_ATTACHMENT_BYTES:
        raise ValidationError(errors=[{
            "field": "attachment",
            "message": f"File exceeds {config.MAX_ATTACHMENT_BYTES} bytes",
        }])
    try:
        return Attachment(data=data, file_name=upload.filename, mime_type=mime)
    except PydanticValidationError as e:
        errors = [{**err, "field": f"attachment.{err['field']}"} for err in from_pydantic(e).errors]
        raise ValidationError(errors=errors) from e

# --- admin-only routes -----------------------------------------------------

@router.post("", response_model=InvoiceRead, status_code=201)
async def create_invoice(
    invoice_number: Optional[str] = Form(None),
    customer_email: Optional[str] = Form(None),
    invoice_date: Optional[str] = Form(None),
    due_date: Optional[str] = Form(None),
    payment_status: Optional[str] = Form(None),
    invoice_amount: Optional[str] = Form(None),
    attachment: Optional[UploadFile] = File(None),
    admin: Principal = Depends(get_admin_principal),
):
    fields = _provided(
        invoice_number=invoice_number,
        customer_email=customer_email,
        invoice_date=invoice_date,
        due_date=due_date,
        payment_status=payment_status,
        invoice_amount=invoice_amount,
    )
    obj = await invoices.create_invoice(fields, await _read_attachment(attachment))
    return respond_item(obj.summary(), status_code=201)

INVOICE_SORT_FIELDS = (
    "invoice_number", "customer_email", "invoice_date", "due_date",
    "payment_status", "invoice_amount", "created_at", "updated_at",
)

@router.get("", response_model=list[InvoiceRead])
async def list_invoices(
    payment_status: Optional[PaymentStatus] = Query(None),
    params: RAListParams = Depends(),
    admin: Principal = Depends(get_admin_principal),
):
    filters = params.filters if isinstance(params.filters, dict) else {}
    if payment_status is None and filters.get("payment_status") in {s.value for s in PaymentStatus}:
        payment_status = PaymentStatus(filters["payment_status"])
    order = parse_sort(params.sort, INVOICE_SORT_FIELDS, default=("created_at", "DESC"))
    total, items = await invoices.list_page(
        params.skip,
        params.limit,
        order,
        payment_status=payment_status,
        invoice_number=_text(filters.get("invoice_number")),
        customer_email=_text(filters.get("customer_email")),
    )
    return respond_page(items, params.skip, total)

@router.put("/{invoice_id:uuid}", response_model=InvoiceRead)
async def update_invoice(
    invoice_id: uuid.UUID,
    invoice_number: Optional[str] = Form(None),
    customer_email: Optional[str] = Form(None),
    invoice_date: Optional[str] = Form(None),
    due_date: Optional[str] = Form(None),
    payment_status: Optional[str] = Form(None),
    invoice_amount: Optional[str] = Form(None),
    attachment: Optional[UploadFile] = File(None),
    admin: Principal = Depends(get_admin_principal),
):
    changes = _provided(
        invoice_number=invoice_number,
        customer_email=customer_email,
        invoice_date=invoice_date,
        due_date=due_date,
        payment_status=payment_status,
        invoice_amount=invoice_amount,
    )
    obj = await invoices.update_invoice(invoice_id, changes, await _read_attachment(attachment))
    return respond_item(obj.summary())

@router.delete("/{invoice_id:uuid}", response_model=InvoiceDeleted)
async def delete_invoice(invoice_id: uuid.UUID, admin: Principal = Depends(get_admin_principal)):
    await invoices.delete_invoice(invoice_id)
    return InvoiceDeleted(deleted=True, id=invoice_id)

# --- any authenticated principal -------------------------------------------

@router.get("/search/{invoice_number}", response_model=InvoiceRead)
async def search_invoice(invoice_number: str, principal: Principal = Depends(get_principal)):
    return respond_item(await invoices.search_by_number(invoice_number))

@router.get("/customer", response_model=list[InvoiceRead])
async def list_customer_invoices(email: str = Query(...), principal: Principal = Depends(get_principal)):
    items = await invoices.list_by_customer(email)
    return respond_plain_list(items, 0, len(items))

# --- ownership-checked -----------------------------------------------------

@router.get("/{invoice_id:uuid}", response_model=InvoiceRead)
async def get_invoice(invoice_id: uuid.UUID, principal: Principal = Depends(get_principal)):
    return respond_item(await invoices.get_invoice_detail(invoice_id, principal))

@router.get("/{invoice_id:uuid}/pdf")
async def download_pdf(invoice_id: uuid.UUID, principal: Principal = Depends(get_principal)):
    att = await invoices.get_attachment(invoice_id, principal, AttachmentMode.DOWNLOAD)
    return respond_attachment(att)

@router.get("/{invoice_id:uuid}/pdf/view")
async def view_pdf(invoice_id: uuid.UUID, principal: Principal = Depends(get_principal)):
    att = await invoices.get_attachment(invoice_id, principal, AttachmentMode.VIEW)
    return respond_attachment(att)
