# services/invoices.py
"""
Invoice use cases: persistence via invoice_store, ownership checks via
access.can_access. Admin-only gating (create/update/delete/list-all) is the
router's job and happens before anything here runs.
"""
from __future__ import annotations
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping

from models import PaymentStatus
from schemas import (
    Attachment, AttachmentContent, InvoiceCreate, InvoiceRead, InvoiceRecord,
    InvoiceUpdate, Principal,
)
from services import invoice_store
from services.access import can_access
from services.config import DEFAULT_PDF_MIME_TYPE
from services.errors import AccessDenied, AttachmentMissing, NotFound

logger = logging.getLogger("uvicorn")
UTC = timezone.utc


class AttachmentMode(str, Enum):
    DOWNLOAD = "download"
    VIEW = "view"


_DISPOSITION = {
    AttachmentMode.DOWNLOAD: "attachment",
    AttachmentMode.VIEW: "inline",
}


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def fallback_file_name(invoice_number: str) -> str:
    return f"invoice-{invoice_number}.pdf"


async def create_invoice(
    fields: InvoiceCreate | Mapping[str, Any],
    attachment: Attachment | None = None,
    *,
    new_id: Callable[[], uuid.UUID] = uuid.uuid4,
    now: Callable[[], datetime] = utcnow,
) -> InvoiceRecord:
    invoice = await invoice_store.create(fields, attachment, new_id=new_id, now=now)
    logger.info(
        f"[invoices] created {invoice.invoice_number} ({invoice.id})"
        + (f" with {invoice.pdf_size} byte attachment" if attachment else "")
    )
    return invoice


async def update_invoice(
    invoice_id: uuid.UUID | str,
    changes: InvoiceUpdate | Mapping[str, Any],
    attachment: Attachment | None = None,
) -> InvoiceRecord:
    invoice = await invoice_store.update(invoice_id, changes, attachment)
    logger.info(f"[invoices] updated {invoice.invoice_number} ({invoice.id}){' + new attachment' if attachment else ''}")
    return invoice


async def delete_invoice(invoice_id: uuid.UUID | str) -> None:
    if not await invoice_store.delete(invoice_id):
        raise NotFound()
    logger.info(f"[invoices] deleted {invoice_id}")


async def get_invoice_detail(invoice_id: uuid.UUID | str, principal: Principal) -> InvoiceRead:
    invoice = await invoice_store.find_by_id(invoice_id)
    if invoice is None:
        raise NotFound()
    if not can_access(principal, invoice):
        logger.warning(f"[invoices] {principal.email} denied detail of {invoice_id}")
        raise AccessDenied()
    return invoice


async def get_attachment(
    invoice_id: uuid.UUID | str,
    principal: Principal,
    mode: AttachmentMode | str = AttachmentMode.DOWNLOAD,
) -> AttachmentContent:
    """
    Resolve the stored PDF for download or inline viewing.

    Checks run in order: the invoice exists, the principal may see it,
    and only then whether a PDF was ever uploaded, so a stranger cannot
    find out which invoices carry attachments.
    """
    mode = AttachmentMode(mode)
    invoice = await invoice_store.find_by_id(invoice_id, with_pdf=True)
    if invoice is None:
        raise NotFound()
    if not can_access(principal, invoice):
        logger.warning(f"[invoices] {principal.email} denied pdf of {invoice_id}")
        raise AccessDenied()
    if not invoice.pdf_data:
        raise AttachmentMissing()

    return AttachmentContent(
        content=invoice.pdf_data,
        file_name=invoice.pdf_file_name or fallback_file_name(invoice.invoice_number),
        mime_type=invoice.pdf_mime_type or DEFAULT_PDF_MIME_TYPE,
        size=invoice.pdf_size or len(invoice.pdf_data),
        disposition=_DISPOSITION[mode],
    )


async def search_by_number(number: str) -> InvoiceRead:
    invoice = await invoice_store.find_by_invoice_number(number)
    if invoice is None:
        raise NotFound()
    return invoice


async def list_by_customer(email: str) -> list[InvoiceRead]:
    return await invoice_store.find_by_customer_email(email)


async def list_all(payment_status: PaymentStatus | None = None) -> list[InvoiceRead]:
    return await invoice_store.list_all(payment_status)


async def list_page(
    skip: int,
    limit: int,
    order: str = "-created_at",
    *,
    payment_status: PaymentStatus | None = None,
    invoice_number: str | None = None,
    customer_email: str | None = None,
) -> tuple[int, list[InvoiceRead]]:
    return await invoice_store.list_page(
        skip=skip,
        limit=limit,
        order=order,
        payment_status=payment_status,
        invoice_number=invoice_number,
        customer_email=customer_email,
    )
