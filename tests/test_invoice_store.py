"""Unit tests for the invoice record store (in-memory sqlite)."""

import asyncio
import uuid
from decimal import Decimal

import pytest
from tortoise.exceptions import OperationalError

from models import Invoice, PaymentStatus
from schemas import Attachment, InvoiceRecord, InvoiceUpdate
from services import invoice_store
from services.errors import DuplicateKey, NotFound, UpstreamFailure, ValidationError
from tests.conftest import FIXED_NOW, PDF_BYTES, invoice_fields

pytestmark = pytest.mark.usefixtures("db")


async def _create(fixed_now, attachment=None, **overrides) -> InvoiceRecord:
    return await invoice_store.create(
        invoice_fields(**overrides), attachment, new_id=uuid.uuid4, now=fixed_now
    )


class TestCreate:
    """Creation, normalization and defaults."""

    async def test_uses_injected_factories(self, fixed_now) -> None:
        known = uuid.UUID("11111111-2222-3333-4444-555555555555")

        invoice = await invoice_store.create(invoice_fields(), new_id=lambda: known, now=fixed_now)

        assert invoice.id == known
        assert invoice.invoice_date == FIXED_NOW
        assert invoice.payment_status == PaymentStatus.UNPAID

    async def test_persists_normalized_values(self, fixed_now) -> None:
        invoice = await _create(fixed_now, invoice_number=" inv-7 ", customer_email=" User@Example.COM ")

        stored = await invoice_store.find_by_id(invoice.id)
        assert stored.invoice_number == "INV-7"
        assert stored.customer_email == "user@example.com"
        assert stored.invoice_amount == Decimal("100.00")

    async def test_normalized_duplicate_number_is_rejected(self, fixed_now) -> None:
        await _create(fixed_now, invoice_number="inv-001")

        with pytest.raises(DuplicateKey):
            await _create(fixed_now, invoice_number="INV-001 ")

        assert await Invoice.all().count() == 1

    async def test_invalid_mapping_raises_validation_error(self, fixed_now) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await _create(fixed_now, customer_email="nope")

        assert exc_info.value.errors[0]["field"] == "customer_email"
        assert await Invoice.all().count() == 0

    async def test_attachment_columns_are_written_together(self, fixed_now) -> None:
        attachment = Attachment(data=PDF_BYTES, file_name="a.pdf", mime_type="application/pdf")

        invoice = await _create(fixed_now, attachment)

        assert invoice.pdf_data == PDF_BYTES
        assert invoice.pdf_file_name == "a.pdf"
        assert invoice.pdf_mime_type == "application/pdf"
        assert invoice.pdf_size == len(PDF_BYTES)

    async def test_no_attachment_leaves_every_pdf_column_empty(self, fixed_now) -> None:
        invoice = await _create(fixed_now)

        stored = await invoice_store.find_by_id(invoice.id, with_pdf=True)
        assert stored.pdf_data is None
        assert stored.pdf_file_name is None
        assert stored.pdf_mime_type is None
        assert stored.pdf_size is None

    async def test_overlong_file_name_is_a_validation_error(self, fixed_now) -> None:
        # Bypasses the schema bound so the column limit itself is exercised.
        attachment = Attachment.model_construct(
            data=PDF_BYTES, file_name="x" * 300 + ".pdf", mime_type="application/pdf"
        )

        with pytest.raises(ValidationError) as exc_info:
            await _create(fixed_now, attachment)

        assert exc_info.value.errors[0]["field"] == "pdf_file_name"
        assert await Invoice.all().count() == 0

    async def test_concurrent_duplicates_leave_one_row(self, fixed_now) -> None:
        results = await asyncio.gather(
            _create(fixed_now, invoice_number="inv-9"),
            _create(fixed_now, invoice_number=" INV-9 "),
            return_exceptions=True,
        )

        assert sum(isinstance(r, DuplicateKey) for r in results) == 1
        assert sum(isinstance(r, InvoiceRecord) for r in results) == 1
        assert await Invoice.all().count() == 1


class TestUpdate:
    """Partial updates and attachment replacement."""

    async def test_unknown_id_raises_not_found(self) -> None:
        with pytest.raises(NotFound):
            await invoice_store.update(uuid.uuid4(), InvoiceUpdate(payment_status="Paid"))

    async def test_partial_update_keeps_other_fields(self, fixed_now) -> None:
        invoice = await _create(fixed_now)

        updated = await invoice_store.update(invoice.id, {"payment_status": "Paid"})

        assert updated.payment_status == PaymentStatus.PAID
        assert updated.invoice_number == "A-1"
        assert updated.invoice_amount == Decimal("100.00")

    async def test_touched_fields_are_renormalized(self, fixed_now) -> None:
        invoice = await _create(fixed_now)

        updated = await invoice_store.update(invoice.id, {"invoice_number": " a-2 ", "customer_email": "Q@X.COM"})

        assert updated.invoice_number == "A-2"
        assert updated.customer_email == "q@x.com"

    async def test_update_to_existing_number_fails_without_change(self, fixed_now) -> None:
        await _create(fixed_now, invoice_number="A-1")
        second = await _create(fixed_now, invoice_number="A-2")

        with pytest.raises(DuplicateKey):
            await invoice_store.update(second.id, {"invoice_number": "a-1"})

        stored = await invoice_store.find_by_id(second.id)
        assert stored.invoice_number == "A-2"

    async def test_update_rejects_unknown_fields(self, fixed_now) -> None:
        invoice = await _create(fixed_now)

        with pytest.raises(ValidationError):
            await invoice_store.update(invoice.id, {"pdf_size": 1})

    async def test_update_without_attachment_preserves_it(self, fixed_now) -> None:
        attachment = Attachment(data=PDF_BYTES, file_name="orig.pdf", mime_type="application/pdf")
        invoice = await _create(fixed_now, attachment)

        await invoice_store.update(invoice.id, {"invoice_amount": "5.00"})

        stored = await invoice_store.find_by_id(invoice.id, with_pdf=True)
        assert stored.pdf_data == PDF_BYTES
        assert stored.pdf_file_name == "orig.pdf"
        assert stored.pdf_mime_type == "application/pdf"
        assert stored.pdf_size == len(PDF_BYTES)

    async def test_new_attachment_replaces_all_columns(self, fixed_now) -> None:
        invoice = await _create(fixed_now, Attachment(data=PDF_BYTES, file_name="old.pdf"))
        replacement = Attachment(data=b"%PDF-2.0 new", file_name="new.pdf", mime_type="application/x-pdf")

        await invoice_store.update(invoice.id, {}, replacement)

        stored = await invoice_store.find_by_id(invoice.id, with_pdf=True)
        assert stored.pdf_data == b"%PDF-2.0 new"
        assert stored.pdf_file_name == "new.pdf"
        assert stored.pdf_mime_type == "application/x-pdf"
        assert stored.pdf_size == len(b"%PDF-2.0 new")


class TestReads:
    """Lookups, ordering and the attachment-excluded projection."""

    async def test_default_projection_omits_pdf_bytes(self, fixed_now) -> None:
        invoice = await _create(fixed_now, Attachment(data=PDF_BYTES, file_name="a.pdf"))

        stored = await invoice_store.find_by_id(invoice.id)

        assert "pdf_data" not in stored.model_dump()
        assert stored.pdf_file_name == "a.pdf"
        assert stored.pdf_size == len(PDF_BYTES)

    async def test_find_by_invoice_number_normalizes_argument(self, fixed_now) -> None:
        invoice = await _create(fixed_now, invoice_number="A-9")

        found = await invoice_store.find_by_invoice_number(" a-9 ")

        assert found.id == invoice.id
        assert await invoice_store.find_by_invoice_number("missing") is None

    async def test_find_by_customer_email(self, fixed_now) -> None:
        await _create(fixed_now, invoice_number="A-1", customer_email="a@x.com")
        await _create(fixed_now, invoice_number="A-2", customer_email="a@x.com")
        await _create(fixed_now, invoice_number="B-1", customer_email="b@x.com")

        found = await invoice_store.find_by_customer_email("A@X.COM")

        assert [i.invoice_number for i in found] == ["A-2", "A-1"]

    async def test_list_all_is_newest_first(self, fixed_now) -> None:
        for n in ("A-1", "A-2", "A-3"):
            await _create(fixed_now, invoice_number=n)

        listed = await invoice_store.list_all()

        assert [i.invoice_number for i in listed] == ["A-3", "A-2", "A-1"]
        assert all("pdf_data" not in i.model_dump() for i in listed)

    async def test_list_all_filters_by_payment_status(self, fixed_now) -> None:
        await _create(fixed_now, invoice_number="A-1", payment_status="Paid")
        await _create(fixed_now, invoice_number="A-2")

        paid = await invoice_store.list_all(PaymentStatus.PAID)

        assert [i.invoice_number for i in paid] == ["A-1"]

    async def test_list_page_counts_all_and_returns_one_page(self, fixed_now) -> None:
        for n in ("A-1", "A-2", "A-3"):
            await _create(fixed_now, invoice_number=n)

        total, page = await invoice_store.list_page(skip=1, limit=1)

        assert total == 3
        assert [i.invoice_number for i in page] == ["A-2"]

    async def test_list_page_sorts_and_filters(self, fixed_now) -> None:
        await _create(fixed_now, invoice_number="B-2", customer_email="a@x.com")
        await _create(fixed_now, invoice_number="B-1", customer_email="a@x.com")
        await _create(fixed_now, invoice_number="C-1", customer_email="c@x.com")

        total, page = await invoice_store.list_page(
            skip=0, limit=10, order="invoice_number", invoice_number="b-", customer_email="A@X"
        )

        assert total == 2
        assert [i.invoice_number for i in page] == ["B-1", "B-2"]


class TestStorageFailures:
    """Driver errors surface as UpstreamFailure."""

    async def test_operational_error_becomes_upstream_failure(self, monkeypatch) -> None:
        def broken(*args, **kwargs):
            raise OperationalError("disk I/O error")

        monkeypatch.setattr(invoice_store.Invoice, "filter", broken)

        with pytest.raises(UpstreamFailure) as exc_info:
            await invoice_store.find_by_id(uuid.uuid4())

        assert exc_info.value.message == "Storage failure"


class TestDelete:
    async def test_delete_reports_whether_a_row_existed(self, fixed_now) -> None:
        invoice = await _create(fixed_now)

        assert await invoice_store.delete(invoice.id) is True
        assert await invoice_store.delete(invoice.id) is False
        assert await invoice_store.find_by_id(invoice.id) is None
