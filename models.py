from enum import Enum

from tortoise import fields, models


class Role(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


class PaymentStatus(str, Enum):
    PAID = "Paid"
    UNPAID = "Unpaid"


# -------- Users --------
class User(models.Model):
    id = fields.UUIDField(primary_key=True)
    email = fields.CharField(max_length=255, unique=True, index=True)
    hashed_password = fields.CharField(max_length=128)
    role = fields.CharEnumField(Role, max_length=16, default=Role.CUSTOMER)
    disabled = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "users"

    def __str__(self) -> str:
        return f"{self.email} ({self.role})"


# -------- Invoices --------
PDF_FILE_NAME_LENGTH = 255
PDF_MIME_TYPE_LENGTH = 100


class Invoice(models.Model):
    """
    Invoice metadata plus an optional embedded PDF.
    The four pdf_* columns are written together or not at all, so none of
    them carries a default.
    """
    id = fields.UUIDField(primary_key=True)
    invoice_number = fields.CharField(max_length=64, unique=True, index=True)
    customer_email = fields.CharField(max_length=255, index=True)
    invoice_date = fields.DatetimeField()
    due_date = fields.DatetimeField(index=True)
    payment_status = fields.CharEnumField(PaymentStatus, max_length=16, default=PaymentStatus.UNPAID, index=True)
    invoice_amount = fields.DecimalField(max_digits=10, decimal_places=2, default=0)

    pdf_data = fields.BinaryField(null=True)
    pdf_file_name = fields.CharField(max_length=PDF_FILE_NAME_LENGTH, null=True)
    pdf_mime_type = fields.CharField(max_length=PDF_MIME_TYPE_LENGTH, null=True)
    pdf_size = fields.IntField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "invoices"

    def __str__(self) -> str:
        return self.invoice_number


# Columns returned by list/search/detail reads: everything except the blob.
SUMMARY_FIELDS = (
    "id",
    "invoice_number",
    "customer_email",
    "invoice_date",
    "due_date",
    "payment_status",
    "invoice_amount",
    "pdf_file_name",
    "pdf_mime_type",
    "pdf_size",
    "created_at",
    "updated_at",
)
